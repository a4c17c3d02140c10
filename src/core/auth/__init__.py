"""
Authentication module for Kusto bearer tokens.

Provides:
    - BaseTokenProvider: cached, single-refresher, retrying token provider base
    - One provider per strategy: client-credential, system / user managed
      identity, workload identity, Azure CLI session
    - create_token_provider: factory keyed by auth_type

Usage:
    >>> from core.auth import create_token_provider
    >>> provider = create_token_provider(config)
    >>> token = provider.get_token()
"""

from core.auth.base import BaseTokenProvider
from core.auth.factory import AUTH_TYPES, create_token_provider
from core.auth.models import (
    AZURE_CLOUDS,
    DEFAULT_TOKEN_LIFETIME_SECONDS,
    TOKEN_EXPIRY_BUFFER_SECONDS,
    ProviderHealthState,
    Token,
    authority_for_cloud,
    kusto_scope,
)
from core.auth.providers import (
    AzureCliTokenProvider,
    ClientCredentialTokenProvider,
    ManagedIdentityTokenProvider,
    SystemIdentityTokenProvider,
    UserIdentityTokenProvider,
    WorkloadIdentityTokenProvider,
)

__all__ = [
    "AUTH_TYPES",
    "AZURE_CLOUDS",
    "DEFAULT_TOKEN_LIFETIME_SECONDS",
    "TOKEN_EXPIRY_BUFFER_SECONDS",
    "AzureCliTokenProvider",
    "BaseTokenProvider",
    "ClientCredentialTokenProvider",
    "ManagedIdentityTokenProvider",
    "ProviderHealthState",
    "SystemIdentityTokenProvider",
    "Token",
    "UserIdentityTokenProvider",
    "WorkloadIdentityTokenProvider",
    "authority_for_cloud",
    "create_token_provider",
    "kusto_scope",
]
