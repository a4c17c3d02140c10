"""Token provider implementations, one per authentication strategy."""

from core.auth.providers.azure_cli import AzureCliTokenProvider
from core.auth.providers.client_credential import ClientCredentialTokenProvider
from core.auth.providers.managed_identity import (
    SYSTEM_IDENTITY,
    ManagedIdentityTokenProvider,
    SystemIdentityTokenProvider,
    UserIdentityTokenProvider,
)
from core.auth.providers.workload_identity import (
    DEFAULT_TOKEN_FILE_PATH,
    WorkloadIdentityTokenProvider,
)

__all__ = [
    "AzureCliTokenProvider",
    "ClientCredentialTokenProvider",
    "ManagedIdentityTokenProvider",
    "SystemIdentityTokenProvider",
    "UserIdentityTokenProvider",
    "WorkloadIdentityTokenProvider",
    "SYSTEM_IDENTITY",
    "DEFAULT_TOKEN_FILE_PATH",
]
