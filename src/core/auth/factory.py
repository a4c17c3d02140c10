"""Build the token provider selected by configuration."""

import logging

from core.auth.base import BaseTokenProvider
from core.auth.providers import (
    SYSTEM_IDENTITY,
    AzureCliTokenProvider,
    ClientCredentialTokenProvider,
    SystemIdentityTokenProvider,
    UserIdentityTokenProvider,
    WorkloadIdentityTokenProvider,
)

logger = logging.getLogger(__name__)

AUTH_TYPES = (
    "aad",
    "azcli",
    "workload_identity",
    "user_managed_identity",
    "system_managed_identity",
)


def create_token_provider(config) -> BaseTokenProvider:
    """
    Create the token provider for config.auth_type.

    Args:
        config: IngestConfig (or any object with the same auth attributes)

    Raises:
        ValueError: Unknown auth_type or missing parameters
    """
    auth_type = (config.auth_type or "").lower()

    if auth_type == "aad":
        provider = ClientCredentialTokenProvider(
            endpoint=config.endpoint,
            tenant_id=config.tenant_id,
            client_id=config.client_id,
            client_secret=config.client_secret,
            azure_cloud=config.azure_cloud,
        )
    elif auth_type == "azcli":
        provider = AzureCliTokenProvider(
            endpoint=config.endpoint,
            tenant_id=config.tenant_id,
        )
    elif auth_type == "workload_identity":
        provider = WorkloadIdentityTokenProvider(
            endpoint=config.endpoint,
            tenant_id=config.workload_identity_tenant_id or config.tenant_id,
            client_id=config.workload_identity_client_id or config.client_id,
            token_file_path=config.workload_identity_token_file_path,
            azure_cloud=config.azure_cloud,
        )
    elif auth_type in ("user_managed_identity", "system_managed_identity"):
        client_id = config.managed_identity_client_id
        if auth_type == "system_managed_identity" or not client_id or client_id.upper() == SYSTEM_IDENTITY:
            provider = SystemIdentityTokenProvider(endpoint=config.endpoint)
        else:
            provider = UserIdentityTokenProvider(endpoint=config.endpoint, client_id=client_id)
    else:
        raise ValueError(
            f"Unknown auth_type: {config.auth_type}. Supported: {', '.join(AUTH_TYPES)}"
        )

    logger.info(
        "Created token provider",
        extra={"provider": provider.provider_name, "auth_type": auth_type},
    )
    return provider


__all__ = ["AUTH_TYPES", "create_token_provider"]
