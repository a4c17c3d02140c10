"""Federated-token (Kubernetes workload identity) token provider."""

import logging
import os
from typing import Optional

from azure.core.credentials import AccessToken
from azure.identity import WorkloadIdentityCredential

from core.auth.base import BaseTokenProvider
from core.auth.models import authority_for_cloud, kusto_scope

logger = logging.getLogger(__name__)

# Projected service account token mounted by the workload identity webhook
DEFAULT_TOKEN_FILE_PATH = "/var/run/secrets/azure/tokens/azure-identity-token"


class WorkloadIdentityTokenProvider(BaseTokenProvider):
    """
    Exchanges a projected service-account token for an AAD token.

    The token file path falls back to AZURE_FEDERATED_TOKEN_FILE, then to
    the webhook's default mount path.
    """

    def __init__(
        self,
        endpoint: str,
        tenant_id: str,
        client_id: str,
        token_file_path: Optional[str] = None,
        azure_cloud: str = "AzureCloud",
        **kwargs,
    ):
        super().__init__("workload_identity", kusto_scope(endpoint), **kwargs)

        if not all([tenant_id, client_id]):
            raise ValueError("tenant_id and client_id are required for workload identity")

        self.tenant_id = tenant_id
        self.client_id = client_id
        self.token_file_path = (
            token_file_path
            or os.getenv("AZURE_FEDERATED_TOKEN_FILE")
            or DEFAULT_TOKEN_FILE_PATH
        )

        logger.debug(
            "Initialized workload identity token provider",
            extra={"provider": self.provider_name, "auth_type": "workload_identity"},
        )

        self._credential = WorkloadIdentityCredential(
            tenant_id=tenant_id,
            client_id=client_id,
            token_file_path=self.token_file_path,
            authority=authority_for_cloud(azure_cloud),
        )

    def fetch_token(self) -> AccessToken:
        return self._credential.get_token(self.scope)
