"""Azure AD client-credential (service principal secret) token provider."""

import logging

from azure.core.credentials import AccessToken
from azure.identity import ClientSecretCredential

from core.auth.base import BaseTokenProvider
from core.auth.models import authority_for_cloud, kusto_scope

logger = logging.getLogger(__name__)


class ClientCredentialTokenProvider(BaseTokenProvider):
    """
    Token provider using an AAD application id and secret.

    Uses azure-identity's ClientSecretCredential against the authority host
    of the configured Azure cloud.
    """

    def __init__(
        self,
        endpoint: str,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        azure_cloud: str = "AzureCloud",
        **kwargs,
    ):
        super().__init__("aad", kusto_scope(endpoint), **kwargs)

        if not all([tenant_id, client_id, client_secret]):
            raise ValueError("tenant_id, client_id, and client_secret are required")

        self.tenant_id = tenant_id
        self.client_id = client_id

        # Don't log the secret
        logger.debug(
            "Initialized client-credential token provider",
            extra={"provider": self.provider_name, "auth_type": "aad"},
        )

        self._credential = ClientSecretCredential(
            tenant_id=tenant_id,
            client_id=client_id,
            client_secret=client_secret,
            authority=authority_for_cloud(azure_cloud),
        )

    def fetch_token(self) -> AccessToken:
        return self._credential.get_token(self.scope)
