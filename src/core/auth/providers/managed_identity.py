"""Managed identity token providers (system- and user-assigned)."""

import logging
from typing import Optional

from azure.core.credentials import AccessToken
from azure.identity import ManagedIdentityCredential

from core.auth.base import BaseTokenProvider
from core.auth.models import kusto_scope

logger = logging.getLogger(__name__)

# Configuration value selecting the system-assigned identity
SYSTEM_IDENTITY = "SYSTEM"


class ManagedIdentityTokenProvider(BaseTokenProvider):
    """Token provider backed by the instance metadata service (IMDS)."""

    def __init__(self, endpoint: str, client_id: Optional[str] = None, **kwargs):
        name = "user_managed_identity" if client_id else "system_managed_identity"
        super().__init__(name, kusto_scope(endpoint), **kwargs)
        self.client_id = client_id

        if client_id:
            self._credential = ManagedIdentityCredential(client_id=client_id)
        else:
            self._credential = ManagedIdentityCredential()

    def fetch_token(self) -> AccessToken:
        return self._credential.get_token(self.scope)


class SystemIdentityTokenProvider(ManagedIdentityTokenProvider):
    """System-assigned managed identity."""

    def __init__(self, endpoint: str, **kwargs):
        super().__init__(endpoint, client_id=None, **kwargs)


class UserIdentityTokenProvider(ManagedIdentityTokenProvider):
    """User-assigned managed identity selected by client id."""

    def __init__(self, endpoint: str, client_id: str, **kwargs):
        if not client_id or client_id.upper() == SYSTEM_IDENTITY:
            raise ValueError("client_id is required for a user-assigned managed identity")
        super().__init__(endpoint, client_id=client_id, **kwargs)
