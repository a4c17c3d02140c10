"""Token and provider state models."""

import time
from dataclasses import dataclass, field
from typing import Optional

from azure.identity import AzureAuthorityHosts

# Token timing constants
TOKEN_EXPIRY_BUFFER_SECONDS = 300  # Refresh 5 minutes before expiry
DEFAULT_TOKEN_LIFETIME_SECONDS = 3300  # Used when the backend omits a lifetime
REFRESH_WAIT_TIMEOUT_SECONDS = 30  # Max wait for another caller's refresh

# Long-running process health thresholds
MAX_PROVIDER_AGE_SECONDS = 43_200  # 12 hours
MAX_REFRESH_CYCLES = 100

# Azure cloud name -> AAD authority host
AZURE_CLOUDS = {
    "AzureCloud": AzureAuthorityHosts.AZURE_PUBLIC_CLOUD,
    "AzureChinaCloud": AzureAuthorityHosts.AZURE_CHINA,
    "AzureUSGovernment": AzureAuthorityHosts.AZURE_GOVERNMENT,
}


def authority_for_cloud(azure_cloud: str) -> str:
    """Resolve the AAD authority host for a cloud name."""
    try:
        return AZURE_CLOUDS[azure_cloud]
    except KeyError:
        raise ValueError(
            f"Unsupported azure_cloud '{azure_cloud}'. "
            f"Supported: {', '.join(sorted(AZURE_CLOUDS))}"
        ) from None


def kusto_scope(endpoint: str) -> str:
    """OAuth scope for a Kusto cluster endpoint."""
    return f"{endpoint.rstrip('/')}/.default"


@dataclass(frozen=True)
class Token:
    """
    Bearer token with its absolute expiry.

    Attributes:
        access_token: The access token string
        expires_on: Epoch seconds when the token expires
    """

    access_token: str
    expires_on: float

    def remaining(self, now: Optional[float] = None) -> float:
        """Seconds of lifetime left."""
        return self.expires_on - (time.time() if now is None else now)

    def is_fresh(self, buffer_seconds: float, now: Optional[float] = None) -> bool:
        """True if more than buffer_seconds of lifetime remain."""
        return self.remaining(now) > buffer_seconds


@dataclass
class ProviderHealthState:
    """
    All mutable provider state, guarded by the provider's lock.

    Replaced wholesale on a health reset.
    """

    creation_time: float = field(default_factory=time.time)
    token: Optional[Token] = None
    refresh_in_progress: bool = False
    refresh_count: int = 0
    consecutive_failures: int = 0
    last_failure_time: Optional[float] = None
    last_successful_refresh: Optional[float] = None


__all__ = [
    "AZURE_CLOUDS",
    "DEFAULT_TOKEN_LIFETIME_SECONDS",
    "MAX_PROVIDER_AGE_SECONDS",
    "MAX_REFRESH_CYCLES",
    "REFRESH_WAIT_TIMEOUT_SECONDS",
    "TOKEN_EXPIRY_BUFFER_SECONDS",
    "ProviderHealthState",
    "Token",
    "authority_for_cloud",
    "kusto_scope",
]
