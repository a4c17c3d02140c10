"""Azure CLI session token provider for local development."""

import json
import logging
import shutil
import subprocess
from datetime import datetime
from typing import Optional

from azure.core.credentials import AccessToken

from core.auth.base import BaseTokenProvider
from core.auth.models import kusto_scope
from core.errors.exceptions import AuthenticationError
from core.types import ErrorCategory

logger = logging.getLogger(__name__)

CLI_TIMEOUT_SECONDS = 60


def _parse_cli_expiry(payload: dict) -> int:
    """
    Read the expiry from `az account get-access-token` output.

    Newer CLI versions report `expires_on` (epoch seconds); older ones only
    report `expiresOn` as a local-time string. Returns 0 if neither parses.
    """
    expires_on = payload.get("expires_on")
    if expires_on is not None:
        try:
            return int(expires_on)
        except (TypeError, ValueError):
            pass

    expires_str = payload.get("expiresOn")
    if expires_str:
        try:
            return int(datetime.fromisoformat(expires_str).timestamp())
        except ValueError:
            logger.debug("Unparseable expiresOn from Azure CLI: %s", expires_str)
    return 0


class AzureCliTokenProvider(BaseTokenProvider):
    """
    Token provider backed by the local `az login` session.

    The resource is the Kusto endpoint itself, matching how the CLI scopes
    tokens for Azure Data Explorer.
    """

    def __init__(
        self,
        endpoint: str,
        tenant_id: Optional[str] = None,
        timeout_seconds: float = CLI_TIMEOUT_SECONDS,
        **kwargs,
    ):
        super().__init__("azcli", kusto_scope(endpoint), **kwargs)
        self.resource = endpoint.rstrip("/")
        self.tenant_id = tenant_id
        self.timeout_seconds = timeout_seconds

    def _build_command(self) -> list[str]:
        az_path = shutil.which("az")
        if not az_path:
            raise AuthenticationError(
                "Azure CLI not found in PATH\n"
                "Hint: Install Azure CLI from https://aka.ms/azure-cli and run 'az login'",
                category=ErrorCategory.PERMANENT,
            )

        cmd = [az_path, "account", "get-access-token", "--resource", self.resource]
        if self.tenant_id:
            cmd.extend(["--tenant", self.tenant_id])
        cmd.extend(["--output", "json"])
        return cmd

    def fetch_token(self) -> AccessToken:
        cmd = self._build_command()

        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            raise AuthenticationError(
                f"Azure CLI token request timed out after {self.timeout_seconds}s",
                cause=e,
                category=ErrorCategory.TRANSIENT,
            ) from e

        if proc.returncode != 0:
            stderr = proc.stderr.strip()
            if "az login" in stderr.lower() or "please run" in stderr.lower():
                raise AuthenticationError(
                    f"Azure CLI session expired\nRun: az login\nDetails: {stderr}",
                    category=ErrorCategory.PERMANENT,
                )
            raise AuthenticationError(
                f"Azure CLI token fetch failed: {stderr}",
                category=ErrorCategory.TRANSIENT,
            )

        try:
            payload = json.loads(proc.stdout)
        except ValueError as e:
            raise AuthenticationError(
                "Azure CLI returned invalid JSON",
                cause=e,
                category=ErrorCategory.TRANSIENT,
            ) from e

        token = payload.get("accessToken")
        if not token:
            raise AuthenticationError(
                "Azure CLI returned empty token\nHint: Try running 'az login' again",
                category=ErrorCategory.TRANSIENT,
            )

        logger.debug("Fetched token from Azure CLI", extra={"provider": self.provider_name})
        return AccessToken(token, _parse_cli_expiry(payload))
