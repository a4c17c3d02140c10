"""Tests for the concrete token providers and the provider factory."""

import json
import subprocess
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
from azure.core.credentials import AccessToken
from azure.identity import AzureAuthorityHosts

from core.auth.factory import create_token_provider
from core.auth.models import authority_for_cloud, kusto_scope
from core.auth.providers import (
    DEFAULT_TOKEN_FILE_PATH,
    AzureCliTokenProvider,
    ClientCredentialTokenProvider,
    SystemIdentityTokenProvider,
    UserIdentityTokenProvider,
    WorkloadIdentityTokenProvider,
)
from core.auth.providers.azure_cli import _parse_cli_expiry
from core.errors.exceptions import AuthenticationError
from core.types import ErrorCategory

ENDPOINT = "https://mycluster.westeurope.kusto.windows.net"
SCOPE = "https://mycluster.westeurope.kusto.windows.net/.default"


class TestModels:

    def test_kusto_scope_strips_trailing_slash(self):
        assert kusto_scope(ENDPOINT + "/") == SCOPE

    def test_authority_for_known_cloud(self):
        assert authority_for_cloud("AzureChinaCloud") == AzureAuthorityHosts.AZURE_CHINA

    def test_authority_for_unknown_cloud(self):
        with pytest.raises(ValueError, match="Unsupported azure_cloud"):
            authority_for_cloud("MoonCloud")


class TestClientCredentialTokenProvider:

    @patch("core.auth.providers.client_credential.ClientSecretCredential")
    def test_creates_credential_and_fetches(self, mock_cred_cls):
        mock_cred_cls.return_value.get_token.return_value = AccessToken("tok", 9_999_999_999)

        provider = ClientCredentialTokenProvider(
            endpoint=ENDPOINT,
            tenant_id="tenant",
            client_id="client",
            client_secret="secret",
        )

        assert provider.provider_name == "aad"
        mock_cred_cls.assert_called_once_with(
            tenant_id="tenant",
            client_id="client",
            client_secret="secret",
            authority=AzureAuthorityHosts.AZURE_PUBLIC_CLOUD,
        )
        assert provider.get_token() == "tok"
        mock_cred_cls.return_value.get_token.assert_called_once_with(SCOPE)

    @pytest.mark.parametrize("missing", ["tenant_id", "client_id", "client_secret"])
    def test_missing_parameters(self, missing):
        kwargs = {"tenant_id": "t", "client_id": "c", "client_secret": "s"}
        kwargs[missing] = None

        with pytest.raises(ValueError, match="required"):
            ClientCredentialTokenProvider(endpoint=ENDPOINT, **kwargs)

    @patch("core.auth.providers.client_credential.ClientSecretCredential")
    def test_sovereign_cloud_authority(self, mock_cred_cls):
        ClientCredentialTokenProvider(
            endpoint=ENDPOINT,
            tenant_id="t",
            client_id="c",
            client_secret="s",
            azure_cloud="AzureUSGovernment",
        )

        assert mock_cred_cls.call_args.kwargs["authority"] == AzureAuthorityHosts.AZURE_GOVERNMENT


class TestManagedIdentityTokenProviders:

    @patch("core.auth.providers.managed_identity.ManagedIdentityCredential")
    def test_system_identity(self, mock_cred_cls):
        provider = SystemIdentityTokenProvider(endpoint=ENDPOINT)

        assert provider.provider_name == "system_managed_identity"
        mock_cred_cls.assert_called_once_with()

    @patch("core.auth.providers.managed_identity.ManagedIdentityCredential")
    def test_user_identity(self, mock_cred_cls):
        mock_cred_cls.return_value.get_token.return_value = AccessToken("mi", 9_999_999_999)

        provider = UserIdentityTokenProvider(endpoint=ENDPOINT, client_id="mi-client")

        assert provider.provider_name == "user_managed_identity"
        mock_cred_cls.assert_called_once_with(client_id="mi-client")
        assert provider.get_token() == "mi"

    @pytest.mark.parametrize("client_id", ["", "SYSTEM", "system"])
    def test_user_identity_requires_client_id(self, client_id):
        with pytest.raises(ValueError):
            UserIdentityTokenProvider(endpoint=ENDPOINT, client_id=client_id)


class TestWorkloadIdentityTokenProvider:

    @patch("core.auth.providers.workload_identity.WorkloadIdentityCredential")
    def test_explicit_token_file(self, mock_cred_cls):
        provider = WorkloadIdentityTokenProvider(
            endpoint=ENDPOINT,
            tenant_id="t",
            client_id="c",
            token_file_path="/tmp/token",
        )

        assert provider.token_file_path == "/tmp/token"
        assert mock_cred_cls.call_args.kwargs["token_file_path"] == "/tmp/token"

    @patch("core.auth.providers.workload_identity.WorkloadIdentityCredential")
    def test_token_file_from_environment(self, mock_cred_cls, monkeypatch):
        monkeypatch.setenv("AZURE_FEDERATED_TOKEN_FILE", "/env/token")

        provider = WorkloadIdentityTokenProvider(endpoint=ENDPOINT, tenant_id="t", client_id="c")

        assert provider.token_file_path == "/env/token"

    @patch("core.auth.providers.workload_identity.WorkloadIdentityCredential")
    def test_default_token_file(self, mock_cred_cls, monkeypatch):
        monkeypatch.delenv("AZURE_FEDERATED_TOKEN_FILE", raising=False)

        provider = WorkloadIdentityTokenProvider(endpoint=ENDPOINT, tenant_id="t", client_id="c")

        assert provider.token_file_path == DEFAULT_TOKEN_FILE_PATH

    def test_requires_tenant_and_client(self):
        with pytest.raises(ValueError, match="tenant_id and client_id"):
            WorkloadIdentityTokenProvider(endpoint=ENDPOINT, tenant_id="t", client_id=None)


def _completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestAzureCliTokenProvider:

    @pytest.fixture
    def provider(self):
        return AzureCliTokenProvider(endpoint=ENDPOINT, tenant_id="tenant", sleep=Mock())

    @patch("core.auth.providers.azure_cli.subprocess.run")
    @patch("core.auth.providers.azure_cli.shutil.which", return_value="/usr/bin/az")
    def test_fetch_success(self, mock_which, mock_run, provider):
        mock_run.return_value = _completed(
            stdout=json.dumps({"accessToken": "cli-token", "expires_on": 9_999_999_999})
        )

        assert provider.get_token() == "cli-token"

        cmd = mock_run.call_args.args[0]
        assert cmd[:5] == ["/usr/bin/az", "account", "get-access-token", "--resource", ENDPOINT]
        assert cmd[cmd.index("--tenant") + 1] == "tenant"
        assert mock_run.call_args.kwargs["timeout"] == provider.timeout_seconds

    @patch("core.auth.providers.azure_cli.subprocess.run")
    @patch("core.auth.providers.azure_cli.shutil.which", return_value="/usr/bin/az")
    def test_expired_session_is_permanent(self, mock_which, mock_run, provider):
        mock_run.return_value = _completed(
            returncode=1, stderr="ERROR: Please run 'az login' to setup account."
        )

        with pytest.raises(AuthenticationError) as exc_info:
            provider.get_token()

        assert exc_info.value.category == ErrorCategory.PERMANENT
        assert mock_run.call_count == 1

    @patch("core.auth.providers.azure_cli.subprocess.run")
    @patch("core.auth.providers.azure_cli.shutil.which", return_value="/usr/bin/az")
    def test_timeout_is_retried(self, mock_which, mock_run, provider):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="az", timeout=60)

        with pytest.raises(AuthenticationError) as exc_info:
            provider.get_token()

        assert exc_info.value.category == ErrorCategory.TRANSIENT
        assert mock_run.call_count == 3

    @patch("core.auth.providers.azure_cli.subprocess.run")
    @patch("core.auth.providers.azure_cli.shutil.which", return_value=None)
    def test_missing_cli(self, mock_which, mock_run, provider):
        with pytest.raises(AuthenticationError, match="not found"):
            provider.get_token()

        mock_run.assert_not_called()

    @patch("core.auth.providers.azure_cli.subprocess.run")
    @patch("core.auth.providers.azure_cli.shutil.which", return_value="/usr/bin/az")
    def test_invalid_json_then_success(self, mock_which, mock_run, provider):
        mock_run.side_effect = [
            _completed(stdout="not json"),
            _completed(stdout=json.dumps({"accessToken": "ok", "expires_on": 9_999_999_999})),
        ]

        assert provider.get_token() == "ok"
        assert mock_run.call_count == 2


class TestParseCliExpiry:

    def test_epoch_field(self):
        assert _parse_cli_expiry({"expires_on": "1700000000"}) == 1700000000

    def test_iso_fallback(self):
        expected = int(datetime.fromisoformat("2030-01-01 10:00:00").timestamp())
        assert _parse_cli_expiry({"expiresOn": "2030-01-01 10:00:00"}) == expected

    def test_unparseable(self):
        assert _parse_cli_expiry({"expiresOn": "soon"}) == 0
        assert _parse_cli_expiry({}) == 0


def _auth_config(**overrides):
    values = {
        "endpoint": ENDPOINT,
        "auth_type": "aad",
        "tenant_id": "tenant",
        "client_id": "client",
        "client_secret": "secret",
        "managed_identity_client_id": None,
        "workload_identity_client_id": None,
        "workload_identity_tenant_id": None,
        "workload_identity_token_file_path": None,
        "azure_cloud": "AzureCloud",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class TestCreateTokenProvider:

    @patch("core.auth.providers.client_credential.ClientSecretCredential")
    def test_aad(self, mock_cred_cls):
        provider = create_token_provider(_auth_config(auth_type="AAD"))
        assert isinstance(provider, ClientCredentialTokenProvider)

    def test_azcli(self):
        provider = create_token_provider(_auth_config(auth_type="azcli"))
        assert isinstance(provider, AzureCliTokenProvider)
        assert provider.tenant_id == "tenant"

    @patch("core.auth.providers.workload_identity.WorkloadIdentityCredential")
    def test_workload_identity_prefers_specific_ids(self, mock_cred_cls):
        provider = create_token_provider(
            _auth_config(
                auth_type="workload_identity",
                workload_identity_client_id="wi-client",
                workload_identity_tenant_id="wi-tenant",
            )
        )

        assert isinstance(provider, WorkloadIdentityTokenProvider)
        assert provider.client_id == "wi-client"
        assert provider.tenant_id == "wi-tenant"

    @patch("core.auth.providers.managed_identity.ManagedIdentityCredential")
    def test_user_managed_identity(self, mock_cred_cls):
        provider = create_token_provider(
            _auth_config(auth_type="user_managed_identity", managed_identity_client_id="mi")
        )
        assert isinstance(provider, UserIdentityTokenProvider)

    @patch("core.auth.providers.managed_identity.ManagedIdentityCredential")
    @pytest.mark.parametrize(
        "auth_type,client_id",
        [
            ("system_managed_identity", None),
            ("user_managed_identity", "SYSTEM"),
        ],
    )
    def test_system_managed_identity(self, mock_cred_cls, auth_type, client_id):
        provider = create_token_provider(
            _auth_config(auth_type=auth_type, managed_identity_client_id=client_id)
        )
        assert isinstance(provider, SystemIdentityTokenProvider)

    def test_unknown_auth_type(self):
        with pytest.raises(ValueError, match="Unknown auth_type"):
            create_token_provider(_auth_config(auth_type="kerberos"))
