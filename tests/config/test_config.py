import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from config.config import (
    DEFAULT_CONFIG_FILE,
    ENV_OVERRIDES,
    IngestConfig,
    _cli_main,
    _deep_merge,
    _expand_env_vars,
    get_config,
    load_config,
    load_yaml,
    reset_config,
    set_config,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for env_var in ENV_OVERRIDES:
        monkeypatch.delenv(env_var, raising=False)


VALID_YAML = """
kusto:
  endpoint: https://mycluster.westeurope.kusto.windows.net
  database_name: telemetry
  table_name: Events
  auth_type: aad
  tenant_id: tenant
  client_id: client
  client_secret: secret
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(VALID_YAML)
    return path


def _config(**overrides):
    values = {
        "endpoint": "https://mycluster.westeurope.kusto.windows.net",
        "database_name": "telemetry",
        "table_name": "Events",
        "auth_type": "aad",
        "tenant_id": "tenant",
        "client_id": "client",
        "client_secret": "secret",
    }
    values.update(overrides)
    return IngestConfig(**values)


# =========================================================================
# load_yaml / helpers
# =========================================================================


class TestLoadYaml:
    def test_returns_empty_dict_for_nonexistent_file(self):
        assert load_yaml(Path("/nonexistent/path/config.yaml")) == {}

    def test_loads_yaml_file(self, tmp_path):
        config_file = tmp_path / "test.yaml"
        config_file.write_text("key: value\nnested:\n  a: 1\n")
        assert load_yaml(config_file) == {"key": "value", "nested": {"a": 1}}

    def test_returns_empty_dict_for_empty_file(self, tmp_path):
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        assert load_yaml(config_file) == {}


class TestExpandEnvVars:
    def test_expands_set_variable(self):
        with patch.dict(os.environ, {"MY_DB": "prod"}):
            assert _expand_env_vars({"db": "${MY_DB}"}) == {"db": "prod"}

    def test_uses_default_when_unset(self):
        with patch.dict(os.environ, {}, clear=True):
            assert _expand_env_vars(["${MISSING:-fallback}"]) == ["fallback"]

    def test_empty_default(self):
        with patch.dict(os.environ, {}, clear=True):
            assert _expand_env_vars("${MISSING:-}") == ""

    def test_leaves_unset_variable_without_default(self):
        with patch.dict(os.environ, {}, clear=True):
            assert _expand_env_vars("${MISSING}") == "${MISSING}"

    def test_non_strings_unchanged(self):
        assert _expand_env_vars({"n": 3, "b": True}) == {"n": 3, "b": True}


class TestDeepMerge:
    def test_merges_nested(self):
        base = {"a": {"x": 1, "y": 2}, "b": 1}
        result = _deep_merge(base, {"a": {"y": 3}})
        assert result == {"a": {"x": 1, "y": 3}, "b": 1}
        assert base["a"]["y"] == 2


# =========================================================================
# IngestConfig
# =========================================================================


class TestIngestConfigCoercion:
    def test_string_values_coerced(self):
        config = _config(
            compression_enabled="false",
            delayed="yes",
            deferred_commit_timeout="45",
            deferred_commit_workers="3",
            worker_id=12,
        )

        assert config.compression_enabled is False
        assert config.delayed is True
        assert config.deferred_commit_timeout == 45.0
        assert config.deferred_commit_workers == 3
        assert config.worker_id == "12"

    def test_defaults(self):
        config = _config()
        assert config.compression_enabled is True
        assert config.buffered is True
        assert config.delayed is False
        assert config.deferred_commit_timeout == 30.0
        assert config.shutdown_grace_period == 10.0


class TestIngestConfigValidate:
    def test_valid(self):
        _config().validate()

    def test_missing_target_lists_every_field(self):
        config = _config(endpoint="", database_name=None, table_name="  ")

        with pytest.raises(ValueError) as exc_info:
            config.validate()

        message = str(exc_info.value)
        assert message.startswith("Invalid ingestion configuration:")
        assert "Missing required parameters: endpoint, database_name, table_name" in message

    def test_unknown_auth_type(self):
        with pytest.raises(ValueError, match="Unknown auth_type 'kerberos'"):
            _config(auth_type="kerberos").validate()

    def test_auth_type_case_insensitive(self):
        _config(auth_type="AAD").validate()

    def test_aad_requires_credentials(self):
        with pytest.raises(ValueError, match="auth_type 'aad' requires: client_secret"):
            _config(client_secret="").validate()

    def test_workload_identity_accepts_generic_ids(self):
        _config(auth_type="workload_identity", client_secret=None).validate()

    def test_workload_identity_requires_ids(self):
        config = _config(auth_type="workload_identity", client_id=None, tenant_id=None)
        with pytest.raises(ValueError) as exc_info:
            config.validate()
        assert "workload_identity_client_id" in str(exc_info.value)
        assert "workload_identity_tenant_id" in str(exc_info.value)

    def test_user_managed_identity_requires_client_id(self):
        with pytest.raises(ValueError, match="managed_identity_client_id"):
            _config(auth_type="user_managed_identity").validate()

    @pytest.mark.parametrize("auth_type", ["azcli", "system_managed_identity"])
    def test_auth_types_without_parameters(self, auth_type):
        _config(auth_type=auth_type, tenant_id=None, client_id=None, client_secret=None).validate()

    def test_unknown_cloud(self):
        with pytest.raises(ValueError, match="Unsupported azure_cloud"):
            _config(azure_cloud="MoonCloud").validate()

    def test_delayed_requires_buffered(self):
        with pytest.raises(ValueError, match="Delayed commit is only supported in buffered mode"):
            _config(delayed=True, buffered=False).validate()

    def test_non_positive_timings(self):
        config = _config(deferred_commit_timeout=0, deferred_commit_workers=0)
        with pytest.raises(ValueError) as exc_info:
            config.validate()
        assert "deferred_commit_timeout must be positive" in str(exc_info.value)
        assert "deferred_commit_workers must be at least 1" in str(exc_info.value)


class TestFingerprint:
    def test_same_connection_same_fingerprint(self):
        assert _config().fingerprint() == _config(table_name="Other", delayed=True).fingerprint()

    def test_auth_type_case_ignored(self):
        assert _config(auth_type="AAD").fingerprint() == _config().fingerprint()

    @pytest.mark.parametrize(
        "field,value",
        [
            ("endpoint", "https://other.kusto.windows.net"),
            ("client_secret", "rotated"),
            ("auth_type", "azcli"),
        ],
    )
    def test_connection_fields_change_fingerprint(self, field, value):
        assert _config(**{field: value}).fingerprint() != _config().fingerprint()


class TestToSafeDict:
    def test_masks_secret(self):
        data = _config().to_safe_dict()
        assert data["client_secret"] == "***"
        assert data["client_id"] == "client"

    def test_no_secret(self):
        assert _config(client_secret=None).to_safe_dict()["client_secret"] is None


# =========================================================================
# load_config
# =========================================================================


class TestLoadConfig:
    def test_loads_valid_file(self, config_file):
        config = load_config(config_file)
        assert config.endpoint == "https://mycluster.westeurope.kusto.windows.net"
        assert config.table_name == "Events"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_missing_kusto_section(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("other:\n  a: 1\n")
        with pytest.raises(ValueError, match="missing 'kusto:' section"):
            load_config(path)

    def test_env_expansion_in_yaml(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MY_TABLE", "Expanded")
        path = tmp_path / "config.yaml"
        path.write_text(VALID_YAML.replace("table_name: Events", "table_name: ${MY_TABLE}"))

        assert load_config(path).table_name == "Expanded"

    def test_env_overrides_win_over_yaml(self, config_file, monkeypatch):
        monkeypatch.setenv("KUSTO_DATABASE", "from_env")
        assert load_config(config_file).database_name == "from_env"

    def test_explicit_overrides_win_over_env(self, config_file, monkeypatch):
        monkeypatch.setenv("KUSTO_DATABASE", "from_env")
        config = load_config(config_file, overrides={"database_name": "explicit"})
        assert config.database_name == "explicit"

    def test_unknown_keys_ignored(self, tmp_path, caplog):
        path = tmp_path / "config.yaml"
        path.write_text(VALID_YAML + "  unexpected_key: 1\n")

        config = load_config(path)

        assert not hasattr(config, "unexpected_key")
        assert "unexpected_key" in caplog.text

    def test_invalid_config_raises(self, config_file):
        with pytest.raises(ValueError, match="Delayed commit"):
            load_config(config_file, overrides={"delayed": True, "buffered": False})

    def test_default_file_loads_with_env(self, monkeypatch):
        monkeypatch.setenv("AZURE_TENANT_ID", "t")
        monkeypatch.setenv("AZURE_CLIENT_ID", "c")
        monkeypatch.setenv("KUSTO_CLIENT_SECRET", "s")

        config = load_config(DEFAULT_CONFIG_FILE)

        assert config.auth_type == "aad"
        assert config.client_secret == "s"
        assert config.delayed is False


class TestSingleton:
    def test_set_and_get(self):
        config = _config()
        set_config(config)
        assert get_config() is config

    def test_reset_forces_reload(self):
        set_config(_config())
        reset_config()
        with patch("config.config.load_config", return_value="reloaded") as mock_load:
            assert get_config() == "reloaded"
            mock_load.assert_called_once_with()


class TestCli:
    def test_validate_json_success(self, config_file, capsys):
        with patch("sys.argv", ["prog", "--validate", "--json", "--config", str(config_file)]):
            assert _cli_main() == 0

        output = json.loads(capsys.readouterr().out)
        assert output == {"validation": {"passed": True}}

    def test_validate_failure(self, tmp_path, capsys):
        with patch("sys.argv", ["prog", "--validate", "--json", "--config", str(tmp_path / "x.yaml")]):
            assert _cli_main() == 1

        output = json.loads(capsys.readouterr().out)
        assert output["validation"]["passed"] is False

    def test_show_masks_secret(self, config_file, capsys):
        with patch("sys.argv", ["prog", "--show", "--json", "--config", str(config_file)]):
            assert _cli_main() == 0

        output = json.loads(capsys.readouterr().out)
        assert output["config"]["client_secret"] == "***"
