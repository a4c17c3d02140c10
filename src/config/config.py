"""Kusto ingestion configuration from YAML file.

Loads from config/config.yaml with all settings in one place:
- Target cluster, database and table
- Authentication strategy and its parameters
- Compression, delayed commit and logging settings

Environment variables ARE supported using ${VAR_NAME} syntax in YAML files,
and the variables in ENV_OVERRIDES take precedence over the file.
"""

import hashlib
import json
import logging
import os
import re
import sys
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from core.auth.factory import AUTH_TYPES
from core.auth.models import AZURE_CLOUDS

# Configure module logger
logger = logging.getLogger(__name__)


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        # Support both ${VAR} and ${VAR:-default} syntax
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _to_bool(value: Any) -> bool:
    # bool('false') would be True
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# Default config file: config/config.yaml in src/ directory
DEFAULT_CONFIG_FILE = Path(__file__).parent / "config.yaml"

# Environment variable -> IngestConfig field
ENV_OVERRIDES = {
    "KUSTO_ENDPOINT": "endpoint",
    "KUSTO_DATABASE": "database_name",
    "KUSTO_TABLE": "table_name",
    "KUSTO_AUTH_TYPE": "auth_type",
    "AZURE_TENANT_ID": "tenant_id",
    "AZURE_CLIENT_ID": "client_id",
    "KUSTO_CLIENT_SECRET": "client_secret",
    "KUSTO_MANAGED_IDENTITY_CLIENT_ID": "managed_identity_client_id",
    "KUSTO_AZURE_CLOUD": "azure_cloud",
}

# Fields that decide which backend a set of clients talks to, and as whom
_CONNECTION_FIELDS = (
    "endpoint",
    "auth_type",
    "tenant_id",
    "client_id",
    "client_secret",
    "managed_identity_client_id",
    "workload_identity_client_id",
    "workload_identity_tenant_id",
    "workload_identity_token_file_path",
    "azure_cloud",
)


@dataclass
class IngestConfig:
    """Kusto ingestion configuration.

    Configuration structure:
        kusto:
          endpoint: https://<cluster>.<region>.kusto.windows.net
          database_name: ...
          table_name: ...
          auth_type: aad | azcli | workload_identity |
                     user_managed_identity | system_managed_identity
          ...                         # auth parameters per strategy
          compression_enabled: true
          buffered: true
          delayed: false
          deferred_commit_timeout: 30 # seconds

    All timing values in seconds.
    """

    # =========================================================================
    # TARGET
    # =========================================================================
    endpoint: str = ""
    database_name: str = ""
    table_name: str = ""

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================
    auth_type: str = "aad"
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    managed_identity_client_id: Optional[str] = None
    workload_identity_client_id: Optional[str] = None
    workload_identity_tenant_id: Optional[str] = None
    workload_identity_token_file_path: Optional[str] = None
    azure_cloud: str = "AzureCloud"

    # =========================================================================
    # INGESTION BEHAVIOR
    # =========================================================================
    compression_enabled: bool = True
    buffered: bool = True  # Host batches events; only gates delayed
    delayed: bool = False
    deferred_commit_timeout: float = 30.0
    deferred_commit_poll_interval: float = 1.0
    deferred_commit_workers: int = 8
    force_commit_on_verification_error: bool = True
    shutdown_grace_period: float = 10.0
    ingestion_mapping_reference: Optional[str] = None
    worker_id: Optional[str] = None

    # =========================================================================
    # OBSERVABILITY
    # =========================================================================
    logger_path: Optional[str] = None

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.compression_enabled = _to_bool(self.compression_enabled)
        self.buffered = _to_bool(self.buffered)
        self.delayed = _to_bool(self.delayed)
        self.force_commit_on_verification_error = _to_bool(
            self.force_commit_on_verification_error
        )
        self.deferred_commit_timeout = float(self.deferred_commit_timeout)
        self.deferred_commit_poll_interval = float(self.deferred_commit_poll_interval)
        self.deferred_commit_workers = int(self.deferred_commit_workers)
        self.shutdown_grace_period = float(self.shutdown_grace_period)
        if self.worker_id is not None:
            self.worker_id = str(self.worker_id)

    def _missing(self, *names: str) -> list[str]:
        return [n for n in names if not str(getattr(self, n) or "").strip()]

    def validate(self) -> None:
        """Validate configuration.

        Raises:
            ValueError: If any setting is missing or inconsistent
        """
        errors = []

        missing = self._missing("endpoint", "database_name", "table_name")
        if missing:
            errors.append(f"Missing required parameters: {', '.join(missing)}")

        auth_type = (self.auth_type or "").lower()
        if auth_type not in AUTH_TYPES:
            errors.append(
                f"Unknown auth_type '{self.auth_type}'. Supported: {', '.join(AUTH_TYPES)}"
            )
        elif auth_type == "aad":
            missing = self._missing("client_id", "client_secret", "tenant_id")
            if missing:
                errors.append(f"auth_type 'aad' requires: {', '.join(missing)}")
        elif auth_type == "workload_identity":
            if not (self.workload_identity_client_id or self.client_id):
                errors.append("auth_type 'workload_identity' requires workload_identity_client_id")
            if not (self.workload_identity_tenant_id or self.tenant_id):
                errors.append("auth_type 'workload_identity' requires workload_identity_tenant_id")
        elif auth_type == "user_managed_identity":
            if self._missing("managed_identity_client_id"):
                errors.append(
                    "auth_type 'user_managed_identity' requires managed_identity_client_id"
                )

        if self.azure_cloud not in AZURE_CLOUDS:
            errors.append(
                f"Unsupported azure_cloud '{self.azure_cloud}'. "
                f"Supported: {', '.join(sorted(AZURE_CLOUDS))}"
            )

        if self.delayed and not self.buffered:
            errors.append(
                "Delayed commit is only supported in buffered mode "
                "(buffered must be true if delayed is true)"
            )

        for name in ("deferred_commit_timeout", "deferred_commit_poll_interval", "shutdown_grace_period"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")
        if self.deferred_commit_workers < 1:
            errors.append("deferred_commit_workers must be at least 1")

        if errors:
            raise ValueError("Invalid ingestion configuration:\n  - " + "\n  - ".join(errors))

    def fingerprint(self) -> str:
        """Stable identity of the backend + credentials this config targets."""
        identity = {name: getattr(self, name) for name in _CONNECTION_FIELDS}
        identity["auth_type"] = (identity["auth_type"] or "").lower()
        digest = hashlib.sha256(json.dumps(identity, sort_keys=True).encode("utf-8"))
        return digest.hexdigest()[:16]

    def to_safe_dict(self) -> Dict[str, Any]:
        """Config as dict with secrets masked."""
        data = asdict(self)
        if data.get("client_secret"):
            data["client_secret"] = "***"
        return data


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> IngestConfig:
    """Load ingestion configuration from config.yaml.

    Priority (highest to lowest): overrides, ENV_OVERRIDES variables,
    YAML values (with ${VAR} expansion), dataclass defaults.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}\n" f"Expected file: config/config.yaml"
        )

    logger.info("Loading configuration from file: %s", config_path)
    yaml_data = _expand_env_vars(load_yaml(config_path))

    if "kusto" not in yaml_data:
        raise ValueError(
            "Invalid config file: missing 'kusto:' section\n"
            "See config.yaml for correct structure"
        )

    kusto_config = yaml_data["kusto"] or {}

    for env_var, field_name in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value:
            kusto_config[field_name] = value

    if overrides:
        logger.debug("Applying overrides: %s", list(overrides.keys()))
        kusto_config = _deep_merge(kusto_config, overrides)

    known = {f.name for f in fields(IngestConfig)}
    unknown = sorted(set(kusto_config) - known)
    if unknown:
        logger.warning("Ignoring unknown configuration keys: %s", ", ".join(unknown))

    config = IngestConfig(**{k: v for k, v in kusto_config.items() if k in known})

    logger.debug("Validating configuration...")
    config.validate()
    logger.debug(
        "Configuration loaded",
        extra={"database": config.database_name, "table": config.table_name, "auth_type": config.auth_type},
    )
    return config


_ingest_config: Optional[IngestConfig] = None


def get_config() -> IngestConfig:
    """Get or load the singleton ingestion config instance."""
    global _ingest_config
    if _ingest_config is None:
        _ingest_config = load_config()
    return _ingest_config


def set_config(config: IngestConfig) -> None:
    """Set the singleton config instance (useful for testing)."""
    global _ingest_config
    _ingest_config = config


def reset_config() -> None:
    """Reset the singleton config instance (forces reload on next get_config() call)."""
    global _ingest_config
    _ingest_config = None


def _cli_main() -> int:
    """CLI entry point for config validation and debugging."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Kusto Ingestion Configuration Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Validate configuration
  python -m config.config --validate

  # Show resolved configuration (secrets masked)
  python -m config.config --show

  # Use custom config file, JSON output for automation
  python -m config.config --config /path/to/config.yaml --validate --json
        """,
    )
    parser.add_argument("--validate", action="store_true", help="Validate configuration")
    parser.add_argument("--show", action="store_true", help="Display resolved configuration")
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config.yaml file (default: src/config/config.yaml)",
    )
    parser.add_argument("--env-file", type=Path, help="Load environment variables from a .env file")
    parser.add_argument("--json", action="store_true", help="Output in JSON format")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    if not args.validate and not args.show:
        parser.print_help()
        return 0

    load_dotenv(args.env_file) if args.env_file else load_dotenv()

    try:
        config = load_config(config_path=args.config)
    except (FileNotFoundError, ValueError) as e:
        if args.json:
            print(json.dumps({"validation": {"passed": False, "error": str(e)}}, indent=2))
        else:
            print(f"Configuration invalid: {e}", file=sys.stderr)
        return 1

    output: Dict[str, Any] = {}
    if args.validate:
        output["validation"] = {"passed": True}
    if args.show:
        output["config"] = config.to_safe_dict()

    if args.json:
        print(json.dumps(output, indent=2, default=str))
    else:
        if args.validate:
            print("Configuration valid")
        if args.show:
            print(yaml.safe_dump(output["config"], sort_keys=False))
    return 0


if __name__ == "__main__":
    sys.exit(_cli_main())
