"""Configuration loading for Kusto ingestion.

Configuration is loaded from a single YAML file with a ``kusto:`` section.

Main Functions
--------------
    - load_config(): Load ingestion configuration from YAML
    - get_config(): Get or load singleton config instance
    - set_config(): Replace the singleton (tests)
    - reset_config(): Reset singleton config instance

Usage Examples
--------------
    >>> from config import load_config
    >>> config = load_config()
    >>> config.table_name
    'Events'

Environment variables in YAML are expanded with ${VAR} or ${VAR:-default}.
"""

from config.config import (
    DEFAULT_CONFIG_FILE,
    ENV_OVERRIDES,
    IngestConfig,
    get_config,
    load_config,
    reset_config,
    set_config,
)

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ENV_OVERRIDES",
    "IngestConfig",
    "get_config",
    "load_config",
    "reset_config",
    "set_config",
]
