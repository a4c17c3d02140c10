"""
pytest configuration for ingestion tests.

Adds src directory to Python path for imports and provides shared fixtures.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from config.config import IngestConfig, reset_config  # noqa: E402
from core.logging.context import clear_log_context  # noqa: E402


@pytest.fixture
def ingest_config():
    """Valid client-credential config with fast delayed-commit timings."""
    return IngestConfig(
        endpoint="https://mycluster.westeurope.kusto.windows.net",
        database_name="telemetry",
        table_name="Events",
        auth_type="aad",
        tenant_id="tenant-123",
        client_id="client-123",
        client_secret="secret-123",
        compression_enabled=False,
        buffered=True,
        delayed=False,
        deferred_commit_timeout=2.0,
        deferred_commit_poll_interval=0.05,
        deferred_commit_workers=4,
        shutdown_grace_period=2.0,
        worker_id="7",
    )


@pytest.fixture(autouse=True)
def _reset_globals():
    yield
    reset_config()
    clear_log_context()
