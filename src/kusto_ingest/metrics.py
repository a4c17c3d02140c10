"""
Prometheus metrics for ingestion monitoring.

Focused on essential metrics:
- Batch submissions by mode and outcome
- Uploaded bytes and upload latency
- Commit outcomes of delayed-commit jobs
- Ingestion resource fetches
"""

import logging

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

logger = logging.getLogger(__name__)


def _existing(registry: CollectorRegistry, name: str):
    # Counters register under both "x_total" and "x"
    collectors = getattr(registry, "_names_to_collectors", {})
    return collectors.get(name) or collectors.get(name.removesuffix("_total"))


def _create_counter(name: str, description: str, labelnames=None, registry=REGISTRY):
    try:
        return Counter(name, description, labelnames=labelnames or [], registry=registry)
    except ValueError:
        logger.debug("Reusing already registered metric %s", name)
        return _existing(registry, name)


def _create_gauge(name: str, description: str, labelnames=None, registry=REGISTRY):
    try:
        return Gauge(name, description, labelnames=labelnames or [], registry=registry)
    except ValueError:
        logger.debug("Reusing already registered metric %s", name)
        return _existing(registry, name)


def _create_histogram(name: str, description: str, labelnames=None, buckets=None, registry=REGISTRY):
    kwargs = {
        "name": name,
        "documentation": description,
        "labelnames": labelnames or [],
        "registry": registry,
    }
    if buckets:
        kwargs["buckets"] = buckets
    try:
        return Histogram(**kwargs)
    except ValueError:
        logger.debug("Reusing already registered metric %s", name)
        return _existing(registry, name)


# =============================================================================
# Core Metrics
# =============================================================================

batches_counter = _create_counter(
    "kusto_ingest_batches_total",
    "Total batches submitted by write mode and outcome",
    labelnames=["mode", "outcome"],
)

bytes_counter = _create_counter(
    "kusto_ingest_bytes_total",
    "Total payload bytes uploaded to temporary storage",
)

commits_counter = _create_counter(
    "kusto_ingest_commits_total",
    "Total batch commits by terminal outcome",
    labelnames=["outcome"],
)

resource_fetch_counter = _create_counter(
    "kusto_ingest_resource_fetch_total",
    "Total ingestion resource fetches by outcome",
    labelnames=["outcome"],
)

upload_duration_seconds = _create_histogram(
    "kusto_ingest_upload_duration_seconds",
    "Time spent uploading a batch (blob PUT plus queue POST)",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

deferred_jobs_gauge = _create_gauge(
    "kusto_ingest_deferred_jobs_active",
    "Delayed-commit jobs awaiting verification",
)


# =============================================================================
# Convenience Functions
# =============================================================================


def record_batch(mode: str, outcome: str) -> None:
    """Record a batch submission (mode: write|try_write)."""
    batches_counter.labels(mode=mode, outcome=outcome).inc()


def record_upload(byte_size: int, duration_seconds: float) -> None:
    """Record a successful upload."""
    bytes_counter.inc(byte_size)
    upload_duration_seconds.observe(duration_seconds)


def record_commit(outcome: str) -> None:
    """Record a commit with its terminal outcome."""
    commits_counter.labels(outcome=outcome).inc()


def record_resource_fetch(success: bool) -> None:
    """Record an ingestion resource fetch."""
    resource_fetch_counter.labels(outcome="success" if success else "failure").inc()


__all__ = [
    "batches_counter",
    "bytes_counter",
    "commits_counter",
    "resource_fetch_counter",
    "upload_duration_seconds",
    "deferred_jobs_gauge",
    "record_batch",
    "record_upload",
    "record_commit",
    "record_resource_fetch",
]
