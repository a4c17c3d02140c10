"""
Kusto store-and-notify ingestion.

Batches are uploaded to temporary blob storage handed out by the cluster and
announced through an ingestion queue; the cluster ingests them
asynchronously.

Modules:
    batch        - Host batch protocol and one-time resolution
    records      - Blob naming, chunk id stamping, verification query
    query        - KQL client for management commands and count queries
    resources    - Cached blob/queue SAS and identity token
    uploader     - Blob PUT + queue POST
    registry     - Shared, reference-counted client bundles
    coordinator  - write / try_write / delayed commit / shutdown
    metrics      - Prometheus metrics

Usage:
    >>> from config import load_config
    >>> from kusto_ingest import IngestionCoordinator, InMemoryBatch
    >>> coordinator = IngestionCoordinator(load_config(), commit_callback=ack)
    >>> coordinator.try_write(InMemoryBatch(data, unique_id=b"\\x01\\x02", batch_tag="app.logs"))
    >>> coordinator.shutdown()
"""

from kusto_ingest.batch import Batch, InMemoryBatch, ResolvedBatch, resolve_batch
from kusto_ingest.coordinator import DeferredCommitJob, IngestionCoordinator, JobOutcome
from kusto_ingest.query import KustoQueryClient, QueryResult
from kusto_ingest.registry import ClientBundle, ClientRegistry, get_registry
from kusto_ingest.resources import CachedResources, ResourceCache
from kusto_ingest.uploader import BatchUploader, UploadResult

__all__ = [
    "Batch",
    "BatchUploader",
    "CachedResources",
    "ClientBundle",
    "ClientRegistry",
    "DeferredCommitJob",
    "InMemoryBatch",
    "IngestionCoordinator",
    "JobOutcome",
    "KustoQueryClient",
    "QueryResult",
    "ResolvedBatch",
    "ResourceCache",
    "UploadResult",
    "get_registry",
    "resolve_batch",
]
