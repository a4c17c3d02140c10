"""
Cache of ingestion resources fetched from the cluster.

The ingest endpoint hands out a temporary blob container SAS, the ingestion
queue SAS and an identity token to authorize the queued descriptor. They are
valid for hours, so they are fetched once and cached with a jittered TTL.

Thread Safety:
    A single lock serializes fetches, so concurrent callers on a cold or
    expired cache trigger exactly one fetch. Entries are frozen and replaced
    atomically; a failed fetch never touches the current entry.
"""

import logging
import random
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.errors.exceptions import QueryError, ResourceFetchError
from core.types import ErrorCategory
from kusto_ingest import metrics
from kusto_ingest.query import KustoQueryClient

logger = logging.getLogger(__name__)

GET_INGESTION_RESOURCES = ".get ingestion resources"
GET_IDENTITY_TOKEN = ".get kusto identity token"

TEMP_STORAGE = "TempStorage"
INGESTION_QUEUE = "SecuredReadyForAggregationQueue"

RESOURCE_TTL_SECONDS = 21600  # 6 hours
RESOURCE_TTL_JITTER_SECONDS = 1800  # +/- 30 minutes
MAX_CACHE_AGE_SECONDS = 43200  # 12 hours
MAX_FETCH_CYCLES = 200
STALE_FETCH_SECONDS = 21600  # 6 hours without a successful fetch


@dataclass(frozen=True)
class CachedResources:
    """One consistent set of ingestion resources."""

    blob_endpoint: str
    queue_endpoint: str
    identity_token: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return self.expires_at > now


class ResourceCache:
    """
    Fetches and caches ingestion resources.

    Example:
        cache = ResourceCache(query_client)
        res = cache.resources()
        upload(res.blob_endpoint, ...)
    """

    def __init__(
        self,
        query_client: KustoQueryClient,
        ttl_seconds: float = RESOURCE_TTL_SECONDS,
        jitter_seconds: float = RESOURCE_TTL_JITTER_SECONDS,
        max_age_seconds: float = MAX_CACHE_AGE_SECONDS,
        max_fetch_cycles: int = MAX_FETCH_CYCLES,
        stale_fetch_seconds: float = STALE_FETCH_SECONDS,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ):
        self._query_client = query_client
        self._ttl = ttl_seconds
        self._jitter = jitter_seconds
        self._max_age = max_age_seconds
        self._max_fetch_cycles = max_fetch_cycles
        self._stale_fetch = stale_fetch_seconds
        self._clock = clock
        self._rng = rng or random.Random()
        self._lock = threading.Lock()

        self._entry: Optional[CachedResources] = None
        self._creation_time = clock()
        self._fetch_count = 0
        self._last_successful_fetch: Optional[float] = None

    def resources(self) -> CachedResources:
        """
        Return the cached resources, fetching when missing or expired.

        Raises:
            ResourceFetchError: Fetch failed and no unexpired entry is cached
        """
        with self._lock:
            forced = self._check_health_locked()
            entry = self._entry
            if entry is not None and not forced and entry.is_valid(self._clock()):
                return entry
            return self._fetch_or_fallback_locked(entry)

    def refresh(self) -> CachedResources:
        """Force a fetch; the prior entry stays in effect if it fails."""
        with self._lock:
            return self._fetch_or_fallback_locked(self._entry)

    def _fetch_or_fallback_locked(self, entry: Optional[CachedResources]) -> CachedResources:
        try:
            return self._fetch_locked()
        except ResourceFetchError as e:
            if entry is not None and entry.is_valid(self._clock()):
                logger.warning(
                    "Resource refresh failed, keeping cached resources until expiry",
                    extra={
                        "expires_in_seconds": round(entry.expires_at - self._clock(), 1),
                        "error_message": str(e)[:200],
                    },
                )
                return entry
            raise

    def _fetch_locked(self) -> CachedResources:
        logger.info("Fetching ingestion resources")
        try:
            resource_rows = self._query_client.execute_mgmt(GET_INGESTION_RESOURCES).rows
            token_rows = self._query_client.execute_mgmt(GET_IDENTITY_TOKEN).rows
        except QueryError as e:
            metrics.record_resource_fetch(success=False)
            raise ResourceFetchError(
                "Failed to fetch ingestion resources",
                cause=e,
                category=e.category,
                code=e.code,
                sub_code=e.sub_code,
            ) from e

        blob_endpoint = _find_resource(resource_rows, TEMP_STORAGE)
        queue_endpoint = _find_resource(resource_rows, INGESTION_QUEUE)
        identity_token = token_rows[0][0] if token_rows and token_rows[0] else None

        missing = [
            name
            for name, value in (
                ("blob_endpoint", blob_endpoint),
                ("queue_endpoint", queue_endpoint),
                ("identity_token", identity_token),
            )
            if not isinstance(value, str) or not value.strip()
        ]
        if missing:
            metrics.record_resource_fetch(success=False)
            logger.error(
                "Failed to retrieve all required ingestion resources",
                extra={"missing": missing, "row_count": len(resource_rows)},
            )
            raise ResourceFetchError(
                f"Missing ingestion resources: {', '.join(missing)}",
                context={"missing": missing},
                category=ErrorCategory.TRANSIENT,
            )

        now = self._clock()
        jitter = self._rng.uniform(-self._jitter, self._jitter)
        entry = CachedResources(
            blob_endpoint=blob_endpoint,
            queue_endpoint=queue_endpoint,
            identity_token=identity_token,
            expires_at=now + self._ttl + jitter,
        )
        self._entry = entry
        self._fetch_count += 1
        self._last_successful_fetch = now
        metrics.record_resource_fetch(success=True)

        logger.info(
            "Ingestion resources cached",
            extra={
                "jitter_minutes": round(jitter / 60, 1),
                "expires_in_seconds": round(entry.expires_at - now, 1),
                "fetch_count": self._fetch_count,
            },
        )
        return entry

    def _check_health_locked(self) -> bool:
        """Apply long-running health rules; True forces a fetch."""
        now = self._clock()
        age = now - self._creation_time
        if age > self._max_age or self._fetch_count > self._max_fetch_cycles:
            logger.warning(
                "Resetting resource cache state",
                extra={"age_hours": round(age / 3600, 2), "fetch_count": self._fetch_count},
            )
            self._entry = None
            self._creation_time = now
            self._fetch_count = 0
            self._last_successful_fetch = None
            return True

        if (
            self._last_successful_fetch is not None
            and now - self._last_successful_fetch > self._stale_fetch
        ):
            logger.warning(
                "No successful resource fetch for %.1f hours, forcing refresh",
                (now - self._last_successful_fetch) / 3600,
            )
            return True
        return False

    def health_status(self) -> Dict[str, Any]:
        with self._lock:
            now = self._clock()
            return {
                "resources_cached": self._entry is not None,
                "cache_expires_at": self._entry.expires_at if self._entry else None,
                "fetch_cycles": self._fetch_count,
                "age_hours": (now - self._creation_time) / 3600,
                "last_successful_fetch": self._last_successful_fetch,
            }


def _find_resource(rows, name: str) -> Optional[str]:
    for row in rows or []:
        if len(row) > 1 and row[0] == name:
            return row[1]
    return None


__all__ = [
    "CachedResources",
    "GET_IDENTITY_TOKEN",
    "GET_INGESTION_RESOURCES",
    "ResourceCache",
]
