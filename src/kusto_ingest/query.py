"""
KQL client for management commands and verification queries.

Management commands (.get ingestion resources, .get kusto identity token) run
on the ingest endpoint; count queries run on the data endpoint. Both use the
same TokenProvider through KustoConnectionStringBuilder.with_token_provider.
"""

import logging
import re
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from azure.kusto.data import ClientRequestProperties, KustoClient, KustoConnectionStringBuilder

from core.errors.classifiers import classify
from core.errors.exceptions import QueryError
from core.types import TokenProvider

logger = logging.getLogger(__name__)

DEFAULT_QUERY_TIMEOUT_SECONDS = 30


def to_ingest_endpoint(data_endpoint: str) -> str:
    """https://cluster... -> https://ingest-cluster..."""
    return re.sub(r"^https://", "https://ingest-", data_endpoint)


@dataclass
class QueryResult:
    """Primary result table of a command."""

    columns: List[str] = field(default_factory=list)
    rows: List[List[Any]] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def as_dicts(self) -> List[Dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self.rows]

    def scalar(self) -> Any:
        """First cell, or None for an empty result."""
        if not self.rows or not self.rows[0]:
            return None
        return self.rows[0][0]


class KustoQueryClient:
    """
    Synchronous KQL client bound to one cluster.

    KustoClient instances are created lazily, one per endpoint, and closed
    by close().

    Example:
        client = KustoQueryClient(config.endpoint, token_provider)
        result = client.execute_mgmt(".get ingestion resources")
        for row in result.rows:
            logger.debug("Resource", extra={"row": row})
    """

    def __init__(
        self,
        endpoint: str,
        token_provider: TokenProvider,
        timeout_seconds: float = DEFAULT_QUERY_TIMEOUT_SECONDS,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.ingest_endpoint = to_ingest_endpoint(self.endpoint)
        self._token_provider = token_provider
        self._timeout_seconds = timeout_seconds
        self._clients: Dict[str, KustoClient] = {}
        self._lock = threading.Lock()

    def _client_for(self, url: str) -> KustoClient:
        with self._lock:
            client = self._clients.get(url)
            if client is None:
                kcsb = KustoConnectionStringBuilder.with_token_provider(
                    url, self._token_provider.get_token
                )
                client = KustoClient(kcsb)
                self._clients[url] = client
                logger.debug("Created Kusto client", extra={"url": url})
            return client

    def _properties(self) -> ClientRequestProperties:
        properties = ClientRequestProperties()
        properties.set_option(
            ClientRequestProperties.request_timeout_option_name,
            timedelta(seconds=self._timeout_seconds),
        )
        return properties

    def execute_mgmt(self, command: str, database: Optional[str] = None) -> QueryResult:
        """Run a management command against the ingest endpoint."""
        client = self._client_for(self.ingest_endpoint)
        return self._run(
            "mgmt",
            command,
            database,
            lambda: client.execute_mgmt(database, command, self._properties()),
        )

    def execute_query(self, database: str, query: str) -> QueryResult:
        """Run a query against the data endpoint."""
        client = self._client_for(self.endpoint)
        return self._run(
            "query",
            query,
            database,
            lambda: client.execute_query(database, query, self._properties()),
        )

    def _run(self, kind: str, text: str, database: Optional[str], call) -> QueryResult:
        start_time = time.perf_counter()
        try:
            response = call()
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            classified = classify(e, {"operation": kind, "database": database})
            logger.error(
                "KQL %s failed",
                kind,
                extra={
                    "database": database,
                    "query": text[:500],
                    "duration_ms": round(duration_ms, 2),
                    "error_type": type(e).__name__,
                    "error_category": classified.category.value,
                    "error_message": str(e)[:500],
                },
            )
            raise QueryError(
                f"KQL {kind} failed: {classified.message}",
                cause=e,
                context=classified.context,
                category=classified.category,
                code=classified.code,
                sub_code=classified.sub_code,
            ) from e

        result = _to_result(response)
        result.duration_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(
            "KQL %s executed",
            kind,
            extra={
                "database": database,
                "query_length": len(text),
                "row_count": result.row_count,
                "duration_ms": round(result.duration_ms, 2),
            },
        )
        return result

    def close(self) -> None:
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            try:
                client.close()
            except Exception as e:
                logger.warning("Error closing Kusto client: %s", str(e)[:100])


def _to_result(response) -> QueryResult:
    if response is None or not response.primary_results:
        return QueryResult()

    primary_table = response.primary_results[0]
    columns = [col.column_name for col in primary_table.columns]
    rows = []
    for row in primary_table:
        values = []
        for i in range(len(columns)):
            value = row[i]
            values.append(value.isoformat() if isinstance(value, datetime) else value)
        rows.append(values)
    return QueryResult(columns=columns, rows=rows)


__all__ = [
    "DEFAULT_QUERY_TIMEOUT_SECONDS",
    "KustoQueryClient",
    "QueryResult",
    "to_ingest_endpoint",
]
