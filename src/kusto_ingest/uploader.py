"""
Store-and-notify upload: blob PUT into temporary storage, then a queued
ingestion descriptor pointing at that blob.
"""

import base64
import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from azure.core.pipeline.transport import RequestsTransport
from azure.storage.blob import BlobClient, BlobType
from azure.storage.queue import QueueClient

from core.errors.classifiers import classify
from core.errors.exceptions import ClassifiedError, UploadError
from core.logging.context_managers import log_phase
from kusto_ingest import metrics
from kusto_ingest.resources import ResourceCache

logger = logging.getLogger(__name__)

CONNECTION_TIMEOUT = 10
READ_TIMEOUT = 30

# Descriptor reporting: failures and successes, reported through the queue
REPORT_LEVEL = 2
REPORT_METHOD = 0
DATA_FORMAT = "multijson"


@dataclass(frozen=True)
class UploadResult:
    blob_uri: str
    byte_size: int


def build_blob_uri(container_sas_uri: str, blob_name: str) -> str:
    """Insert blob_name between the container path and its SAS query."""
    base_uri, _, sas_token = container_sas_uri.partition("?")
    return f"{base_uri.rstrip('/')}/{blob_name}?{sas_token}"


def build_ingestion_message(
    database: str,
    table: str,
    blob_uri: str,
    raw_data_size: int,
    identity_token: str,
    compressed: bool = True,
    mapping_reference: Optional[str] = None,
) -> Dict[str, Any]:
    """Ingestion descriptor consumed by the backend from the queue."""
    additional_properties: Dict[str, Any] = {
        "authorizationContext": identity_token,
        "format": DATA_FORMAT,
    }
    if compressed:
        additional_properties["CompressionType"] = "gzip"
    if mapping_reference:
        additional_properties["ingestionMappingReference"] = mapping_reference

    return {
        "Id": str(uuid.uuid4()),
        "BlobPath": blob_uri,
        "RawDataSize": raw_data_size,
        "DatabaseName": database,
        "TableName": table,
        "RetainBlobOnSuccess": True,
        "FlushImmediately": True,
        "ReportLevel": REPORT_LEVEL,
        "ReportMethod": REPORT_METHOD,
        "AdditionalProperties": additional_properties,
    }


def encode_message(message: Dict[str, Any]) -> str:
    return base64.b64encode(json.dumps(message).encode("utf-8")).decode("ascii")


class BatchUploader:
    """
    Uploads payloads through the cached ingestion resources.

    Both storage clients share one requests.Session through RequestsTransport
    (session_owner=False); close() releases the session. The timeouts live on
    the transport since clients given a transport ignore their own.
    """

    def __init__(
        self,
        resource_cache: ResourceCache,
        connection_timeout: int = CONNECTION_TIMEOUT,
        read_timeout: int = READ_TIMEOUT,
    ):
        self._resource_cache = resource_cache
        self._session = requests.Session()
        self._transport = RequestsTransport(
            session=self._session,
            session_owner=False,
            connection_timeout=connection_timeout,
            read_timeout=read_timeout,
        )

    def upload(
        self,
        payload: bytes,
        blob_name: str,
        database: str,
        table: str,
        compressed: bool,
        mapping_reference: Optional[str] = None,
    ) -> UploadResult:
        """
        PUT payload as blob_name and enqueue its ingestion descriptor.

        Raises:
            ResourceFetchError: Ingestion resources unavailable
            UploadError: Blob or queue request failed (classified)
        """
        resources = self._resource_cache.resources()
        start_time = time.perf_counter()

        blob_uri = build_blob_uri(resources.blob_endpoint, blob_name)
        byte_size = len(payload)
        self._call(
            "blob_upload",
            blob_name,
            lambda: BlobClient.from_blob_url(
                blob_uri,
                transport=self._transport,
            ).upload_blob(
                payload,
                blob_type=BlobType.BLOCKBLOB,
                length=byte_size,
                overwrite=True,
            ),
        )

        message = build_ingestion_message(
            database,
            table,
            blob_uri,
            byte_size,
            resources.identity_token,
            compressed=compressed,
            mapping_reference=mapping_reference,
        )
        self._call(
            "queue_post",
            blob_name,
            lambda: QueueClient.from_queue_url(
                resources.queue_endpoint,
                transport=self._transport,
            ).send_message(encode_message(message)),
        )

        duration = time.perf_counter() - start_time
        metrics.record_upload(byte_size, duration)
        logger.debug(
            "Uploaded blob and queued ingestion",
            extra={
                "blob_name": blob_name,
                "blob_uri": blob_uri,
                "byte_size": byte_size,
                "duration_ms": round(duration * 1000, 2),
                "ingestion_id": message["Id"],
            },
        )
        return UploadResult(blob_uri=blob_uri, byte_size=byte_size)

    def _call(self, step: str, blob_name: str, func) -> Any:
        try:
            with log_phase(logger, step, blob_name=blob_name):
                return func()
        except ClassifiedError:
            raise
        except Exception as e:
            classified = classify(e, {"step": step, "blob_name": blob_name})
            logger.error(
                "Storage %s failed for %s",
                step,
                blob_name,
                extra={
                    "blob_name": blob_name,
                    "error_category": classified.category.value,
                    "error_code": classified.code,
                    "error_message": str(e)[:200],
                },
            )
            raise UploadError(
                f"{step} failed: {classified.message}",
                cause=e,
                context=classified.context,
                category=classified.category,
                code=classified.code,
                sub_code=classified.sub_code,
            ) from e

    def close(self) -> None:
        """Close the shared HTTP session."""
        self._session.close()


__all__ = [
    "BatchUploader",
    "UploadResult",
    "build_blob_uri",
    "build_ingestion_message",
    "encode_message",
]
