"""
Batch boundary between the host runtime and the ingestion coordinator.

The host hands over an opaque batch exposing payload(), id() and tag().
resolve_batch() reads it exactly once and normalizes missing values, so the
rest of the package only deals with ResolvedBatch.
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

DEFAULT_TAG = "default_tag"
MISSING_ID = "noid"


@runtime_checkable
class Batch(Protocol):
    """What the host runtime provides for each buffered batch."""

    def payload(self) -> Optional[bytes | str]:
        """Newline-delimited records."""
        ...

    def id(self) -> Any:
        """Opaque unique id, passed back verbatim to the commit callback."""
        ...

    def tag(self) -> Optional[str]:
        """Routing tag the batch was buffered under."""
        ...


@dataclass(frozen=True)
class ResolvedBatch:
    """Batch values read once at the boundary."""

    payload: bytes
    unique_id: Any
    chunk_id: str
    tag: str


def chunk_id_hex(unique_id: Any) -> str:
    """Printable chunk id: hex of the raw id bytes, or 'noid' when absent."""
    if unique_id is None:
        return MISSING_ID
    if isinstance(unique_id, (bytes, bytearray)):
        return bytes(unique_id).hex()
    if isinstance(unique_id, str):
        return unique_id.encode("utf-8").hex()
    return str(unique_id)


def _payload_bytes(payload: Optional[bytes | str]) -> bytes:
    if payload is None:
        return b""
    if isinstance(payload, str):
        return payload.encode("utf-8", errors="replace")
    return bytes(payload)


def resolve_batch(batch: Batch) -> ResolvedBatch:
    """Read payload, id and tag from the host batch and apply defaults."""
    unique_id = batch.id()
    tag = batch.tag()
    return ResolvedBatch(
        payload=_payload_bytes(batch.payload()),
        unique_id=unique_id,
        chunk_id=chunk_id_hex(unique_id),
        tag=str(tag) if tag else DEFAULT_TAG,
    )


@dataclass
class InMemoryBatch:
    """Simple Batch implementation for hosts that already hold the bytes."""

    data: Optional[bytes | str] = None
    unique_id: Any = None
    batch_tag: Optional[str] = None

    def payload(self) -> Optional[bytes | str]:
        return self.data

    def id(self) -> Any:
        return self.unique_id

    def tag(self) -> Optional[str]:
        return self.batch_tag


__all__ = [
    "Batch",
    "DEFAULT_TAG",
    "InMemoryBatch",
    "MISSING_ID",
    "ResolvedBatch",
    "chunk_id_hex",
    "resolve_batch",
]
