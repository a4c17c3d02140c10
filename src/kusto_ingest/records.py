"""Payload helpers: blob naming, chunk id stamping, compression, verification query."""

import gzip
import json
import re

_UNSAFE_TAG_CHARS = re.compile(r"[^0-9A-Za-z.-]")
_UNSAFE_TABLE_CHARS = re.compile(r"[^a-zA-Z0-9_]")
_UNSAFE_CHUNK_ID_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def safe_tag(tag: str) -> str:
    """Tag usable inside a blob name."""
    return _UNSAFE_TAG_CHARS.sub("_", str(tag))


def blob_extension(compressed: bool) -> str:
    return ".json.gz" if compressed else ".json"


def write_blob_name(worker_id: str, tag: str, chunk_id: str, compressed: bool) -> str:
    """Blob name for fire-and-forget writes."""
    return f"ingest_event_worker{worker_id}_{safe_tag(tag)}_{chunk_id}{blob_extension(compressed)}"


def try_write_blob_name(tag: str, chunk_id: str, compressed: bool) -> str:
    """Blob name for writes whose commit may be deferred."""
    return f"ingest_event_{safe_tag(tag)}_{chunk_id}{blob_extension(compressed)}"


def compress_payload(data: bytes) -> bytes:
    return gzip.compress(data)


def _split_lines(payload: bytes) -> list[str]:
    lines = payload.decode("utf-8", errors="replace").split("\n")
    # Trailing newline does not start another record
    while lines and lines[-1] == "":
        lines.pop()
    return lines


def stamp_chunk_id(payload: bytes, chunk_id: str) -> tuple[bytes, int]:
    """
    Write chunk_id into record.chunk_id of every JSON line.

    Lines that are not JSON objects with a "record" object are kept verbatim.

    Returns:
        (stamped payload, number of lines)
    """
    out = []
    for line in _split_lines(payload):
        try:
            rec = json.loads(line)
        except ValueError:
            out.append(line)
            continue
        if isinstance(rec, dict) and isinstance(rec.get("record"), dict):
            rec["record"]["chunk_id"] = chunk_id
            out.append(json.dumps(rec, separators=(",", ":"), ensure_ascii=False))
        else:
            out.append(line)
    return "\n".join(out).encode("utf-8"), len(out)


def verification_query(table_name: str, chunk_id: str) -> str:
    """KQL count of rows carrying chunk_id, with both inputs sanitized."""
    safe_table = _UNSAFE_TABLE_CHARS.sub("", str(table_name))
    safe_chunk_id = _UNSAFE_CHUNK_ID_CHARS.sub("", str(chunk_id))
    return (
        f"{safe_table} | extend record_dynamic = parse_json(record) "
        f"| where record_dynamic.chunk_id == '{safe_chunk_id}' | count"
    )


__all__ = [
    "blob_extension",
    "compress_payload",
    "safe_tag",
    "stamp_chunk_id",
    "try_write_blob_name",
    "verification_query",
    "write_blob_name",
]
