"""Context variables for structured logging."""

from contextvars import ContextVar
from typing import Dict, Optional

_stage_name: ContextVar[str] = ContextVar("stage_name", default="")
_worker_id: ContextVar[str] = ContextVar("worker_id", default="")
_chunk_id: ContextVar[str] = ContextVar("chunk_id", default="")
_table: ContextVar[str] = ContextVar("table", default="")


def set_log_context(
    stage: Optional[str] = None,
    worker_id: Optional[str] = None,
    chunk_id: Optional[str] = None,
    table: Optional[str] = None,
) -> None:
    if stage is not None:
        _stage_name.set(stage)
    if worker_id is not None:
        _worker_id.set(worker_id)
    if chunk_id is not None:
        _chunk_id.set(chunk_id)
    if table is not None:
        _table.set(table)


def get_log_context() -> Dict[str, str]:
    return {
        "stage": _stage_name.get(),
        "worker_id": _worker_id.get(),
        "chunk_id": _chunk_id.get(),
        "table": _table.get(),
    }


def clear_log_context() -> None:
    _stage_name.set("")
    _worker_id.set("")
    _chunk_id.set("")
    _table.set("")
