"""
Ingestion coordinator: turns host batches into store-and-notify submissions.

write() uploads a batch and leaves acknowledgement to the host. try_write()
uploads a batch stamped with its chunk id and acknowledges it through the
commit callback, either immediately or once a count query on the cluster
confirms the rows landed (delayed commit).

Delayed commit:
    Each batch gets a DeferredCommitJob executed on the coordinator's bounded
    thread pool. The job polls the verification query until the count
    matches, the deadline passes, or shutdown begins, and then commits
    exactly once. Every job ends in one terminal JobOutcome.

Shutdown:
    shutdown() wakes every job, waits up to shutdown_grace_period for them,
    force-commits whatever is left, stops the pool and releases the shared
    clients. After it returns no job is pending.
"""

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from config.config import IngestConfig
from core.errors.classifiers import classify
from core.errors.exceptions import ClassifiedError, QueryError
from core.logging.context_managers import LogContext
from core.logging.setup import setup_logging_once
from core.logging.utilities import log_exception
from core.types import ErrorCategory
from core.utils.worker_id import generate_worker_id
from kusto_ingest import metrics
from kusto_ingest.batch import Batch, ResolvedBatch, resolve_batch
from kusto_ingest.records import (
    compress_payload,
    stamp_chunk_id,
    try_write_blob_name,
    verification_query,
    write_blob_name,
)
from kusto_ingest.registry import ClientRegistry, get_registry
from kusto_ingest.uploader import UploadResult

logger = logging.getLogger(__name__)

CommitCallback = Callable[[Any], None]


class JobOutcome(str, Enum):
    """How a deferred commit job ended."""

    VERIFIED = "verified"  # count query matched
    TIMEOUT = "timeout"  # deadline passed
    ERROR = "error"  # unexpected verification failure
    SHUTDOWN = "shutdown"  # woken by shutdown
    CANCELLED = "cancelled"  # still running after the grace period


@dataclass(eq=False)
class DeferredCommitJob:
    """One batch awaiting verification before it is committed."""

    chunk_id: str
    expected_row_count: int
    deadline: float
    batch_handle: Any
    commit_callback: CommitCallback = field(repr=False)
    outcome: Optional[JobOutcome] = None
    attempts: int = 0
    future: Optional[Future] = field(default=None, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def done(self) -> bool:
        return self.outcome is not None

    def commit_once(self, outcome: JobOutcome) -> bool:
        """Commit with outcome unless already committed; True if this call committed."""
        with self._lock:
            if self.outcome is not None:
                return False
            self.outcome = outcome
        self.commit_callback(self.batch_handle)
        return True


class IngestionCoordinator:
    """
    Entry point for the host runtime.

    Example:
        coordinator = IngestionCoordinator(config, commit_callback=buffer.commit)
        coordinator.try_write(batch)
        ...
        coordinator.shutdown()
    """

    def __init__(
        self,
        config: IngestConfig,
        commit_callback: Optional[CommitCallback] = None,
        registry: Optional[ClientRegistry] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        config.validate()
        self.config = config
        self.worker_id = config.worker_id or generate_worker_id()
        if config.logger_path:
            setup_logging_once(config.logger_path, worker_id=self.worker_id)
        self._commit_callback = commit_callback
        self._clock = clock

        self._registry = registry if registry is not None else get_registry()
        self._bundle = self._registry.acquire(config)
        self._uploader = self._bundle.uploader
        self._query_client = self._bundle.query_client

        self._shutdown_event = threading.Event()
        self._executor = ThreadPoolExecutor(
            max_workers=config.deferred_commit_workers,
            thread_name_prefix=f"deferred-commit-{self.worker_id}",
        )
        self._jobs: Dict[int, DeferredCommitJob] = {}
        self._jobs_lock = threading.Lock()
        self._closed = False

        logger.info(
            "Ingestion coordinator started",
            extra={
                "worker_id": self.worker_id,
                "database": config.database_name,
                "table": config.table_name,
                "compressed": config.compression_enabled,
                "mode": "delayed" if config.delayed else "immediate",
            },
        )

    def __enter__(self) -> "IngestionCoordinator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False

    @property
    def shutting_down(self) -> bool:
        return self._shutdown_event.is_set()

    @property
    def active_jobs(self) -> List[DeferredCommitJob]:
        with self._jobs_lock:
            return list(self._jobs.values())

    # =========================================================================
    # Writes
    # =========================================================================

    def write(self, batch: Batch) -> UploadResult:
        """
        Upload a batch; the host acknowledges it when this returns.

        Raises:
            ClassifiedError: Upload failed. Permanent errors mean the batch
                should be dropped, transient/unknown ones that it should be
                retried.
        """
        resolved = resolve_batch(batch)
        compressed = self.config.compression_enabled
        with LogContext(
            stage="write",
            worker_id=self.worker_id,
            chunk_id=resolved.chunk_id,
            table=self.config.table_name,
        ):
            blob_name = write_blob_name(self.worker_id, resolved.tag, resolved.chunk_id, compressed)
            result = self._upload("write", resolved, resolved.payload, blob_name)
            metrics.record_batch("write", "success")
            return result

    def try_write(self, batch: Batch) -> Optional[DeferredCommitJob]:
        """
        Upload a batch and commit it through the commit callback.

        Returns:
            The DeferredCommitJob when delayed commit applies, None when the
            batch was committed immediately.

        Raises:
            ValueError: No commit_callback was configured
            ClassifiedError: Upload failed (nothing is committed)
        """
        if self._commit_callback is None:
            raise ValueError("try_write requires a commit_callback")

        resolved = resolve_batch(batch)
        compressed = self.config.compression_enabled
        with LogContext(
            stage="try_write",
            worker_id=self.worker_id,
            chunk_id=resolved.chunk_id,
            table=self.config.table_name,
        ):
            stamped, row_count = stamp_chunk_id(resolved.payload, resolved.chunk_id)
            blob_name = try_write_blob_name(resolved.tag, resolved.chunk_id, compressed)
            self._upload("try_write", resolved, stamped, blob_name)
            metrics.record_batch("try_write", "success")

            if not self.config.delayed or self.shutting_down:
                self._commit_immediately(resolved)
                return None
            return self._submit_job(resolved, row_count)

    def _upload(
        self, mode: str, resolved: ResolvedBatch, payload: bytes, blob_name: str
    ) -> UploadResult:
        compressed = self.config.compression_enabled
        data = compress_payload(payload) if compressed else payload
        try:
            return self._uploader.upload(
                data,
                blob_name,
                self.config.database_name,
                self.config.table_name,
                compressed,
                mapping_reference=self.config.ingestion_mapping_reference,
            )
        except Exception as e:
            classified = classify(e, {"chunk_id": resolved.chunk_id, "blob_name": blob_name})
            self._log_upload_failure(mode, resolved.chunk_id, classified)
            metrics.record_batch(mode, classified.category.value)
            if classified is e:
                raise
            raise classified from e

    def _log_upload_failure(self, mode: str, chunk_id: str, error: ClassifiedError) -> None:
        if error.category == ErrorCategory.PERMANENT:
            log_exception(
                logger,
                error,
                f"Dropping chunk {chunk_id} due to permanent error",
                include_traceback=False,
                chunk_id=chunk_id,
                operation=mode,
            )
        elif error.category == ErrorCategory.TRANSIENT:
            log_exception(
                logger,
                error,
                f"Transient error ingesting chunk {chunk_id}, will be retried",
                level=logging.WARNING,
                include_traceback=False,
                chunk_id=chunk_id,
                operation=mode,
            )
        else:
            log_exception(
                logger,
                error,
                f"Unclassified error ingesting chunk {chunk_id}, will be retried",
                chunk_id=chunk_id,
                operation=mode,
            )

    # =========================================================================
    # Commit
    # =========================================================================

    def _commit_immediately(self, resolved: ResolvedBatch) -> None:
        self._commit_callback(resolved.unique_id)
        metrics.record_commit("immediate")
        if self.shutting_down:
            logger.info("Immediate commit for chunk_id=%s due to shutdown", resolved.chunk_id)
        else:
            logger.info("Immediate commit for chunk_id=%s (delayed=false)", resolved.chunk_id)

    def _commit_job(self, job: DeferredCommitJob, outcome: JobOutcome) -> bool:
        """Commit job once; a failing callback is logged and counts as committed."""
        try:
            committed = job.commit_once(outcome)
        except Exception as e:
            log_exception(
                logger,
                e,
                f"Failed to commit chunk_id={job.chunk_id}",
                chunk_id=job.chunk_id,
                outcome=outcome.value,
            )
            metrics.record_commit("failed")
            return True
        if committed:
            metrics.record_commit(outcome.value)
        return committed

    # =========================================================================
    # Delayed commit
    # =========================================================================

    def _submit_job(self, resolved: ResolvedBatch, row_count: int) -> DeferredCommitJob:
        job = DeferredCommitJob(
            chunk_id=resolved.chunk_id,
            expected_row_count=row_count,
            deadline=self._clock() + self.config.deferred_commit_timeout,
            batch_handle=resolved.unique_id,
            commit_callback=self._commit_callback,
        )
        with self._jobs_lock:
            # shutdown() sets the event before it snapshots the job set
            if not self.shutting_down:
                self._jobs[id(job)] = job
                metrics.deferred_jobs_gauge.inc()
                job.future = self._executor.submit(self._run_job, job)
                logger.debug(
                    "Deferred commit scheduled",
                    extra={
                        "chunk_id": job.chunk_id,
                        "expected_row_count": row_count,
                        "timeout_seconds": self.config.deferred_commit_timeout,
                    },
                )
                return job

        if self._commit_job(job, JobOutcome.SHUTDOWN):
            logger.info("Immediate commit for chunk_id=%s due to shutdown", job.chunk_id)
        return job

    def _run_job(self, job: DeferredCommitJob) -> None:
        with LogContext(
            stage="deferred_commit",
            worker_id=self.worker_id,
            chunk_id=job.chunk_id,
            table=self.config.table_name,
        ):
            try:
                self._verify_until_committed(job)
            finally:
                if not job.done and self._commit_job(job, JobOutcome.ERROR):
                    logger.warning(
                        "Force committed chunk_id=%s after verification ended abnormally",
                        job.chunk_id,
                    )
                self._remove_job(job)

    def _verify_until_committed(self, job: DeferredCommitJob) -> None:
        interval = self.config.deferred_commit_poll_interval
        while not job.done:
            if self.shutting_down:
                if self._commit_job(job, JobOutcome.SHUTDOWN):
                    logger.info(
                        "Delayed commit for chunk_id=%s was cancelled in shutdown, committed",
                        job.chunk_id,
                        extra={"outcome": JobOutcome.SHUTDOWN.value},
                    )
                return

            job.attempts += 1
            try:
                verified = self._is_verified(job)
            except Exception as e:
                if self.config.force_commit_on_verification_error:
                    log_exception(
                        logger,
                        e,
                        f"Error in deferred commit for chunk_id={job.chunk_id}",
                        chunk_id=job.chunk_id,
                    )
                    if self._commit_job(job, JobOutcome.ERROR):
                        logger.warning(
                            "Force committed chunk_id=%s due to error in verification",
                            job.chunk_id,
                            extra={"outcome": JobOutcome.ERROR.value},
                        )
                    return
                log_exception(
                    logger,
                    e,
                    f"Error verifying chunk_id={job.chunk_id}, retrying until deadline",
                    level=logging.WARNING,
                    include_traceback=False,
                    chunk_id=job.chunk_id,
                )
                verified = False

            if verified:
                if self._commit_job(job, JobOutcome.VERIFIED):
                    logger.info(
                        "Successfully committed chunk_id=%s after %d attempts",
                        job.chunk_id,
                        job.attempts,
                        extra={"outcome": JobOutcome.VERIFIED.value, "attempt": job.attempts},
                    )
                return

            remaining = job.deadline - self._clock()
            if remaining <= 0:
                if self._commit_job(job, JobOutcome.TIMEOUT):
                    logger.warning(
                        "Force committing chunk_id=%s after %ss timeout (%d verification attempts)",
                        job.chunk_id,
                        self.config.deferred_commit_timeout,
                        job.attempts,
                        extra={"outcome": JobOutcome.TIMEOUT.value, "attempt": job.attempts},
                    )
                return

            self._shutdown_event.wait(min(interval, remaining))

    def _is_verified(self, job: DeferredCommitJob) -> bool:
        """True once the table holds expected_row_count rows for the chunk."""
        query = verification_query(self.config.table_name, job.chunk_id)
        try:
            result = self._query_client.execute_query(self.config.database_name, query)
        except QueryError as e:
            logger.warning(
                "Failed to get chunk_id count for %s: %s",
                job.chunk_id,
                str(e)[:200],
                extra={"chunk_id": job.chunk_id, "error_category": e.category.value},
            )
            return False

        count = result.scalar()
        if count is None:
            logger.error(
                "Verification query returned no rows",
                extra={"chunk_id": job.chunk_id, "query": query},
            )
            return False
        return int(count) == job.expected_row_count

    def _remove_job(self, job: DeferredCommitJob) -> None:
        with self._jobs_lock:
            removed = self._jobs.pop(id(job), None)
        if removed is not None:
            metrics.deferred_jobs_gauge.dec()

    # =========================================================================
    # Shutdown
    # =========================================================================

    def shutdown(self) -> None:
        """Finish or force-commit every deferred job and release shared clients."""
        if self._closed:
            return
        self._closed = True
        self._shutdown_event.set()

        jobs = self.active_jobs
        if jobs:
            logger.info(
                "Shutting down with %d active deferred commit jobs",
                len(jobs),
                extra={"active_jobs": len(jobs)},
            )
            futures = [job.future for job in jobs if job.future is not None]
            wait_futures(futures, timeout=self.config.shutdown_grace_period)

        for job in self.active_jobs:
            if self._commit_job(job, JobOutcome.CANCELLED):
                logger.info(
                    "Delayed commit for chunk_id=%s was cancelled in shutdown",
                    job.chunk_id,
                    extra={"outcome": JobOutcome.CANCELLED.value},
                )
            self._remove_job(job)

        self._executor.shutdown(wait=False, cancel_futures=True)
        self._registry.release(self._bundle)
        logger.info("Ingestion coordinator stopped", extra={"worker_id": self.worker_id})


__all__ = [
    "CommitCallback",
    "DeferredCommitJob",
    "IngestionCoordinator",
    "JobOutcome",
]
