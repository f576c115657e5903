"""Job run ledger and the in-process runner that wraps every job.

A run moves ``running -> succeeded | failed | skipped`` exactly once.  The
:class:`JobRunner` owns that state machine: it opens the ledger row, checks
the job's feature flag, executes the body and finalises the row whatever
happens inside the job.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Mapping, Protocol

from sqlalchemy.exc import SQLAlchemyError

from kwtrend.db.io import utcnow
from kwtrend.db.store import KeywordStore
from kwtrend.etl.config import DEFAULT_CONFIG
from kwtrend.etl.upsert import UpsertCoordinator

LOGGER = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = timedelta(hours=6)
STALE_RUN_ERROR = "stale run reaped"


class LedgerError(RuntimeError):
    """Raised when a run cannot be opened or is finalised with a non-terminal status."""


class JobStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.RUNNING


class JobRunLedger:
    """Create and finalise ``job_runs`` rows."""

    def __init__(self, store: KeywordStore) -> None:
        self._store = store

    def open(self, job_name: str, *, started_at: datetime | None = None) -> str:
        try:
            run_id = self._store.insert_job_run(job_name, started_at=started_at)
        except SQLAlchemyError as exc:
            raise LedgerError(f"Unable to open job run for {job_name}: {exc}") from exc
        LOGGER.info("job_run.open job=%s run_id=%s", job_name, run_id, extra={"job": job_name, "run_id": run_id})
        return run_id

    def finalize(
        self,
        run_id: str,
        status: JobStatus,
        metadata: Mapping[str, Any],
        *,
        records_processed: int | None = None,
        finished_at: datetime | None = None,
    ) -> bool:
        """Move ``run_id`` to a terminal ``status``.

        Returns ``False`` when the run was already terminal; the stored row is
        left as it was.
        """

        status = JobStatus(status)
        if not status.is_terminal:
            raise LedgerError("Job runs can only be finalised with a terminal status")
        error_message = metadata.get("error") if status is JobStatus.FAILED else None
        updated = self._store.finalize_job_run(
            run_id,
            status.value,
            metadata,
            records_processed=records_processed,
            error_message=str(error_message) if error_message is not None else None,
            finished_at=finished_at,
        )
        if not updated:
            LOGGER.warning(
                "job_run.finalize_rejected run_id=%s status=%s",
                run_id,
                status.value,
                extra={"run_id": run_id, "status": status.value},
            )
            return False
        LOGGER.info(
            "job_run.finalize run_id=%s status=%s",
            run_id,
            status.value,
            extra={"run_id": run_id, "status": status.value, "processed": records_processed},
        )
        return True

    def reap_stale_runs(self, max_age: timedelta = DEFAULT_STALE_AFTER, *, now: datetime | None = None) -> list[str]:
        """Fail ``running`` rows started more than ``max_age`` ago."""

        current = now or utcnow()
        reaped: list[str] = []
        for row in self._store.select_stale_runs(current - max_age):
            if self.finalize(str(row["id"]), JobStatus.FAILED, {"error": STALE_RUN_ERROR}, finished_at=current):
                reaped.append(str(row["id"]))
        if reaped:
            LOGGER.warning("job_run.reaped count=%s", len(reaped), extra={"run_ids": reaped})
        return reaped


@dataclass(slots=True)
class JobContext:
    """Everything a job body needs for one run."""

    store: KeywordStore
    coordinator: UpsertCoordinator
    ledger: JobRunLedger
    config: Mapping[str, Any]
    now: datetime
    run_id: str
    failures: list[dict[str, Any]] = field(default_factory=list)

    def section(self, name: str) -> Mapping[str, Any]:
        return self.config.get(name) or DEFAULT_CONFIG.get(name, {})

    def record_failure(self, source: str, error: str) -> None:
        self.failures.append({"source": source, "error": error})


@dataclass(slots=True)
class JobResult:
    processed: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


class Job(Protocol):
    name: str
    feature_flag: str | None

    def execute(self, context: JobContext) -> JobResult:
        ...


@dataclass(slots=True)
class JobOutcome:
    """Typed result of one job invocation."""

    job: str
    run_id: str
    status: JobStatus
    processed: int = 0
    failures: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def summary_status(self) -> str:
        if self.status is JobStatus.SUCCEEDED and self.failures:
            return "partial"
        return self.status.value

    @property
    def ok(self) -> bool:
        return self.status is not JobStatus.FAILED

    def to_summary(self) -> dict[str, Any]:
        summary: dict[str, Any] = {
            "job": self.job,
            "run_id": self.run_id,
            "status": self.summary_status,
            "processed": self.processed,
            "errors": len(self.failures),
            "failures": list(self.failures),
        }
        if self.error is not None:
            summary["error"] = self.error
        summary.update({key: value for key, value in self.metadata.items() if key not in summary})
        return summary


class ReapStaleRunsJob:
    """Fail runs left ``running`` by a crashed host process."""

    name = "reap-stale-runs"
    feature_flag: str | None = None

    def execute(self, context: JobContext) -> JobResult:
        hours = float(context.section("ledger").get("stale_after_hours", 6))
        reaped = [
            run_id
            for run_id in context.ledger.reap_stale_runs(timedelta(hours=hours), now=context.now)
            if run_id != context.run_id
        ]
        return JobResult(processed=len(reaped), metadata={"reaped": reaped, "staleAfterHours": hours})


class JobRunner:
    """Run jobs in-process, always leaving their ledger row terminal."""

    def __init__(
        self,
        store: KeywordStore,
        config: Mapping[str, Any] | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._config = config if config is not None else DEFAULT_CONFIG
        self._clock = clock
        self.ledger = JobRunLedger(store)
        store_config = self._config.get("store") or {}
        self.coordinator = UpsertCoordinator(
            store,
            chunk_size=int(store_config.get("chunk_size", 500)),
            default_market=str(store_config.get("default_market", "us")),
        )

    def _finish(
        self,
        job: Job,
        run_id: str,
        status: JobStatus,
        *,
        processed: int = 0,
        failures: list[dict[str, Any]] | None = None,
        metadata: Mapping[str, Any] | None = None,
        error: str | None = None,
    ) -> JobOutcome:
        failures = list(failures or [])
        stored: dict[str, Any] = dict(metadata or {})
        stored["recordsProcessed"] = processed
        if failures:
            stored["failures"] = failures
            stored["partial"] = True
        if error is not None:
            stored["error"] = error
        if not self.ledger.finalize(run_id, status, stored, records_processed=processed):
            row = self._store.select_job_run(run_id)
            if row is None:
                raise LedgerError(f"Job run {run_id} vanished before it was finalised")
            # another writer closed the row first; report what the ledger holds
            status = JobStatus(row["status"])
            if status is JobStatus.FAILED and error is None:
                error = row.get("error_message") or (row.get("metadata") or {}).get("error")
            LOGGER.warning(
                "%s.finalized_elsewhere run_id=%s status=%s",
                job.name,
                run_id,
                status.value,
                extra={"job": job.name, "run_id": run_id, "status": status.value},
            )
        return JobOutcome(
            job=job.name,
            run_id=run_id,
            status=status,
            processed=processed,
            failures=failures,
            metadata=dict(metadata or {}),
            error=error,
        )

    def run(self, job: Job, *, now: datetime | None = None) -> JobOutcome:
        current = now or self._clock()
        # the ledger row is stamped with wall-clock time even when the job runs against a fixed ``now``
        run_id = self.ledger.open(job.name, started_at=self._clock())
        LOGGER.info("%s.start run_id=%s", job.name, run_id, extra={"job": job.name, "run_id": run_id})

        if job.feature_flag:
            try:
                enabled = self._store.read_feature_flag(job.feature_flag)
            except SQLAlchemyError as exc:
                LOGGER.error("%s.flag_unreadable flag=%s", job.name, job.feature_flag, exc_info=True)
                return self._finish(
                    job,
                    run_id,
                    JobStatus.FAILED,
                    error=f"Feature flag {job.feature_flag} unreadable: {exc.__class__.__name__}",
                )
            if not enabled:
                LOGGER.info("%s.skipped flag=%s", job.name, job.feature_flag)
                return self._finish(
                    job,
                    run_id,
                    JobStatus.SKIPPED,
                    metadata={"message": f"Feature flag {job.feature_flag} disabled."},
                )

        context = JobContext(
            store=self._store,
            coordinator=self.coordinator,
            ledger=self.ledger,
            config=self._config,
            now=current,
            run_id=run_id,
        )
        try:
            result = job.execute(context)
        except Exception as exc:
            LOGGER.exception("%s.failed run_id=%s", job.name, run_id, extra={"job": job.name, "run_id": run_id})
            return self._finish(
                job,
                run_id,
                JobStatus.FAILED,
                failures=context.failures,
                error=str(exc) or exc.__class__.__name__,
            )

        LOGGER.info(
            "%s.finish run_id=%s processed=%s failures=%s",
            job.name,
            run_id,
            result.processed,
            len(context.failures),
            extra={"job": job.name, "run_id": run_id},
        )
        return self._finish(
            job,
            run_id,
            JobStatus.SUCCEEDED,
            processed=result.processed,
            failures=context.failures,
            metadata=result.metadata,
        )


__all__ = [
    "DEFAULT_STALE_AFTER",
    "Job",
    "JobContext",
    "JobOutcome",
    "JobResult",
    "JobRunLedger",
    "JobRunner",
    "JobStatus",
    "LedgerError",
    "ReapStaleRunsJob",
    "STALE_RUN_ERROR",
]
