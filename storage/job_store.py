"""Update job and run-log stores.

Job changes are applied to a copy and swapped in once persisted; run-log rows
are append-only.
Job counters are derived from run-log rows (see ``RunLogSummary``) so a
checkpoint can be repeated without drifting.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List, Optional, Tuple, Union

from core import CountryRunLog, JobStatus, RunOutcome, UpdateJob, utcnow
from utils.exceptions import JobAlreadyRunningError, JobStateError, RecordNotFoundError

from .snapshot import JsonLinesLog, JsonSnapshot


_COUNTER_FIELDS = (
    "records_considered",
    "records_changed",
    "drafts_created",
    "records_failed",
    "records_skipped",
)


@dataclass(frozen=True)
class RunLogSummary:
    """Counts derived from the run-log rows of one job."""

    attempts: int = 0
    drafts_created: int = 0
    records_changed: int = 0
    records_failed: int = 0
    records_skipped: int = 0

    def as_counters(self) -> Dict[str, int]:
        return {
            "drafts_created": self.drafts_created,
            "records_changed": self.records_changed,
            "records_failed": self.records_failed,
            "records_skipped": self.records_skipped,
        }


class InMemoryJobStore:
    """Thread-safe job store enforcing at most one running job."""

    def __init__(self, jobs: Optional[Iterable[UpdateJob]] = None) -> None:
        self._jobs: Dict[str, UpdateJob] = {}
        self._lock = Lock()
        for job in jobs or []:
            self._jobs[job.job_id] = job.model_copy(deep=True)

    def claim(self, job: UpdateJob) -> UpdateJob:
        """Insert ``job`` as the single running job.

        Raises JobAlreadyRunningError when another job is running; the check
        and the insert happen under one lock.
        """
        if job.status != JobStatus.RUNNING:
            raise JobStateError(f"Only running jobs can be claimed (got {job.status.value})")
        with self._lock:
            running = self._find_running_locked()
            if running is not None:
                raise JobAlreadyRunningError(
                    "An update job is already running",
                    running_job_id=running.job_id,
                )
            if job.job_id in self._jobs:
                raise JobStateError(f"Job already exists: {job.job_id}")
            self._commit_locked(job.job_id, job.model_copy(deep=True))
            return job.model_copy(deep=True)

    def get(self, job_id: str) -> Optional[UpdateJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def find_running(self) -> Optional[UpdateJob]:
        with self._lock:
            job = self._find_running_locked()
            return job.model_copy(deep=True) if job else None

    def save_progress(self, job_id: str, counters: Dict[str, int]) -> UpdateJob:
        """Checkpoint counters of a running job."""
        with self._lock:
            job = self._require_locked(job_id)
            if job.status != JobStatus.RUNNING:
                raise JobStateError(f"Job {job_id} is not running")
            job = job.model_copy(deep=True)
            self._apply_counters(job, counters)
            self._commit_locked(job_id, job)
            return job.model_copy(deep=True)

    def complete(self, job_id: str, counters: Optional[Dict[str, int]] = None) -> UpdateJob:
        return self._finish(job_id, JobStatus.COMPLETED, error=None, counters=counters)

    def fail(self, job_id: str, error: str, counters: Optional[Dict[str, int]] = None) -> UpdateJob:
        return self._finish(job_id, JobStatus.FAILED, error=error, counters=counters)

    def reset_stale(self, job_id: str, reason: str = "Reset by operator") -> UpdateJob:
        """Move a stuck running job to failed. Never called automatically."""
        return self._finish(job_id, JobStatus.FAILED, error=reason, counters=None)

    def list_jobs(self, limit: int = 20, skip: int = 0) -> Tuple[List[UpdateJob], int]:
        """Newest first, with the total count."""
        with self._lock:
            jobs = sorted(self._jobs.values(), key=lambda item: item.started_at, reverse=True)
            total = len(jobs)
            page = jobs[max(0, int(skip)) : max(0, int(skip)) + max(0, int(limit))]
            return [item.model_copy(deep=True) for item in page], total

    def _finish(
        self,
        job_id: str,
        status: JobStatus,
        *,
        error: Optional[str],
        counters: Optional[Dict[str, int]],
    ) -> UpdateJob:
        with self._lock:
            job = self._require_locked(job_id)
            if job.status != JobStatus.RUNNING:
                raise JobStateError(f"Job {job_id} already {job.status.value}")
            job = job.model_copy(deep=True)
            if counters:
                self._apply_counters(job, counters)
            job.status = status
            job.error = error
            job.completed_at = utcnow()
            self._commit_locked(job_id, job)
            return job.model_copy(deep=True)

    def _commit_locked(self, job_id: str, job: UpdateJob) -> None:
        """Swap ``job`` in and persist; the previous state is restored if the write fails."""
        previous = self._jobs.get(job_id)
        self._jobs[job_id] = job
        try:
            self._persist()
        except Exception:
            if previous is None:
                del self._jobs[job_id]
            else:
                self._jobs[job_id] = previous
            raise

    def _find_running_locked(self) -> Optional[UpdateJob]:
        for job in self._jobs.values():
            if job.status == JobStatus.RUNNING:
                return job
        return None

    def _require_locked(self, job_id: str) -> UpdateJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise RecordNotFoundError(f"Job not found: {job_id}", key=job_id)
        return job

    @staticmethod
    def _apply_counters(job: UpdateJob, counters: Dict[str, int]) -> None:
        for name in _COUNTER_FIELDS:
            if name in counters:
                setattr(job, name, int(counters[name]))

    def _persist(self) -> None:
        return None


class JsonFileJobStore(InMemoryJobStore):
    """Job store mirrored to a JSON snapshot. Jobs left running by a crash stay running."""

    def __init__(self, path: Union[str, Path]) -> None:
        self._snapshot = JsonSnapshot(path)
        rows = self._snapshot.load() or []
        super().__init__(UpdateJob.model_validate(row) for row in rows)

    def _persist(self) -> None:
        self._snapshot.save([item.model_dump(mode="json") for item in self._jobs.values()])


class InMemoryRunLogStore:
    """Append-only store of per-country attempts."""

    def __init__(self, entries: Optional[Iterable[CountryRunLog]] = None) -> None:
        self._entries: List[CountryRunLog] = []
        self._by_job: Dict[str, List[CountryRunLog]] = {}
        self._lock = Lock()
        for entry in entries or []:
            self._index(entry)

    def append(self, entry: CountryRunLog) -> CountryRunLog:
        with self._lock:
            self._write(entry)
            self._index(entry)
            return entry

    def list_for_job(self, job_id: str) -> List[CountryRunLog]:
        with self._lock:
            return list(self._by_job.get(job_id, ()))

    def list_for_country(self, iso3: str, limit: Optional[int] = None) -> List[CountryRunLog]:
        """Newest first."""
        key = str(iso3 or "").strip().upper()
        with self._lock:
            rows = [item for item in self._entries if item.iso3 == key]
        rows.sort(key=lambda item: item.timestamp, reverse=True)
        return rows[:limit] if limit else rows

    def summarize(self, job_id: str) -> RunLogSummary:
        rows = self.list_for_job(job_id)
        latest: Dict[str, RunOutcome] = {}
        successes = 0
        skipped = set()
        for row in rows:
            if row.outcome == RunOutcome.SKIPPED:
                skipped.add(row.iso3)
                continue
            if row.outcome == RunOutcome.SUCCESS:
                successes += 1
            latest[row.iso3] = row.outcome
        return RunLogSummary(
            attempts=sum(1 for row in rows if row.outcome != RunOutcome.SKIPPED),
            drafts_created=successes,
            records_changed=sum(1 for outcome in latest.values() if outcome == RunOutcome.SUCCESS),
            records_failed=sum(1 for outcome in latest.values() if outcome == RunOutcome.FAILED),
            records_skipped=len(skipped),
        )

    def _index(self, entry: CountryRunLog) -> None:
        self._entries.append(entry)
        self._by_job.setdefault(entry.job_id, []).append(entry)

    def _write(self, entry: CountryRunLog) -> None:
        return None


class JsonLinesRunLogStore(InMemoryRunLogStore):
    """Run-log store backed by an append-only JSON lines file."""

    def __init__(self, path: Union[str, Path]) -> None:
        self._log = JsonLinesLog(path)
        super().__init__(CountryRunLog.model_validate(row) for row in self._log.read_all())

    def _write(self, entry: CountryRunLog) -> None:
        self._log.append(entry.model_dump(mode="json"))
