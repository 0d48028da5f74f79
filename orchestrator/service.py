"""Batch update orchestrator for scheduled and on-demand refreshes."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from core import (
    CountryRecord,
    CountryRunLog,
    CountrySummary,
    GeneratedSummary,
    RunKind,
    RunOutcome,
    SourceStatus,
    UpdateJob,
    utcnow,
)
from intelligence.summary_editing import sanitize_summary_edit
from intelligence.summary_generator import GenerationResult
from utils.exceptions import RecordNotFoundError
from utils.logger import format_duration

from .pacing import FixedIntervalPacing, PacingPolicy
from .run_logger import RunLogger


logger = logging.getLogger(__name__)


@dataclass
class _RunState:
    job_id: str
    considered: int = 0
    attempts: int = 0


class UpdateOrchestrator:
    """Refreshes country briefs in paced batches with bounded retry rounds.

    Single-flight is enforced here: ``begin()`` claims the only running job
    slot atomically and raises ``JobAlreadyRunningError`` when it is taken.
    Job counters are always recomputed from the job's run-log rows.
    """

    def __init__(
        self,
        *,
        countries,
        jobs,
        run_logs,
        generator,
        pacing: Optional[PacingPolicy] = None,
        settings=None,
        sources=None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if settings is None:
            from config import get_update_settings
            settings = get_update_settings()
        self._countries = countries
        self._jobs = jobs
        self._run_logs = run_logs
        self._generator = generator
        self._sources = sources
        self._settings = settings
        self._pacing = pacing or FixedIntervalPacing.from_settings(settings)
        self._clock = clock or utcnow
        self._run_logger = RunLogger(run_logs)

    @property
    def settings(self):
        return self._settings

    # ------------------------------------------------------------------ runs

    def begin(
        self,
        kind: Union[RunKind, str],
        triggered_by: Optional[str] = None,
        target: Optional[str] = None,
    ) -> UpdateJob:
        """Claim the running slot with a fresh job."""
        key = str(target or "").strip().upper() or None
        job = self._jobs.claim(
            UpdateJob(
                kind=RunKind(kind),
                triggered_by=triggered_by,
                target=key,
                started_at=self._clock(),
            )
        )
        logger.info(
            f"Update job {job.job_id} started ({job.kind.value}"
            f"{', target ' + key if key else ''}"
            f"{', by ' + triggered_by if triggered_by else ''})"
        )
        return job

    async def execute(self, job: UpdateJob) -> UpdateJob:
        """Process a claimed job to completion.

        Per-country failures never escape; anything else fails the job and
        is re-raised.
        """
        state = _RunState(job_id=job.job_id)
        started = time.monotonic()
        try:
            if job.target:
                await self._run_targeted(state, job.target)
            else:
                await self._run_all(state)
            finished = self._jobs.complete(job.job_id, self._counters(state))
        except Exception as e:
            logger.error(f"Update job {job.job_id} failed: {e}")
            try:
                self._jobs.fail(job.job_id, str(e), self._counters(state))
            except Exception as save_error:
                logger.error(f"Could not mark job {job.job_id} failed: {save_error}")
            raise

        elapsed = format_duration((time.monotonic() - started) * 1000)
        logger.info(
            f"Update job {finished.job_id} completed in {elapsed}: "
            f"considered={finished.records_considered} changed={finished.records_changed} "
            f"drafts={finished.drafts_created} failed={finished.records_failed} "
            f"skipped={finished.records_skipped}"
        )
        return finished

    async def run(
        self,
        kind: Union[RunKind, str] = RunKind.MANUAL,
        triggered_by: Optional[str] = None,
        target: Optional[str] = None,
    ) -> UpdateJob:
        job = self.begin(kind, triggered_by=triggered_by, target=target)
        return await self.execute(job)

    async def _run_targeted(self, state: _RunState, target: str) -> None:
        record = self._countries.find_by_key(target)
        if record is None:
            raise RecordNotFoundError(f"Country not found: {target}", key=target)
        state.considered = 1
        await self._process_country(state, record, retry_count=1)

    async def _run_all(self, state: _RunState) -> None:
        records = self._countries.find_all()
        state.considered = len(records)
        now = self._clock()

        candidates: List[CountryRecord] = []
        for record in records:
            if self._is_recent(record, now):
                logger.info(f"Skipping {record.country} ({record.iso3}), updated {record.last_updated.isoformat()}")
                self._run_logger.skipped(state.job_id, record.iso3, record.country)
            else:
                candidates.append(record)

        skipped = state.considered - len(candidates)
        logger.info(f"{len(candidates)} countries to process, {skipped} recently updated")
        self._checkpoint(state)
        if not candidates:
            return

        batch_size = max(1, int(self._settings.batch_size))
        batches = [candidates[i : i + batch_size] for i in range(0, len(candidates), batch_size)]

        failed: List[CountryRecord] = []
        for batch_index, batch in enumerate(batches, start=1):
            logger.info(f"Batch {batch_index}/{len(batches)} ({len(batch)} countries)")
            for position, record in enumerate(batch):
                if not await self._process_country(state, record, retry_count=1):
                    failed.append(record)
                if position < len(batch) - 1:
                    await self._pacing.between_calls()
            if batch_index < len(batches):
                await self._pacing.between_batches()

        if failed and len(failed) >= self._settings.error_threshold:
            await self._retry_rounds(state, failed)
        elif failed:
            logger.info(f"{len(failed)} failures below threshold {self._settings.error_threshold}, no retry")

    async def _retry_rounds(self, state: _RunState, queue: List[CountryRecord]) -> None:
        for round_number in range(2, int(self._settings.max_retries) + 1):
            if not queue:
                break
            await self._pacing.before_retry_round(round_number)
            logger.info(f"Retry round {round_number}/{self._settings.max_retries}: {len(queue)} countries")

            still_failing: List[CountryRecord] = []
            for position, record in enumerate(queue):
                if not await self._process_country(state, record, retry_count=round_number):
                    still_failing.append(record)
                if position < len(queue) - 1:
                    await self._pacing.between_calls()
            recovered = len(queue) - len(still_failing)
            logger.info(f"Retry round {round_number}: {recovered} recovered, {len(still_failing)} still failing")
            queue = still_failing

    async def _process_country(self, state: _RunState, record: CountryRecord, *, retry_count: int) -> bool:
        started = time.monotonic()
        try:
            sources = self._sources_for(record.iso3)
            result = await self._generator.generate(record.country, record.iso3, sources)
            updated = self.merge_summary(record.iso3, result.output)
        except Exception as e:
            duration_ms = int((time.monotonic() - started) * 1000)
            logger.error(f"{record.country} ({record.iso3}) failed on attempt {retry_count}: {e}")
            self._run_logger.log(
                state.job_id,
                record.iso3,
                record.country,
                RunOutcome.FAILED,
                error=str(e),
                duration_ms=duration_ms,
                retry_count=retry_count,
            )
            self._count_attempt(state)
            return False

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"{record.country} ({record.iso3}) updated to v{updated.version} "
            f"in {format_duration(duration_ms)}"
        )
        self._run_logger.log(
            state.job_id,
            record.iso3,
            record.country,
            RunOutcome.SUCCESS,
            duration_ms=duration_ms,
            retry_count=retry_count,
        )
        self._count_attempt(state)
        return True

    def _sources_for(self, iso3: str):
        if self._sources is None:
            return None
        return self._sources.list(country=iso3, status=SourceStatus.ACTIVE, with_text=True)

    def merge_summary(self, iso3: str, output: GeneratedSummary) -> CountryRecord:
        """Write generated sections onto the stored record.

        ``additional_notes`` survives verbatim and the version goes up by one
        (a missing record is created at version 1).
        """
        existing = self._countries.find_by_key(iso3)
        notes = list(existing.summary.additional_notes) if existing is not None else []
        summary = output.summary.model_copy(deep=True)
        summary.additional_notes = notes
        return self._store_summary(iso3, summary, existing, country=output.country)

    def save_manual_summary(self, iso3: str, summary: Dict[str, Any], edited_by: Optional[str] = None) -> CountryRecord:
        """Replace a stored summary with an operator edit.

        The edit is validated and trimmed and may set ``additional_notes``;
        the version goes up by one like any other summary write.

        Raises:
            SummaryValidationError: the edit was rejected
            RecordNotFoundError: unknown country
        """
        cleaned = sanitize_summary_edit(summary)
        existing = self._countries.find_by_key(iso3)
        if existing is None:
            raise RecordNotFoundError(f"Country not found: {iso3}", key=iso3)
        updated = self._store_summary(existing.iso3, cleaned, existing)
        logger.info(
            f"Manual edit: {updated.country} ({updated.iso3}) now v{updated.version}"
            f"{' by ' + edited_by if edited_by else ''}"
        )
        return updated

    async def draft_summary(self, iso3: str) -> Tuple[CountryRecord, GenerationResult, int]:
        """Generate a reviewable draft from stored sources without touching the record.

        Returns the record, the generation result (its audit row stays a draft)
        and the number of sources used.

        Raises:
            RecordNotFoundError: unknown country or no active source with text
        """
        record = self._countries.find_by_key(iso3)
        if record is None:
            raise RecordNotFoundError(f"Country not found: {iso3}", key=iso3)
        sources = self._sources_for(record.iso3) or []
        if not sources:
            raise RecordNotFoundError(f"No active sources found for {record.iso3}", key=record.iso3)
        logger.info(f"Drafting brief for {record.country} ({record.iso3}) from {len(sources)} sources")
        result = await self._generator.generate(record.country, record.iso3, sources)
        return record, result, len(sources)

    def _store_summary(
        self,
        iso3: str,
        summary: CountrySummary,
        existing: Optional[CountryRecord],
        country: Optional[str] = None,
    ) -> CountryRecord:
        fields = {
            "summary": summary.model_dump(),
            "last_updated": self._clock(),
            "version": (existing.version if existing is not None else 0) + 1,
        }
        if existing is None:
            fields["country"] = country or iso3
        return self._countries.upsert(iso3, fields)

    def _is_recent(self, record: CountryRecord, now: datetime) -> bool:
        if record.last_updated is None:
            return False
        window = timedelta(hours=float(self._settings.skip_window_hours))
        return now - record.last_updated < window

    # ------------------------------------------------------------- counters

    def _counters(self, state: _RunState) -> Dict[str, int]:
        counters = self._run_logs.summarize(state.job_id).as_counters()
        counters["records_considered"] = state.considered
        return counters

    def _count_attempt(self, state: _RunState) -> None:
        state.attempts += 1
        if state.attempts % max(1, int(self._settings.save_every)) == 0:
            self._checkpoint(state)

    def _checkpoint(self, state: _RunState) -> None:
        try:
            job = self._jobs.save_progress(state.job_id, self._counters(state))
        except Exception as e:
            logger.warning(f"Checkpoint for {state.job_id} failed: {e}")
            return
        logger.info(
            f"Checkpoint {job.job_id}: {state.attempts} attempts, "
            f"{job.drafts_created} drafts, {job.records_failed} failing"
        )

    # ------------------------------------------------------------ operators

    def current_job(self) -> Optional[UpdateJob]:
        """The running job, if any."""
        return self._jobs.find_running()

    def get_job(self, job_id: str) -> Optional[UpdateJob]:
        return self._jobs.get(job_id)

    def list_jobs(self, limit: int = 20, skip: int = 0) -> Tuple[List[UpdateJob], int]:
        return self._jobs.list_jobs(limit=limit, skip=skip)

    def job_logs(self, job_id: str) -> List[CountryRunLog]:
        if self._jobs.get(job_id) is None:
            raise RecordNotFoundError(f"Job not found: {job_id}", key=job_id)
        return self._run_logs.list_for_job(job_id)

    def reset_stale_job(self, job_id: str, reason: str = "Reset by operator") -> UpdateJob:
        """Fail a job left running by a crashed process."""
        job = self._jobs.reset_stale(job_id, reason)
        logger.warning(f"Job {job_id} reset to failed: {reason}")
        return job
