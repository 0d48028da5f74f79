"""Append-only log of per-country attempts."""

from __future__ import annotations

import logging
from typing import Optional

from core import CountryRunLog, RunOutcome


logger = logging.getLogger(__name__)

SKIP_REASON = "Recently updated."


class RunLogger:
    """Writes one ``CountryRunLog`` row per attempt.

    A failed write is reported and swallowed; losing a log row must not abort
    the attempt it describes.
    """

    def __init__(self, store) -> None:
        self._store = store

    def log(
        self,
        job_id: str,
        iso3: str,
        country: str,
        outcome: RunOutcome,
        *,
        error: Optional[str] = None,
        duration_ms: Optional[int] = None,
        retry_count: int = 1,
    ) -> Optional[CountryRunLog]:
        entry = CountryRunLog(
            job_id=job_id,
            iso3=iso3,
            country=country,
            outcome=outcome,
            error=error,
            duration_ms=duration_ms,
            retry_count=retry_count,
        )
        try:
            return self._store.append(entry)
        except Exception as e:
            logger.warning(f"Failed to write run log for {iso3} in {job_id}: {e}")
            return None

    def skipped(self, job_id: str, iso3: str, country: str) -> Optional[CountryRunLog]:
        return self.log(job_id, iso3, country, RunOutcome.SKIPPED, error=SKIP_REASON, retry_count=0)
