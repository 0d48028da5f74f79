"""Automatic trigger for update jobs.

Two modes share one APScheduler job:

* cycle: a daily check at the UTC time of day of ``first_run`` runs the
  orchestrator when the current time is within ``tolerance_minutes`` of a
  cycle boundary (``first_run + k * cycle_days``, the AIRAC cadence by default)
* interval: ``"<N>d"``, ``"<N>h"`` or ``"<N>m"`` as a true fixed interval;
  day intervals fire at ``check_hour`` in ``timezone``
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from core import RunKind, UpdateJob, utcnow
from utils.exceptions import JobAlreadyRunningError


logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = "7d"
SCHEDULER_JOB_ID = "country-brief-update"

_INTERVAL_RE = re.compile(r"^\s*(\d+)\s*([dhm])\s*$", re.IGNORECASE)
_INTERVAL_UNITS = {"m": "minutes", "h": "hours", "d": "days"}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def next_cycle_run(anchor: datetime, cycle_days: int, now: datetime) -> datetime:
    """First cycle boundary at or after ``now`` (``anchor`` itself if not reached yet)."""
    anchor = _as_utc(anchor)
    now = _as_utc(now)
    if now <= anchor:
        return anchor
    cycle = timedelta(days=cycle_days)
    cycles = math.ceil((now - anchor) / cycle)
    return anchor + cycles * cycle


def parse_interval(interval: Optional[str]) -> timedelta:
    """Length of ``"<N>d"``, ``"<N>h"`` or ``"<N>m"``.

    Unparseable or non-positive values fall back to ``DEFAULT_INTERVAL``.
    """
    match = _INTERVAL_RE.match(str(interval or ""))
    amount = int(match.group(1)) if match else 0
    if amount < 1:
        logger.warning(f"Invalid schedule interval {interval!r}, falling back to {DEFAULT_INTERVAL}")
        return parse_interval(DEFAULT_INTERVAL)
    return timedelta(**{_INTERVAL_UNITS[match.group(2).lower()]: amount})


@dataclass
class ScheduleStatus:
    active: bool
    mode: str
    next_run: Optional[datetime]
    next_check: Optional[datetime]
    trigger: str
    config: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active": self.active,
            "mode": self.mode,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "next_check": self.next_check.isoformat() if self.next_check else None,
            "trigger": self.trigger,
            "config": self.config,
        }


class ScheduleTrigger:
    """Owns the APScheduler instance that starts scheduled update jobs."""

    def __init__(
        self,
        orchestrator,
        settings=None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if settings is None:
            from config import get_schedule_settings
            settings = get_schedule_settings()
        self._orchestrator = orchestrator
        self._settings = settings
        self._clock = clock or utcnow
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._last_fired: Optional[datetime] = None

    @property
    def mode(self) -> str:
        return "interval" if self._settings.interval else "cycle"

    @property
    def is_active(self) -> bool:
        return self._scheduler is not None

    def build_trigger(self) -> BaseTrigger:
        """The APScheduler trigger for the configured mode."""
        if self.mode == "interval":
            interval = parse_interval(self._settings.interval)
            start_date = None
            if interval % timedelta(days=1) == timedelta(0):
                start_date = datetime.combine(self._clock().date(), time(hour=self._settings.check_hour))
            return IntervalTrigger(
                seconds=int(interval.total_seconds()),
                start_date=start_date,
                timezone=self._settings.timezone,
            )
        # boundaries are UTC instants; check at the anchor's UTC time of day
        anchor = _as_utc(self._settings.first_run)
        return CronTrigger(hour=anchor.hour, minute=anchor.minute, timezone="UTC")

    def start(self) -> None:
        """Start the scheduler on the running event loop. Idempotent."""
        if self._scheduler is not None:
            return
        scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop(), timezone=self._settings.timezone)
        scheduler.add_job(
            self.check_and_run,
            trigger=self.build_trigger(),
            id=SCHEDULER_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler

        status = self.status()
        logger.info(
            f"Update scheduler started ({status.mode}, {status.trigger}); "
            f"next run {status.next_run.isoformat() if status.next_run else 'unknown'}"
        )

    def stop(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Update scheduler stopped")

    def _next_check(self) -> Optional[datetime]:
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(SCHEDULER_JOB_ID)
        return getattr(job, "next_run_time", None) if job is not None else None

    def status(self) -> ScheduleStatus:
        next_check = self._next_check()
        if self.mode == "cycle":
            next_run = next_cycle_run(self._settings.first_run, self._settings.cycle_days, self._clock())
        else:
            next_run = next_check

        config: Dict[str, Any] = {"schedule": self._settings.model_dump(mode="json")}
        update_settings = getattr(self._orchestrator, "settings", None)
        if update_settings is not None and hasattr(update_settings, "model_dump"):
            config["update"] = update_settings.model_dump(mode="json")

        return ScheduleStatus(
            active=self.is_active,
            mode=self.mode,
            next_run=next_run,
            next_check=next_check,
            trigger=str(self.build_trigger()),
            config=config,
        )

    def due_boundary(self, now: datetime) -> Optional[datetime]:
        """The cycle boundary ``now`` is within tolerance of, unless it already fired."""
        now = _as_utc(now)
        anchor = _as_utc(self._settings.first_run)
        cycle = timedelta(days=self._settings.cycle_days)
        tolerance = timedelta(minutes=self._settings.tolerance_minutes)

        upcoming = next_cycle_run(anchor, self._settings.cycle_days, now)
        previous = upcoming - cycle if upcoming > anchor else None
        for boundary in (previous, upcoming):
            if boundary is None or boundary == self._last_fired:
                continue
            if abs(now - boundary) < tolerance:
                return boundary
        return None

    def is_cycle_due(self, now: datetime) -> bool:
        return self.due_boundary(now) is not None

    async def check_and_run(self, now: Optional[datetime] = None) -> Optional[UpdateJob]:
        """Scheduler callback: start a scheduled job when one is due."""
        now = now or self._clock()
        if self.mode == "cycle":
            boundary = self.due_boundary(now)
            if boundary is None:
                logger.debug(f"No cycle boundary due at {now.isoformat()}")
                return None
            self._last_fired = boundary
            logger.info(f"Cycle boundary {boundary.isoformat()} reached, starting scheduled update")

        try:
            return await self._orchestrator.run(RunKind.SCHEDULED, triggered_by="scheduler")
        except JobAlreadyRunningError as e:
            logger.warning(f"Scheduled update skipped, job {e.running_job_id} is still running")
            return None
        except Exception as e:
            logger.error(f"Scheduled update failed: {e}")
            return None
