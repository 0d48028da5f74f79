"""Update orchestration: batch runs, pacing, run logging and the schedule trigger."""

from .pacing import FixedIntervalPacing, NoPacing, PacingPolicy
from .run_logger import SKIP_REASON, RunLogger
from .schedule import ScheduleStatus, ScheduleTrigger, next_cycle_run, parse_interval
from .service import UpdateOrchestrator

__all__ = [
    "FixedIntervalPacing",
    "NoPacing",
    "PacingPolicy",
    "SKIP_REASON",
    "RunLogger",
    "ScheduleStatus",
    "ScheduleTrigger",
    "next_cycle_run",
    "parse_interval",
    "UpdateOrchestrator",
]
