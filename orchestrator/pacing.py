"""Pacing policies for outbound model calls.

The orchestrator never sleeps directly; it asks its policy to wait at three
points: between two calls in a batch, between batches, and before a retry round.
"""

from __future__ import annotations

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional


logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class PacingPolicy(ABC):
    """Where the orchestrator waits to respect the model API rate limit."""

    @abstractmethod
    async def between_calls(self) -> None:
        pass

    @abstractmethod
    async def between_batches(self) -> None:
        pass

    @abstractmethod
    async def before_retry_round(self, round_number: int) -> None:
        pass


class FixedIntervalPacing(PacingPolicy):
    """Fixed delays with optional random jitter added to each wait."""

    def __init__(
        self,
        call_delay: float,
        batch_delay: float,
        retry_delay: float,
        *,
        jitter: float = 0.0,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        self.call_delay = max(0.0, float(call_delay))
        self.batch_delay = max(0.0, float(batch_delay))
        self.retry_delay = max(0.0, float(retry_delay))
        self.jitter = max(0.0, float(jitter))
        self._sleep = sleep or asyncio.sleep

    async def _wait(self, base: float, label: str) -> None:
        delay = base + (random.uniform(0, self.jitter) if self.jitter else 0.0)
        if delay <= 0:
            return
        logger.info(f"Waiting {delay:.0f}s {label}")
        await self._sleep(delay)

    async def between_calls(self) -> None:
        await self._wait(self.call_delay, "before next model call")

    async def between_batches(self) -> None:
        await self._wait(self.batch_delay, "before next batch")

    async def before_retry_round(self, round_number: int) -> None:
        await self._wait(self.retry_delay, f"before retry round {round_number}")

    @classmethod
    def from_settings(cls, settings, *, sleep: Optional[SleepFn] = None) -> "FixedIntervalPacing":
        """Build from ``UpdateJobSettings``."""
        return cls(
            call_delay=settings.delay_between_llm_calls_sec,
            batch_delay=settings.delay_between_batches_sec,
            retry_delay=settings.retry_delay_sec,
            jitter=settings.pacing_jitter_sec,
            sleep=sleep,
        )


class NoPacing(PacingPolicy):
    """Never waits. Used by the CLI `--no-pacing` flag and in tests."""

    async def between_calls(self) -> None:
        return None

    async def between_batches(self) -> None:
        return None

    async def before_retry_round(self, round_number: int) -> None:
        return None
