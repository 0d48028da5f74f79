"""Shared fakes for orchestrator, schedule and web tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from config import UpdateJobSettings
from core import CountryRecord, CountrySummary, GeneratedSummary
from intelligence import GenerationResult
from orchestrator import PacingPolicy, UpdateOrchestrator
from storage import InMemoryCountryStore, InMemoryJobStore, InMemoryRunLogStore
from utils.exceptions import LLMError


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
ALWAYS = 10_000


def generated(country: str, iso3: str) -> GeneratedSummary:
    return GeneratedSummary(
        country=country,
        iso3=iso3,
        last_updated=NOW.isoformat(),
        summary=CountrySummary(
            minimum_lead_time="5-7 working days",
            status=[f"-> Prior authorization required for {iso3}"],
            additional_notes=["model output must never land here"],
        ),
    )


class FakeGenerator:
    """Fails an entity ``failures[iso3]`` times, then succeeds."""

    def __init__(self, failures: Optional[Dict[str, int]] = None) -> None:
        self.calls: List[str] = []
        self._failures = dict(failures or {})

    async def generate(self, country, iso3, sources=None) -> GenerationResult:
        self.calls.append(iso3)
        remaining = self._failures.get(iso3, 0)
        if remaining > 0:
            self._failures[iso3] = remaining - 1
            raise LLMError(f"model unavailable for {iso3}", provider="fake")
        return GenerationResult(output=generated(country, iso3))


class RecordingPacing(PacingPolicy):
    def __init__(self) -> None:
        self.events: List[str] = []

    async def between_calls(self) -> None:
        self.events.append("call")

    async def between_batches(self) -> None:
        self.events.append("batch")

    async def before_retry_round(self, round_number: int) -> None:
        self.events.append(f"retry:{round_number}")


def record(iso3: str, country: Optional[str] = None, *, updated_hours_ago: Optional[float] = None, **fields) -> CountryRecord:
    last_updated = NOW - timedelta(hours=updated_hours_ago) if updated_hours_ago is not None else None
    return CountryRecord(iso3=iso3, country=country or f"Country {iso3}", last_updated=last_updated, **fields)


def update_settings(**overrides) -> UpdateJobSettings:
    values = {
        "batch_size": 20,
        "skip_window_hours": 24,
        "error_threshold": 5,
        "max_retries": 3,
        "save_every": 5,
        "pacing_jitter_sec": 0,
    }
    values.update(overrides)
    return UpdateJobSettings(**values)


class Harness:
    def __init__(
        self,
        records: List[CountryRecord],
        generator: Optional[FakeGenerator] = None,
        *,
        countries=None,
        jobs=None,
        run_logs=None,
        **settings_overrides,
    ) -> None:
        self.countries = countries if countries is not None else InMemoryCountryStore(records)
        self.jobs = jobs if jobs is not None else InMemoryJobStore()
        self.run_logs = run_logs if run_logs is not None else InMemoryRunLogStore()
        self.generator = generator or FakeGenerator()
        self.pacing = RecordingPacing()
        self.settings = update_settings(**settings_overrides)
        self.orchestrator = UpdateOrchestrator(
            countries=self.countries,
            jobs=self.jobs,
            run_logs=self.run_logs,
            generator=self.generator,
            pacing=self.pacing,
            settings=self.settings,
            clock=lambda: NOW,
        )
