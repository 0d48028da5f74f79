"""Shared runtime for web and CLI entrypoints.

Builds the stores, generator, orchestrator and schedule trigger once from
settings and hands the same instances to every caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from config import Settings, get_settings
from intelligence import SummaryGenerator
from orchestrator import FixedIntervalPacing, PacingPolicy, ScheduleTrigger, UpdateOrchestrator
from sources import SourceFetcher
from storage import (
    InMemoryAiRequestStore,
    InMemoryCountryStore,
    InMemoryJobStore,
    InMemoryRunLogStore,
    InMemorySourceStore,
    JsonFileCountryStore,
    JsonFileJobStore,
    JsonFileSourceStore,
    JsonLinesRunLogStore,
)
from utils.exceptions import ConfigurationError


@dataclass
class ServiceRuntime:
    settings: Settings
    countries: InMemoryCountryStore
    jobs: InMemoryJobStore
    run_logs: InMemoryRunLogStore
    sources: InMemorySourceStore
    ai_requests: InMemoryAiRequestStore
    generator: SummaryGenerator
    orchestrator: UpdateOrchestrator
    trigger: ScheduleTrigger
    fetcher: SourceFetcher


def build_runtime(
    settings: Optional[Settings] = None,
    *,
    generator=None,
    pacing: Optional[PacingPolicy] = None,
) -> ServiceRuntime:
    """Wire every component from ``settings``."""
    settings = settings or get_settings()
    backend = settings.storage.backend.strip().lower()

    if backend == "json":
        data_dir = Path(settings.storage.data_dir)
        countries = JsonFileCountryStore(data_dir / "countries.json")
        jobs = JsonFileJobStore(data_dir / "update_jobs.json")
        run_logs = JsonLinesRunLogStore(data_dir / "country_run_logs.jsonl")
        sources = JsonFileSourceStore(data_dir / "sources.json")
    elif backend == "memory":
        countries = InMemoryCountryStore()
        jobs = InMemoryJobStore()
        run_logs = InMemoryRunLogStore()
        sources = InMemorySourceStore()
    else:
        raise ConfigurationError(f"Unknown storage backend: {settings.storage.backend}")

    ai_requests = InMemoryAiRequestStore()
    if generator is None:
        generator = SummaryGenerator(ai_requests=ai_requests, grounding=settings.llm.grounding)

    orchestrator = UpdateOrchestrator(
        countries=countries,
        jobs=jobs,
        run_logs=run_logs,
        generator=generator,
        pacing=pacing or FixedIntervalPacing.from_settings(settings.update),
        settings=settings.update,
        sources=sources,
    )
    trigger = ScheduleTrigger(orchestrator, settings.schedule)
    fetcher = SourceFetcher(
        sources,
        timeout=settings.source.request_timeout,
        max_retries=settings.source.max_retries,
        user_agent=settings.source.user_agent,
    )

    return ServiceRuntime(
        settings=settings,
        countries=countries,
        jobs=jobs,
        run_logs=run_logs,
        sources=sources,
        ai_requests=ai_requests,
        generator=generator,
        orchestrator=orchestrator,
        trigger=trigger,
        fetcher=fetcher,
    )


_RUNTIME: Optional[ServiceRuntime] = None


def get_runtime() -> ServiceRuntime:
    global _RUNTIME
    if _RUNTIME is None:
        _RUNTIME = build_runtime()
    return _RUNTIME


def set_runtime(runtime: Optional[ServiceRuntime]) -> None:
    global _RUNTIME
    _RUNTIME = runtime
