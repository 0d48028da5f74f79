"""
Storage Module
Country records, update jobs, run logs, sources and model-request audit rows
"""
from .country_store import InMemoryCountryStore, JsonFileCountryStore
from .job_store import (
    InMemoryJobStore,
    InMemoryRunLogStore,
    JsonFileJobStore,
    JsonLinesRunLogStore,
    RunLogSummary,
)
from .snapshot import JsonLinesLog, JsonSnapshot
from .source_store import InMemoryAiRequestStore, InMemorySourceStore, JsonFileSourceStore

__all__ = [
    "InMemoryCountryStore",
    "JsonFileCountryStore",
    "InMemoryJobStore",
    "InMemoryRunLogStore",
    "JsonFileJobStore",
    "JsonLinesRunLogStore",
    "RunLogSummary",
    "JsonLinesLog",
    "JsonSnapshot",
    "InMemoryAiRequestStore",
    "InMemorySourceStore",
    "JsonFileSourceStore",
]
