"""Core contracts and shared types."""

from .contracts import (
    AiRequest,
    AiRequestStatus,
    AuthorityContact,
    CountryRecord,
    CountryRunLog,
    CountrySummary,
    GeneratedSummary,
    JobStatus,
    PrimaryContact,
    Reference,
    RunKind,
    RunOutcome,
    Source,
    SourceStatus,
    SourceType,
    UpdateJob,
    utcnow,
)

__all__ = [
    "AiRequest",
    "AiRequestStatus",
    "AuthorityContact",
    "CountryRecord",
    "CountryRunLog",
    "CountrySummary",
    "GeneratedSummary",
    "JobStatus",
    "PrimaryContact",
    "Reference",
    "RunKind",
    "RunOutcome",
    "Source",
    "SourceStatus",
    "SourceType",
    "UpdateJob",
    "utcnow",
]
