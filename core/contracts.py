"""Canonical data contracts for country briefs, update jobs and run logs."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RunKind(str, Enum):
    """How an update job was triggered."""

    SCHEDULED = "scheduled"
    MANUAL = "manual"


class JobStatus(str, Enum):
    """Lifecycle state of an update job."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RunOutcome(str, Enum):
    """Outcome of one attempt to process a single country."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class SourceType(str, Enum):
    """Regulatory source categories tracked per country."""

    ICAO_ANNEX_18 = "ICAO_ANNEX_18"
    ICAO_DOC_9284 = "ICAO_DOC_9284"
    ICAO_STATE_VARIATIONS = "ICAO_STATE_VARIATIONS"
    IATA_DGR = "IATA_DGR"
    UN_MODEL_REGULATIONS = "UN_MODEL_REGULATIONS"
    IATG = "IATG"
    AIP_GEN = "AIP_GEN"
    AIR_NAVIGATION_ORDER = "AIR_NAVIGATION_ORDER"
    EXPORT_IMPORT_LAW = "EXPORT_IMPORT_LAW"
    CUSTOMS_REGS = "CUSTOMS_REGS"
    OPERATOR_MANUAL = "OPERATOR_MANUAL"
    AIRPORT_MANUAL = "AIRPORT_MANUAL"


class SourceStatus(str, Enum):
    ACTIVE = "active"
    ERROR = "error"
    PENDING = "pending"


class AiRequestStatus(str, Enum):
    PENDING = "pending"
    DRAFT = "draft"
    VERIFIED = "verified"
    REJECTED = "rejected"


class PrimaryContact(BaseModel):
    """Permit office contact taken from AIP GEN 1.2/1.4."""

    phone: str = ""
    email: str = ""
    website: str = ""


class AuthorityContact(BaseModel):
    name: str = ""
    role: str = ""
    phone: str = ""
    email: str = ""
    url: str = ""


class Reference(BaseModel):
    id: str = ""
    title: str = ""
    url: str = ""
    fetched_at: str = ""


class CountrySummary(BaseModel):
    """Sectioned regulatory brief for one country.

    Every section defaults to empty so a record that was never refreshed still
    carries a complete summary. ``additional_notes`` is curated by operators and
    is never produced by the model.
    """

    minimum_lead_time: str = ""
    icao_doc_url: str = ""
    state_rules_url: str = ""
    primary_contact: PrimaryContact = Field(default_factory=PrimaryContact)
    additional_notes: List[str] = Field(default_factory=list)
    status: List[str] = Field(default_factory=list)
    permit_and_conditions: List[str] = Field(default_factory=list)
    israel_limitation: List[str] = Field(default_factory=list)
    key_extracts: List[str] = Field(default_factory=list)
    ops_notes: List[str] = Field(default_factory=list)
    ops_checklist: List[str] = Field(default_factory=list)
    authorities_contacts: List[AuthorityContact] = Field(default_factory=list)
    references: List[Reference] = Field(default_factory=list)


class CountryRecord(BaseModel):
    """One tracked country document."""

    iso3: str
    country: str
    region: str = ""
    flag_url: Optional[str] = None
    requires_permit: bool = False
    embargo: bool = False
    last_updated: Optional[datetime] = None
    version: int = 1
    summary: CountrySummary = Field(default_factory=CountrySummary)

    @field_validator("iso3", mode="before")
    @classmethod
    def _normalize_iso3(cls, value: Any) -> str:
        text = str(value or "").strip().upper()
        if not text:
            raise ValueError("iso3 is required")
        return text

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value: Any) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0

    @field_validator("last_updated", mode="after")
    @classmethod
    def _utc_last_updated(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @field_validator("summary", mode="before")
    @classmethod
    def _summary_present(cls, value: Any) -> Any:
        return value if value is not None else CountrySummary()


class UpdateJob(BaseModel):
    """One execution of the batch orchestrator."""

    job_id: str = Field(default_factory=lambda: f"job_{uuid4().hex[:12]}")
    kind: RunKind
    triggered_by: Optional[str] = None
    target: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    status: JobStatus = JobStatus.RUNNING
    records_considered: int = 0
    records_changed: int = 0
    drafts_created: int = 0
    records_failed: int = 0
    records_skipped: int = 0
    error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self.status == JobStatus.RUNNING


class CountryRunLog(BaseModel):
    """Append-only record of one attempt to process a country within a job."""

    model_config = ConfigDict(frozen=True)

    log_id: str = Field(default_factory=lambda: f"log_{uuid4().hex[:12]}")
    job_id: str
    iso3: str
    country: str
    outcome: RunOutcome
    error: Optional[str] = None
    duration_ms: Optional[int] = None
    retry_count: int = 1
    timestamp: datetime = Field(default_factory=utcnow)


class Source(BaseModel):
    """A regulatory document fetched and hashed for change detection."""

    source_id: str = Field(default_factory=lambda: f"src_{uuid4().hex[:10]}")
    title: str
    source_type: SourceType
    url: str
    countries: List[str] = Field(default_factory=list)
    last_fetched: Optional[datetime] = None
    hash: str = ""
    extracted_text: Optional[str] = None
    status: SourceStatus = SourceStatus.PENDING

    @field_validator("countries", mode="before")
    @classmethod
    def _upper_countries(cls, value: Any) -> List[str]:
        return [str(item).strip().upper() for item in list(value or []) if str(item).strip()]


class AiRequest(BaseModel):
    """Audit row for one model call."""

    request_id: str = Field(default_factory=lambda: f"air_{uuid4().hex[:12]}")
    iso3: str
    prompt: str
    model: str
    response: str = ""
    source_ids: List[str] = Field(default_factory=list)
    status: AiRequestStatus = AiRequestStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)


class GeneratedSummary(BaseModel):
    """Shape-coerced model output for one country."""

    country: str
    iso3: str
    last_updated: str
    summary: CountrySummary
