"""FastAPI app for country briefs and update job control."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from typing import Any, Dict, List, Optional, Set

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from core import CountryRecord, RunKind, UpdateJob
from utils.exceptions import (
    JobAlreadyRunningError,
    JobStateError,
    LLMError,
    RecordNotFoundError,
    SourceFetchError,
    SummaryValidationError,
)
from webapp.runtime import ServiceRuntime, get_runtime


logger = logging.getLogger(__name__)


class RunUpdatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    specific_country: Optional[str] = Field(default=None, alias="specificCountry")
    triggered_by: Optional[str] = Field(default=None, alias="triggeredBy")


class ResetJobPayload(BaseModel):
    reason: str = Field(default="Reset by operator")


class FetchSourcePayload(BaseModel):
    force: bool = Field(default=False)


class SummaryEditPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    summary: Any = None
    edited_by: Optional[str] = Field(default=None, alias="editedBy")


class DraftPayload(BaseModel):
    iso3: str = Field(min_length=1)


def _country_row(record: CountryRecord) -> Dict[str, Any]:
    summary = record.summary
    has_summary = bool(summary.ops_notes)
    return {
        "country": record.country,
        "iso3": record.iso3,
        "region": record.region,
        "flagUrl": record.flag_url,
        "requires_permit": record.requires_permit,
        "embargo": record.embargo,
        "lastUpdated": record.last_updated.isoformat() if record.last_updated else None,
        "version": record.version,
        "hasSummary": has_summary,
        "isComplete": has_summary and bool(summary.authorities_contacts) and bool(summary.references),
    }


def create_app(runtime: Optional[ServiceRuntime] = None) -> FastAPI:
    """Build the app; without ``runtime`` the shared runtime is used."""

    background: Set[asyncio.Task] = set()

    def _runtime() -> ServiceRuntime:
        return runtime or get_runtime()

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        current = _runtime()
        if current.settings.schedule.enabled:
            current.trigger.start()
        try:
            yield
        finally:
            current.trigger.stop()

    app = FastAPI(title="Munitions of War Country Briefs API", lifespan=lifespan)

    async def _execute_in_background(job: UpdateJob) -> None:
        try:
            await _runtime().orchestrator.execute(job)
        except Exception as exc:
            logger.error(f"Background update job {job.job_id} failed: {exc}")

    @app.get("/health")
    def health() -> Dict[str, Any]:
        running = _runtime().orchestrator.current_job()
        return {
            "ok": True,
            "ts": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "running_job": running.job_id if running else None,
        }

    @app.post("/api/updates/run")
    async def run_update(payload: Optional[RunUpdatePayload] = None):
        payload = payload or RunUpdatePayload()
        orchestrator = _runtime().orchestrator
        try:
            job = orchestrator.begin(
                RunKind.MANUAL,
                triggered_by=payload.triggered_by,
                target=payload.specific_country,
            )
        except JobAlreadyRunningError as exc:
            return JSONResponse(
                status_code=409,
                content={"success": False, "error": exc.message, "jobId": exc.running_job_id},
            )

        task = asyncio.create_task(_execute_in_background(job))
        background.add(task)
        task.add_done_callback(background.discard)

        message = (
            f"Update job started for {job.target}"
            if job.target
            else "Update job started for all countries (skipping recently updated)"
        )
        return {"success": True, "message": message, "jobId": job.job_id, "specificCountry": job.target}

    @app.get("/api/update_jobs")
    def list_update_jobs(
        limit: int = Query(default=20, ge=1, le=200),
        skip: int = Query(default=0, ge=0),
    ) -> Dict[str, Any]:
        jobs, total = _runtime().orchestrator.list_jobs(limit=limit, skip=skip)
        return {
            "success": True,
            "data": [job.model_dump(mode="json") for job in jobs],
            "pagination": {"total": total, "limit": limit, "skip": skip},
        }

    @app.get("/api/update_jobs/{job_id}/logs")
    def get_update_job_logs(job_id: str) -> Dict[str, Any]:
        try:
            rows = _runtime().orchestrator.job_logs(job_id)
        except RecordNotFoundError as exc:
            raise HTTPException(status_code=404, detail=exc.message) from exc
        return {"success": True, "data": [row.model_dump(mode="json") for row in rows], "count": len(rows)}

    @app.post("/api/update_jobs/{job_id}/reset")
    def reset_update_job(job_id: str, payload: Optional[ResetJobPayload] = None) -> Dict[str, Any]:
        payload = payload or ResetJobPayload()
        try:
            job = _runtime().orchestrator.reset_stale_job(job_id, payload.reason)
        except RecordNotFoundError as exc:
            raise HTTPException(status_code=404, detail=exc.message) from exc
        except JobStateError as exc:
            raise HTTPException(status_code=409, detail=exc.message) from exc
        return {"success": True, "data": job.model_dump(mode="json")}

    @app.get("/api/scheduler/status")
    def scheduler_status() -> Dict[str, Any]:
        current = _runtime()
        running = current.orchestrator.current_job()
        return {
            "success": True,
            "data": current.trigger.status().to_dict(),
            "running_job": running.model_dump(mode="json") if running else None,
        }

    @app.get("/api/regions")
    def list_regions() -> Dict[str, Any]:
        regions = sorted({record.region for record in _runtime().countries.find_all() if record.region})
        return {"success": True, "data": ["All Countries", *regions]}

    @app.get("/api/countries")
    def list_countries(
        region: Optional[str] = None,
        search: Optional[str] = None,
        requires_permit: Optional[bool] = None,
        embargo: Optional[bool] = None,
    ) -> Dict[str, Any]:
        needle = str(search or "").strip().lower()

        def _matches(record: CountryRecord) -> bool:
            if region and region != "All Countries" and record.region != region:
                return False
            if needle and needle not in record.country.lower():
                return False
            if requires_permit and not record.requires_permit:
                return False
            if embargo and not record.embargo:
                return False
            return True

        records = sorted(_runtime().countries.find_all(_matches), key=lambda item: item.country)
        rows: List[Dict[str, Any]] = [_country_row(record) for record in records]
        return {"success": True, "data": rows, "count": len(rows)}

    @app.get("/api/countries/{iso3}")
    def get_country(iso3: str) -> Dict[str, Any]:
        current = _runtime()
        record = current.countries.find_by_key(iso3)
        if record is None:
            raise HTTPException(status_code=404, detail="Country not found")
        history = current.run_logs.list_for_country(record.iso3, limit=10)
        return {
            "success": True,
            "data": record.model_dump(mode="json"),
            "recent_runs": [row.model_dump(mode="json") for row in history],
        }

    @app.put("/api/countries/{iso3}/summary")
    def save_country_summary(iso3: str, payload: SummaryEditPayload):
        if payload.summary is None:
            raise HTTPException(status_code=400, detail="Summary data required")
        try:
            record = _runtime().orchestrator.save_manual_summary(iso3, payload.summary, edited_by=payload.edited_by)
        except SummaryValidationError as exc:
            return JSONResponse(
                status_code=400,
                content={"success": False, "error": exc.message, "validationErrors": exc.errors},
            )
        except RecordNotFoundError as exc:
            raise HTTPException(status_code=404, detail="Country not found") from exc
        return {
            "success": True,
            "data": {
                "iso3": record.iso3,
                "country": record.country,
                "version": record.version,
                "updatedAt": record.last_updated.isoformat() if record.last_updated else None,
            },
        }

    @app.post("/api/ai/generate")
    async def generate_draft(payload: DraftPayload) -> Dict[str, Any]:
        try:
            record, result, used = await _runtime().orchestrator.draft_summary(payload.iso3)
        except RecordNotFoundError as exc:
            raise HTTPException(status_code=404, detail=exc.message) from exc
        except LLMError as exc:
            raise HTTPException(status_code=502, detail=exc.message) from exc
        return {
            "success": True,
            "data": {
                "iso3": record.iso3,
                "aiRequestId": result.ai_request_id,
                "draft": result.output.summary.model_dump(mode="json"),
                "sourcesUsed": used,
            },
        }

    @app.get("/api/sources")
    def list_sources(country: Optional[str] = None) -> Dict[str, Any]:
        rows = _runtime().sources.list(country=country)
        data = [row.model_dump(mode="json", exclude={"extracted_text"}) for row in rows]
        return {"success": True, "data": data, "count": len(data)}

    @app.get("/api/sources/{source_id}")
    def get_source(source_id: str) -> Dict[str, Any]:
        source = _runtime().sources.get(source_id)
        if source is None:
            raise HTTPException(status_code=404, detail="Source not found")
        return {"success": True, "data": source.model_dump(mode="json")}

    @app.post("/api/sources/{source_id}/fetch")
    async def fetch_source(source_id: str, payload: Optional[FetchSourcePayload] = None) -> Dict[str, Any]:
        payload = payload or FetchSourcePayload()
        current = _runtime()
        source = current.sources.get(source_id)
        if source is None:
            raise HTTPException(status_code=404, detail="Source not found")
        try:
            result = await current.fetcher.refresh(source, force=payload.force)
        except SourceFetchError as exc:
            raise HTTPException(status_code=502, detail=exc.message) from exc
        return {
            "success": True,
            "data": {
                "sourceId": source.source_id,
                "title": source.title,
                "changed": result.changed,
                "hash": result.hash,
                "textLength": len(result.text),
            },
        }

    @app.post("/api/sources/refresh")
    async def refresh_sources(payload: Optional[FetchSourcePayload] = None) -> Dict[str, Any]:
        payload = payload or FetchSourcePayload()
        summary = await _runtime().fetcher.refresh_all(force=payload.force)
        return {"success": True, "data": summary}

    return app


app = create_app()
