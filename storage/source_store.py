"""Regulatory source and model-request audit stores."""

from __future__ import annotations

from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Union

from core import AiRequest, Source, SourceStatus
from utils.exceptions import RecordNotFoundError, StorageError

from .snapshot import JsonSnapshot


class InMemorySourceStore:
    """Sources keyed by id."""

    def __init__(self, sources: Optional[Iterable[Source]] = None) -> None:
        self._sources: Dict[str, Source] = {}
        self._lock = Lock()
        for source in sources or []:
            self._sources[source.source_id] = source.model_copy(deep=True)

    def add(self, source: Source) -> Source:
        with self._lock:
            if source.source_id in self._sources:
                raise StorageError(f"Source already exists: {source.source_id}")
            self._commit_locked(source.source_id, source.model_copy(deep=True))
            return source.model_copy(deep=True)

    def get(self, source_id: str) -> Optional[Source]:
        with self._lock:
            source = self._sources.get(source_id)
            return source.model_copy(deep=True) if source else None

    def list(
        self,
        *,
        country: Optional[str] = None,
        status: Optional[SourceStatus] = None,
        with_text: bool = False,
    ) -> List[Source]:
        iso3 = str(country or "").strip().upper()
        with self._lock:
            rows = [item.model_copy(deep=True) for item in self._sources.values()]
        if iso3:
            rows = [item for item in rows if iso3 in item.countries]
        if status is not None:
            rows = [item for item in rows if item.status == status]
        if with_text:
            rows = [item for item in rows if item.extracted_text]
        return sorted(rows, key=lambda item: item.title)

    def update(self, source_id: str, fields: Dict[str, Any]) -> Source:
        with self._lock:
            source = self._sources.get(source_id)
            if source is None:
                raise RecordNotFoundError(f"Source not found: {source_id}", key=source_id)
            data = source.model_dump()
            data.update(fields)
            data["source_id"] = source_id
            updated = Source.model_validate(data)
            self._commit_locked(source_id, updated)
            return updated.model_copy(deep=True)

    def _commit_locked(self, source_id: str, source: Source) -> None:
        previous = self._sources.get(source_id)
        self._sources[source_id] = source
        try:
            self._persist()
        except Exception:
            if previous is None:
                del self._sources[source_id]
            else:
                self._sources[source_id] = previous
            raise

    def _persist(self) -> None:
        return None


class JsonFileSourceStore(InMemorySourceStore):
    def __init__(self, path: Union[str, Path]) -> None:
        self._snapshot = JsonSnapshot(path)
        rows = self._snapshot.load() or []
        super().__init__(Source.model_validate(row) for row in rows)

    def _persist(self) -> None:
        self._snapshot.save([item.model_dump(mode="json") for item in self._sources.values()])


class InMemoryAiRequestStore:
    """Audit trail of prompts and raw model responses."""

    def __init__(self) -> None:
        self._requests: Dict[str, AiRequest] = {}
        self._lock = Lock()

    def create(self, request: AiRequest) -> AiRequest:
        with self._lock:
            self._requests[request.request_id] = request.model_copy(deep=True)
            return request.model_copy(deep=True)

    def update(self, request_id: str, fields: Dict[str, Any]) -> AiRequest:
        with self._lock:
            request = self._requests.get(request_id)
            if request is None:
                raise RecordNotFoundError(f"AI request not found: {request_id}", key=request_id)
            updated = request.model_copy(update=fields)
            self._requests[request_id] = updated
            return updated.model_copy(deep=True)

    def get(self, request_id: str) -> Optional[AiRequest]:
        with self._lock:
            request = self._requests.get(request_id)
            return request.model_copy(deep=True) if request else None

    def list_for_country(self, iso3: str) -> List[AiRequest]:
        key = str(iso3 or "").strip().upper()
        with self._lock:
            rows = [item.model_copy(deep=True) for item in self._requests.values() if item.iso3 == key]
        return sorted(rows, key=lambda item: item.created_at, reverse=True)
