"""Country record store: lookup, listing and field-level upsert."""

from __future__ import annotations

from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from core import CountryRecord
from utils.exceptions import StorageError

from .snapshot import JsonSnapshot


class InMemoryCountryStore:
    """Thread-safe country store keyed by ISO3, preserving insertion order."""

    def __init__(self, records: Optional[Iterable[CountryRecord]] = None) -> None:
        self._records: Dict[str, CountryRecord] = {}
        self._lock = Lock()
        for record in records or []:
            self._records[record.iso3] = record.model_copy(deep=True)

    @staticmethod
    def _key(iso3: str) -> str:
        return str(iso3 or "").strip().upper()

    def find_by_key(self, iso3: str) -> Optional[CountryRecord]:
        with self._lock:
            record = self._records.get(self._key(iso3))
            return record.model_copy(deep=True) if record else None

    def find_all(self, predicate: Optional[Callable[[CountryRecord], bool]] = None) -> List[CountryRecord]:
        """All records in store order, optionally filtered."""
        with self._lock:
            records = [item.model_copy(deep=True) for item in self._records.values()]
        if predicate is None:
            return records
        return [item for item in records if predicate(item)]

    def insert(self, record: CountryRecord) -> CountryRecord:
        with self._lock:
            if record.iso3 in self._records:
                raise StorageError(f"Country already exists: {record.iso3}")
            self._commit_locked(record.iso3, record.model_copy(deep=True))
            return record.model_copy(deep=True)

    def upsert(self, iso3: str, fields: Dict[str, Any]) -> CountryRecord:
        """Set ``fields`` on the record, creating it when missing.

        The key is immutable: a differing ``iso3`` in ``fields`` is rejected.
        """
        key = self._key(iso3)
        if not key:
            raise StorageError("iso3 is required")
        requested = fields.get("iso3")
        if requested is not None and self._key(requested) != key:
            raise StorageError(f"iso3 is immutable ({key} -> {requested})")

        with self._lock:
            existing = self._records.get(key)
            if existing is not None:
                data = existing.model_dump()
                data.update(fields)
            else:
                data = {"country": key, **fields}
            data["iso3"] = key
            try:
                record = CountryRecord.model_validate(data)
            except ValueError as e:
                raise StorageError(f"Invalid country update for {key}: {e}") from e
            self._commit_locked(key, record)
            return record.model_copy(deep=True)

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def _commit_locked(self, key: str, record: CountryRecord) -> None:
        """Swap ``record`` in and persist; memory is restored if the write fails."""
        previous = self._records.get(key)
        self._records[key] = record
        try:
            self._persist()
        except Exception:
            if previous is None:
                del self._records[key]
            else:
                self._records[key] = previous
            raise

    def _persist(self) -> None:
        """Hook for durable subclasses; called with the lock held."""
        return None


class JsonFileCountryStore(InMemoryCountryStore):
    """Country store mirrored to a JSON snapshot after every write."""

    def __init__(self, path: Union[str, Path]) -> None:
        self._snapshot = JsonSnapshot(path)
        rows = self._snapshot.load() or []
        super().__init__(CountryRecord.model_validate(row) for row in rows)

    def _persist(self) -> None:
        self._snapshot.save([item.model_dump(mode="json") for item in self._records.values()])
