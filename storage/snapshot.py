"""
JSON Snapshots
File persistence shared by the JSON-backed stores
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Iterator, List, Optional, Union

from utils.exceptions import StorageError


logger = logging.getLogger(__name__)


class JsonSnapshot:
    """
    Whole-document JSON file, rewritten on every save.

    Writes go to a sibling temp file first and are moved into place, so a
    crash mid-write leaves the previous snapshot intact.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> Optional[Any]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to load snapshot {self.path}: {e}") from e

    def save(self, payload: Any) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2, default=str)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Failed to save snapshot {self.path}: {e}") from e


class JsonLinesLog:
    """Append-only JSON lines file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def append(self, row: Any) -> None:
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(row, ensure_ascii=False, default=str))
                f.write("\n")
        except OSError as e:
            raise StorageError(f"Failed to append to {self.path}: {e}") from e

    def read_all(self) -> List[Any]:
        return list(self._iter_rows())

    def _iter_rows(self) -> Iterator[Any]:
        if not self.path.exists():
            return
        with open(self.path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    # A torn final line after a crash is expected; anything else is worth a look
                    logger.warning(f"Skipping unreadable row {line_no} in {self.path}")
