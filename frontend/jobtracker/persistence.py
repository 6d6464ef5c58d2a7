from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import SNAPSHOT_KEY

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Keyed storage for the set of unfinished jobs, one blob per key."""

    def load(self) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def save(self, jobs: List[Dict[str, Any]]) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemorySnapshotStore(SnapshotStore):
    def __init__(self, jobs: Optional[List[Dict[str, Any]]] = None):
        self.data: Optional[List[Dict[str, Any]]] = list(jobs) if jobs is not None else None

    def load(self) -> List[Dict[str, Any]]:
        return list(self.data or [])

    def save(self, jobs: List[Dict[str, Any]]) -> None:
        self.data = list(jobs)

    def clear(self) -> None:
        self.data = None


class JsonFileSnapshotStore(SnapshotStore):
    """Snapshot kept under ``key`` inside a small JSON file.

    Several keys can share one file, like entries in browser storage. A
    missing or unreadable file loads as an empty snapshot.
    """

    def __init__(self, path: Path, key: str = SNAPSHOT_KEY):
        self.path = path
        self.key = key
        self._lock = threading.Lock()

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"[jobs] ignoring unreadable snapshot file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def load(self) -> List[Dict[str, Any]]:
        with self._lock:
            jobs = self._read_all().get(self.key)
        if not isinstance(jobs, list):
            return []
        return [j for j in jobs if isinstance(j, dict)]

    def save(self, jobs: List[Dict[str, Any]]) -> None:
        with self._lock:
            data = self._read_all()
            data[self.key] = list(jobs)
            self._write_all(data)

    def clear(self) -> None:
        with self._lock:
            data = self._read_all()
            if self.key in data:
                del data[self.key]
                self._write_all(data)
