"""String key-value stores with browser ``localStorage`` semantics.

Values are always strings; callers serialize with ``json`` themselves so a
corrupt value is something they can detect and treat as a miss.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional, Union


logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when the store is unavailable or a write exceeds its quota."""


def _payload_size(data: Dict[str, str]) -> int:
    return sum(len(key) + len(value) for key, value in data.items())


class MemoryStorage:
    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def _commit(self, data: Dict[str, str]) -> None:
        self._data = data

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Storage values must be strings, got {type(value).__name__}")
        with self._lock:
            candidate = dict(self._data)
            candidate[key] = value
            if self.quota_bytes is not None and _payload_size(candidate) > self.quota_bytes:
                raise StorageError(f"Quota exceeded while writing {key!r}")
            self._commit(candidate)

    def remove_item(self, key: str) -> None:
        with self._lock:
            if key not in self._data:
                return
            candidate = dict(self._data)
            del candidate[key]
            self._commit(candidate)

    def clear(self) -> None:
        with self._lock:
            self._commit({})

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data.keys())


class FileStorage(MemoryStorage):
    """Disk-backed store: one JSON object, rewritten whole on every change.

    The in-memory copy only changes after the file has been replaced, so a
    failed write leaves both copies at the previous state. A corrupt file is
    moved aside to ``<name>.corrupt`` and the store starts empty.
    """

    def __init__(self, path: Union[str, Path], quota_bytes: Optional[int] = None):
        super().__init__(quota_bytes=quota_bytes)
        self.path = Path(path)
        self._data = self._read()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as exc:
            self._set_aside(f"unreadable: {exc}")
            return {}
        if not isinstance(raw, dict):
            self._set_aside(f"holds {type(raw).__name__}, expected an object")
            return {}
        return {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def _set_aside(self, reason: str) -> None:
        backup = self.path.with_name(self.path.name + ".corrupt")
        logger.warning("Storage file %s is %s; starting empty", self.path, reason)
        try:
            os.replace(self.path, backup)
        except OSError as exc:
            logger.warning("Could not move %s aside: %s", self.path, exc)
        else:
            logger.warning("Corrupt storage file kept at %s", backup)

    def _write(self, data: Dict[str, str]) -> None:
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            raise StorageError(f"Could not write storage file {self.path}: {exc}") from exc
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def _commit(self, data: Dict[str, str]) -> None:
        self._write(data)
        self._data = data


def build_storage(path: Optional[str] = None, quota_bytes: Optional[int] = None) -> MemoryStorage:
    if path:
        logger.info("Using file storage at %s", path)
        return FileStorage(path, quota_bytes=quota_bytes)
    logger.info("Using in-memory storage")
    return MemoryStorage(quota_bytes=quota_bytes)
