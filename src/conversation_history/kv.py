"""Key-value storage capability shared by the history store and the index.

Values are plain strings (JSON text), the same contract a browser's local
storage offers. Two implementations:

    InMemoryStore   dict-backed, for tests and ephemeral sessions
    DiskStore       one JSON file per key under a data directory (atomic writes)

Both raise :class:`StorageUnavailable` when the store is disabled or a value
exceeds the configured quota; callers are expected to catch it at their own
boundary.
"""
from __future__ import annotations

import json
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from .errors import MalformedPersistedData, StorageUnavailable


class KeyValueStore(Protocol):
    """Minimal get/set/remove capability."""

    def get(self, key: str) -> Optional[str]:
        """Return the stored text for ``key`` or ``None`` when absent."""
        ...

    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        ...

    def remove(self, key: str) -> None:
        """Delete ``key``; no-op when absent."""
        ...


def _check_quota(key: str, value: str, max_value_bytes: Optional[int]) -> None:
    if max_value_bytes is None:
        return
    size = len(value.encode("utf-8"))
    if size > max_value_bytes:
        raise StorageUnavailable(
            f"quota exceeded for {key!r}: {size} bytes > {max_value_bytes}"
        )


# -----------------------------
# InMemoryStore
# -----------------------------
class InMemoryStore:
    """Dict-backed store with the same contract as :class:`DiskStore`."""

    def __init__(self, *, enabled: bool = True, max_value_bytes: Optional[int] = None) -> None:
        self._data: Dict[str, str] = {}
        self.enabled = enabled
        self.max_value_bytes = max_value_bytes

    def _ensure_enabled(self) -> None:
        if not self.enabled:
            raise StorageUnavailable("storage is disabled")

    def get(self, key: str) -> Optional[str]:
        self._ensure_enabled()
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._ensure_enabled()
        _check_quota(key, value, self.max_value_bytes)
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._ensure_enabled()
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return sorted(self._data)


# -----------------------------
# DiskStore
# -----------------------------
def _safe_key(key: str) -> str:
    # Keep it readable but filesystem-safe; '/' separates key segments.
    s = key.strip().replace("/", "__")
    s = re.sub(r"[^\w.\-@]+", "_", s) or "default"
    return s[:200]


def _atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("w", encoding="utf-8", delete=False, dir=str(path.parent)) as tmp:
        tmp.write(text)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_name = tmp.name
    os.replace(tmp_name, path)


class DiskStore:
    """File-per-key store.

    Layout:
        data_dir/
          history__current.json
          history__conversation__<id>.json
          conversations__index.json
          conversations__active.json

    OS-level failures (permissions, full disk) surface as StorageUnavailable.
    """

    def __init__(self, data_dir: str, *, max_value_bytes: Optional[int] = None) -> None:
        self.root = Path(data_dir)
        self.max_value_bytes = max_value_bytes
        self._lock = threading.RLock()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailable(f"cannot create data dir {self.root}: {e}") from e

    def _path(self, key: str) -> Path:
        return self.root / f"{_safe_key(key)}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            with self._lock:
                if not path.exists():
                    return None
                return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise StorageUnavailable(f"cannot read {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        _check_quota(key, value, self.max_value_bytes)
        path = self._path(key)
        try:
            with self._lock:
                _atomic_write_text(path, value)
        except OSError as e:
            raise StorageUnavailable(f"cannot write {path}: {e}") from e

    def remove(self, key: str) -> None:
        path = self._path(key)
        try:
            with self._lock:
                path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageUnavailable(f"cannot remove {path}: {e}") from e


# -----------------------------
# JSON helpers
# -----------------------------
def read_json(store: KeyValueStore, key: str) -> Any:
    """Parse the value under ``key``; ``None`` when absent.

    Raises MalformedPersistedData for unparseable text and lets
    StorageUnavailable through.
    """
    raw = store.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError as e:
        raise MalformedPersistedData(key, str(e)) from e


def write_json(store: KeyValueStore, key: str, obj: Any) -> None:
    store.set(key, json.dumps(obj, ensure_ascii=False))
