"""
Backing stores for sealed preference entries.

This module provides:
- PreferenceBackend: Abstract string-keyed store of string values
- InMemoryBackend: Thread-safe in-memory implementation for testing
- JsonFileBackend: One JSON document per namespace, replaced atomically

Backends only ever see sealed, text-encoded entries.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Union

from .errors import StorageError

logger = logging.getLogger(__name__)


class PreferenceBackend(ABC):
    """
    Abstract string-keyed storage for one namespace.

    Values are plain strings. Read-after-write consistency within one process
    is expected from every implementation.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Get a value, or None if absent."""
        ...

    @abstractmethod
    def commit(
        self,
        updates: Mapping[str, str],
        removals: Iterable[str] = (),
    ) -> None:
        """Write updates and delete removals as one batch."""
        ...

    @abstractmethod
    def clear(self) -> None:
        """Delete every entry."""
        ...

    @abstractmethod
    def keys(self) -> List[str]:
        """List all stored keys."""
        ...

    def put(self, key: str, value: str) -> None:
        """Store a value, replacing any existing one."""
        self.commit({key: value})

    def remove(self, *keys: str) -> None:
        """Delete entries; missing keys are ignored."""
        self.commit({}, keys)

    def contains(self, key: str) -> bool:
        """Check whether key is present."""
        return self.get(key) is not None


class InMemoryBackend(PreferenceBackend):
    """
    Thread-safe in-memory backend for testing.

    Uses threading.Lock for safe concurrent access.
    """

    def __init__(self, initial: Optional[Mapping[str, str]] = None) -> None:
        self._entries: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._entries.get(key)

    def commit(
        self,
        updates: Mapping[str, str],
        removals: Iterable[str] = (),
    ) -> None:
        with self._lock:
            for key in removals:
                self._entries.pop(key, None)
            self._entries.update(updates)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def snapshot(self) -> Dict[str, str]:
        """Copy of all entries."""
        with self._lock:
            return dict(self._entries)


class JsonFileBackend(PreferenceBackend):
    """
    Backend persisting a flat JSON object to a single file.

    Every commit rewrites the whole document to a temporary file in the same
    directory and renames it over the original, so readers see either the old
    or the new document. The file is created with mode 0600.

    Reads are served from a per-instance cache. Each commit re-reads the file
    before applying its batch, so entries written by another instance over the
    same path are kept. Commits are serialized per instance only; concurrent
    writers in different processes are not coordinated.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        """
        Initialize file backend.

        Args:
            path: JSON file path (created on first write)
        """
        self._path = Path(path).expanduser()
        self._entries: Optional[Dict[str, str]] = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        """Get the backing file path."""
        return self._path

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def commit(
        self,
        updates: Mapping[str, str],
        removals: Iterable[str] = (),
    ) -> None:
        with self._lock:
            self._entries = None
            entries = dict(self._load())
            for key in removals:
                entries.pop(key, None)
            entries.update(updates)
            self._write(entries)
            self._entries = entries

    def clear(self) -> None:
        with self._lock:
            self._write({})
            self._entries = {}

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._load().keys())

    def _load(self) -> Dict[str, str]:
        if self._entries is not None:
            return self._entries

        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self._entries = {}
            return self._entries
        except OSError as e:
            raise StorageError(f"Failed to read {self._path}: {e}")

        try:
            data = json.loads(raw)
        except ValueError as e:
            raise StorageError(f"Malformed preferences file {self._path}: {e}")
        if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            raise StorageError(f"Malformed preferences file {self._path}")

        self._entries = data
        return self._entries

    def _write(self, entries: Dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=self._path.name, suffix=".tmp"
            )
        except OSError as e:
            raise StorageError(f"Failed to write {self._path}: {e}")

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(entries, handle, sort_keys=True)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self._path)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise StorageError(f"Failed to write {self._path}: {e}")

        logger.debug("Wrote %d entries to %s", len(entries), self._path)
