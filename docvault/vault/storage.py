"""
Vault Storage — Persistence adapters and per-key locks.

The vault core only needs ``get``/``set``/``remove`` by string key with
string values. ``set`` must be atomic per key: a reader sees either the
old or the new value, never a partial write. No transactions across keys
are assumed.
"""
import os
import time
import asyncio
import logging
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote, unquote

from .exceptions import StorageError

logger = logging.getLogger("docvault.vault")

_WRITE_RETRIES = 3
_RETRY_DELAY = 0.05


class Storage(ABC):
    """Key → string store consumed by the vault core."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value for ``key`` or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Atomically replace the value for ``key``."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete ``key``. No-op if absent."""

    @abstractmethod
    def keys(self) -> list[str]:
        """List stored keys."""

    def __contains__(self, key: object) -> bool:
        return self.get(str(key)) is not None


class MemoryStorage(Storage):
    """In-process store backed by a dict."""

    def __init__(self, data: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(data or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Storage values must be str, got {type(value).__name__}")
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data.keys())

    def __repr__(self) -> str:
        return f"<MemoryStorage keys={len(self._data)}>"


class FileStorage(Storage):
    """One file per key under ``directory``.

    ``set`` writes a temporary file in the same directory, fsyncs it and
    ``os.replace``s it onto the target. Transient ``OSError``s are retried
    before giving up with ``StorageError``. Retries sleep in the calling
    thread; ``SecureStorage`` calls ``set`` through ``asyncio.to_thread``.
    """

    suffix = ".val"

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        if not key:
            raise ValueError("Storage key cannot be empty")
        return self.directory / f"{quote(key, safe='')}{self.suffix}"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def _write(self, path: Path, value: str) -> None:
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".tmp-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except BaseException:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Storage values must be str, got {type(value).__name__}")
        path = self._path(key)
        with self._lock:
            for attempt in range(1, _WRITE_RETRIES + 1):
                try:
                    self._write(path, value)
                    return
                except OSError as err:
                    logger.warning(
                        "Write of %s failed (attempt %d/%d): %s",
                        key, attempt, _WRITE_RETRIES, err,
                    )
                    if attempt == _WRITE_RETRIES:
                        raise StorageError(f"Could not write {key}: {err}") from err
                    time.sleep(_RETRY_DELAY * attempt)

    def remove(self, key: str) -> None:
        with self._lock:
            try:
                self._path(key).unlink()
            except FileNotFoundError:
                pass

    def keys(self) -> list[str]:
        return sorted(
            unquote(p.name[:-len(self.suffix)])
            for p in self.directory.glob(f"*{self.suffix}")
        )

    def __repr__(self) -> str:
        return f"<FileStorage {self.directory}>"


class KeyLocks:
    """Lazily created ``asyncio.Lock`` per persistence key.

    Read-modify-write sequences against one key run under that key's lock;
    different keys never block each other.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def __call__(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def discard(self, key: str) -> None:
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]
