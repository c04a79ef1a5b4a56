"""Synchronous string-keyed stores standing in for browser local storage."""

import errno
import hashlib
import logging
import os
import tempfile
from typing import Dict, Optional, Protocol

from khetismart.results import QuotaExceeded, StoreWriteError

logger = logging.getLogger(__name__)

DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


def _size_of(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class MemoryStore:
    """In-process store with a byte quota, mirroring ``localStorage`` semantics."""

    def __init__(self, quota_bytes: Optional[int] = DEFAULT_QUOTA_BYTES) -> None:
        self.quota_bytes = quota_bytes
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            used = sum(_size_of(k, v) for k, v in self._data.items() if k != key)
            if used + _size_of(key, value) > self.quota_bytes:
                raise QuotaExceeded(
                    f"Writing {key!r} would exceed the {self.quota_bytes}-byte quota."
                )
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """Directory-backed store: one file per key, replaced atomically on write."""

    def __init__(
        self, cache_dir: str = ".cache/khetismart", quota_bytes: Optional[int] = DEFAULT_QUOTA_BYTES
    ) -> None:
        self.cache_dir = cache_dir
        self.quota_bytes = quota_bytes
        os.makedirs(cache_dir, exist_ok=True)

    def _path(self, key: str) -> str:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return os.path.join(self.cache_dir, f"{digest}.json")

    def _used_bytes(self, exclude: str) -> int:
        total = 0
        for filename in os.listdir(self.cache_dir):
            path = os.path.join(self.cache_dir, filename)
            if path == exclude or not filename.endswith(".json"):
                continue
            try:
                total += os.path.getsize(path)
            except OSError:
                continue
        return total

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as handle:
                return handle.read()
        except (OSError, UnicodeDecodeError) as exc:
            logger.info("Unreadable cache file for %r: %s", key, exc)
            return None

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        payload = value.encode("utf-8")
        if self.quota_bytes is not None:
            if self._used_bytes(exclude=path) + len(payload) > self.quota_bytes:
                raise QuotaExceeded(
                    f"Writing {key!r} would exceed the {self.quota_bytes}-byte quota."
                )

        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.cache_dir, suffix=".tmp")
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
            os.replace(tmp_path, path)
        except OSError as exc:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)
            if exc.errno in (errno.ENOSPC, errno.EDQUOT):
                raise QuotaExceeded(f"No space left to write {key!r}.") from exc
            raise StoreWriteError(f"Could not write {key!r}: {exc}") from exc

    def remove(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass
