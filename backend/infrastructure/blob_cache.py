"""Local persistence for raw sheet payloads keyed by source URL.

Published Google Sheets exports are slow to download and the CSV/JSON
endpoints truncate large tabs, so the full XLSX export is kept on disk and
re-read from there until the cache is invalidated.
"""
from __future__ import annotations

import hashlib
import os
import time
from pathlib import Path
from typing import Protocol


class BlobCache(Protocol):
    """Persistence contract for raw payloads."""

    def get(self, key: str) -> bytes | None: ...

    def put(self, key: str, payload: bytes) -> None: ...

    def clear(self) -> int: ...


class FileBlobCache:
    """Store each payload as one file named after the SHA-256 of its key."""

    SUFFIX = ".blob"

    def __init__(self, root: Path, *, max_age_seconds: float | None = None) -> None:
        self._root = Path(root)
        self._max_age_seconds = max_age_seconds

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self._root / f"{digest}{self.SUFFIX}"

    def get(self, key: str) -> bytes | None:
        path = self._path_for(key)
        if not path.exists():
            return None
        if self._max_age_seconds is not None:
            age = time.time() - path.stat().st_mtime
            if age > self._max_age_seconds:
                return None
        return path.read_bytes()

    def put(self, key: str, payload: bytes) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        target = self._path_for(key)
        staging = target.with_suffix(".tmp")
        staging.write_bytes(payload)
        os.replace(staging, target)

    def clear(self) -> int:
        if not self._root.exists():
            return 0
        removed = 0
        for path in self._root.glob(f"*{self.SUFFIX}"):
            path.unlink(missing_ok=True)
            removed += 1
        return removed


class InMemoryBlobCache:
    """Simple in-memory cache for tests and cache-less deployments."""

    def __init__(self) -> None:
        self._items: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self._items.get(key)

    def put(self, key: str, payload: bytes) -> None:
        self._items[key] = bytes(payload)

    def clear(self) -> int:
        removed = len(self._items)
        self._items.clear()
        return removed

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)
