from __future__ import annotations

import asyncio
import os
import sys
import time
from pathlib import Path

import httpx
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend.core.errors import NetworkError
from backend.domain import SheetSource
from backend.infrastructure import FileBlobCache, InMemoryBlobCache, SheetFetcher

SOURCE = SheetSource(
    package_id="PKG-A",
    package_name="Package A",
    url="https://docs.google.com/spreadsheets/d/e/demo/pub?output=xlsx",
)


class BrokenBlobCache:
    def get(self, key: str) -> bytes | None:
        raise OSError("disk unavailable")

    def put(self, key: str, payload: bytes) -> None:
        raise OSError("disk full")

    def clear(self) -> int:
        raise OSError("read-only filesystem")


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_fetch_downloads_and_populates_blob_cache():
    requests: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(str(request.url))
        return httpx.Response(200, content=b"xlsx-bytes")

    blob_cache = InMemoryBlobCache()

    async def scenario() -> tuple[bytes, bytes]:
        async with _client(handler) as http_client:
            fetcher = SheetFetcher(blob_cache=blob_cache, http_client=http_client)
            first = await fetcher.fetch(SOURCE)
            second = await fetcher.fetch(SOURCE)
            return first, second

    first, second = asyncio.run(scenario())

    assert first == second == b"xlsx-bytes"
    assert requests == [SOURCE.url]
    assert SOURCE.url in blob_cache


def test_fetch_uses_cached_payload_without_network():
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be called
        raise AssertionError("network should not be used on a cache hit")

    blob_cache = InMemoryBlobCache()
    blob_cache.put(SOURCE.url, b"cached")

    async def scenario() -> bytes:
        async with _client(handler) as http_client:
            return await SheetFetcher(blob_cache=blob_cache, http_client=http_client).fetch(SOURCE)

    assert asyncio.run(scenario()) == b"cached"


def test_fetch_raises_network_error_on_http_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    blob_cache = InMemoryBlobCache()

    async def scenario() -> None:
        async with _client(handler) as http_client:
            await SheetFetcher(blob_cache=blob_cache, http_client=http_client).fetch(SOURCE)

    with pytest.raises(NetworkError) as excinfo:
        asyncio.run(scenario())

    assert excinfo.value.status_code == 500
    assert len(blob_cache) == 0


def test_fetch_raises_network_error_on_transport_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario() -> None:
        async with _client(handler) as http_client:
            await SheetFetcher(http_client=http_client).fetch(SOURCE)

    with pytest.raises(NetworkError):
        asyncio.run(scenario())


def test_blob_cache_failures_do_not_fail_the_fetch():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"fresh")

    async def scenario() -> bytes:
        async with _client(handler) as http_client:
            fetcher = SheetFetcher(blob_cache=BrokenBlobCache(), http_client=http_client)
            payload = await fetcher.fetch(SOURCE)
            await fetcher.invalidate()
            return payload

    assert asyncio.run(scenario()) == b"fresh"


def test_invalidate_forces_a_new_download():
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(200, content=f"v{calls['count']}".encode())

    async def scenario() -> list[bytes]:
        async with _client(handler) as http_client:
            fetcher = SheetFetcher(blob_cache=InMemoryBlobCache(), http_client=http_client)
            first = await fetcher.fetch(SOURCE)
            cached = await fetcher.fetch(SOURCE)
            await fetcher.invalidate()
            fresh = await fetcher.fetch(SOURCE)
            return [first, cached, fresh]

    assert asyncio.run(scenario()) == [b"v1", b"v1", b"v2"]


def test_file_blob_cache_round_trip_and_clear(tmp_path):
    cache = FileBlobCache(tmp_path / "sheets")

    assert cache.get(SOURCE.url) is None
    cache.put(SOURCE.url, b"payload")
    assert cache.get(SOURCE.url) == b"payload"
    assert len(list((tmp_path / "sheets").glob("*.blob"))) == 1

    assert cache.clear() == 1
    assert cache.get(SOURCE.url) is None


def test_file_blob_cache_expires_old_entries(tmp_path):
    cache = FileBlobCache(tmp_path, max_age_seconds=60)
    cache.put(SOURCE.url, b"payload")
    assert cache.get(SOURCE.url) == b"payload"

    (entry,) = tmp_path.glob("*.blob")
    stale = time.time() - 3600
    os.utime(entry, (stale, stale))

    assert cache.get(SOURCE.url) is None


def test_fetch_serves_cached_empty_payload_without_network():
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be called
        raise AssertionError("network should not be used on a cache hit")

    blob_cache = InMemoryBlobCache()
    blob_cache.put(SOURCE.url, b"")

    async def scenario() -> bytes:
        async with _client(handler) as http_client:
            return await SheetFetcher(blob_cache=blob_cache, http_client=http_client).fetch(SOURCE)

    assert asyncio.run(scenario()) == b""
