"""Download published Google Sheets exports."""
from __future__ import annotations

import asyncio
import logging

import httpx

from backend.core.errors import NetworkError
from backend.domain import SheetSource

from .blob_cache import BlobCache

logger = logging.getLogger(__name__)


class SheetFetcher:
    """Fetch raw XLSX payloads, going through the local blob cache first.

    Only the network can fail a fetch: blob cache read and write errors are
    logged and otherwise ignored.
    """

    def __init__(
        self,
        *,
        blob_cache: BlobCache | None = None,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._blob_cache = blob_cache
        self._client = http_client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    async def _read_cached(self, url: str) -> bytes | None:
        if self._blob_cache is None:
            return None
        try:
            return await asyncio.to_thread(self._blob_cache.get, url)
        except OSError as exc:
            logger.warning("Failed to read blob cache for %s: %s", url, exc)
            return None

    async def _write_cached(self, url: str, payload: bytes) -> None:
        if self._blob_cache is None:
            return
        try:
            await asyncio.to_thread(self._blob_cache.put, url, payload)
        except OSError as exc:
            logger.warning("Failed to write blob cache for %s: %s", url, exc)

    async def _download(self, url: str) -> bytes:
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            raise NetworkError(url, f"{type(exc).__name__}: {exc}") from exc
        if not response.is_success:
            raise NetworkError(
                url,
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )
        return response.content

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def fetch(self, source: SheetSource) -> bytes:
        cached = await self._read_cached(source.url)
        if cached is not None:
            logger.info("%s: using cached payload (%d bytes)", source.package_id, len(cached))
            return cached

        logger.info("%s: downloading %s", source.package_id, source.url)
        payload = await self._download(source.url)
        await self._write_cached(source.url, payload)
        return payload

    async def invalidate(self) -> None:
        if self._blob_cache is None:
            return
        try:
            removed = await asyncio.to_thread(self._blob_cache.clear)
        except OSError as exc:
            logger.warning("Failed to clear blob cache: %s", exc)
            return
        logger.info("Blob cache cleared (%d payloads)", removed)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["SheetFetcher"]
