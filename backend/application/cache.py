"""In-memory snapshot cache with single-flight refresh.

Lifecycle
---------
``initialize()`` runs the first ingestion.  Whichever run publishes the
first snapshot, initialization or a direct ``refresh()``, arms the periodic
auto-refresh.  Concurrent callers share one in-flight initialization; a failure clears it so
the next call retries.  ``refresh()`` coalesces the same way: a caller that
finds a refresh running waits for it (bounded) instead of starting another.
A refresh that fails keeps serving the previous snapshot.

Readers never trigger ingestion.  Every accessor reads the current snapshot
reference once, so a reader always sees tasks and aggregates from the same
run.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Mapping, Protocol

from backend.core.config import TrackerSettings, get_settings
from backend.core.errors import (
    CacheError,
    CacheInitError,
    CacheNotInitialized,
    CacheRefreshError,
    RefreshTimeoutError,
)
from backend.core.schema import PackageCompliance, SiteAggregate, TaskWithStatus
from backend.core.weights import ProportionalWeightNormalizer
from backend.domain import IngestedSnapshot
from backend.infrastructure import FileBlobCache, SheetFetcher
from backend.workers.pipeline import IngestionPipeline

logger = logging.getLogger(__name__)

AsyncHook = Callable[[], Awaitable[None]]


def _retrieve_outcome(task: asyncio.Task) -> None:
    # Callers await shared tasks through shield; mark failures as retrieved
    # even when every caller was cancelled.
    if not task.cancelled():
        task.exception()


class SnapshotSource(Protocol):
    async def ingest_all(self) -> IngestedSnapshot: ...


class DataCache:
    def __init__(
        self,
        pipeline: SnapshotSource,
        *,
        refresh_interval: float = 30 * 60,
        refresh_join_timeout: float = 60.0,
        invalidate: AsyncHook | None = None,
        on_close: AsyncHook | None = None,
        auto_refresh_invalidates: bool = False,
    ) -> None:
        self._pipeline = pipeline
        self._refresh_interval = refresh_interval
        self._refresh_join_timeout = refresh_join_timeout
        self._invalidate = invalidate
        self._on_close = on_close
        self._auto_refresh_invalidates = auto_refresh_invalidates

        self._snapshot: IngestedSnapshot | None = None
        self._lock = asyncio.Lock()
        self._init_task: asyncio.Task[IngestedSnapshot] | None = None
        self._refresh_task: asyncio.Task[IngestedSnapshot] | None = None
        self._auto_refresh_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    async def initialize(self) -> IngestedSnapshot:
        snapshot = self._snapshot
        if snapshot is not None:
            logger.debug("Cache already initialized, skipping")
            return snapshot

        async with self._lock:
            if self._snapshot is not None:
                return self._snapshot
            if self._init_task is None:
                logger.info("Initializing data cache")
                self._init_task = asyncio.create_task(self._run_initialization())
                self._init_task.add_done_callback(_retrieve_outcome)
            else:
                logger.info("Waiting for ongoing initialization")
            task = self._init_task
        return await asyncio.shield(task)

    async def _run_initialization(self) -> IngestedSnapshot:
        try:
            snapshot = await self.refresh()
        except CacheError as exc:
            self._init_task = None
            logger.error("Cache initialization failed: %s", exc)
            raise CacheInitError(f"cache initialization failed: {exc}") from exc
        logger.info("Cache initialization complete (%d tasks, %d sites)", len(snapshot.tasks), len(snapshot.sites))
        return snapshot

    async def refresh(self, *, force: bool = False) -> IngestedSnapshot:
        """Run (or join) an ingestion and return the resulting snapshot.

        ``force`` clears the raw payload cache before ingesting; it has no
        effect when joining a refresh that is already running.
        """

        async with self._lock:
            task = self._refresh_task
            owner = task is None
            if task is None:
                task = asyncio.create_task(self._run_refresh(force))
                task.add_done_callback(_retrieve_outcome)
                self._refresh_task = task

        if owner:
            return await asyncio.shield(task)

        logger.warning("Refresh already in progress, waiting up to %.0fs", self._refresh_join_timeout)
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self._refresh_join_timeout)
        except asyncio.TimeoutError:
            snapshot = self._snapshot
            if snapshot is not None:
                logger.warning("Timed out waiting for refresh, serving snapshot from %s", snapshot.last_refresh.isoformat())
                return snapshot
            raise RefreshTimeoutError(
                f"refresh did not finish within {self._refresh_join_timeout:.0f}s and no cached data is available"
            ) from None

    async def _run_refresh(self, force: bool) -> IngestedSnapshot:
        try:
            if force and self._invalidate is not None:
                await self._invalidate()
            logger.info("Refreshing cache from sheet sources")
            snapshot = await self._pipeline.ingest_all()
        except Exception as exc:  # noqa: BLE001 - stale data beats no data
            logger.error("Cache refresh failed: %s", exc)
            previous = self._snapshot
            if previous is None:
                raise CacheRefreshError("cache refresh failed and no cached data is available") from exc
            logger.warning("Returning stale data from %s due to refresh failure", previous.last_refresh.isoformat())
            return previous
        else:
            first = self._snapshot is None
            self._snapshot = snapshot
            logger.info("Cache refreshed successfully at %s", snapshot.last_refresh.isoformat())
            if first and self._auto_refresh_task is None:
                self._arm_auto_refresh()
            return snapshot
        finally:
            self._refresh_task = None

    # ------------------------------------------------------------------
    # auto-refresh
    # ------------------------------------------------------------------
    def _arm_auto_refresh(self) -> None:
        self.stop_auto_refresh()
        if self._refresh_interval <= 0:
            logger.info("Auto-refresh disabled")
            return
        self._auto_refresh_task = asyncio.create_task(self._auto_refresh_loop())
        logger.info("Auto-refresh enabled (interval: %.0fs)", self._refresh_interval)

    async def _auto_refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self._refresh_interval)
            logger.info("Auto-refresh triggered")
            try:
                await self.refresh(force=self._auto_refresh_invalidates)
            except CacheError as exc:
                logger.error("Scheduled refresh failed: %s", exc)

    @property
    def auto_refresh_active(self) -> bool:
        task = self._auto_refresh_task
        return task is not None and not task.done()

    def stop_auto_refresh(self) -> None:
        task = self._auto_refresh_task
        if task is None:
            return
        self._auto_refresh_task = None
        task.cancel()
        logger.info("Auto-refresh stopped")

    async def aclose(self) -> None:
        task = self._auto_refresh_task
        self.stop_auto_refresh()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._on_close is not None:
            await self._on_close()

    # ------------------------------------------------------------------
    # readers
    # ------------------------------------------------------------------
    def is_initialized(self) -> bool:
        return self._snapshot is not None

    @property
    def is_refreshing(self) -> bool:
        return self._refresh_task is not None

    def get_snapshot(self) -> IngestedSnapshot:
        snapshot = self._snapshot
        if snapshot is None:
            raise CacheNotInitialized()
        return snapshot

    def get_tasks(self) -> tuple[TaskWithStatus, ...]:
        return self.get_snapshot().tasks

    def get_tasks_by_site(self, site_uid: str) -> tuple[TaskWithStatus, ...]:
        return tuple(task for task in self.get_tasks() if task.site_uid == site_uid)

    def get_sites(self) -> tuple[SiteAggregate, ...]:
        return self.get_snapshot().sites

    def get_filtered_sites(
        self,
        *,
        package_id: str | None = None,
        district: str | None = None,
    ) -> tuple[SiteAggregate, ...]:
        sites = self.get_sites()
        if package_id:
            sites = tuple(site for site in sites if site.package_id == package_id)
        if district:
            sites = tuple(site for site in sites if site.district == district)
        return sites

    def get_package_compliance(self) -> Mapping[str, PackageCompliance]:
        return self.get_snapshot().package_compliance


def build_data_cache(settings: TrackerSettings) -> DataCache:
    """Wire fetcher, pipeline and cache from settings."""

    blob_cache = (
        FileBlobCache(settings.blob_cache_root, max_age_seconds=settings.blob_cache_max_age_seconds)
        if settings.blob_cache_enabled
        else None
    )
    fetcher = SheetFetcher(blob_cache=blob_cache, timeout=settings.fetch_timeout_seconds)
    pipeline = IngestionPipeline(
        settings.sources,
        fetcher,
        normalizer=ProportionalWeightNormalizer(settings.weight_target_sum),
        max_concurrency=settings.fetch_concurrency,
        sheet_name=settings.sheet_tab_name,
    )
    return DataCache(
        pipeline,
        refresh_interval=settings.refresh_interval_seconds,
        refresh_join_timeout=settings.refresh_join_timeout_seconds,
        invalidate=fetcher.invalidate,
        on_close=fetcher.aclose,
        auto_refresh_invalidates=settings.auto_refresh_invalidates,
    )


_cache: DataCache | None = None


def get_data_cache() -> DataCache:
    """Return the data cache for the process, building it on first use."""

    global _cache
    if _cache is None:
        _cache = build_data_cache(get_settings())
    return _cache


def configure_data_cache(cache: DataCache) -> None:
    """Install the cache used by the API layer."""

    global _cache
    _cache = cache


def reset_data_cache() -> None:
    """Forget the process cache (used in tests)."""

    global _cache
    if _cache is not None:
        _cache.stop_auto_refresh()
    _cache = None


__all__ = [
    "DataCache",
    "build_data_cache",
    "configure_data_cache",
    "get_data_cache",
    "reset_data_cache",
]
