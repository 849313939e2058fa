from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from backend.application import get_data_cache
from backend.core.errors import CacheError
from backend.domain import IngestedSnapshot

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


def snapshot_stats(snapshot: IngestedSnapshot) -> dict:
    return {
        "tasks": len(snapshot.tasks),
        "sites": len(snapshot.sites),
        "packages": len(snapshot.package_compliance),
        "lastRefresh": snapshot.last_refresh.isoformat(),
    }


@router.get("/health")
async def health() -> JSONResponse:
    """Report readiness without triggering ingestion."""
    cache = get_data_cache()
    if not cache.is_initialized():
        return JSONResponse(
            status_code=503,
            content={
                "status": "initializing",
                "message": "Cache is initializing, please wait...",
                "initialized": False,
            },
        )

    snapshot = cache.get_snapshot()
    return JSONResponse(
        {
            "status": "healthy",
            "initialized": True,
            "refreshing": cache.is_refreshing,
            "stats": snapshot_stats(snapshot),
            "sources": [
                {
                    "package_id": report.package_id,
                    "records": report.records,
                    "skipped_rows": report.skipped_rows,
                    "error": report.error,
                }
                for report in snapshot.source_reports
            ],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )


@router.api_route("/warmup", methods=["GET", "POST"])
async def warmup() -> JSONResponse:
    """Initialise the cache ahead of the first reader (cold starts)."""
    started = time.perf_counter()
    cache = get_data_cache()
    if cache.is_initialized():
        logger.info("Warmup requested, cache already initialized")
    try:
        snapshot = await cache.initialize()
    except CacheError as exc:
        logger.error("Warmup failed: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to warm up cache", "message": str(exc)},
        )

    duration_ms = (time.perf_counter() - started) * 1000
    return JSONResponse(
        {
            "success": True,
            "message": "Cache warmed up successfully",
            "duration": f"{duration_ms:.0f}ms",
            "stats": snapshot_stats(snapshot),
        }
    )
