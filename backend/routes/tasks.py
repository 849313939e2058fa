from __future__ import annotations

import logging

from fastapi import APIRouter, Query

from backend.application import get_data_cache
from backend.core.errors import CacheError
from backend.routes.common import ready_cache, service_unavailable
from backend.routes.health import snapshot_stats

router = APIRouter(tags=["tasks"])
logger = logging.getLogger(__name__)


@router.get("/tasks")
async def list_tasks(site_uid: str | None = Query(default=None)) -> dict:
    """Return task rows with derived status, optionally for a single site."""
    cache = await ready_cache()
    snapshot = cache.get_snapshot()
    if site_uid:
        tasks = cache.get_tasks_by_site(site_uid)
    else:
        tasks = snapshot.tasks
    return {
        "success": True,
        "data": [task.model_dump(mode="json") for task in tasks],
        "count": len(tasks),
        "filters": {"site_uid": site_uid},
        "lastRefresh": snapshot.last_refresh.isoformat(),
    }


@router.post("/refresh")
async def refresh_cache() -> dict:
    """Re-download every source, bypassing the local payload cache."""
    cache = get_data_cache()
    try:
        snapshot = await cache.refresh(force=True)
    except CacheError as exc:
        logger.error("Manual refresh failed: %s", exc)
        raise service_unavailable(exc) from exc
    return {"success": True, "stats": snapshot_stats(snapshot)}
