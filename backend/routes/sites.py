from __future__ import annotations

from fastapi import APIRouter, Query

from backend.routes.common import ready_cache

router = APIRouter(tags=["sites"])


@router.get("/sites")
async def list_sites(
    package_id: str | None = Query(default=None),
    district: str | None = Query(default=None),
) -> dict:
    cache = await ready_cache()
    snapshot = cache.get_snapshot()
    sites = cache.get_filtered_sites(package_id=package_id, district=district)
    return {
        "success": True,
        "data": [site.model_dump(mode="json") for site in sites],
        "count": len(sites),
        "filters": {"package_id": package_id, "district": district},
        "lastRefresh": snapshot.last_refresh.isoformat(),
    }


@router.get("/sites/{site_uid}/tasks")
async def list_site_tasks(site_uid: str) -> dict:
    cache = await ready_cache()
    tasks = cache.get_tasks_by_site(site_uid)
    return {
        "success": True,
        "site_uid": site_uid,
        "data": [task.model_dump(mode="json") for task in tasks],
        "count": len(tasks),
    }


@router.get("/packages/compliance")
async def package_compliance() -> dict:
    cache = await ready_cache()
    snapshot = cache.get_snapshot()
    compliance = cache.get_package_compliance()
    return {
        "success": True,
        "data": {
            package_id: summary.model_dump(mode="json")
            for package_id, summary in compliance.items()
        },
        "lastRefresh": snapshot.last_refresh.isoformat(),
    }
