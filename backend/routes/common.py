from __future__ import annotations

import logging

from fastapi import HTTPException

from backend.application import DataCache, get_data_cache
from backend.core.errors import CacheError

logger = logging.getLogger(__name__)

INITIALIZING_MESSAGE = "Cache is being initialized. Please try again in a few seconds."


def service_unavailable(exc: CacheError) -> HTTPException:
    return HTTPException(
        status_code=503,
        detail={
            "error": "Service initializing",
            "message": INITIALIZING_MESSAGE,
            "details": str(exc),
        },
    )


async def ready_cache() -> DataCache:
    """Return the process cache, initialising it on first use."""

    cache = get_data_cache()
    if cache.is_initialized():
        return cache
    logger.info("Cache not initialized, initializing now")
    try:
        await cache.initialize()
    except CacheError as exc:
        logger.error("Cache initialization failed: %s", exc)
        raise service_unavailable(exc) from exc
    return cache
