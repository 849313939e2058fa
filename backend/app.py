import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.application import get_data_cache
from backend.core.config import get_settings
from backend.core.errors import CacheError
from backend.routes import health, sites, tasks

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    cache = get_data_cache()
    if get_settings().warm_cache_on_startup:
        try:
            await cache.initialize()
        except CacheError as exc:
            logger.error("Startup warmup failed, readers will retry: %s", exc)
    yield
    await cache.aclose()


def create_app() -> FastAPI:
    _configure_logging()
    app = FastAPI(title="Rehabilitation Site Tracker API", version="0.1.0", lifespan=lifespan)

    origins_env = os.getenv("API_CORS_ORIGINS", "")
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    if not origins:
        origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/api")
    app.include_router(tasks.router, prefix="/api")
    app.include_router(sites.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Rehabilitation Site Tracker API",
                "docs": "/docs",
                "health": "/api/health",
            }
        )

    return app


app = create_app()
