"""FastAPI application entrypoint.

The genre cache is populated before the app reports itself started; a failed
startup refresh is logged and retried in the background, never fatal.
"""

import asyncio
import contextlib
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from moviematch.api.router import api_router
from moviematch.api.routes import health
from moviematch.core.config import settings
from moviematch.core.logging import configure_logging
from moviematch.jobs.genre_refresh import periodic_genre_refresh, retry_failed_startup, run_startup_refresh
from moviematch.services.container import ServiceContainer, build_services

logger = logging.getLogger("moviematch.main")

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router, prefix=settings.api_prefix)
app.include_router(health.router, tags=["internal"])
app.include_router(health.router, prefix=settings.api_prefix, tags=["internal"])


@app.on_event("startup")
async def _startup() -> None:
    """Build shared services and populate the genre cache."""
    configure_logging()
    services = build_services()
    app.state.services = services
    app.state.background_tasks = []

    if not await run_startup_refresh(services.genre_cache):
        app.state.background_tasks.append(asyncio.create_task(retry_failed_startup(services.genre_cache)))
    if settings.genre_refresh_interval_seconds > 0:
        app.state.background_tasks.append(
            asyncio.create_task(
                periodic_genre_refresh(services.genre_cache, settings.genre_refresh_interval_seconds)
            )
        )


@app.on_event("shutdown")
async def _shutdown() -> None:
    """Stop background refreshes and close upstream clients."""
    tasks: list[asyncio.Task] = getattr(app.state, "background_tasks", [])
    for task in tasks:
        task.cancel()
    for task in tasks:
        with contextlib.suppress(asyncio.CancelledError):
            await task
    services: ServiceContainer | None = getattr(app.state, "services", None)
    if services is not None:
        await services.aclose()

