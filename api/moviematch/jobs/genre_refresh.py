"""Genre cache refresh jobs: the startup phase, retries, and the periodic loop."""

from __future__ import annotations

import asyncio
import logging

from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from moviematch.core.config import settings
from moviematch.ingestion.http import ExternalAPIError
from moviematch.services.genre_cache import GenreCache
from moviematch.utils.redaction import redact_secrets

logger = logging.getLogger("moviematch.jobs.genre_refresh")

MAX_REFRESH_BACKOFF_SECONDS = 60.0


async def refresh_with_retry(
    cache: GenreCache,
    *,
    max_attempts: int | None = None,
    initial_backoff: float | None = None,
) -> int:
    """Refresh the cache, retrying provider failures with exponential backoff."""
    attempts = max_attempts or settings.genre_refresh_max_attempts
    backoff = settings.genre_refresh_initial_backoff_seconds if initial_backoff is None else initial_backoff
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=backoff, max=MAX_REFRESH_BACKOFF_SECONDS),
        retry=retry_if_exception_type(ExternalAPIError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await cache.refresh()
    raise ExternalAPIError("Unreachable")


async def run_startup_refresh(cache: GenreCache) -> bool:
    """Populate the cache once at startup. Never raises; the outcome lands in ``cache.status()``."""
    try:
        size = await cache.refresh()
    except Exception as exc:
        logger.error("Failed to cache genres at startup: %s", redact_secrets(str(exc)) or exc.__class__.__name__)
        return False
    logger.info("Genres cached successfully at startup (%d entries)", size)
    return True


async def retry_failed_startup(cache: GenreCache) -> None:
    """Background follow-up when the startup refresh failed."""
    try:
        await refresh_with_retry(cache)
    except Exception as exc:
        logger.error(
            "Genre cache still empty after %d attempts: %s",
            settings.genre_refresh_max_attempts,
            redact_secrets(str(exc)) or exc.__class__.__name__,
        )


async def periodic_genre_refresh(cache: GenreCache, interval_seconds: float) -> None:
    """Refresh the cache every ``interval_seconds`` until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await refresh_with_retry(cache)
        except Exception as exc:
            logger.warning(
                "Scheduled genre refresh failed; keeping %d cached genres: %s",
                len(cache),
                redact_secrets(str(exc)) or exc.__class__.__name__,
            )
