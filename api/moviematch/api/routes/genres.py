from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from moviematch.api.deps import get_genre_cache
from moviematch.ingestion.http import ExternalAPIError
from moviematch.schema.genres import GenreCacheRead, GenreRefreshResult
from moviematch.services.genre_cache import GenreCache

router = APIRouter()


@router.get("", response_model=GenreCacheRead)
async def list_genres(cache: GenreCache = Depends(get_genre_cache)) -> GenreCacheRead:
    return GenreCacheRead(genres=dict(cache.entries()), **cache.status())


@router.post("/refresh", response_model=GenreRefreshResult)
async def refresh_genres(cache: GenreCache = Depends(get_genre_cache)) -> GenreRefreshResult:
    """Reload genres from the provider; the previous cache survives a failure."""
    try:
        size = await cache.refresh()
    except ExternalAPIError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Genre refresh failed: {cache.last_error}"
        ) from exc
    return GenreRefreshResult(refreshed=size, generation=cache.generation)
