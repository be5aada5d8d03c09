from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from moviematch.api.deps import get_movie_search
from moviematch.core.errors import QueryValidationError
from moviematch.ingestion.http import ExternalAPIError
from moviematch.schema.movies import MAX_FILTER_VALUES, MovieSearchRequest, MovieSearchResult
from moviematch.services.movie_query import MovieSearchService

logger = logging.getLogger("moviematch.api.movies")

router = APIRouter()


async def run_movie_search(service: MovieSearchService, genres: list[str], platforms: list[str]) -> Any:
    """Execute a search, translating domain errors into HTTP errors."""
    if len(genres) > MAX_FILTER_VALUES or len(platforms) > MAX_FILTER_VALUES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {MAX_FILTER_VALUES} genres and {MAX_FILTER_VALUES} platforms are allowed",
        )
    try:
        return await service.search(genres, platforms)
    except QueryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ExternalAPIError as exc:
        logger.error("Movie search failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Error fetching movies") from exc


@router.post("/search")
async def search_movies(
    payload: MovieSearchRequest,
    service: MovieSearchService = Depends(get_movie_search),
) -> Any:
    result = await run_movie_search(service, payload.genres, payload.platforms)
    if not result:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return result


@router.get("/search")
async def search_movies_with_params(
    genres: list[str] = Query(default=[]),
    platforms: list[str] = Query(default=[]),
    service: MovieSearchService = Depends(get_movie_search),
) -> Any:
    result = await run_movie_search(service, genres, platforms)
    if not result:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return result


@router.post("/search/structured", response_model=MovieSearchResult)
async def search_movies_structured(
    payload: MovieSearchRequest,
    service: MovieSearchService = Depends(get_movie_search),
) -> MovieSearchResult:
    result = await run_movie_search(service, payload.genres, payload.platforms)
    if not result:
        return MovieSearchResult(status="No movies found")
    return MovieSearchResult(status="Success", data=result)
