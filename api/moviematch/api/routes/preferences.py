from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Path, Response, status

from moviematch.api.deps import get_movie_search, get_preference_service
from moviematch.api.routes.movies import run_movie_search
from moviematch.core.errors import QueryValidationError
from moviematch.schema.preferences import JointMovieRequest, PreferenceDocument
from moviematch.services.movie_query import MovieSearchService
from moviematch.services.preferences import (
    PreferenceNotFoundError,
    PreferenceService,
    PreferenceStoreError,
)

logger = logging.getLogger("moviematch.api.preferences")

router = APIRouter()

Owner = Annotated[str, Path(min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$")]


async def _joint_request(service: PreferenceService, owner: str) -> JointMovieRequest:
    try:
        return await service.joint_request(owner)
    except PreferenceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Preferences not found") from exc
    except QueryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except PreferenceStoreError as exc:
        logger.error("Preference store unavailable: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


@router.put("/{owner}", response_model=PreferenceDocument, response_model_by_alias=True)
async def save_preferences(
    payload: PreferenceDocument,
    owner: Owner,
    service: PreferenceService = Depends(get_preference_service),
) -> PreferenceDocument:
    try:
        return await service.save(owner, payload)
    except PreferenceStoreError as exc:
        logger.error("Preference store unavailable: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


@router.get("/{owner}", response_model=PreferenceDocument, response_model_by_alias=True)
async def get_preferences(
    owner: Owner,
    service: PreferenceService = Depends(get_preference_service),
) -> PreferenceDocument:
    try:
        return await service.get(owner)
    except PreferenceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Preferences not found") from exc
    except PreferenceStoreError as exc:
        logger.error("Preference store unavailable: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


@router.get("/{owner}/query", response_model=JointMovieRequest)
async def get_joint_query(
    owner: Owner,
    service: PreferenceService = Depends(get_preference_service),
) -> JointMovieRequest:
    return await _joint_request(service, owner)


@router.post("/{owner}/movies")
async def search_joint_movies(
    owner: Owner,
    service: PreferenceService = Depends(get_preference_service),
    search: MovieSearchService = Depends(get_movie_search),
) -> Any:
    """Run a movie search from the merged preferences of both users."""
    request = await _joint_request(service, owner)
    result = await run_movie_search(search, request.genres, request.platforms)
    if not result:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return result
