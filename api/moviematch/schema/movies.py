"""Movie search request/response schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

MAX_FILTER_VALUES = 10


class MovieSearchRequest(BaseModel):
    """Genre names and streaming platforms to filter the provider search by.

    Emptiness and size limits are checked by the search route so they map to 400.
    """
    genres: list[str] = Field(default_factory=list)
    platforms: list[str] = Field(default_factory=list)


class MovieSearchResult(BaseModel):
    status: str
    data: Any | None = None
