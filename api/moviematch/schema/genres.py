from __future__ import annotations

from pydantic import BaseModel


class GenreCacheRead(BaseModel):
    """Current genre cache contents keyed by lowercase name."""
    genres: dict[str, str]
    size: int
    generation: int
    refreshed_at: str | None = None
    last_attempt_at: str | None = None
    last_error: str | None = None


class GenreRefreshResult(BaseModel):
    refreshed: int
    generation: int
