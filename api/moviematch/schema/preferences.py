"""Two-user preference documents and the merged movie request."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from moviematch.schema.movies import MAX_FILTER_VALUES

Rank = Annotated[int, Field(ge=1, le=100)]


class PreferenceDocument(BaseModel):
    """Genre rankings for both users plus the streaming services they share.

    Rank 1 is the favourite genre.
    """

    model_config = ConfigDict(populate_by_name=True)

    first_user_genres: dict[str, Rank] = Field(default_factory=dict, alias="user1Genres")
    second_user_genres: dict[str, Rank] = Field(default_factory=dict, alias="user2Genres")
    services: list[str] = Field(default_factory=list, max_length=MAX_FILTER_VALUES)


class JointMovieRequest(BaseModel):
    genres: list[str]
    platforms: list[str]
