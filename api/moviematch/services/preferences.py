"""Preference storage and the two-user merge.

Persistence is a plain key-value store keyed by owner: an in-process dict by
default, Redis when ``PREFERENCE_STORE_URL`` is configured.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Protocol

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from moviematch.core.config import settings
from moviematch.core.errors import QueryValidationError
from moviematch.schema.movies import MAX_FILTER_VALUES
from moviematch.schema.preferences import JointMovieRequest, PreferenceDocument
from moviematch.utils.redaction import redact_secrets

logger = logging.getLogger("moviematch.services.preferences")

MAX_MERGED_GENRES = MAX_FILTER_VALUES
REDIS_KEY_PREFIX = "moviematch:preferences:"


class PreferenceStoreError(Exception):
    """The preference backend could not be read or written."""


class PreferenceNotFoundError(LookupError):
    pass


class PreferenceStore(Protocol):
    async def save(self, owner: str, document: PreferenceDocument) -> None:
        ...

    async def get(self, owner: str) -> PreferenceDocument | None:
        ...

    async def close(self) -> None:
        ...


class InMemoryPreferenceStore:
    def __init__(self) -> None:
        self._documents: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def save(self, owner: str, document: PreferenceDocument) -> None:
        async with self._lock:
            self._documents[owner] = document.model_dump_json(by_alias=True)

    async def get(self, owner: str) -> PreferenceDocument | None:
        async with self._lock:
            raw = self._documents.get(owner)
        return PreferenceDocument.model_validate_json(raw) if raw is not None else None

    async def close(self) -> None:
        return None


class RedisPreferenceStore:
    def __init__(self, client: Redis, *, prefix: str = REDIS_KEY_PREFIX) -> None:
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> RedisPreferenceStore:
        return cls(Redis.from_url(url, decode_responses=True))

    def _key(self, owner: str) -> str:
        return f"{self._prefix}{owner}"

    async def save(self, owner: str, document: PreferenceDocument) -> None:
        try:
            await self._client.set(self._key(owner), document.model_dump_json(by_alias=True))
        except RedisError as exc:
            raise PreferenceStoreError(f"Failed to save preferences: {redact_secrets(str(exc))}") from exc

    async def get(self, owner: str) -> PreferenceDocument | None:
        try:
            raw = await self._client.get(self._key(owner))
        except RedisError as exc:
            raise PreferenceStoreError(f"Failed to load preferences: {redact_secrets(str(exc))}") from exc
        if raw is None:
            return None
        try:
            return PreferenceDocument.model_validate_json(raw)
        except ValidationError as exc:
            raise PreferenceStoreError(f"Stored preferences for {owner!r} are corrupt") from exc

    async def close(self) -> None:
        await self._client.aclose()


def build_preference_store(url: str | None = None) -> PreferenceStore:
    target = url or settings.preference_store_url
    if not target:
        return InMemoryPreferenceStore()
    logger.info("Using Redis preference store at %s", redact_secrets(target))
    return RedisPreferenceStore.from_url(target)


def _normalized_ranks(ranks: Mapping[str, int]) -> dict[str, int]:
    normalized: dict[str, int] = {}
    for name, rank in ranks.items():
        key = name.strip().casefold()
        if key:
            normalized[key] = min(rank, normalized.get(key, rank))
    return normalized


def merge_preferences(document: PreferenceDocument, *, limit: int = MAX_MERGED_GENRES) -> JointMovieRequest:
    """Combine both users' rankings into one ordered genre list.

    A genre's score is the sum of its rank for each user; a user who did not
    rank it contributes their worst rank plus one. Lower scores come first,
    ties keep first-appearance order. Services are deduplicated
    case-insensitively.
    """
    spellings: dict[str, str] = {}
    for ranks in (document.first_user_genres, document.second_user_genres):
        for name in ranks:
            key = name.strip().casefold()
            if key and key not in spellings:
                spellings[key] = name.strip()
    if not spellings:
        raise QueryValidationError("No genre preferences to merge")

    order = {key: index for index, key in enumerate(spellings)}
    scores = dict.fromkeys(spellings, 0)
    for ranks in (document.first_user_genres, document.second_user_genres):
        normalized = _normalized_ranks(ranks)
        fallback = max(normalized.values(), default=0) + 1
        for key in scores:
            scores[key] += normalized.get(key, fallback)
    ordered = sorted(spellings, key=lambda key: (scores[key], order[key]))

    platforms: list[str] = []
    seen: set[str] = set()
    for service in document.services:
        cleaned = service.strip()
        if cleaned and cleaned.casefold() not in seen:
            seen.add(cleaned.casefold())
            platforms.append(cleaned)
    if not platforms:
        raise QueryValidationError("No streaming services selected")

    return JointMovieRequest(genres=[spellings[key] for key in ordered[:limit]], platforms=platforms)


class PreferenceService:
    def __init__(self, store: PreferenceStore) -> None:
        self._store = store

    async def save(self, owner: str, document: PreferenceDocument) -> PreferenceDocument:
        await self._store.save(owner, document)
        logger.info(
            "Saved preferences for %s (%d + %d genres, %d services)",
            owner,
            len(document.first_user_genres),
            len(document.second_user_genres),
            len(document.services),
        )
        return document

    async def get(self, owner: str) -> PreferenceDocument:
        document = await self._store.get(owner)
        if document is None:
            raise PreferenceNotFoundError(owner)
        return document

    async def joint_request(self, owner: str) -> JointMovieRequest:
        return merge_preferences(await self.get(owner))
