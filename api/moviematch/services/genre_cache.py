"""Process-wide genre name to provider id cache.

Invariants:
- Contents are only ever replaced wholesale by installing a new snapshot.
- Readers grab the current snapshot reference once per operation, so a read
  concurrent with a refresh sees entirely old or entirely new entries.
- A failed refresh keeps the previous snapshot.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Awaitable, Callable, Iterable, Mapping

from moviematch.ingestion.base import GenreEntry
from moviematch.utils.redaction import redact_secrets

logger = logging.getLogger("moviematch.services.genre_cache")

GenreLoader = Callable[[], Awaitable[list[GenreEntry]]]


def normalize_genre_name(name: str) -> str:
    return name.strip().lower()


@dataclass(frozen=True, slots=True)
class GenreSnapshot:
    generation: int = 0
    entries: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    refreshed_at: datetime | None = None


class GenreCache:
    def __init__(self, loader: GenreLoader) -> None:
        self._loader = loader
        self._snapshot = GenreSnapshot()
        self._refresh_lock = asyncio.Lock()
        self._last_error: str | None = None
        self._last_attempt_at: datetime | None = None

    @property
    def generation(self) -> int:
        return self._snapshot.generation

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def __len__(self) -> int:
        return len(self._snapshot.entries)

    def install(self, entries: Iterable[GenreEntry]) -> int:
        """Replace every entry with ``entries`` and return the new size.

        Later entries win when two names normalize to the same key.
        """
        mapping: dict[str, str] = {}
        for entry in entries:
            key = normalize_genre_name(entry.name)
            if key:
                mapping[key] = entry.id
        previous = self._snapshot
        self._snapshot = GenreSnapshot(
            generation=previous.generation + 1,
            entries=MappingProxyType(mapping),
            refreshed_at=datetime.now(timezone.utc),
        )
        return len(mapping)

    async def refresh(self) -> int:
        """Reload all genres from the provider.

        Raises whatever the loader raises; the previous contents stay in place.
        """
        async with self._refresh_lock:
            self._last_attempt_at = datetime.now(timezone.utc)
            try:
                entries = await self._loader()
            except Exception as exc:
                self._last_error = redact_secrets(str(exc)) or exc.__class__.__name__
                raise
            size = self.install(entries)
            self._last_error = None
        logger.info("Cached %d genres (generation %d)", size, self.generation)
        return size

    def entries(self) -> Mapping[str, str]:
        """Read-only view of the current snapshot."""
        return self._snapshot.entries

    def lookup(self, name: str) -> str | None:
        if not isinstance(name, str):
            return None
        return self._snapshot.entries.get(normalize_genre_name(name))

    def resolve_all(self, names: Iterable[str]) -> list[str]:
        """Map names to ids in order, dropping names the cache does not know."""
        entries = self._snapshot.entries
        resolved: list[str] = []
        for name in names:
            if not isinstance(name, str):
                continue
            genre_id = entries.get(normalize_genre_name(name))
            if genre_id is None:
                logger.debug("Unknown genre name %r", name)
                continue
            resolved.append(genre_id)
        return resolved

    def status(self) -> dict[str, object]:
        snapshot = self._snapshot
        return {
            "size": len(snapshot.entries),
            "generation": snapshot.generation,
            "refreshed_at": snapshot.refreshed_at.isoformat() if snapshot.refreshed_at else None,
            "last_attempt_at": self._last_attempt_at.isoformat() if self._last_attempt_at else None,
            "last_error": self._last_error,
        }
