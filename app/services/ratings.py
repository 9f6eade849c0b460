"""Community rating aggregation and merging into mapped catalog batches."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol, Sequence

from ..models import CatalogEntry, MovieMetadata
from ..utils import coerce_number, round_one_decimal

logger = logging.getLogger(__name__)

NO_RATINGS = 0.0
MIN_PERSISTED_RATING = 1.0


class RatingStore(Protocol):
    """Subset of :class:`CatalogStore` the aggregator depends on."""

    async def ratings_for_movie(self, movie_id: str) -> list[Any]: ...

    async def community_ratings(self, movie_ids: Sequence[str]) -> dict[str, float]: ...

    async def user_ratings(
        self, user_id: str, movie_ids: Sequence[str]
    ) -> dict[str, float]: ...

    async def save_community_rating(
        self, movie_id: str, rating: float, metadata: MovieMetadata | None = None
    ) -> Any: ...


class RatingAggregator:
    """Computes community ratings and overlays them on synthetic ones."""

    def __init__(self, store: RatingStore):
        self._store = store

    async def compute_rating(self, movie_id: str) -> float:
        """Mean of every stored user rating, or ``0`` when there is none."""

        raw = await self._store.ratings_for_movie(movie_id)
        ratings = [value for value in map(coerce_number, raw) if value is not None]
        if not ratings:
            return NO_RATINGS
        return round_one_decimal(sum(ratings) / len(ratings))

    async def merge_batch(
        self, entries: Sequence[CatalogEntry], user_id: str | None = None
    ) -> list[CatalogEntry]:
        """Replace synthetic ratings with persisted ones where they exist.

        Any failure while reading community ratings returns ``entries``
        untouched; a failed read of the user's own ratings only drops the
        ``user_rating`` overlay.
        """

        entries = list(entries)
        ids = [entry.id for entry in entries if entry.id]
        if not ids:
            return entries

        reads = [self._store.community_ratings(ids)]
        if user_id:
            reads.append(self._store.user_ratings(user_id, ids))
        results = await asyncio.gather(*reads, return_exceptions=True)

        community = results[0]
        if isinstance(community, BaseException) or not isinstance(community, dict):
            logger.warning(
                "Failed to merge persisted ratings into %s mapped entries: %s",
                len(entries),
                community,
            )
            return entries

        own: dict[str, float] = {}
        if user_id:
            if isinstance(results[1], dict):
                own = results[1]
            else:
                logger.warning(
                    "Failed to load ratings of user %s for merge: %s", user_id, results[1]
                )

        merged: list[CatalogEntry] = []
        for entry in entries:
            update: dict[str, Any] = {}
            persisted = coerce_number(community.get(entry.id)) if entry.id else None
            if persisted is not None:
                update["rating"] = persisted
            mine = coerce_number(own.get(entry.id)) if entry.id else None
            if mine is not None:
                update["user_rating"] = mine
            merged.append(entry.model_copy(update=update) if update else entry)
        return merged

    async def apply_rating_update(
        self, movie_id: str, metadata: MovieMetadata | None = None
    ) -> float:
        """Recompute and persist the community rating after a rating write.

        The sentinel ``0`` is returned without touching the movie row.
        """

        rating = await self.compute_rating(movie_id)
        if rating >= MIN_PERSISTED_RATING:
            await self._store.save_community_rating(movie_id, rating, metadata)
        else:
            logger.debug("No ratings left for %s, keeping stored rating", movie_id)
        return rating
