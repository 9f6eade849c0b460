"""High level orchestration of the movie catalog flows."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from ..db_models import Comment, Movie, UserMovie
from ..enrichment import SourceOptions, map_video, summarize_video
from ..errors import MissingMetadataError, MovieNotFoundError, UserMovieNotFoundError
from ..models import CatalogEntry, MovieMetadata, MovieSummary
from ..utils import coerce_number, initials, is_explicit_null, parse_nullable_bool
from .accounts import AccountService
from .catalog_store import UNSET, CatalogStore
from .pexels import PexelsClient
from .ratings import RatingAggregator

logger = logging.getLogger(__name__)


class SourceUnavailableError(RuntimeError):
    """Raised when a flow needs Pexels but no API key was configured."""


@dataclass(slots=True)
class MovieDetails:
    movie: Movie
    user_rating: float | None = None
    is_favorite: bool | None = None
    comments: list[Comment] = field(default_factory=list)


def coerce_favorite(value: Any) -> Any:
    """Favorite flag sent by a client; unparsable values leave it unset."""

    if is_explicit_null(value):
        return None
    parsed = parse_nullable_bool(value)
    return UNSET if parsed is None else parsed


def coerce_rating(value: Any, *, strict: bool) -> Any:
    """Rating sent by a client.

    Out of range or unparsable values raise ``ValueError`` when ``strict``
    and are otherwise ignored (returned as ``UNSET``).
    """

    if value is None:
        return None
    number = coerce_number(value)
    if number is not None and 1 <= number <= 5:
        return number
    if strict:
        raise ValueError("Rating must be between 1 and 5")
    return UNSET


class MovieLibrary:
    """Glue between persistence, rating aggregation and the Pexels source."""

    def __init__(
        self,
        store: CatalogStore,
        aggregator: RatingAggregator,
        accounts: AccountService,
        pexels: PexelsClient | None = None,
    ):
        self._store = store
        self._aggregator = aggregator
        self._accounts = accounts
        self._pexels = pexels

    @property
    def store(self) -> CatalogStore:
        return self._store

    def _require_pexels(self) -> PexelsClient:
        if self._pexels is None:
            raise SourceUnavailableError("Pexels API key is not configured")
        return self._pexels

    # -- external catalog -----------------------------------------------------

    async def popular_videos(self, per_page: int = 10) -> list[dict[str, Any]]:
        return await self._require_pexels().popular(per_page)

    async def search_videos(self, query: str, per_page: int = 10) -> list[dict[str, Any]]:
        return await self._require_pexels().search(query, per_page)

    async def popular_entries(
        self,
        per_page: int,
        options: SourceOptions | None = None,
        user_id: str | None = None,
    ) -> list[CatalogEntry]:
        """Popular videos mapped to catalog entries with persisted ratings."""

        videos = await self.popular_videos(per_page)
        entries = [map_video(video, options) for video in videos]
        return await self._aggregator.merge_batch(entries, user_id)

    async def genre_summaries(self, genre: str, per_page: int) -> list[MovieSummary]:
        videos = await self.search_videos(genre, per_page)
        return [summarize_video(video, genre) for video in videos]

    # -- favorites and ratings -------------------------------------------------

    async def record_interaction(
        self,
        user_id: str,
        movie_id: str,
        *,
        favorite: bool | None = UNSET,
        rating: float | None = UNSET,
        metadata: MovieMetadata | None = None,
        require_metadata: bool = False,
    ) -> UserMovie:
        """Store a favorite flag and/or rating for ``(user_id, movie_id)``.

        Unknown movies are created from ``metadata``; without it they get a
        placeholder unless ``require_metadata`` is set.
        """

        await self._accounts.get_user(user_id)
        await self._ensure_movie(movie_id, metadata, require_metadata)
        row = await self._store.upsert_user_movie(
            user_id, movie_id, is_favorite=favorite, rating=rating
        )
        if rating is not UNSET:
            await self._aggregator.apply_rating_update(movie_id, metadata)
        return row

    async def _ensure_movie(
        self, movie_id: str, metadata: MovieMetadata | None, require_metadata: bool
    ) -> Movie:
        try:
            return await self._store.get_movie(movie_id)
        except MovieNotFoundError:
            if metadata is None and require_metadata:
                raise MissingMetadataError(
                    "Missing movie data to create new entry "
                    "(title, thumbnail_url, genre, source)"
                ) from None
        return await self._store.ensure_movie(movie_id, metadata)

    async def update_user_movie(
        self, user_id: str, movie_id: str, updates: Mapping[str, Any]
    ) -> UserMovie:
        """Partial update of an existing association; bad values are skipped."""

        changes: dict[str, Any] = {}
        if "is_favorite" in updates:
            favorite = coerce_favorite(updates["is_favorite"])
            if favorite is not UNSET:
                changes["is_favorite"] = favorite
        if "rating" in updates:
            rating = coerce_rating(updates["rating"], strict=False)
            if rating is not UNSET:
                changes["rating"] = rating

        row = await self._store.update_user_movie(user_id, movie_id, changes)
        if "rating" in changes:
            await self._aggregator.apply_rating_update(movie_id)
        return row

    async def remove_favorite(self, user_id: str, movie_id: str) -> UserMovie:
        return await self._store.update_user_movie(
            user_id, movie_id, {"is_favorite": False}
        )

    async def delete_user(self, user_id: str) -> None:
        """Delete the account and refresh ratings its cascaded rows fed into."""

        rated = [row.movie_id for row in await self._store.rated(user_id)]
        await self._accounts.delete_user(user_id)
        for movie_id in rated:
            await self._aggregator.apply_rating_update(movie_id)

    async def favorites(self, user_id: str) -> list[UserMovie]:
        return await self._store.favorites(user_id)

    async def rated(self, user_id: str) -> list[UserMovie]:
        return await self._store.rated(user_id)

    # -- catalog reads ----------------------------------------------------------

    async def list_movies(self) -> list[Movie]:
        return await self._store.list_movies()

    async def search_movies(self, query: str, limit: int) -> list[Movie]:
        return await self._store.search_movies(query, limit)

    async def get_movie(self, movie_id: str) -> Movie:
        return await self._store.get_movie(movie_id)

    async def movie_details(
        self, movie_id: str, user_id: str | None = None
    ) -> MovieDetails:
        movie = await self._store.get_movie(movie_id)
        details = MovieDetails(
            movie=movie, comments=await self._store.comments_for(movie_id)
        )
        if user_id:
            try:
                row = await self._store.get_user_movie(user_id, movie_id)
            except UserMovieNotFoundError:
                return details
            details.user_rating = row.rating
            details.is_favorite = row.is_favorite
        return details

    # -- comments ---------------------------------------------------------------

    async def add_comment(self, user_id: str, movie_id: str, text: str) -> Comment:
        """Attach a comment, creating the association with defaults if needed."""

        user = await self._accounts.get_user(user_id)
        avatar = initials(user.name, user.surname)
        await self._store.ensure_movie(movie_id)
        await self._store.upsert_user_movie(user_id, movie_id)
        comment = await self._store.add_comment(user_id, movie_id, text, avatar)
        logger.info("User %s commented on %s", user_id, movie_id)
        return comment

    async def edit_comment(self, comment_id: int, content: str | None) -> Comment:
        return await self._store.update_comment(comment_id, content)

    async def delete_comment(self, comment_id: int) -> None:
        await self._store.delete_comment(comment_id)

    async def get_comment(self, comment_id: int) -> Comment:
        return await self._store.get_comment(comment_id)

    async def comments_for(self, user_id: str, movie_id: str) -> list[Comment]:
        return await self._store.comments_for(movie_id, user_id)
