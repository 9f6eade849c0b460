"""Persistence for movies, user/movie associations and comments."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from sqlalchemy import or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import Comment, Movie, UserMovie
from ..enrichment import external_number, genre_for_seed
from ..errors import CommentNotFoundError, MovieNotFoundError, UserMovieNotFoundError
from ..models import MovieMetadata

logger = logging.getLogger(__name__)

PLACEHOLDER_GENRE = "sin genero"


class _Unset:
    """Marker for association fields the caller did not mention."""

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return "UNSET"


UNSET: Any = _Unset()


def placeholder_metadata(movie_id: str) -> MovieMetadata:
    """Metadata for a movie that is referenced before anyone described it."""

    number = external_number(movie_id)
    if number is not None:
        return MovieMetadata(
            id=movie_id, title=f"Video {number}", genre=genre_for_seed(number)
        )
    return MovieMetadata(id=movie_id, title=movie_id, genre=PLACEHOLDER_GENRE)


class CatalogStore:
    """Async data access layer over the catalog tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # -- movies -----------------------------------------------------------

    async def list_movies(self) -> list[Movie]:
        async with self._session_factory() as session:
            result = await session.execute(select(Movie).order_by(Movie.created_at))
            return list(result.scalars())

    async def search_movies(self, query: str, limit: int = 50) -> list[Movie]:
        pattern = f"%{query}%"
        stmt = (
            select(Movie)
            .where(or_(Movie.title.ilike(pattern), Movie.genre.ilike(pattern)))
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars())

    async def get_movie(self, movie_id: str) -> Movie:
        async with self._session_factory() as session:
            movie = await session.get(Movie, movie_id)
        if movie is None:
            raise MovieNotFoundError(f"Movie {movie_id} not found")
        return movie

    async def create_movie(
        self, metadata: MovieMetadata, *, rating: float | None = None
    ) -> Movie:
        movie = Movie(**metadata.model_dump(), rating=rating)
        async with self._session_factory() as session:
            session.add(movie)
            await session.commit()
        logger.info("Created movie %s (%s)", movie.id, movie.title)
        return movie

    async def ensure_movie(
        self, movie_id: str, metadata: MovieMetadata | None = None
    ) -> Movie:
        """Return the movie, creating it from ``metadata`` or a placeholder."""

        try:
            return await self.get_movie(movie_id)
        except MovieNotFoundError:
            pass
        if metadata is None:
            metadata = placeholder_metadata(movie_id)
        return await self.create_movie(metadata.model_copy(update={"id": movie_id}))

    async def community_ratings(self, movie_ids: Iterable[str]) -> dict[str, float]:
        """Persisted community ratings for the ids that have one."""

        ids = list(dict.fromkeys(movie_ids))
        if not ids:
            return {}
        stmt = select(Movie.id, Movie.rating).where(
            Movie.id.in_(ids), Movie.rating.is_not(None)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return {movie_id: float(rating) for movie_id, rating in rows}

    async def user_ratings(
        self, user_id: str, movie_ids: Iterable[str]
    ) -> dict[str, float]:
        ids = list(dict.fromkeys(movie_ids))
        if not ids:
            return {}
        stmt = select(UserMovie.movie_id, UserMovie.rating).where(
            UserMovie.user_id == user_id,
            UserMovie.movie_id.in_(ids),
            UserMovie.rating.is_not(None),
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return {movie_id: float(rating) for movie_id, rating in rows}

    async def ratings_for_movie(self, movie_id: str) -> list[Any]:
        stmt = select(UserMovie.rating).where(UserMovie.movie_id == movie_id)
        async with self._session_factory() as session:
            return list((await session.execute(stmt)).scalars())

    async def save_community_rating(
        self, movie_id: str, rating: float, metadata: MovieMetadata | None = None
    ) -> Movie:
        """Write ``rating`` onto the movie, creating the row when missing."""

        async with self._session_factory() as session:
            movie = await session.get(Movie, movie_id)
            if movie is None:
                fields = (metadata or placeholder_metadata(movie_id)).model_dump()
                fields["id"] = movie_id
                movie = Movie(**fields, rating=rating)
                session.add(movie)
            else:
                movie.rating = rating
            await session.commit()
        return movie

    # -- user/movie associations -------------------------------------------

    async def upsert_user_movie(
        self,
        user_id: str,
        movie_id: str,
        *,
        is_favorite: bool | None = UNSET,
        rating: float | None = UNSET,
    ) -> UserMovie:
        """Create or update the association keyed by ``(user_id, movie_id)``.

        Only the fields passed explicitly are written on conflict; a new row
        starts with both fields unset.
        """

        changes: dict[str, Any] = {}
        if is_favorite is not UNSET:
            changes["is_favorite"] = is_favorite
        if rating is not UNSET:
            changes["rating"] = rating

        async with self._session_factory() as session:
            insert = _dialect_insert(session)
            stmt = insert(UserMovie).values(
                user_id=user_id,
                movie_id=movie_id,
                is_favorite=changes.get("is_favorite"),
                rating=changes.get("rating"),
            )
            keys = [UserMovie.user_id, UserMovie.movie_id]
            if changes:
                stmt = stmt.on_conflict_do_update(index_elements=keys, set_=changes)
            else:
                stmt = stmt.on_conflict_do_nothing(index_elements=keys)
            await session.execute(stmt)
            await session.commit()
            row = await session.get(
                UserMovie, (user_id, movie_id), populate_existing=True
            )
        if row is None:
            raise UserMovieNotFoundError(
                f"Movie {movie_id} not found for user {user_id}"
            )
        return row

    async def get_user_movie(self, user_id: str, movie_id: str) -> UserMovie:
        async with self._session_factory() as session:
            row = await session.get(UserMovie, (user_id, movie_id))
        if row is None:
            raise UserMovieNotFoundError(
                f"Movie {movie_id} not found for user {user_id}"
            )
        return row

    async def update_user_movie(
        self, user_id: str, movie_id: str, changes: dict[str, Any]
    ) -> UserMovie:
        """Apply ``changes`` to an existing association."""

        async with self._session_factory() as session:
            row = await session.get(UserMovie, (user_id, movie_id))
            if row is None:
                raise UserMovieNotFoundError(
                    f"Movie {movie_id} not found for user {user_id}"
                )
            for field, value in changes.items():
                setattr(row, field, value)
            await session.commit()
        return row

    async def favorites(self, user_id: str) -> list[UserMovie]:
        stmt = select(UserMovie).where(
            UserMovie.user_id == user_id, UserMovie.is_favorite.is_(True)
        )
        async with self._session_factory() as session:
            return list((await session.execute(stmt)).scalars())

    async def rated(self, user_id: str) -> list[UserMovie]:
        stmt = select(UserMovie).where(
            UserMovie.user_id == user_id, UserMovie.rating.is_not(None)
        )
        async with self._session_factory() as session:
            return list((await session.execute(stmt)).scalars())

    # -- comments ------------------------------------------------------------

    async def add_comment(
        self, user_id: str, movie_id: str, content: str, avatar: str
    ) -> Comment:
        comment = Comment(
            user_movie_user_id=user_id,
            user_movie_movie_id=movie_id,
            content=content,
            avatar=avatar,
        )
        async with self._session_factory() as session:
            session.add(comment)
            await session.commit()
        return comment

    async def get_comment(self, comment_id: int) -> Comment:
        async with self._session_factory() as session:
            comment = await session.get(Comment, comment_id)
        if comment is None:
            raise CommentNotFoundError(f"Comment {comment_id} not found")
        return comment

    async def update_comment(self, comment_id: int, content: str | None) -> Comment:
        async with self._session_factory() as session:
            comment = await session.get(Comment, comment_id)
            if comment is None:
                raise CommentNotFoundError(f"Comment {comment_id} not found")
            if isinstance(content, str):
                comment.content = content
            await session.commit()
        return comment

    async def delete_comment(self, comment_id: int) -> None:
        async with self._session_factory() as session:
            comment = await session.get(Comment, comment_id)
            if comment is None:
                raise CommentNotFoundError(f"Comment {comment_id} not found")
            await session.delete(comment)
            await session.commit()

    async def comments_for(
        self, movie_id: str, user_id: str | None = None
    ) -> list[Comment]:
        stmt = select(Comment).where(Comment.user_movie_movie_id == movie_id)
        if user_id is not None:
            stmt = stmt.where(Comment.user_movie_user_id == user_id)
        stmt = stmt.order_by(Comment.id)
        async with self._session_factory() as session:
            return list((await session.execute(stmt)).scalars())


def _dialect_insert(session: AsyncSession):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Upserts are not supported on {dialect}")
