from __future__ import annotations

import asyncio

import pytest

from app.database import Database
from app.db_models import User
from app.errors import (
    CommentNotFoundError,
    MovieNotFoundError,
    NotFoundError,
    UserMovieNotFoundError,
)
from app.models import MovieMetadata
from app.services.catalog_store import PLACEHOLDER_GENRE, CatalogStore, placeholder_metadata


async def _setup(tmp_path) -> tuple[Database, CatalogStore]:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    await database.create_all()
    async with database.session() as session:
        session.add_all(
            [
                User(id="user-1", email="ana@example.com", name="Ana", age=30, password_hash="x"),
                User(id="user-2", email="luis@example.com", name="Luis", age=41, password_hash="x"),
            ]
        )
        await session.commit()
    return database, CatalogStore(database.session_factory)


def test_placeholder_metadata() -> None:
    external = placeholder_metadata("px-1234")
    assert external.title == "Video 1234"
    assert external.genre == "terror"

    local = placeholder_metadata("my-movie")
    assert local.title == "my-movie"
    assert local.genre == PLACEHOLDER_GENRE


def test_ensure_movie_uses_metadata_or_placeholder(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _setup(tmp_path)
        try:
            metadata = MovieMetadata(
                id="ignored",
                title="Sunset",
                genre="drama",
                thumbnail_url="https://images/sunset.jpg",
                source="https://cdn/sunset.mp4",
                director="Ana Ruiz",
            )
            created = await store.ensure_movie("px-77", metadata)
            assert created.id == "px-77"
            assert created.title == "Sunset"
            assert created.rating is None

            # existing rows are returned as-is
            again = await store.ensure_movie("px-77")
            assert again.title == "Sunset"

            placeholder = await store.ensure_movie("px-80")
            assert placeholder.title == "Video 80"
            assert placeholder.genre == "accion"
        finally:
            await database.dispose()

    asyncio.run(runner())


def test_get_movie_raises_typed_not_found(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _setup(tmp_path)
        try:
            with pytest.raises(MovieNotFoundError):
                await store.get_movie("px-404")
            with pytest.raises(UserMovieNotFoundError):
                await store.get_user_movie("user-1", "px-404")
            with pytest.raises(UserMovieNotFoundError):
                await store.update_user_movie("user-1", "px-404", {"rating": 4})
            with pytest.raises(CommentNotFoundError):
                await store.get_comment(99)
            with pytest.raises(NotFoundError):
                await store.delete_comment(99)
        finally:
            await database.dispose()

    asyncio.run(runner())


def test_upsert_user_movie_is_idempotent_and_partial(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _setup(tmp_path)
        try:
            await store.ensure_movie("px-1")

            created = await store.upsert_user_movie("user-1", "px-1", is_favorite=True)
            assert created.is_favorite is True
            assert created.rating is None

            rated = await store.upsert_user_movie("user-1", "px-1", rating=4.0)
            assert rated.is_favorite is True
            assert rated.rating == 4.0

            untouched = await store.upsert_user_movie("user-1", "px-1")
            assert untouched.is_favorite is True
            assert untouched.rating == 4.0

            cleared = await store.upsert_user_movie("user-1", "px-1", is_favorite=None)
            assert cleared.is_favorite is None
            assert cleared.rating == 4.0
            assert cleared.movie.id == "px-1"

            assert await store.ratings_for_movie("px-1") == [4.0]
        finally:
            await database.dispose()

    asyncio.run(runner())


def test_batched_rating_reads(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _setup(tmp_path)
        try:
            for movie_id in ("px-1", "px-2", "px-3"):
                await store.ensure_movie(movie_id)
            await store.save_community_rating("px-1", 4.5)
            await store.save_community_rating("px-2", 2.0)
            await store.upsert_user_movie("user-1", "px-2", rating=3.0)
            await store.upsert_user_movie("user-2", "px-3", rating=5.0)

            community = await store.community_ratings(["px-1", "px-2", "px-3", "px-9"])
            assert community == {"px-1": 4.5, "px-2": 2.0}

            mine = await store.user_ratings("user-1", ["px-1", "px-2", "px-3"])
            assert mine == {"px-2": 3.0}

            assert await store.community_ratings([]) == {}
        finally:
            await database.dispose()

    asyncio.run(runner())


def test_save_community_rating_creates_missing_movie(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _setup(tmp_path)
        try:
            metadata = MovieMetadata(id="px-5", title="Waves", genre="drama")
            await store.save_community_rating("px-5", 3.7, metadata)
            movie = await store.get_movie("px-5")
            assert movie.title == "Waves"
            assert movie.rating == 3.7

            await store.save_community_rating("px-5", 4.1)
            assert (await store.get_movie("px-5")).rating == 4.1
        finally:
            await database.dispose()

    asyncio.run(runner())


def test_favorites_and_rated_lists(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _setup(tmp_path)
        try:
            for movie_id in ("px-1", "px-2", "px-3"):
                await store.ensure_movie(movie_id)
            await store.upsert_user_movie("user-1", "px-1", is_favorite=True)
            await store.upsert_user_movie("user-1", "px-2", is_favorite=False, rating=2.0)
            await store.upsert_user_movie("user-1", "px-3")

            favorites = await store.favorites("user-1")
            assert [row.movie_id for row in favorites] == ["px-1"]
            assert favorites[0].movie.title == "Video 1"

            rated = await store.rated("user-1")
            assert [row.movie_id for row in rated] == ["px-2"]

            assert await store.favorites("user-2") == []
        finally:
            await database.dispose()

    asyncio.run(runner())


def test_comment_lifecycle(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _setup(tmp_path)
        try:
            await store.ensure_movie("px-1")
            await store.upsert_user_movie("user-1", "px-1")
            await store.upsert_user_movie("user-2", "px-1")

            first = await store.add_comment("user-1", "px-1", "Great light", "A")
            await store.add_comment("user-2", "px-1", "Too short", "LU")

            assert [c.content for c in await store.comments_for("px-1")] == [
                "Great light",
                "Too short",
            ]
            assert [c.content for c in await store.comments_for("px-1", "user-2")] == [
                "Too short"
            ]

            edited = await store.update_comment(first.id, "Great colours")
            assert edited.content == "Great colours"
            unchanged = await store.update_comment(first.id, None)
            assert unchanged.content == "Great colours"

            await store.delete_comment(first.id)
            assert len(await store.comments_for("px-1")) == 1
        finally:
            await database.dispose()

    asyncio.run(runner())


def test_search_movies_matches_title_and_genre(tmp_path) -> None:
    async def runner() -> None:
        database, store = await _setup(tmp_path)
        try:
            await store.create_movie(MovieMetadata(id="a", title="Night Drive", genre="thriller"))
            await store.create_movie(MovieMetadata(id="b", title="Morning", genre="drama"))
            await store.create_movie(MovieMetadata(id="c", title="Dramatic Sky", genre="accion"))

            found = await store.search_movies("DRAMA")
            assert sorted(movie.id for movie in found) == ["b", "c"]
            assert len(await store.search_movies("", limit=2)) == 2
        finally:
            await database.dispose()

    asyncio.run(runner())


def test_upsert_reports_row_missing_after_write(tmp_path, monkeypatch) -> None:
    from sqlalchemy.ext.asyncio import AsyncSession

    async def vanished(self, *args, **kwargs):
        return None

    async def runner() -> None:
        database, store = await _setup(tmp_path)
        try:
            await store.ensure_movie("px-1")
            monkeypatch.setattr(AsyncSession, "get", vanished)
            with pytest.raises(UserMovieNotFoundError):
                await store.upsert_user_movie("user-1", "px-1", is_favorite=True)
        finally:
            monkeypatch.undo()
            await database.dispose()

    asyncio.run(runner())
