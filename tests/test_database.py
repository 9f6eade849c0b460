from __future__ import annotations

import asyncio

from sqlalchemy import create_engine, inspect, text

from app.database import Database


def _initialise_legacy_schema(database_path: str) -> None:
    """Create a legacy movies table lacking the director and suggested_rating columns."""

    engine = create_engine(f"sqlite:///{database_path}")
    try:
        with engine.begin() as connection:
            connection.execute(
                text(
                    """
                    CREATE TABLE movies (
                        id VARCHAR(64) PRIMARY KEY,
                        title VARCHAR(255),
                        thumbnail_url VARCHAR(1024),
                        genre VARCHAR(64),
                        source VARCHAR(1024),
                        rating FLOAT,
                        created_at DATETIME,
                        updated_at DATETIME
                    )
                    """
                )
            )
            connection.execute(
                text("INSERT INTO movies (id, title, genre, rating) VALUES ('px-1', 'Old', 'drama', 4.0)")
            )
    finally:
        engine.dispose()


def test_create_all_adds_missing_movie_columns(tmp_path) -> None:
    """Schema migrations should backfill the newer movie columns."""

    database_path = tmp_path / "legacy.db"
    _initialise_legacy_schema(str(database_path))

    database = Database(f"sqlite+aiosqlite:///{database_path}")
    asyncio.run(database.create_all())
    asyncio.run(database.dispose())

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        inspector = inspect(inspector_engine)
        columns = {column["name"] for column in inspector.get_columns("movies")}
        tables = set(inspector.get_table_names())
        with inspector_engine.connect() as connection:
            title = connection.execute(text("SELECT title FROM movies WHERE id = 'px-1'")).scalar_one()
    finally:
        inspector_engine.dispose()

    assert {"director", "suggested_rating"} <= columns
    assert {"users", "user_movies", "comments"} <= tables
    assert title == "Old"


def test_create_all_is_repeatable(tmp_path) -> None:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'fresh.db'}")

    async def runner() -> None:
        await database.create_all()
        await database.create_all()
        await database.dispose()

    asyncio.run(runner())


def test_create_all_names_indexes_on_fresh_database(tmp_path) -> None:
    """Indexed columns should be created with conventional index names."""

    database_path = tmp_path / "fresh-indexes.db"
    database = Database(f"sqlite+aiosqlite:///{database_path}")
    asyncio.run(database.create_all())
    asyncio.run(database.dispose())

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        inspector = inspect(inspector_engine)
        user_indexes = {index["name"] for index in inspector.get_indexes("users")}
        comment_indexes = {index["name"] for index in inspector.get_indexes("comments")}
    finally:
        inspector_engine.dispose()

    assert "ix_users_email" in user_indexes
    assert {
        "ix_comments_user_movie_user_id",
        "ix_comments_user_movie_movie_id",
    } <= comment_indexes
