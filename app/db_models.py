"""SQLAlchemy ORM models backing the persistent state."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    ForeignKeyConstraint,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


def _new_user_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """A registered account."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_user_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(120))
    surname: Mapped[str | None] = mapped_column(String(120), nullable=True)
    age: Mapped[int] = mapped_column(Integer)
    password_hash: Mapped[str] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    movies: Mapped[list["UserMovie"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )


class Movie(Base):
    """Catalog entity; external items use ``px-<id>`` identifiers."""

    __tablename__ = "movies"
    __table_args__ = (
        CheckConstraint("rating IS NULL OR rating >= 1", name="rating_floor"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255))
    thumbnail_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    genre: Mapped[str] = mapped_column(String(64))
    source: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    director: Mapped[str | None] = mapped_column(String(255), nullable=True)
    suggested_rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class UserMovie(Base):
    """Favorite/rating state of one user for one movie."""

    __tablename__ = "user_movies"
    __table_args__ = (
        CheckConstraint(
            "rating IS NULL OR (rating >= 1 AND rating <= 5)", name="rating_range"
        ),
    )

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    movie_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("movies.id", ondelete="CASCADE"), primary_key=True
    )
    is_favorite: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)

    user: Mapped[User] = relationship(back_populates="movies")
    movie: Mapped[Movie] = relationship(lazy="joined")


class Comment(Base):
    """Free-text comment left by a user on a movie."""

    __tablename__ = "comments"
    __table_args__ = (
        ForeignKeyConstraint(
            ["user_movie_user_id", "user_movie_movie_id"],
            ["user_movies.user_id", "user_movies.movie_id"],
            ondelete="CASCADE",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_movie_user_id: Mapped[str] = mapped_column(String(36), index=True)
    user_movie_movie_id: Mapped[str] = mapped_column(String(64), index=True)
    content: Mapped[str] = mapped_column(Text)
    avatar: Mapped[str] = mapped_column(String(8))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
