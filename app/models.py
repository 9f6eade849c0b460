"""Pydantic models describing catalog payloads and request bodies."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)

from .utils import EMAIL_RE, normalize_email, password_problem

Quality = Literal["low", "sd", "hd"]


class CatalogEntry(BaseModel):
    """External video mapped to the shape the home screen consumes."""

    id: str | None
    title: str
    rating: float | None = None
    duration: str | None = None
    genre: str | None = None
    description: str | None = None
    poster: str | None = None
    source: str | None = None
    director: str | None = None
    user_rating: float | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = self.model_dump(exclude={"user_rating"})
        if self.user_rating is not None:
            payload["userRating"] = self.user_rating
        return payload


class MovieSummary(BaseModel):
    """Compact listing used by genre rows."""

    id: str | None
    title: str
    thumbnail_url: str | None = None
    genre: str
    source: str | None = None


class MovieMetadata(BaseModel):
    """Descriptive fields needed to create a catalog entity."""

    id: str
    title: str
    thumbnail_url: str | None = None
    genre: str
    source: str | None = None
    director: str | None = None
    suggested_rating: float | None = None


class MovieRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    thumbnail_url: str | None = None
    genre: str
    source: str | None = None
    director: str | None = None
    suggested_rating: float | None = None
    rating: float | None = None


class UserMovieRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    movie_id: str
    is_favorite: bool | None = None
    rating: float | None = None


class UserMovieWithMovie(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    movie_id: str
    rating: float | None = None
    is_favorite: bool | None = None
    movies: MovieRecord | None = Field(
        default=None, validation_alias=AliasChoices("movie", "movies")
    )


class CommentRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_movie_user_id: str
    user_movie_movie_id: str
    content: str
    avatar: str
    created_at: datetime


class PublicUser(BaseModel):
    """User payload without credentials."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    surname: str | None = None
    age: int


def _coerce_password(value: object) -> object:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return value


def _check_password(value: str) -> str:
    problem = password_problem(value)
    if problem:
        raise ValueError(problem)
    return value


class RegisterRequest(BaseModel):
    email: str
    name: str
    surname: str | None = None
    age: int = Field(ge=0, le=120)
    password: str

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        normalized = normalize_email(value)
        if not normalized or not EMAIL_RE.match(normalized):
            raise ValueError("Invalid email")
        return normalized

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Invalid name")
        return value.strip()

    @field_validator("password", mode="before")
    @classmethod
    def _password_to_text(cls, value: object) -> object:
        return _coerce_password(value)

    @field_validator("password")
    @classmethod
    def _validate_password(cls, value: str) -> str:
        return _check_password(value)


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return normalize_email(value) or ""


class UserUpdateRequest(BaseModel):
    """Partial profile update; unset fields are left untouched."""

    email: str | None = None
    name: str | None = None
    surname: str | None = None
    age: int | None = Field(default=None, ge=0, le=120)
    password: str | None = None

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = normalize_email(value)
        if not normalized or not EMAIL_RE.match(normalized):
            raise ValueError("Invalid email")
        return normalized

    @field_validator("password", mode="before")
    @classmethod
    def _password_to_text(cls, value: object) -> object:
        return _coerce_password(value)

    @field_validator("password")
    @classmethod
    def _validate_password(cls, value: str | None) -> str | None:
        if not value:
            return None
        return _check_password(value)


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(
        validation_alias=AliasChoices("oldPassword", "currentPassword", "old_password")
    )
    new_password: str = Field(
        validation_alias=AliasChoices("newPassword", "new_password")
    )

    @field_validator("new_password")
    @classmethod
    def _validate_password(cls, value: str) -> str:
        return _check_password(value)


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(
        validation_alias=AliasChoices("newPassword", "new_password")
    )

    @field_validator("new_password")
    @classmethod
    def _validate_password(cls, value: str) -> str:
        return _check_password(value)


class InteractionRequest(BaseModel):
    """Body shared by the favorite and rating endpoints.

    ``favorite`` and ``rating`` stay raw so the library can tell an explicit
    ``null`` apart from a field the client did not send.
    """

    movie_id: str = Field(validation_alias=AliasChoices("movieId", "movie_id"))
    favorite: Any = Field(
        default=None, validation_alias=AliasChoices("favorite", "is_favorite")
    )
    rating: Any = None
    title: str | None = None
    thumbnail_url: str | None = None
    genre: str | None = None
    source: str | None = None
    director: str | None = None
    suggested_rating: float | None = None
    duration_seconds: float | None = None
    duration: str | None = None

    @field_validator("movie_id")
    @classmethod
    def _require_movie_id(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("movieId is required")
        return value.strip()

    def metadata(self) -> MovieMetadata | None:
        """Return creation metadata when the client sent the full set."""

        if not (self.title and self.thumbnail_url and self.genre and self.source):
            return None
        return MovieMetadata(
            id=self.movie_id,
            title=self.title,
            thumbnail_url=self.thumbnail_url,
            genre=self.genre,
            source=self.source,
            director=self.director,
            suggested_rating=self.suggested_rating,
        )


class CommentRequest(BaseModel):
    movie_id: str = Field(validation_alias=AliasChoices("movieId", "movie_id"))
    text: str = Field(validation_alias=AliasChoices("text", "content"))

    @field_validator("text")
    @classmethod
    def _require_text(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Comment text is required")
        return value


class CommentUpdateRequest(BaseModel):
    content: str | None = None


class MixedQuery(BaseModel):
    limit: int | None = Field(default=None, ge=1, le=80)
    quality: Quality | None = None
    max_width: int | None = Field(
        default=None, validation_alias=AliasChoices("maxWidth", "max_width")
    )
    user_id: str | None = Field(
        default=None, validation_alias=AliasChoices("userId", "user_id")
    )
