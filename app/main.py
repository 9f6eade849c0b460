"""Entry point for the FastAPI-powered PopFix backend."""

from __future__ import annotations

import logging
import math
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, TypeVar

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from .config import settings
from .database import Database
from .enrichment import SourceOptions, format_duration
from .errors import (
    AuthenticationError,
    ConflictError,
    MissingMetadataError,
    NotFoundError,
)
from .models import (
    ChangePasswordRequest,
    CommentRecord,
    CommentRequest,
    CommentUpdateRequest,
    ForgotPasswordRequest,
    InteractionRequest,
    LoginRequest,
    MixedQuery,
    MovieRecord,
    PublicUser,
    RegisterRequest,
    ResetPasswordRequest,
    UserMovieRecord,
    UserMovieWithMovie,
    UserUpdateRequest,
)
from .services.accounts import AccountService
from .services.catalog_store import UNSET, CatalogStore
from .services.library import (
    MovieLibrary,
    SourceUnavailableError,
    coerce_favorite,
    coerce_rating,
)
from .services.mailer import MailNotConfiguredError
from .services.pexels import PexelsClient, PexelsError
from .services.ratings import RatingAggregator

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    database = Database(settings.database_url)
    await database.create_all()

    pexels: PexelsClient | None = None
    if settings.pexels_api_key:
        pexels_http = await exit_stack.enter_async_context(
            httpx.AsyncClient(
                base_url=str(settings.pexels_api_url),
                timeout=httpx.Timeout(15.0, connect=5.0),
            )
        )
        pexels = PexelsClient(settings.pexels_api_key, pexels_http)
    else:
        logger.warning("PEXELS_API_KEY is not set; external catalog routes are disabled")

    store = CatalogStore(database.session_factory)
    accounts = AccountService(settings, database.session_factory)
    library = MovieLibrary(store, RatingAggregator(store), accounts, pexels)

    fastapi_app.state.database = database
    fastapi_app.state.accounts = accounts
    fastapi_app.state.library = library
    logger.info("%s backend ready", settings.app_name)

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Movie catalog backend with favorites, ratings and comments",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_library(app: FastAPI) -> MovieLibrary:
    library = getattr(app.state, "library", None)
    if not isinstance(library, MovieLibrary):
        raise RuntimeError("Movie library not initialised")
    return library


def get_accounts(app: FastAPI) -> AccountService:
    accounts = getattr(app.state, "accounts", None)
    if not isinstance(accounts, AccountService):
        raise RuntimeError("Account service not initialised")
    return accounts


async def _parse_body(request: Request, model: type[ModelT]) -> ModelT:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=400, detail=exc.errors(include_url=False, include_context=False)
        ) from exc


def _parse_query(request: Request, model: type[ModelT]) -> ModelT:
    try:
        return model.model_validate(dict(request.query_params))
    except ValidationError as exc:
        raise HTTPException(
            status_code=400, detail=exc.errors(include_url=False, include_context=False)
        ) from exc


def _positive_int(raw: str | None, default: int, *, maximum: int = 80) -> int:
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Expected an integer") from exc
    if not 1 <= value <= maximum:
        raise HTTPException(status_code=400, detail=f"Value must be between 1 and {maximum}")
    return value


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return token.strip()


def _dump(model: type[BaseModel], value: Any) -> dict[str, Any]:
    return model.model_validate(value).model_dump(mode="json")


def register_exception_handlers(fastapi_app: FastAPI) -> None:
    def _error(status_code: int):
        async def handler(_: Request, exc: Exception) -> JSONResponse:
            return JSONResponse({"error": str(exc)}, status_code=status_code)

        return handler

    fastapi_app.add_exception_handler(NotFoundError, _error(404))
    fastapi_app.add_exception_handler(ConflictError, _error(409))
    fastapi_app.add_exception_handler(AuthenticationError, _error(401))
    fastapi_app.add_exception_handler(MissingMetadataError, _error(400))
    fastapi_app.add_exception_handler(PexelsError, _error(502))
    fastapi_app.add_exception_handler(SourceUnavailableError, _error(503))
    fastapi_app.add_exception_handler(MailNotConfiguredError, _error(503))

    async def unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    fastapi_app.add_exception_handler(Exception, unexpected)


def register_routes(fastapi_app: FastAPI) -> None:
    register_exception_handlers(fastapi_app)

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    register_user_routes(fastapi_app)
    register_auth_routes(fastapi_app)
    register_pexels_routes(fastapi_app)
    register_movie_routes(fastapi_app)


def register_user_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/api/users")
    async def list_users() -> list[dict[str, Any]]:
        users = await get_accounts(fastapi_app).list_users()
        return [_dump(PublicUser, user) for user in users]

    @fastapi_app.post("/api/users/register", status_code=201)
    async def register_user(request: Request) -> dict[str, Any]:
        body = await _parse_body(request, RegisterRequest)
        user = await get_accounts(fastapi_app).register(body)
        return _dump(PublicUser, user)

    @fastapi_app.post("/api/users/login")
    async def login_user(request: Request) -> dict[str, Any]:
        body = await _parse_body(request, LoginRequest)
        token, user = await get_accounts(fastapi_app).login(body.email, body.password)
        return {
            "message": "Login successful",
            "token": token,
            "user": _dump(PublicUser, user),
        }

    @fastapi_app.post("/api/users/logout")
    async def logout_user() -> dict[str, str]:
        # Tokens are stateless; the client drops its copy.
        return {"message": "Logout successful"}

    @fastapi_app.post("/api/users/change-password")
    async def change_password(request: Request) -> dict[str, str]:
        accounts = get_accounts(fastapi_app)
        claims = accounts.authenticate(_bearer_token(request))
        body = await _parse_body(request, ChangePasswordRequest)
        await accounts.change_password(claims.subject, body.old_password, body.new_password)
        return {"message": "Password changed successfully"}

    @fastapi_app.get("/api/users/{user_id}")
    async def get_user(user_id: str) -> dict[str, Any]:
        user = await get_accounts(fastapi_app).get_user(user_id)
        return _dump(PublicUser, user)

    @fastapi_app.put("/api/users/{user_id}")
    async def update_user(user_id: str, request: Request) -> dict[str, Any]:
        body = await _parse_body(request, UserUpdateRequest)
        user = await get_accounts(fastapi_app).update_user(user_id, body)
        return _dump(PublicUser, user)

    @fastapi_app.delete("/api/users/{user_id}")
    async def delete_user(user_id: str) -> dict[str, str]:
        await get_library(fastapi_app).delete_user(user_id)
        return {"message": "User deleted successfully"}


def register_auth_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.post("/api/auth/forgot-password")
    async def forgot_password(request: Request) -> dict[str, str]:
        body = await _parse_body(request, ForgotPasswordRequest)
        await get_accounts(fastapi_app).forgot_password(body.email)
        return {"message": "Password recovery email sent successfully"}

    @fastapi_app.post("/api/auth/reset-password")
    async def reset_password(request: Request) -> dict[str, str]:
        body = await _parse_body(request, ResetPasswordRequest)
        try:
            await get_accounts(fastapi_app).reset_password(body.token, body.new_password)
        except AuthenticationError as exc:
            raise HTTPException(status_code=400, detail="Invalid or expired token") from exc
        return {"message": "Password updated successfully"}


def register_pexels_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/api/pexels/popular")
    async def pexels_popular() -> list[dict[str, Any]]:
        return await get_library(fastapi_app).popular_videos(10)

    @fastapi_app.get("/api/pexels/search")
    async def pexels_search(request: Request) -> list[dict[str, Any]]:
        query = (request.query_params.get("query") or "").strip()
        if not query:
            raise HTTPException(status_code=400, detail="Search parameter is required")
        return await get_library(fastapi_app).search_videos(query, 10)


def register_movie_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/api/movies")
    async def list_movies() -> list[dict[str, Any]]:
        movies = await get_library(fastapi_app).list_movies()
        return [_dump(MovieRecord, movie) for movie in movies]

    @fastapi_app.get("/api/movies/mixed")
    async def mixed_movies(request: Request) -> list[dict[str, Any]]:
        query = _parse_query(request, MixedQuery)
        options = SourceOptions(quality=query.quality or "sd", max_width=query.max_width)
        entries = await get_library(fastapi_app).popular_entries(
            query.limit or settings.mixed_default_limit, options, query.user_id
        )
        return [entry.to_payload() for entry in entries]

    @fastapi_app.get("/api/movies/by-genre")
    async def movies_by_genre(request: Request) -> list[dict[str, Any]]:
        genre = (request.query_params.get("genre") or "").strip()
        if not genre:
            raise HTTPException(status_code=400, detail="genre is required")
        per_page = _positive_int(
            request.query_params.get("perPage"), settings.genre_default_limit
        )
        summaries = await get_library(fastapi_app).genre_summaries(genre, per_page)
        return [summary.model_dump() for summary in summaries]

    @fastapi_app.get("/api/movies/search")
    async def search_movies(request: Request) -> list[dict[str, Any]]:
        text = (request.query_params.get("q") or "").strip()
        if not text:
            raise HTTPException(status_code=400, detail="q is required")
        limit = _positive_int(
            request.query_params.get("limit"), settings.search_default_limit, maximum=200
        )
        movies = await get_library(fastapi_app).search_movies(text, limit)
        return [_dump(MovieRecord, movie) for movie in movies]

    @fastapi_app.get("/api/movies/favorites/{user_id}")
    async def favorite_movies(user_id: str) -> list[dict[str, Any]]:
        rows = await get_library(fastapi_app).favorites(user_id)
        return [_dump(UserMovieWithMovie, row) for row in rows]

    @fastapi_app.get("/api/movies/ratings/{user_id}")
    async def rated_movies(user_id: str) -> list[dict[str, Any]]:
        rows = await get_library(fastapi_app).rated(user_id)
        return [_dump(UserMovieWithMovie, row) for row in rows]

    @fastapi_app.put("/api/movies/updateMovie/{user_id}")
    async def update_movie_by_user(user_id: str, request: Request) -> dict[str, Any]:
        try:
            payload = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid JSON payload") from exc
        movie_id = payload.get("movieId") if isinstance(payload, dict) else None
        if not isinstance(movie_id, str) or not movie_id.strip():
            raise HTTPException(status_code=400, detail="Missing userId or movieId parameter")
        row = await get_library(fastapi_app).update_user_movie(
            user_id, movie_id.strip(), payload
        )
        return {
            "message": "User movie updated successfully",
            "data": _dump(UserMovieRecord, row),
        }

    async def _interaction(
        user_id: str,
        body: InteractionRequest,
        *,
        use_favorite: bool,
        use_rating: bool,
        default_favorite: Any = UNSET,
        require_metadata: bool = False,
    ) -> dict[str, Any]:
        sent = body.model_fields_set
        favorite = default_favorite
        if use_favorite and "favorite" in sent:
            favorite = coerce_favorite(body.favorite)
        rating = UNSET
        if use_rating and "rating" in sent:
            try:
                rating = coerce_rating(body.rating, strict=True)
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
        row = await get_library(fastapi_app).record_interaction(
            user_id,
            body.movie_id,
            favorite=favorite,
            rating=rating,
            metadata=body.metadata(),
            require_metadata=require_metadata,
        )
        return _dump(UserMovieRecord, row)

    @fastapi_app.post("/api/movies/insertFavoriteRating/{user_id}", status_code=201)
    async def insert_favorite_rating(user_id: str, request: Request) -> dict[str, Any]:
        body = await _parse_body(request, InteractionRequest)
        record = await _interaction(
            user_id, body, use_favorite=True, use_rating=True, require_metadata=True
        )

        duration_seconds: int | None = None
        duration_formatted: str | None = None
        if body.duration_seconds is not None and math.isfinite(body.duration_seconds):
            duration_seconds = math.floor(body.duration_seconds)
            duration_formatted = format_duration(duration_seconds)
        elif body.duration:
            duration_formatted = body.duration
        return {
            "message": "Favorite and rating inserted successfully",
            "data": [record],
            "duration": duration_seconds,
            "duration_formatted": duration_formatted,
        }

    @fastapi_app.post("/api/movies/favorite/{user_id}", status_code=201)
    async def add_favorite(user_id: str, request: Request) -> dict[str, Any]:
        body = await _parse_body(request, InteractionRequest)
        record = await _interaction(
            user_id, body, use_favorite=True, use_rating=False, default_favorite=True
        )
        return {"message": "Favorite saved successfully", "data": record}

    @fastapi_app.put("/api/movies/rating/{user_id}")
    async def set_rating(user_id: str, request: Request) -> dict[str, Any]:
        body = await _parse_body(request, InteractionRequest)
        if "rating" not in body.model_fields_set:
            raise HTTPException(status_code=400, detail="rating is required")
        record = await _interaction(user_id, body, use_favorite=False, use_rating=True)
        community = await get_library(fastapi_app).get_movie(body.movie_id)
        return {
            "message": "Rating saved successfully",
            "data": record,
            "movieRating": community.rating,
        }

    @fastapi_app.delete("/api/movies/favorites/{user_id}/{movie_id}")
    async def delete_favorite(user_id: str, movie_id: str) -> dict[str, Any]:
        row = await get_library(fastapi_app).remove_favorite(user_id, movie_id)
        return {"message": "Favorite removed successfully", "data": _dump(UserMovieRecord, row)}

    @fastapi_app.post("/api/movies/addUserMovieComment/{user_id}")
    async def add_comment(user_id: str, request: Request) -> dict[str, Any]:
        body = await _parse_body(request, CommentRequest)
        comment = await get_library(fastapi_app).add_comment(user_id, body.movie_id, body.text)
        return {
            "message": "Comment created and inserted correctly",
            "comment": _dump(CommentRecord, comment),
        }

    @fastapi_app.put("/api/movies/editComment/{comment_id}")
    async def edit_comment(comment_id: int, request: Request) -> dict[str, Any]:
        body = await _parse_body(request, CommentUpdateRequest)
        comment = await get_library(fastapi_app).edit_comment(comment_id, body.content)
        return {
            "message": "Comment updated correctly",
            "updatedComment": _dump(CommentRecord, comment),
        }

    @fastapi_app.delete("/api/movies/deleteComment/{comment_id}")
    async def delete_comment(comment_id: int) -> dict[str, str]:
        await get_library(fastapi_app).delete_comment(comment_id)
        return {"message": "Comment deleted successfully"}

    @fastapi_app.get("/api/movies/getUserMovieComments")
    async def user_movie_comments(request: Request) -> dict[str, Any]:
        user_id = request.query_params.get("userId")
        movie_id = request.query_params.get("movieId")
        if not user_id or not movie_id:
            raise HTTPException(status_code=400, detail="userId and movieId are required")
        comments = await get_library(fastapi_app).comments_for(user_id, movie_id)
        return {
            "message": "Comments accessed correctly",
            "comments": [_dump(CommentRecord, comment) for comment in comments],
        }

    @fastapi_app.get("/api/movies/getComment/{comment_id}")
    async def single_comment(comment_id: int) -> dict[str, Any]:
        comment = await get_library(fastapi_app).get_comment(comment_id)
        return {"message": "Comment accessed correctly", "comment": _dump(CommentRecord, comment)}

    @fastapi_app.get("/api/movies/getMovie")
    async def movie_by_id(request: Request) -> dict[str, Any]:
        movie_id = request.query_params.get("id") or request.query_params.get("movieId")
        if not movie_id:
            raise HTTPException(status_code=400, detail="id is required")
        movie = await get_library(fastapi_app).get_movie(movie_id)
        return _dump(MovieRecord, movie)

    @fastapi_app.get("/api/movies/details/{movie_id}")
    async def movie_details(movie_id: str, request: Request) -> dict[str, Any]:
        details = await get_library(fastapi_app).movie_details(
            movie_id, request.query_params.get("userId")
        )
        return {
            "movie": _dump(MovieRecord, details.movie),
            "rating": details.movie.rating,
            "userRating": details.user_rating,
            "isFavorite": details.is_favorite,
            "comments": [_dump(CommentRecord, comment) for comment in details.comments],
        }


app = create_app()
