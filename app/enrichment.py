"""Deterministic mapping of Pexels video records onto catalog entries.

Everything here is pure: the output depends only on the raw record and the
source options, and no input shape makes these helpers raise.  Missing or
malformed fields come back as ``None``.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from .models import CatalogEntry, MovieSummary
from .utils import round_one_decimal

EXTERNAL_ID_PREFIX = "px-"
UNKNOWN_DIRECTOR = "Desconocido"
TARGET_CONTAINER = "mp4"
# Plain decimal notation only; Python-only spellings such as "1_000" seed 0.
_DECIMAL_RE = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?\s*$")

# Indexed by the last digit of the Pexels id.
GENRE_TABLE: tuple[str, ...] = (
    "accion",
    "drama",
    "comedia",
    "thriller",
    "terror",
    "ciencia ficcion",
    "accion",
    "drama",
    "comedia",
    "thriller",
)

SYNTHETIC_RATING_MIN = 2.1
SYNTHETIC_RATING_MAX = 5.0


@dataclass(frozen=True, slots=True)
class SourceOptions:
    """How to pick the playable file; ``max_width`` wins over ``quality``."""

    quality: str = "sd"
    max_width: float | None = None


def local_id(external_id: Any) -> str | None:
    if external_id is None:
        return None
    return f"{EXTERNAL_ID_PREFIX}{external_id}"


def external_number(movie_id: str) -> int | None:
    """Return the Pexels id behind a namespaced local id, if it is one."""

    if not movie_id.startswith(EXTERNAL_ID_PREFIX):
        return None
    tail = movie_id[len(EXTERNAL_ID_PREFIX):]
    return int(tail) if tail.isdigit() else None


def numeric_seed(external_id: Any) -> int:
    """Absolute truncated integer form of the id; unparsable ids seed to 0."""

    if isinstance(external_id, int) and not isinstance(external_id, bool):
        return abs(external_id)
    if isinstance(external_id, str) and not _DECIMAL_RE.match(external_id):
        return 0
    try:
        value = float(external_id)
    except (TypeError, ValueError, OverflowError):
        return 0
    if not math.isfinite(value):
        return 0
    return abs(math.trunc(value))


def genre_for_seed(seed: int) -> str:
    return GENRE_TABLE[seed % len(GENRE_TABLE)]


def synthetic_rating(seed: int) -> float:
    """Scale the three digits before the last one onto [2.1, 5.0]."""

    window = (seed // 10) % 1000
    span = SYNTHETIC_RATING_MAX - SYNTHETIC_RATING_MIN
    value = SYNTHETIC_RATING_MIN + (window / 999) * span
    clamped = max(SYNTHETIC_RATING_MIN, min(SYNTHETIC_RATING_MAX, value))
    return round_one_decimal(clamped)


def format_duration(seconds: float) -> str:
    """Format whole seconds as ``"2h 14m"``, ``"14m"`` or ``"42s"``."""

    hours = math.floor(seconds / 3600)
    minutes = math.floor((seconds % 3600) / 60)
    secs = math.floor(seconds % 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m"
    return f"{secs}s"


def _width(variant: Mapping[str, Any]) -> float:
    width = variant.get("width")
    if isinstance(width, (int, float)) and not isinstance(width, bool) and math.isfinite(width):
        return width
    return 0


def _link(variant: Mapping[str, Any] | None) -> str | None:
    if not variant:
        return None
    link = variant.get("link")
    return link if isinstance(link, str) and link else None


def select_source(
    files: Sequence[Any] | None, options: SourceOptions | None = None
) -> str | None:
    """Pick the playable URL among the video's file variants."""

    options = options or SourceOptions()
    candidates = [
        variant
        for variant in files or ()
        if isinstance(variant, Mapping)
        and isinstance(variant.get("file_type"), str)
        and TARGET_CONTAINER in variant["file_type"].lower()
    ]
    if not candidates:
        return None

    # sorted() is stable, so equal widths keep their original order.
    by_width = sorted(candidates, key=_width)

    max_width = options.max_width
    if isinstance(max_width, (int, float)) and max_width > 0:
        within = [variant for variant in by_width if _width(variant) <= max_width]
        return _link(within[0] if within else by_width[0])

    quality = options.quality or "sd"
    if quality == "low":
        return _link(by_width[0])
    if quality == "sd":
        sd = next((v for v in candidates if v.get("quality") == "sd"), None)
        return _link(sd) or _link(by_width[0]) or _link(candidates[0])
    hd = next((v for v in candidates if v.get("quality") == "hd"), None)
    return _link(hd) or _link(candidates[0])


def _author(video: Mapping[str, Any]) -> str | None:
    user = video.get("user")
    if isinstance(user, Mapping):
        name = user.get("name")
        if isinstance(name, str) and name != "":
            return name
    return None


def _poster(video: Mapping[str, Any]) -> str | None:
    image = video.get("image")
    if isinstance(image, str) and image:
        return image
    pictures = video.get("video_pictures")
    if isinstance(pictures, Sequence) and pictures and isinstance(pictures[0], Mapping):
        picture = pictures[0].get("picture")
        if isinstance(picture, str) and picture:
            return picture
    return None


def _title(video: Mapping[str, Any]) -> str:
    author = _author(video)
    base = f"Video {video.get('id')}"
    return f"{base} by {author}" if author else base


def _files(video: Mapping[str, Any]) -> Sequence[Any]:
    files = video.get("video_files")
    return files if isinstance(files, list) else []


def map_video(video: Any, options: SourceOptions | None = None) -> CatalogEntry:
    """Map a raw Pexels video onto a :class:`CatalogEntry`."""

    if not isinstance(video, Mapping):
        video = {}
    external_id = video.get("id")
    seed = numeric_seed(external_id)

    duration = video.get("duration")
    formatted: str | None = None
    if (
        isinstance(duration, (int, float))
        and not isinstance(duration, bool)
        and math.isfinite(duration)
    ):
        formatted = format_duration(duration)

    url = video.get("url")
    return CatalogEntry(
        id=local_id(external_id),
        title=_title(video),
        rating=synthetic_rating(seed),
        duration=formatted,
        genre=genre_for_seed(seed),
        description=url if isinstance(url, str) and url else f"Pexels video {external_id}",
        poster=_poster(video),
        source=select_source(_files(video), options),
        director=_author(video) or UNKNOWN_DIRECTOR,
    )


def summarize_video(video: Any, genre: str) -> MovieSummary:
    """Compact summary for genre rows; the requested genre is echoed back."""

    if not isinstance(video, Mapping):
        video = {}
    return MovieSummary(
        id=local_id(video.get("id")),
        title=_title(video),
        thumbnail_url=_poster(video),
        genre=genre,
        source=select_source(_files(video), SourceOptions(quality="sd")),
    )
