"""Client for the Pexels stock video API used as the external catalog source."""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class PexelsError(RuntimeError):
    """Raised when Pexels cannot be reached or answers with an error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PexelsClient:
    """Thin wrapper around the Pexels video endpoints."""

    def __init__(self, api_key: str | None, http_client: httpx.AsyncClient):
        if not api_key:
            raise ValueError("Pexels API key is required when initialising PexelsClient")
        self._api_key = api_key
        self._client = http_client

    async def search(self, query: str, per_page: int = 10) -> list[dict[str, Any]]:
        """Return videos matching ``query``."""

        return await self._fetch_videos(
            "/videos/search", {"query": query, "per_page": per_page}
        )

    async def popular(self, per_page: int = 10) -> list[dict[str, Any]]:
        """Return the currently popular videos."""

        return await self._fetch_videos("/videos/popular", {"per_page": per_page})

    async def _fetch_videos(
        self, path: str, params: dict[str, Any]
    ) -> list[dict[str, Any]]:
        try:
            response = await self._client.get(
                path, params=params, headers={"Authorization": self._api_key}
            )
        except httpx.HTTPError as exc:
            logger.warning("Pexels request to %s failed: %s", path, exc)
            raise PexelsError(f"Pexels request failed: {exc}") from exc

        if response.status_code >= 400:
            logger.warning(
                "Pexels %s answered %s: %s", path, response.status_code, response.text
            )
            raise PexelsError(
                f"Pexels request failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise PexelsError("Pexels returned a malformed payload") from exc

        videos = payload.get("videos") if isinstance(payload, dict) else None
        if not isinstance(videos, list):
            return []
        return [video for video in videos if isinstance(video, dict)]
