"""Client for the read-only TMDB metadata API."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Mapping, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..config import Settings
from ..models import CastMember, Credits, Episode, SeasonEpisodes, Show, ShowPage

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# TMDB's numeric identifier for the "Scripted" show type.
SCRIPTED_SHOW_TYPE = "4"


class MetadataSourceError(RuntimeError):
    """Raised when TMDB cannot be reached or returns an unusable response."""


class NotFoundError(MetadataSourceError):
    """Raised when TMDB reports the requested record does not exist."""


class TMDBClient:
    """Thin wrapper around the TMDB v3 TV endpoints."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client

    async def list_popular(self, page: int = 1) -> ShowPage:
        return await self._get_page("/tv/popular", page, {"language": self._settings.tmdb_language})

    async def list_trending(self, window: str = "week", page: int = 1) -> ShowPage:
        if window not in {"day", "week"}:
            raise ValueError("Trending window must be 'day' or 'week'")
        return await self._get_page(f"/trending/tv/{window}", page)

    async def list_top_rated(self, page: int = 1) -> ShowPage:
        return await self._get_page(
            "/tv/top_rated", page, {"language": self._settings.tmdb_language}
        )

    async def discover(
        self, params: Mapping[str, Any] | None = None, page: int = 1
    ) -> ShowPage:
        return await self._get_page("/discover/tv", page, dict(params or {}))

    async def list_newest(self, page: int = 1, *, today: date | None = None) -> ShowPage:
        """Scripted shows with an episode aired inside the recent window."""

        return await self.discover(self.newest_query(today=today), page)

    async def list_featured(self, page: int = 1) -> ShowPage:
        return await self.discover(None, page)

    def newest_query(self, *, today: date | None = None) -> dict[str, Any]:
        end = today or date.today()
        start = end - timedelta(days=self._settings.newest_window_days)
        return {
            "sort_by": "last_air_date.desc",
            "last_air_date.gte": start.isoformat(),
            "last_air_date.lte": end.isoformat(),
            "include_null_first_air_dates": "false",
            "with_type": SCRIPTED_SHOW_TYPE,
            "vote_count.gte": self._settings.newest_min_votes,
        }

    async def search(self, query: str) -> ShowPage:
        payload = await self._get("/search/tv", {"query": query})
        return self._validate(ShowPage, payload, "/search/tv")

    async def get_show_details(self, show_id: int) -> Show:
        path = f"/tv/{show_id}"
        payload = await self._get(path)
        return self._validate(Show, payload, path)

    async def get_show_credits(self, show_id: int) -> list[CastMember]:
        path = f"/tv/{show_id}/credits"
        payload = await self._get(path)
        return self._validate(Credits, payload, path).cast

    async def get_season_episodes(self, show_id: int, season_number: int) -> list[Episode]:
        path = f"/tv/{show_id}/season/{season_number}"
        payload = await self._get(path)
        return self._validate(SeasonEpisodes, payload, path).episodes

    async def get_episode_details(
        self, show_id: int, season_number: int, episode_number: int
    ) -> Episode:
        path = f"/tv/{show_id}/season/{season_number}/episode/{episode_number}"
        payload = await self._get(path)
        return self._validate(Episode, payload, path)

    async def _get_page(
        self, path: str, page: int, params: dict[str, Any] | None = None
    ) -> ShowPage:
        query = dict(params or {})
        query["page"] = max(1, int(page))
        payload = await self._get(path, query)
        return self._validate(ShowPage, payload, path)

    async def _get(
        self, path: str, params: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        query: dict[str, Any] = {"api_key": self._settings.tmdb_api_key}
        if params:
            query.update(params)

        try:
            response = await self._client.get(path, params=query)
        except httpx.HTTPError as exc:
            raise MetadataSourceError(f"TMDB request to {path} failed: {exc}") from exc

        if response.status_code == 404:
            raise NotFoundError(f"TMDB has no record at {path}")
        if response.status_code >= 400:
            logger.warning(
                "TMDB request %s failed with %s: %s",
                path,
                response.status_code,
                response.text,
            )
            raise MetadataSourceError(
                f"TMDB request to {path} returned {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise MetadataSourceError(f"TMDB returned non-JSON content for {path}") from exc
        if not isinstance(data, dict):
            raise MetadataSourceError(f"Unexpected TMDB response structure for {path}")
        return data

    @staticmethod
    def _validate(model: type[ModelT], payload: dict[str, Any], path: str) -> ModelT:
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise MetadataSourceError(f"Unexpected TMDB payload for {path}: {exc}") from exc
