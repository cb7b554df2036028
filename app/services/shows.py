"""Show and episode detail views combining TMDB data with personal state."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..models import EpisodeOverview, ShowOverview, ShowPage
from ..utils import coerce_show_id
from .episodes import EpisodeRollup
from .tmdb import TMDBClient
from .watch_state import WatchState

logger = logging.getLogger(__name__)


class ShowService:
    """Assembles the payloads behind the show, episode and search views."""

    def __init__(
        self,
        tmdb: TMDBClient,
        watch_state: WatchState,
        rollup: EpisodeRollup,
    ):
        self._tmdb = tmdb
        self._watch_state = watch_state
        self._rollup = rollup

    async def get_show(self, show_id: Any) -> ShowOverview:
        """Details, cast, episodes by season and the user's status for a show.

        A failed details fetch propagates to the caller. Missing credits only
        leave the cast empty.
        """

        resolved_id = coerce_show_id(show_id)
        details, credits = await asyncio.gather(
            self._tmdb.get_show_details(resolved_id),
            self._tmdb.get_show_credits(resolved_id),
            return_exceptions=True,
        )
        if isinstance(details, BaseException):
            raise details
        if isinstance(credits, BaseException):
            logger.warning("Credits unavailable for show %s: %s", resolved_id, credits)
            credits = []

        episodes = await self._rollup.episodes_by_season(details)
        is_watched, in_watchlist, rating = await asyncio.gather(
            self._watch_state.is_in_watched(resolved_id),
            self._watch_state.is_in_watchlist(resolved_id),
            self._watch_state.get_show_rating(resolved_id),
        )
        return ShowOverview(
            show=details,
            cast=credits,
            episodes=episodes,
            is_watched=is_watched,
            in_watchlist=in_watchlist,
            personal_rating=rating,
        )

    async def get_episode(
        self, show_id: Any, season_number: int, episode_number: int
    ) -> EpisodeOverview:
        resolved_id = coerce_show_id(show_id)
        episode = await self._tmdb.get_episode_details(
            resolved_id, season_number, episode_number
        )
        rating = await self._watch_state.get_episode_rating(
            resolved_id, season_number, episode_number
        )
        is_watched = await self._watch_state.is_in_watched(resolved_id)
        return EpisodeOverview(
            show_id=resolved_id,
            episode=episode,
            personal_rating=rating,
            is_watched=is_watched,
        )

    async def search(self, query: str | None) -> ShowPage:
        """Search by title; a blank query lists popular shows instead."""

        cleaned = (query or "").strip()
        if not cleaned:
            return await self._tmdb.list_popular(1)
        return await self._tmdb.search(cleaned)
