"""Cross-season episode rollups annotated with personal ratings."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Literal, Protocol, Sequence, TypeVar

from ..models import Episode, RatedShow, RolledEpisode, Show
from ..utils import coerce_show_id
from .watch_state import WatchState

logger = logging.getLogger(__name__)

SortOrder = Literal[
    "date_added",
    "personal_rating_high",
    "personal_rating_low",
    "tmdb_rating_high",
    "tmdb_rating_low",
    "title",
]
SORT_ORDERS: tuple[str, ...] = (
    "date_added",
    "personal_rating_high",
    "personal_rating_low",
    "tmdb_rating_high",
    "tmdb_rating_low",
    "title",
)
EPISODE_SORT_ORDERS: tuple[str, ...] = tuple(
    order for order in SORT_ORDERS if order != "title"
)

SortableT = TypeVar("SortableT", RolledEpisode, RatedShow)


class EpisodeSource(Protocol):
    async def get_show_details(self, show_id: int) -> Show: ...

    async def get_season_episodes(
        self, show_id: int, season_number: int
    ) -> list[Episode]: ...


class EpisodeRollup:
    """Flattens a show's seasons into one episode list.

    Seasons are fetched with at most ``concurrency`` requests in flight. A
    season that fails to load is logged and left out; the remaining seasons
    keep their order.
    """

    def __init__(
        self,
        source: EpisodeSource,
        watch_state: WatchState,
        *,
        concurrency: int = 3,
    ):
        self._source = source
        self._watch_state = watch_state
        self._concurrency = max(1, concurrency)

    async def episodes_by_season(self, show: Show) -> dict[int, list[Episode]]:
        """Return the episodes of every season that loaded, keyed by number."""

        semaphore = asyncio.Semaphore(self._concurrency)
        seasons = range(1, (show.number_of_seasons or 0) + 1)

        async def _load(season_number: int) -> list[Episode] | None:
            async with semaphore:
                try:
                    return await self._source.get_season_episodes(show.id, season_number)
                except Exception:
                    logger.exception(
                        "Error fetching season %s of show %s", season_number, show.id
                    )
                    return None

        results = await asyncio.gather(*(_load(season) for season in seasons))
        return {
            season: episodes
            for season, episodes in zip(seasons, results)
            if episodes is not None
        }

    async def rollup_show(self, show: Show) -> list[RolledEpisode]:
        grouped = await self.episodes_by_season(show)
        rolled: list[RolledEpisode] = []
        for season_number in sorted(grouped):
            episodes = grouped[season_number]
            ratings = await asyncio.gather(
                *(
                    self._watch_state.get_episode_rating(
                        show.id, season_number, episode.episode_number
                    )
                    for episode in episodes
                )
            )
            for episode, rating in zip(episodes, ratings):
                rolled.append(
                    RolledEpisode.model_validate(
                        {
                            **episode.model_dump(mode="json"),
                            "show_id": show.id,
                            "show_name": show.name,
                            "season_number": season_number,
                            "personal_rating": rating,
                        }
                    )
                )
        return rolled

    async def rollup_show_id(self, show_id: Any) -> list[RolledEpisode]:
        try:
            show = await self._source.get_show_details(coerce_show_id(show_id))
        except Exception:
            logger.exception("Error fetching show %s for episode rollup", show_id)
            return []
        return await self.rollup_show(show)

    async def rollup_watched(self) -> list[RolledEpisode]:
        """Episodes of every watched show, show by show in date-added order."""

        rolled: list[RolledEpisode] = []
        for show in await self._watch_state.get_watched():
            rolled.extend(await self.rollup_show(show))
        return rolled


def _rating_or_zero(value: float | int | None) -> float:
    return float(value or 0)


def _sort_key(order: str) -> tuple[Callable[[Any], Any], bool] | None:
    if order == "personal_rating_high":
        return (lambda item: _rating_or_zero(item.personal_rating)), True
    if order == "personal_rating_low":
        return (lambda item: _rating_or_zero(item.personal_rating)), False
    if order == "tmdb_rating_high":
        return (lambda item: _rating_or_zero(item.vote_average)), True
    if order == "tmdb_rating_low":
        return (lambda item: _rating_or_zero(item.vote_average)), False
    if order == "title":
        return (lambda item: (item.name or "").casefold()), False
    if order == "date_added":
        return None
    raise ValueError(f"Unknown sort order: {order}")


def _sorted(items: Sequence[SortableT], order: str) -> list[SortableT]:
    sort_key = _sort_key(order)
    if sort_key is None:
        return list(items)
    key, descending = sort_key
    # sorted() is stable for reverse=True too, so ties keep their original order.
    return sorted(items, key=key, reverse=descending)


def sort_episodes(items: Sequence[RolledEpisode], order: str = "date_added") -> list[RolledEpisode]:
    if order not in EPISODE_SORT_ORDERS:
        raise ValueError(f"Unknown sort order: {order}")
    return _sorted(items, order)


def sort_shows(items: Sequence[RatedShow], order: str = "date_added") -> list[RatedShow]:
    return _sorted(items, order)
