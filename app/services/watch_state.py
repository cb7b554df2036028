"""Personal watch state: watched shows, watchlist and personal ratings."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping, Protocol

from pydantic import ValidationError

from ..config import StorageKeys
from ..models import RatedShow, Show
from ..utils import (
    clamp_rating,
    coerce_show_id,
    episode_rating_key,
    is_cleared_rating,
    show_rating_prefix,
)
from .kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class ShowDetailsSource(Protocol):
    async def get_show_details(self, show_id: int) -> Show: ...


class WatchState:
    """Owns the four locally persisted collections.

    Each collection lives under its own key and every mutation is a
    read-modify-write of that one key. Storage failures never leave this
    class: reads degrade to empty values and failed writes are logged.
    """

    def __init__(
        self,
        store: KeyValueStore,
        keys: StorageKeys | None = None,
        metadata: ShowDetailsSource | None = None,
    ):
        self._store = store
        self._keys = keys or StorageKeys()
        self._metadata = metadata

    # Watched

    async def get_watched(self) -> list[Show]:
        return await self._read_shows(self._keys.watched, "watched shows")

    async def add_to_watched(self, show: Show | Mapping[str, Any]) -> None:
        await self._add_show(self._keys.watched, show, "watched")

    async def remove_from_watched(self, show_id: Any) -> None:
        await self._remove_show(self._keys.watched, show_id, "watched")

    async def is_in_watched(self, show_id: Any) -> bool:
        return await self._contains(self._keys.watched, show_id, "watched")

    async def toggle_watched(self, show: Show | Mapping[str, Any]) -> bool:
        """Flip watched membership and return the new state."""

        snapshot = self._to_show(show)
        if snapshot is None:
            return False
        if await self.is_in_watched(snapshot.id):
            await self.remove_from_watched(snapshot.id)
            return False
        await self.add_to_watched(snapshot)
        return True

    async def get_watched_with_ratings(self) -> list[RatedShow]:
        """Watched shows in date-added order with personal ratings attached."""

        watched = await self.get_watched()
        ratings = await asyncio.gather(
            *(self.get_show_rating(show.id) for show in watched)
        )
        return [
            RatedShow.from_show(show, rating) for show, rating in zip(watched, ratings)
        ]

    # Watchlist

    async def get_watchlist(self) -> list[Show]:
        return await self._read_shows(self._keys.watchlist, "watchlist")

    async def add_to_watchlist(self, show: Show | Mapping[str, Any]) -> None:
        await self._add_show(self._keys.watchlist, show, "watchlist")

    async def remove_from_watchlist(self, show_id: Any) -> None:
        await self._remove_show(self._keys.watchlist, show_id, "watchlist")

    async def is_in_watchlist(self, show_id: Any) -> bool:
        return await self._contains(self._keys.watchlist, show_id, "watchlist")

    async def toggle_watchlist(self, show: Show | Mapping[str, Any]) -> bool:
        snapshot = self._to_show(show)
        if snapshot is None:
            return False
        if await self.is_in_watchlist(snapshot.id):
            await self.remove_from_watchlist(snapshot.id)
            return False
        await self.add_to_watchlist(snapshot)
        return True

    # Show ratings

    async def get_show_rating(self, show_id: Any) -> int | None:
        try:
            key = str(coerce_show_id(show_id))
        except (TypeError, ValueError):
            logger.warning("Ignoring rating lookup for invalid show id %r", show_id)
            return None
        ratings = await self._read_ratings(self._keys.show_ratings, "show ratings")
        return ratings.get(key)

    async def set_show_rating(self, show_id: Any, rating: float | int | None) -> bool:
        try:
            key = str(coerce_show_id(show_id))
        except (TypeError, ValueError):
            logger.warning("Ignoring rating for invalid show id %r", show_id)
            return False
        return await self._write_rating(self._keys.show_ratings, key, rating, "show rating")

    async def rate_show(
        self, show: Show | Mapping[str, Any] | int | str, rating: float | int | None
    ) -> None:
        """Store a show rating; a non-empty rating also marks the show watched.

        ``show`` may be a snapshot or a bare id. With a bare id the snapshot
        for the watched entry is fetched from the metadata source, and only
        when the show is not watched yet. Clearing the rating leaves watched
        status alone.
        """

        if isinstance(show, (int, str)):
            show_id: Any = show
            snapshot = None
        else:
            snapshot = self._to_show(show)
            if snapshot is None:
                return
            show_id = snapshot.id
        stored = await self.set_show_rating(show_id, rating)
        if not stored or is_cleared_rating(rating):
            return
        await self._mark_watched(show_id, snapshot)

    # Episode ratings

    async def get_episode_rating(
        self, show_id: Any, season_number: Any, episode_number: Any
    ) -> int | None:
        key = self._episode_key(show_id, season_number, episode_number)
        if key is None:
            return None
        ratings = await self._read_ratings(self._keys.episode_ratings, "episode ratings")
        return ratings.get(key)

    async def set_episode_rating(
        self,
        show_id: Any,
        season_number: Any,
        episode_number: Any,
        rating: float | int | None,
    ) -> bool:
        key = self._episode_key(show_id, season_number, episode_number)
        if key is None:
            return False
        return await self._write_rating(
            self._keys.episode_ratings, key, rating, "episode rating"
        )

    async def get_show_episode_ratings(self, show_id: Any) -> dict[str, int]:
        """Return every stored episode rating belonging to one show."""

        try:
            prefix = show_rating_prefix(coerce_show_id(show_id))
        except (TypeError, ValueError):
            return {}
        ratings = await self._read_ratings(self._keys.episode_ratings, "episode ratings")
        return {key: value for key, value in ratings.items() if key.startswith(prefix)}

    async def rate_episode(
        self,
        show_id: Any,
        season_number: Any,
        episode_number: Any,
        rating: float | int | None,
    ) -> None:
        """Store an episode rating; a non-empty rating marks the parent show watched.

        The parent show snapshot is fetched fresh from the metadata source so
        the watched entry carries full details. If that fetch fails the
        rating is kept and the show is simply not added.
        """

        stored = await self.set_episode_rating(
            show_id, season_number, episode_number, rating
        )
        if not stored or is_cleared_rating(rating):
            return
        await self._mark_watched(show_id, None)

    async def _mark_watched(self, show_id: Any, snapshot: Show | None) -> None:
        if await self.is_in_watched(show_id):
            return
        if snapshot is None:
            if self._metadata is None:
                logger.warning(
                    "No metadata source configured; cannot mark show %s watched",
                    show_id,
                )
                return
            try:
                snapshot = await self._metadata.get_show_details(coerce_show_id(show_id))
            except Exception:
                logger.exception("Failed to fetch show %s while rating it", show_id)
                return
        await self.add_to_watched(snapshot)

    # Storage helpers

    async def _read_json(self, key: str, label: str) -> Any:
        try:
            raw = await self._store.get(key)
        except Exception:
            logger.exception("Error reading %s", label)
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.error("Stored %s are not valid JSON; treating as empty", label)
            return None

    async def _write_json(self, key: str, value: Any, label: str) -> None:
        try:
            await self._store.set(key, json.dumps(value))
        except Exception:
            logger.exception("Error saving %s", label)

    async def _read_shows(self, key: str, label: str) -> list[Show]:
        data = await self._read_json(key, label)
        if data is None:
            return []
        if not isinstance(data, list):
            logger.error("Stored %s are not a list; treating as empty", label)
            return []
        shows: list[Show] = []
        for entry in data:
            try:
                shows.append(Show.model_validate(entry))
            except (ValidationError, TypeError, ValueError):
                logger.warning("Skipping unreadable %s entry: %r", label, entry)
        return shows

    async def _add_show(
        self, key: str, show: Show | Mapping[str, Any], label: str
    ) -> None:
        snapshot = self._to_show(show)
        if snapshot is None:
            return
        shows = await self._read_shows(key, label)
        if any(existing.id == snapshot.id for existing in shows):
            return
        shows.append(snapshot)
        await self._write_json(key, [entry.to_storage() for entry in shows], label)

    async def _remove_show(self, key: str, show_id: Any, label: str) -> None:
        try:
            target = coerce_show_id(show_id)
        except (TypeError, ValueError):
            logger.warning("Ignoring %s removal for invalid show id %r", label, show_id)
            return
        shows = await self._read_shows(key, label)
        remaining = [entry for entry in shows if entry.id != target]
        await self._write_json(key, [entry.to_storage() for entry in remaining], label)

    async def _contains(self, key: str, show_id: Any, label: str) -> bool:
        try:
            target = coerce_show_id(show_id)
        except (TypeError, ValueError):
            return False
        shows = await self._read_shows(key, label)
        return any(entry.id == target for entry in shows)

    async def _read_ratings(self, key: str, label: str) -> dict[str, int]:
        data = await self._read_json(key, label)
        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.error("Stored %s are not a mapping; treating as empty", label)
            return {}
        ratings: dict[str, int] = {}
        for rating_key, value in data.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            ratings[str(rating_key)] = int(value)
        return ratings

    async def _write_rating(
        self, key: str, rating_key: str, rating: float | int | None, label: str
    ) -> bool:
        ratings = await self._read_ratings(key, label)
        if is_cleared_rating(rating):
            ratings.pop(rating_key, None)
        else:
            try:
                ratings[rating_key] = clamp_rating(rating)  # type: ignore[arg-type]
            except (TypeError, ValueError, OverflowError):
                logger.warning("Ignoring invalid %s %r for %s", label, rating, rating_key)
                return False
        await self._write_json(key, ratings, label)
        return True

    @staticmethod
    def _episode_key(show_id: Any, season_number: Any, episode_number: Any) -> str | None:
        try:
            return episode_rating_key(
                coerce_show_id(show_id), int(season_number), int(episode_number)
            )
        except (TypeError, ValueError):
            logger.warning(
                "Ignoring invalid episode reference %r/%r/%r",
                show_id,
                season_number,
                episode_number,
            )
            return None

    @staticmethod
    def _to_show(show: Show | Mapping[str, Any]) -> Show | None:
        if isinstance(show, Show):
            if type(show) is not Show:
                # Drop annotations such as personal_rating from the snapshot.
                data = show.model_dump(mode="json")
                data.pop("personal_rating", None)
                return Show.model_validate(data)
            return show
        try:
            return Show.model_validate(dict(show))
        except (ValidationError, TypeError, ValueError):
            logger.warning("Ignoring show without a usable id: %r", show)
            return None
