"""Paginated home feed with per-filter state and duplicate suppression."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol, Sequence

from ..feed_filters import (
    DEFAULT_FEED_FILTER,
    FeedFilterDefinition,
    resolve_filter,
)
from ..models import Show, ShowPage

logger = logging.getLogger(__name__)


class FeedSource(Protocol):
    async def list_trending(self, window: str = "week", page: int = 1) -> ShowPage: ...

    async def list_newest(self, page: int = 1) -> ShowPage: ...

    async def list_top_rated(self, page: int = 1) -> ShowPage: ...

    async def list_featured(self, page: int = 1) -> ShowPage: ...

    async def list_popular(self, page: int = 1) -> ShowPage: ...


@dataclass
class FeedState:
    """Snapshot of the feed for the active filter."""

    filter: str
    page: int = 1
    total_pages: int | None = None
    items: list[Show] = field(default_factory=list)
    loaded: bool = False
    loading: bool = False
    loading_more: bool = False
    refreshing: bool = False

    @property
    def exhausted(self) -> bool:
        return self.total_pages is not None and self.page >= self.total_pages

    def to_payload(self) -> dict[str, Any]:
        return {
            "filter": self.filter,
            "page": self.page,
            "totalPages": self.total_pages,
            "items": [item.model_dump(mode="json") for item in self.items],
            "loading": self.loading,
            "loadingMore": self.loading_more,
            "refreshing": self.refreshing,
            "exhausted": self.exhausted,
        }


def merge_unique(existing: Sequence[Show], incoming: Iterable[Show]) -> list[Show]:
    """Append ``incoming`` shows whose id is not already in ``existing``."""

    seen = {show.id for show in existing}
    merged = list(existing)
    for show in incoming:
        if show.id in seen:
            continue
        seen.add(show.id)
        merged.append(show)
    return merged


class FeedAggregator:
    """Drives the home feed for one filter at a time.

    Results that arrive after the filter has changed are discarded, so a slow
    page for a previous filter never lands in the current list.
    """

    def __init__(
        self,
        source: FeedSource,
        *,
        default_filter: str = DEFAULT_FEED_FILTER,
        refresh_max_page: int = 5,
        rng: random.Random | None = None,
    ):
        self._source = source
        self._definition = resolve_filter(default_filter)
        self._state = FeedState(filter=self._definition.key)
        self._refresh_max_page = max(1, refresh_max_page)
        self._rng = rng or random.Random()
        self._generation = 0

    @property
    def state(self) -> FeedState:
        return self._state

    async def ensure_loaded(self) -> FeedState:
        """Load page 1 of the active filter if nothing has been loaded yet."""

        if self._state.loaded:
            return self._state
        return await self.select_filter(self._definition.key, force=True)

    async def select_filter(self, key: str, *, force: bool = False) -> FeedState:
        """Switch to ``key`` and replace the list with its first page."""

        definition = resolve_filter(key)
        if (
            not force
            and definition.key == self._state.filter
            and self._state.loaded
        ):
            return self._state

        self._generation += 1
        generation = self._generation
        state = self._state
        state.loading = True
        try:
            page = await self._fetch(definition, 1)
        except Exception:
            logger.exception("Failed to load %s feed", definition.key)
            return self._state
        finally:
            # A newer switch on the same state clears the flag when it lands.
            if generation == self._generation or state is not self._state:
                state.loading = False

        if generation != self._generation:
            logger.debug("Discarding superseded %s feed", definition.key)
            return self._state

        self._definition = definition
        self._state = FeedState(
            filter=definition.key,
            page=page.page or 1,
            total_pages=page.total_pages or None,
            items=merge_unique([], page.results),
            loaded=True,
        )
        return self._state

    async def load_more(self) -> FeedState:
        """Fetch the next page and append the shows not already listed."""

        state = self._state
        if state.loading_more:
            return state
        if state.exhausted:
            return state

        generation = self._generation
        next_page = state.page + 1
        state.loading_more = True
        try:
            page = await self._fetch(self._definition, next_page)
        except Exception:
            logger.exception(
                "Failed to load page %s of %s feed", next_page, state.filter
            )
            return state
        finally:
            state.loading_more = False

        if generation != self._generation or state is not self._state:
            logger.debug("Discarding stale %s page %s", state.filter, next_page)
            return self._state
        if not page.results:
            return state

        state.items = merge_unique(state.items, page.results)
        state.page = page.page or next_page
        state.total_pages = page.total_pages or None
        return state

    async def refresh(self) -> FeedState:
        """Pull-to-refresh.

        Newest and Highest Rating keep their current list. Trending reloads
        page 1. Featured and Popular jump to a random early page so the list
        changes between refreshes. A refresh requested while a filter switch
        is loading is ignored so the switch is never superseded.
        """

        definition = self._definition
        state = self._state
        if not definition.refreshable:
            return state
        if state.refreshing or state.loading:
            return state

        if definition.randomised_refresh:
            target_page = self._rng.randint(1, self._refresh_max_page)
        else:
            target_page = 1

        self._generation += 1
        generation = self._generation
        state.refreshing = True
        try:
            page = await self._fetch(definition, target_page)
        except Exception:
            logger.exception("Failed to refresh %s feed", definition.key)
            return state
        finally:
            state.refreshing = False

        if generation != self._generation:
            return self._state

        self._state = FeedState(
            filter=definition.key,
            page=page.page or target_page,
            total_pages=page.total_pages or None,
            items=merge_unique([], page.results),
            loaded=True,
        )
        return self._state

    async def _fetch(self, definition: FeedFilterDefinition, page: int) -> ShowPage:
        if definition.key == "trending":
            return await self._source.list_trending("week", page)
        if definition.key == "newest":
            return await self._source.list_newest(page)
        if definition.key == "highest":
            return await self._source.list_top_rated(page)
        if definition.key == "featured":
            return await self._source.list_featured(page)
        return await self._source.list_popular(page)
