"""Home feed filter definitions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


FeedFilterKey = Literal["trending", "newest", "highest", "featured", "popular"]


@dataclass(frozen=True)
class FeedFilterDefinition:
    """Describes a filter tab shown above the home feed."""

    key: FeedFilterKey
    label: str
    description: str
    refreshable: bool
    randomised_refresh: bool = False


FEED_FILTERS: tuple[FeedFilterDefinition, ...] = (
    FeedFilterDefinition(
        key="trending",
        label="Trending",
        description="Shows trending on TMDB this week.",
        refreshable=True,
    ),
    FeedFilterDefinition(
        key="newest",
        label="Newest",
        description="Scripted shows that aired an episode recently, latest first.",
        refreshable=False,
    ),
    FeedFilterDefinition(
        key="highest",
        label="Highest Rating",
        description="The top rated shows on TMDB.",
        refreshable=False,
    ),
    FeedFilterDefinition(
        key="featured",
        label="Featured",
        description="A rotating selection from TMDB discovery.",
        refreshable=True,
        randomised_refresh=True,
    ),
)

# Not offered as a tab; used when no known filter is selected.
POPULAR_FILTER = FeedFilterDefinition(
    key="popular",
    label="Popular",
    description="Currently popular shows on TMDB.",
    refreshable=True,
    randomised_refresh=True,
)

FEED_FILTER_KEYS: tuple[str, ...] = tuple(definition.key for definition in FEED_FILTERS)
DEFAULT_FEED_FILTER: FeedFilterKey = "trending"

_DEFINITION_MAP: dict[str, FeedFilterDefinition] = {
    definition.key: definition for definition in (*FEED_FILTERS, POPULAR_FILTER)
}


def normalise_filter_key(value: object) -> str:
    """Return a lower-case, trimmed filter key."""

    return str(value or "").strip().replace("_", "-").lower()


def resolve_filter(value: object) -> FeedFilterDefinition:
    """Return the definition for ``value``, falling back to Popular."""

    return _DEFINITION_MAP.get(normalise_filter_key(value), POPULAR_FILTER)


def is_known_filter(value: object) -> bool:
    return normalise_filter_key(value) in _DEFINITION_MAP
