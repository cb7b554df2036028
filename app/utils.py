"""Utility helpers for the ShowTrack service."""

from __future__ import annotations

import math
from typing import Any


MIN_RATING = 1
MAX_RATING = 10


def coerce_show_id(value: Any) -> int:
    """Return ``value`` as an integer show identifier.

    TMDB ids arrive as numbers from the API but as strings from route
    parameters and stored rating keys, so every comparison goes through here.
    """

    if isinstance(value, bool):
        raise ValueError("Show id must be numeric")
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError("Show id must be finite")
        return int(value)
    return int(str(value).strip())


def clamp_rating(rating: float | int) -> int:
    """Clamp a personal rating into the 1-10 range."""

    return int(min(MAX_RATING, max(MIN_RATING, round(rating))))


def is_cleared_rating(rating: float | int | None) -> bool:
    """``None`` and ``0`` both mean "remove the rating"."""

    return rating is None or rating == 0


def episode_rating_key(show_id: Any, season_number: Any, episode_number: Any) -> str:
    """Return the composite storage key for an episode rating."""

    return f"{show_id}_{season_number}_{episode_number}"


def show_rating_prefix(show_id: Any) -> str:
    return f"{show_id}_"
