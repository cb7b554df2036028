"""Pydantic models describing TMDB records and the service payloads."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils import coerce_show_id, episode_rating_key

POSTER_BASE_URL = "https://image.tmdb.org/t/p/w500"


def _zero_if_missing(value: object) -> object:
    return 0 if value is None else value


class Show(BaseModel):
    """A TV series record as returned by TMDB and stored locally.

    Fields the service does not use are kept as extras so stored snapshots
    round-trip everything the API sent.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: int
    name: str = ""
    poster_path: str | None = None
    vote_average: float = 0.0
    first_air_date: str | None = None
    popularity: float = 0.0
    number_of_seasons: int = 0

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> int:
        return coerce_show_id(value)

    @field_validator("vote_average", "popularity", "number_of_seasons", mode="before")
    @classmethod
    def _default_numbers(cls, value: object) -> object:
        return _zero_if_missing(value)

    @field_validator("name", mode="before")
    @classmethod
    def _default_name(cls, value: object) -> object:
        return "" if value is None else value

    @property
    def passthrough(self) -> dict[str, Any]:
        """Metadata fields carried through from the source untouched."""

        return dict(self.model_extra or {})

    def poster_url(self) -> str | None:
        if not self.poster_path:
            return None
        if self.poster_path.startswith("http"):
            return self.poster_path
        return f"{POSTER_BASE_URL}{self.poster_path}"

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class RatedShow(Show):
    """A show annotated with the user's personal rating."""

    personal_rating: int | None = None

    @classmethod
    def from_show(cls, show: Show, personal_rating: int | None) -> "RatedShow":
        return cls.model_validate(
            {**show.model_dump(mode="json"), "personal_rating": personal_rating}
        )


class Episode(BaseModel):
    """A single episode from a TMDB season listing."""

    model_config = ConfigDict(extra="allow")

    id: int | None = None
    name: str = ""
    episode_number: int
    season_number: int | None = None
    overview: str | None = None
    air_date: str | None = None
    vote_average: float = 0.0
    still_path: str | None = None
    runtime: int | None = None

    @field_validator("vote_average", mode="before")
    @classmethod
    def _default_vote_average(cls, value: object) -> object:
        return _zero_if_missing(value)

    @field_validator("name", mode="before")
    @classmethod
    def _default_name(cls, value: object) -> object:
        return "" if value is None else value


class RolledEpisode(Episode):
    """Episode flattened out of its season with show context attached."""

    show_id: int
    show_name: str
    season_number: int
    personal_rating: int | None = None

    @property
    def rating_key(self) -> str:
        return episode_rating_key(self.show_id, self.season_number, self.episode_number)


class CastMember(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int | None = None
    name: str = ""
    character: str | None = None
    profile_path: str | None = None


class ShowPage(BaseModel):
    """One page of a TMDB listing."""

    results: list[Show] = Field(default_factory=list)
    page: int | None = None
    total_pages: int | None = None

    @field_validator("results", mode="before")
    @classmethod
    def _drop_unusable_results(cls, value: object) -> object:
        """Skip entries without an id rather than failing the whole page."""

        if value is None:
            return []
        if not isinstance(value, list):
            return value
        return [
            entry
            for entry in value
            if isinstance(entry, Show)
            or (isinstance(entry, dict) and entry.get("id") is not None)
        ]


class SeasonEpisodes(BaseModel):
    model_config = ConfigDict(extra="allow")

    season_number: int | None = None
    episodes: list[Episode] = Field(default_factory=list)

    @field_validator("episodes", mode="before")
    @classmethod
    def _episodes_or_empty(cls, value: object) -> object:
        return [] if value is None else value


class Credits(BaseModel):
    cast: list[CastMember] = Field(default_factory=list)

    @field_validator("cast", mode="before")
    @classmethod
    def _cast_or_empty(cls, value: object) -> object:
        return [] if value is None else value


class ShowOverview(BaseModel):
    """Everything the show detail view needs in one payload."""

    show: Show
    cast: list[CastMember] = Field(default_factory=list)
    episodes: dict[int, list[Episode]] = Field(default_factory=dict)
    is_watched: bool = False
    in_watchlist: bool = False
    personal_rating: int | None = None


class EpisodeOverview(BaseModel):
    show_id: int
    episode: Episode
    personal_rating: int | None = None
    is_watched: bool = False


class RatingUpdate(BaseModel):
    """Request body for rating endpoints; ``null`` or ``0`` clears."""

    rating: float | None = None
