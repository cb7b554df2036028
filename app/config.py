"""Application configuration models."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .feed_filters import DEFAULT_FEED_FILTER, is_known_filter, normalise_filter_key


@dataclass(frozen=True)
class StorageKeys:
    """Names of the keys holding each persisted collection."""

    watched: str = "watched_shows"
    watchlist: str = "watchlist_shows"
    show_ratings: str = "show_ratings"
    episode_ratings: str = "episode_ratings"


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="ShowTrack", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_language: str = Field(default="en-US", alias="TMDB_LANGUAGE")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./showtrack.db", alias="DATABASE_URL"
    )

    watched_key: str = Field(default="watched_shows", alias="WATCHED_KEY")
    watchlist_key: str = Field(default="watchlist_shows", alias="WATCHLIST_KEY")
    show_ratings_key: str = Field(default="show_ratings", alias="SHOW_RATINGS_KEY")
    episode_ratings_key: str = Field(
        default="episode_ratings", alias="EPISODE_RATINGS_KEY"
    )

    default_feed_filter: str = Field(
        default=DEFAULT_FEED_FILTER, alias="DEFAULT_FEED_FILTER"
    )
    newest_window_days: int = Field(
        default=60, alias="NEWEST_WINDOW_DAYS", ge=1, le=3_650
    )
    newest_min_votes: int = Field(default=10, alias="NEWEST_MIN_VOTES", ge=0)
    refresh_max_page: int = Field(default=5, alias="REFRESH_MAX_PAGE", ge=1, le=500)
    season_fetch_concurrency: int = Field(
        default=3, alias="SEASON_FETCH_CONCURRENCY", ge=1, le=20
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("default_feed_filter", mode="before")
    @classmethod
    def _parse_default_feed_filter(cls, value: object) -> str:
        """Normalise the configured default filter tab."""

        if value is None:
            return DEFAULT_FEED_FILTER
        slug = normalise_filter_key(value)
        if not slug:
            return DEFAULT_FEED_FILTER
        if not is_known_filter(slug):
            raise ValueError("Unknown feed filter configured")
        return slug

    @field_validator(
        "watched_key", "watchlist_key", "show_ratings_key", "episode_ratings_key"
    )
    @classmethod
    def _require_storage_key(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Storage keys may not be blank")
        return cleaned

    @model_validator(mode="after")
    def _ensure_distinct_storage_keys(self) -> "Settings":
        """Each collection must live under its own key."""

        keys = (
            self.watched_key,
            self.watchlist_key,
            self.show_ratings_key,
            self.episode_ratings_key,
        )
        if len(set(keys)) != len(keys):
            raise ValueError("Storage keys must be distinct")
        return self

    @property
    def storage_keys(self) -> StorageKeys:
        """Return the storage key layout used by the watch state."""

        return StorageKeys(
            watched=self.watched_key,
            watchlist=self.watchlist_key,
            show_ratings=self.show_ratings_key,
            episode_ratings=self.episode_ratings_key,
        )

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
