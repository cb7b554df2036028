"""Entry point for the FastAPI-powered show tracking service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .database import Database
from .feed_filters import FEED_FILTERS, is_known_filter
from .models import RatingUpdate
from .services.episodes import EpisodeRollup, sort_episodes, sort_shows
from .services.feed import FeedAggregator
from .services.kv_store import DatabaseKeyValueStore
from .services.shows import ShowService
from .services.tmdb import MetadataSourceError, NotFoundError, TMDBClient
from .services.watch_state import WatchState

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


@dataclass
class Services:
    """Long-lived collaborators shared by every request."""

    tmdb: TMDBClient
    watch_state: WatchState
    feed: FeedAggregator
    rollup: EpisodeRollup
    shows: ShowService


def build_services(tmdb: TMDBClient, watch_state: WatchState) -> Services:
    rollup = EpisodeRollup(
        tmdb, watch_state, concurrency=settings.season_fetch_concurrency
    )
    feed = FeedAggregator(
        tmdb,
        default_filter=settings.default_feed_filter,
        refresh_max_page=settings.refresh_max_page,
    )
    return Services(
        tmdb=tmdb,
        watch_state=watch_state,
        feed=feed,
        rollup=rollup,
        shows=ShowService(tmdb, watch_state, rollup),
    )


@asynccontextmanager
async def lifespan(_: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(20.0, connect=10.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    tmdb = TMDBClient(settings, tmdb_http_client)
    watch_state = WatchState(
        DatabaseKeyValueStore(database.session_factory),
        settings.storage_keys,
        metadata=tmdb,
    )

    app.state.services = build_services(tmdb, watch_state)
    app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Browse TV shows and track what you have watched",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_services(app: FastAPI) -> Services:
    services = getattr(app.state, "services", None)
    if not isinstance(services, Services):
        raise RuntimeError("Services not initialised")
    return services


def register_routes(fastapi_app: FastAPI) -> None:
    async def _fetch_show(services: Services, show_id: int):
        try:
            return await services.tmdb.get_show_details(show_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except MetadataSourceError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/api/feed/filters")
    async def feed_filters() -> list[dict[str, Any]]:
        return [
            {
                "key": definition.key,
                "label": definition.label,
                "description": definition.description,
            }
            for definition in FEED_FILTERS
        ]

    @fastapi_app.get("/api/feed")
    async def feed_state() -> JSONResponse:
        services = get_services(fastapi_app)
        state = await services.feed.ensure_loaded()
        return JSONResponse(state.to_payload())

    @fastapi_app.post("/api/feed/filter/{filter_key}")
    async def select_feed_filter(filter_key: str) -> JSONResponse:
        if not is_known_filter(filter_key):
            raise HTTPException(status_code=400, detail="Unknown feed filter")
        services = get_services(fastapi_app)
        state = await services.feed.select_filter(filter_key)
        return JSONResponse(state.to_payload())

    @fastapi_app.post("/api/feed/more")
    async def load_more_feed() -> JSONResponse:
        services = get_services(fastapi_app)
        await services.feed.ensure_loaded()
        state = await services.feed.load_more()
        return JSONResponse(state.to_payload())

    @fastapi_app.post("/api/feed/refresh")
    async def refresh_feed() -> JSONResponse:
        services = get_services(fastapi_app)
        await services.feed.ensure_loaded()
        state = await services.feed.refresh()
        return JSONResponse(state.to_payload())

    @fastapi_app.get("/api/search")
    async def search(query: str = "") -> JSONResponse:
        services = get_services(fastapi_app)
        try:
            page = await services.shows.search(query)
        except MetadataSourceError as exc:
            logger.warning("Search for %r failed: %s", query, exc)
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return JSONResponse(page.model_dump(mode="json"))

    @fastapi_app.get("/api/shows/{show_id}")
    async def show_detail(show_id: int) -> JSONResponse:
        services = get_services(fastapi_app)
        try:
            overview = await services.shows.get_show(show_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except MetadataSourceError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return JSONResponse(overview.model_dump(mode="json"))

    @fastapi_app.get("/api/shows/{show_id}/seasons/{season_number}/episodes/{episode_number}")
    async def episode_detail(
        show_id: int, season_number: int, episode_number: int
    ) -> JSONResponse:
        services = get_services(fastapi_app)
        try:
            overview = await services.shows.get_episode(
                show_id, season_number, episode_number
            )
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except MetadataSourceError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return JSONResponse(overview.model_dump(mode="json"))

    @fastapi_app.put("/api/shows/{show_id}/rating")
    async def rate_show(show_id: int, update: RatingUpdate) -> dict[str, Any]:
        services = get_services(fastapi_app)
        await services.watch_state.rate_show(show_id, update.rating)
        return {
            "showId": show_id,
            "rating": await services.watch_state.get_show_rating(show_id),
            "watched": await services.watch_state.is_in_watched(show_id),
        }

    @fastapi_app.put(
        "/api/shows/{show_id}/seasons/{season_number}/episodes/{episode_number}/rating"
    )
    async def rate_episode(
        show_id: int, season_number: int, episode_number: int, update: RatingUpdate
    ) -> dict[str, Any]:
        services = get_services(fastapi_app)
        await services.watch_state.rate_episode(
            show_id, season_number, episode_number, update.rating
        )
        return {
            "showId": show_id,
            "seasonNumber": season_number,
            "episodeNumber": episode_number,
            "rating": await services.watch_state.get_episode_rating(
                show_id, season_number, episode_number
            ),
            "watched": await services.watch_state.is_in_watched(show_id),
        }

    @fastapi_app.get("/api/shows/{show_id}/episode-ratings")
    async def show_episode_ratings(show_id: int) -> dict[str, int]:
        services = get_services(fastapi_app)
        return await services.watch_state.get_show_episode_ratings(show_id)

    @fastapi_app.get("/api/watched")
    async def watched(sort: str = "date_added") -> JSONResponse:
        services = get_services(fastapi_app)
        shows = await services.watch_state.get_watched_with_ratings()
        try:
            ordered = sort_shows(shows, sort)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse([show.model_dump(mode="json") for show in ordered])

    @fastapi_app.get("/api/watched/episodes")
    async def watched_episodes(sort: str = "date_added") -> JSONResponse:
        services = get_services(fastapi_app)
        episodes = await services.rollup.rollup_watched()
        try:
            ordered = sort_episodes(episodes, sort)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse([episode.model_dump(mode="json") for episode in ordered])

    @fastapi_app.put("/api/watched/{show_id}")
    async def add_watched(show_id: int) -> dict[str, Any]:
        services = get_services(fastapi_app)
        show = await _fetch_show(services, show_id)
        await services.watch_state.add_to_watched(show)
        return {"showId": show_id, "watched": await services.watch_state.is_in_watched(show_id)}

    @fastapi_app.delete("/api/watched/{show_id}")
    async def remove_watched(show_id: int) -> dict[str, Any]:
        services = get_services(fastapi_app)
        await services.watch_state.remove_from_watched(show_id)
        return {"showId": show_id, "watched": await services.watch_state.is_in_watched(show_id)}

    @fastapi_app.get("/api/watchlist")
    async def watchlist() -> JSONResponse:
        services = get_services(fastapi_app)
        shows = await services.watch_state.get_watchlist()
        return JSONResponse([show.model_dump(mode="json") for show in shows])

    @fastapi_app.put("/api/watchlist/{show_id}")
    async def add_watchlist(show_id: int) -> dict[str, Any]:
        services = get_services(fastapi_app)
        show = await _fetch_show(services, show_id)
        await services.watch_state.add_to_watchlist(show)
        return {
            "showId": show_id,
            "inWatchlist": await services.watch_state.is_in_watchlist(show_id),
        }

    @fastapi_app.delete("/api/watchlist/{show_id}")
    async def remove_watchlist(show_id: int) -> dict[str, Any]:
        services = get_services(fastapi_app)
        await services.watch_state.remove_from_watchlist(show_id)
        return {
            "showId": show_id,
            "inWatchlist": await services.watch_state.is_in_watchlist(show_id),
        }


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
