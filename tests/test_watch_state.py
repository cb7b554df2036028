"""Behaviour of the locally persisted watch state."""

from __future__ import annotations

import json
import math

import pytest

from app.config import StorageKeys
from app.models import Show
from app.services.tmdb import MetadataSourceError
from app.services.watch_state import WatchState


class FakeDetails:
    """Records detail lookups and returns a canned show."""

    def __init__(self, *, fail: bool = False) -> None:
        self.calls: list[int] = []
        self.fail = fail

    async def get_show_details(self, show_id: int) -> Show:
        self.calls.append(show_id)
        if self.fail:
            raise MetadataSourceError("TMDB unavailable")
        return Show(id=show_id, name=f"Show {show_id}", number_of_seasons=2)


class BrokenStore:
    """A store where every call fails."""

    async def get(self, key: str) -> str | None:
        raise OSError("storage offline")

    async def set(self, key: str, value: str) -> None:
        raise OSError("storage offline")

    async def delete(self, key: str) -> None:
        raise OSError("storage offline")


def _show(show_id: int | str, **extra) -> dict:
    return {"id": show_id, "name": f"Show {show_id}", **extra}


@pytest.mark.anyio("asyncio")
async def test_add_to_watched_is_idempotent(memory_store) -> None:
    state = WatchState(memory_store)

    await state.add_to_watched(_show(1))
    await state.add_to_watched(_show(2))
    await state.add_to_watched(_show(1))

    watched = await state.get_watched()
    assert [show.id for show in watched] == [1, 2]


@pytest.mark.anyio("asyncio")
async def test_ids_are_normalised_to_integers(memory_store) -> None:
    state = WatchState(memory_store)

    await state.add_to_watched(_show("42"))
    await state.add_to_watched(_show(42))

    assert await state.is_in_watched(42)
    assert await state.is_in_watched("42")
    stored = json.loads(memory_store.data["watched_shows"])
    assert stored == [{"id": 42, "name": "Show 42", "poster_path": None, "vote_average": 0.0,
                       "first_air_date": None, "popularity": 0.0, "number_of_seasons": 0}]


@pytest.mark.anyio("asyncio")
async def test_snapshots_keep_passthrough_fields(memory_store) -> None:
    state = WatchState(memory_store)

    await state.add_to_watched(_show(7, overview="A show", genre_ids=[18]))

    [show] = await state.get_watched()
    assert show.passthrough == {"overview": "A show", "genre_ids": [18]}


@pytest.mark.anyio("asyncio")
async def test_remove_missing_show_leaves_collection_unchanged(memory_store) -> None:
    state = WatchState(memory_store)
    await state.add_to_watched(_show(1))

    await state.remove_from_watched(99)

    assert [show.id for show in await state.get_watched()] == [1]


@pytest.mark.anyio("asyncio")
async def test_remove_from_watched_accepts_string_ids(memory_store) -> None:
    state = WatchState(memory_store)
    await state.add_to_watched(_show(1))
    await state.add_to_watched(_show(2))

    await state.remove_from_watched("1")

    assert [show.id for show in await state.get_watched()] == [2]
    assert not await state.is_in_watched(1)


@pytest.mark.anyio("asyncio")
async def test_watchlist_is_independent_of_watched(memory_store) -> None:
    state = WatchState(memory_store)

    await state.add_to_watchlist(_show(5))
    await state.add_to_watched(_show(6))

    assert await state.is_in_watchlist(5)
    assert not await state.is_in_watched(5)
    assert not await state.is_in_watchlist(6)

    await state.remove_from_watchlist(5)
    assert await state.get_watchlist() == []
    assert [show.id for show in await state.get_watched()] == [6]


@pytest.mark.anyio("asyncio")
async def test_toggle_flips_membership(memory_store) -> None:
    state = WatchState(memory_store)

    assert await state.toggle_watchlist(_show(3)) is True
    assert await state.is_in_watchlist(3)
    assert await state.toggle_watchlist(_show(3)) is False
    assert not await state.is_in_watchlist(3)
    assert await state.toggle_watched({"id": "4"}) is True
    assert await state.is_in_watched(4)
    assert await state.toggle_watched({"name": "no id"}) is False


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize("cleared", [0, None])
async def test_clearing_show_rating_removes_entry(memory_store, cleared) -> None:
    state = WatchState(memory_store)
    await state.set_show_rating(10, 8)

    await state.set_show_rating(10, cleared)

    assert await state.get_show_rating(10) is None
    assert json.loads(memory_store.data["show_ratings"]) == {}


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize(("given", "stored"), [(15, 10), (-3, 1), (7, 7), (10, 10), (1, 1)])
async def test_show_ratings_are_clamped(memory_store, given, stored) -> None:
    state = WatchState(memory_store)

    await state.set_show_rating(10, given)

    assert await state.get_show_rating(10) == stored
    assert await state.get_show_rating("10") == stored


@pytest.mark.anyio("asyncio")
async def test_episode_rating_round_trip_and_show_summary(memory_store) -> None:
    state = WatchState(memory_store)

    await state.set_episode_rating(5, 1, 2, 7)
    await state.set_episode_rating(5, 2, 1, 9)
    await state.set_episode_rating(55, 1, 2, 4)
    await state.set_episode_rating(6, 1, 1, 3)

    assert await state.get_episode_rating(5, 1, 2) == 7
    summary = await state.get_show_episode_ratings(5)
    assert summary == {"5_1_2": 7, "5_2_1": 9}


@pytest.mark.anyio("asyncio")
async def test_episode_rating_clear_and_clamp(memory_store) -> None:
    state = WatchState(memory_store)

    await state.set_episode_rating(5, 1, 2, 42)
    assert await state.get_episode_rating(5, 1, 2) == 10

    await state.set_episode_rating(5, 1, 2, 0)
    assert await state.get_episode_rating(5, 1, 2) is None


@pytest.mark.anyio("asyncio")
async def test_rating_an_episode_marks_its_show_watched(memory_store) -> None:
    details = FakeDetails()
    state = WatchState(memory_store, metadata=details)

    await state.rate_episode(5, 1, 2, 7)

    watched = await state.get_watched()
    assert [show.id for show in watched] == [5]
    assert watched[0].number_of_seasons == 2
    assert details.calls == [5]


@pytest.mark.anyio("asyncio")
async def test_rating_an_episode_of_watched_show_skips_fetch(memory_store) -> None:
    details = FakeDetails()
    state = WatchState(memory_store, metadata=details)
    await state.add_to_watched(_show(5))

    await state.rate_episode(5, 1, 2, 7)

    assert details.calls == []
    assert len(await state.get_watched()) == 1


@pytest.mark.anyio("asyncio")
async def test_rating_episode_keeps_rating_when_show_fetch_fails(memory_store) -> None:
    state = WatchState(memory_store, metadata=FakeDetails(fail=True))

    await state.rate_episode(5, 1, 2, 6)

    assert await state.get_episode_rating(5, 1, 2) == 6
    assert await state.get_watched() == []


@pytest.mark.anyio("asyncio")
async def test_rating_a_show_marks_it_watched(memory_store) -> None:
    state = WatchState(memory_store)

    await state.rate_show(Show(id=9, name="Nine"), 8)

    assert await state.is_in_watched(9)
    assert await state.get_show_rating(9) == 8


@pytest.mark.anyio("asyncio")
async def test_rating_a_show_by_id_fetches_details(memory_store) -> None:
    details = FakeDetails()
    state = WatchState(memory_store, metadata=details)

    await state.rate_show(9, 8)

    assert details.calls == [9]
    assert [show.name for show in await state.get_watched()] == ["Show 9"]


@pytest.mark.anyio("asyncio")
async def test_clearing_a_rating_keeps_watched_status(memory_store) -> None:
    state = WatchState(memory_store, metadata=FakeDetails())

    await state.rate_show(Show(id=9, name="Nine"), 8)
    await state.rate_show(Show(id=9, name="Nine"), None)
    await state.rate_episode(9, 1, 1, 6)
    await state.rate_episode(9, 1, 1, 0)

    assert await state.get_show_rating(9) is None
    assert await state.get_episode_rating(9, 1, 1) is None
    assert await state.is_in_watched(9)


@pytest.mark.anyio("asyncio")
async def test_clearing_a_rating_does_not_add_to_watched(memory_store) -> None:
    details = FakeDetails()
    state = WatchState(memory_store, metadata=details)

    await state.rate_episode(4, 1, 1, None)

    assert details.calls == []
    assert await state.get_watched() == []


@pytest.mark.anyio("asyncio")
async def test_watched_with_ratings_attaches_personal_rating(memory_store) -> None:
    state = WatchState(memory_store)
    await state.add_to_watched(_show(1))
    await state.add_to_watched(_show(2))
    await state.set_show_rating(2, 6)

    rated = await state.get_watched_with_ratings()

    assert [(show.id, show.personal_rating) for show in rated] == [(1, None), (2, 6)]


@pytest.mark.anyio("asyncio")
async def test_malformed_json_reads_as_empty(memory_store) -> None:
    memory_store.data["watched_shows"] = "{not json"
    memory_store.data["show_ratings"] = "[1, 2]"
    state = WatchState(memory_store)

    assert await state.get_watched() == []
    assert await state.is_in_watched(1) is False
    assert await state.get_show_rating(1) is None


@pytest.mark.anyio("asyncio")
async def test_broken_store_degrades_to_safe_defaults() -> None:
    state = WatchState(BrokenStore())

    await state.add_to_watched(_show(1))
    await state.remove_from_watchlist(1)
    await state.set_show_rating(1, 5)
    await state.set_episode_rating(1, 1, 1, 5)

    assert await state.get_watched() == []
    assert await state.get_watchlist() == []
    assert await state.is_in_watched(1) is False
    assert await state.get_show_rating(1) is None
    assert await state.get_episode_rating(1, 1, 1) is None
    assert await state.get_show_episode_ratings(1) == {}


@pytest.mark.anyio("asyncio")
async def test_custom_storage_keys_are_used(memory_store) -> None:
    keys = StorageKeys(
        watched="w", watchlist="l", show_ratings="sr", episode_ratings="er"
    )
    state = WatchState(memory_store, keys)

    await state.add_to_watched(_show(1))
    await state.add_to_watchlist(_show(2))
    await state.set_show_rating(1, 5)
    await state.set_episode_rating(1, 1, 1, 5)

    assert set(memory_store.data) == {"w", "l", "sr", "er"}


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize("rating", [math.nan, math.inf, "great"])
async def test_rejected_rating_does_not_mark_watched(memory_store, rating) -> None:
    details = FakeDetails()
    state = WatchState(memory_store, metadata=details)

    await state.rate_show(Show(id=9, name="Nine"), rating)
    await state.rate_episode(9, 1, 1, rating)

    assert await state.get_show_rating(9) is None
    assert await state.get_episode_rating(9, 1, 1) is None
    assert not await state.is_in_watched(9)
    assert details.calls == []
