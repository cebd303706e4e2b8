"""Tests for the session registry.

Validates SessionStore including:
- Strictly increasing, collision-free identifiers
- Lookup and mutation of unknown ids
- TTL and capacity eviction of finished sessions only
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime

import pytest
from hypothesis import given, strategies as st

from src.exceptions import SessionNotFoundError
from src.models import ScrapeSession, SessionStatus
from src.session_store import EvictionPolicy, SessionStore
from tests.conftest import FrozenClock, finish, make_scrape_config


class TestSessionIdentifiers:
    """Test suite for id allocation."""

    def test_id_is_epoch_milliseconds(self) -> None:
        store = SessionStore(clock=FrozenClock(1_700_000_000.5))

        assert store.create(make_scrape_config()) == "1700000000500"

    def test_same_millisecond_creations_do_not_collide(self) -> None:
        """Verify ids stay unique and increasing under a stalled clock."""
        store = SessionStore(clock=FrozenClock())

        ids = [store.create(make_scrape_config()) for _ in range(5)]

        assert len(set(ids)) == 5
        assert [int(i) for i in ids] == sorted(int(i) for i in ids)
        assert len(store) == 5

    def test_concurrent_creations_do_not_collide(self) -> None:
        """Ids stay unique when many threads register sessions in the same millisecond."""
        store = SessionStore(clock=FrozenClock())
        config = make_scrape_config()

        with ThreadPoolExecutor(max_workers=8) as pool:
            ids = list(pool.map(lambda _: store.create(config), range(200)))

        assert len(set(ids)) == 200
        assert len(store) == 200
        assert sorted(int(i) for i in ids) == list(range(1_700_000_000_000, 1_700_000_000_200))

    @given(
        ticks=st.lists(
            st.floats(min_value=1_600_000_000, max_value=1_900_000_000, allow_nan=False),
            min_size=1,
            max_size=30,
        )
    )
    def test_ids_strictly_increase_for_any_clock(self, ticks: list[float]) -> None:
        """Property: ids strictly increase even when the clock stalls or goes backwards."""
        readings = iter(ticks)
        current = [ticks[0]]

        def clock() -> float:
            current[0] = next(readings, current[0])
            return current[0]

        store = SessionStore(clock=clock)
        ids = [int(store.create(make_scrape_config())) for _ in ticks]

        assert all(later > earlier for earlier, later in zip(ids, ids[1:]))

    def test_new_session_starts_in_starting_state(self) -> None:
        clock = FrozenClock()
        store = SessionStore(clock=clock)

        session = store.get(store.create(make_scrape_config()))

        assert session.status is SessionStatus.STARTING
        assert session.progress == 0
        assert session.logs == []
        assert session.start_time == datetime.fromtimestamp(clock(), UTC)


class TestSessionLookup:
    """Test suite for get/mutate."""

    def test_unknown_id_returns_none(self) -> None:
        store = SessionStore()

        assert store.get("does-not-exist") is None
        assert "does-not-exist" not in store

    def test_mutate_unknown_id_raises(self) -> None:
        store = SessionStore()

        with pytest.raises(SessionNotFoundError) as exc_info:
            store.mutate("42", lambda session: None)

        assert exc_info.value.session_id == "42"

    def test_mutate_applies_in_place(self) -> None:
        store = SessionStore()
        session_id = store.create(make_scrape_config())

        def bump(session: ScrapeSession) -> None:
            session.progress = 30

        store.mutate(session_id, bump)

        assert store.get(session_id).progress == 30


class TestEvictionPolicy:
    """Test suite for TTL and capacity eviction."""

    def test_default_policy_never_evicts(self) -> None:
        clock = FrozenClock()
        store = SessionStore(clock=clock)
        session_id = store.create(make_scrape_config())
        finish(store, session_id, clock)

        clock.advance(10 * 365 * 24 * 3600)

        assert store.evict_expired() == []
        assert session_id in store

    def test_ttl_evicts_only_finished_sessions(self) -> None:
        clock = FrozenClock()
        store = SessionStore(EvictionPolicy(ttl_seconds=60), clock=clock)
        done = store.create(make_scrape_config())
        running = store.create(make_scrape_config())
        finish(store, done, clock)

        clock.advance(61)

        assert store.evict_expired() == [done]
        assert done not in store
        assert running in store

    def test_ttl_keeps_recent_sessions(self) -> None:
        clock = FrozenClock()
        store = SessionStore(EvictionPolicy(ttl_seconds=60), clock=clock)
        session_id = store.create(make_scrape_config())
        finish(store, session_id, clock)

        clock.advance(30)

        assert store.evict_expired() == []

    def test_capacity_evicts_oldest_finished_on_create(self) -> None:
        clock = FrozenClock()
        store = SessionStore(EvictionPolicy(max_sessions=2), clock=clock)
        first = store.create(make_scrape_config())
        clock.advance(1)
        second = store.create(make_scrape_config())
        finish(store, second, clock)
        clock.advance(1)
        finish(store, first, clock)

        third = store.create(make_scrape_config())

        assert second not in store
        assert first in store
        assert third in store
        assert len(store) == 2

    def test_capacity_never_evicts_running_sessions(self) -> None:
        store = SessionStore(EvictionPolicy(max_sessions=1), clock=FrozenClock())
        first = store.create(make_scrape_config())

        second = store.create(make_scrape_config())

        assert first in store
        assert second in store
