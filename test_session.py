import asyncio
from datetime import timedelta

import pytest

from conftest import FakeStore
from flashstudy.models import Difficulty
from flashstudy.result import Err, ErrorKind, Ok
from flashstudy.session import ReviewSession, SessionProgressCache, SessionState

pytestmark = pytest.mark.asyncio


@pytest.fixture
def cache():
    return SessionProgressCache()


def make_session(store, cache, now):
    return ReviewSession("p1", store, cache, clock=lambda: now, timeout=None, scale_by_ease=False)


async def test_start_queues_due_cards_and_opens_session(make_card, cache, now):
    store = FakeStore([
        make_card("a"),
        make_card("b", next_review_date=now + timedelta(days=3)),
        make_card("c", next_review_date=now - timedelta(days=1)),
    ])
    session = make_session(store, cache, now)

    result = await session.start()

    assert isinstance(result, Ok)
    assert [card.id for card in session.queue] == ["a", "c"]
    assert session.state == SessionState.ACTIVE
    assert session.session_id == "session-1"
    assert cache.get("p1") == "session-1"
    assert session.current_card.id == "a"
    assert session.progress == (0, 2)


async def test_start_falls_back_to_all_cards(make_card, cache, now):
    store = FakeStore([make_card(str(i), next_review_date=now + timedelta(days=1)) for i in range(3)])
    session = make_session(store, cache, now)

    await session.start()

    assert len(session.queue) == 3


async def test_empty_project_starts_no_session(cache, now):
    store = FakeStore([])
    session = make_session(store, cache, now)

    result = await session.start()

    assert result.value == []
    assert session.state == SessionState.UNINITIALIZED
    assert store.calls_to("create_session") == []
    assert session.current_card is None


async def test_fetch_failure_keeps_session_uninitialized(cache, now):
    store = FakeStore()
    store.fetch_error = Err(ErrorKind.NETWORK, "Could not reach the server")
    session = make_session(store, cache, now)

    result = await session.start()

    assert result.kind == ErrorKind.NETWORK
    assert session.error == result
    assert session.state == SessionState.UNINITIALIZED


async def test_start_runs_once(make_card, cache, now):
    store = FakeStore([make_card("a")])
    session = make_session(store, cache, now)

    await session.start()
    await session.start()

    assert len(store.calls_to("fetch_cards")) == 1
    assert len(store.calls_to("create_session")) == 1


async def test_session_create_failure_does_not_block_review(make_card, cache, now):
    store = FakeStore([make_card("a"), make_card("b")])
    store.session_error = Err(ErrorKind.SERVER, "Internal Server Error")
    session = make_session(store, cache, now)

    await session.start()
    result = await session.submit_feedback("a", Difficulty.GOOD)

    assert session.state == SessionState.ACTIVE
    assert session.session_id is None
    assert "p1" not in cache
    assert isinstance(result, Ok)
    assert session.current_card.id == "b"


async def test_cached_session_is_resumed(make_card, cache, now):
    cache.set("p1", "existing")
    store = FakeStore([make_card("a")])
    session = make_session(store, cache, now)

    await session.start()

    assert session.session_id == "existing"
    assert store.calls_to("create_session") == []


async def test_feedback_schedules_card_and_advances(make_card, cache, now):
    store = FakeStore([make_card("a"), make_card("b")])
    session = make_session(store, cache, now)
    await session.start()

    result = await session.submit_feedback("a", Difficulty.EASY)

    assert isinstance(result, Ok)
    assert store.last_update.ease_factor == 2.65
    assert store.last_update.next_review_date == now + timedelta(days=4)
    assert session.queue[0].ease_factor == 2.65
    assert session.position == 1
    assert session.current_card.id == "b"


async def test_feedback_for_other_card_is_rejected(make_card, cache, now):
    store = FakeStore([make_card("a"), make_card("b")])
    session = make_session(store, cache, now)
    await session.start()

    result = await session.submit_feedback("b", "good")

    assert result.kind == ErrorKind.VALIDATION
    assert store.calls_to("update_card") == []
    assert session.position == 0


async def test_failed_feedback_rolls_back_and_does_not_advance(make_card, cache, now):
    store = FakeStore([make_card("a", ease_factor=2.0)])
    store.failures[("update_card", "a")] = Err(ErrorKind.NETWORK, "Could not reach the server")
    session = make_session(store, cache, now)
    await session.start()

    result = await session.submit_feedback("a", "hard")

    assert result.kind == ErrorKind.NETWORK
    assert session.error == result
    assert session.position == 0
    assert session.current_card.ease_factor == 2.0
    assert session.cards.status_of("a") is None


async def test_exhausted_queue_does_not_end_session(make_card, cache, now):
    store = FakeStore([make_card("a")])
    session = make_session(store, cache, now)
    await session.start()

    await session.submit_feedback("a", "good")

    assert session.current_card is None
    assert session.finished
    assert session.state == SessionState.ACTIVE


async def test_end_records_progress_and_clears_cache(make_card, cache, now):
    store = FakeStore([make_card("a"), make_card("b")])
    session = make_session(store, cache, now)
    await session.start()
    await session.submit_feedback("a", "good")

    await session.end()
    await session.end()

    assert store.calls_to("end_session") == [("end_session", "session-1", 1)]
    assert session.state == SessionState.ENDED
    assert session.ended_at == now
    assert "p1" not in cache


async def test_end_failure_is_not_raised(make_card, cache, now):
    store = FakeStore([make_card("a")])
    session = make_session(store, cache, now)
    await session.start()
    store.session_error = Err(ErrorKind.TIMEOUT, "The request timed out")

    await session.end()

    assert session.state == SessionState.ENDED
    assert "p1" not in cache


async def test_feedback_after_end_is_rejected(make_card, cache, now):
    store = FakeStore([make_card("a")])
    session = make_session(store, cache, now)
    await session.start()
    await session.end()

    result = await session.submit_feedback("a", "easy")

    assert result.kind == ErrorKind.VALIDATION
    assert store.calls_to("update_card") == []


async def test_late_feedback_answer_after_end_changes_nothing(make_card, cache, now):
    store = FakeStore([make_card("a"), make_card("b")])
    session = make_session(store, cache, now)
    await session.start()
    store.gate = asyncio.Event()

    pending = asyncio.create_task(session.submit_feedback("a", "good"))
    await asyncio.sleep(0)
    await session.end()
    recorded = store.calls_to("end_session")[0][2]
    store.gate.set()
    result = await pending

    assert isinstance(result, Ok)
    assert recorded == 0
    assert session.position == recorded
    assert session.state == SessionState.ENDED
    assert session.error is None


async def test_end_before_start_is_a_noop(cache, now):
    store = FakeStore()
    session = make_session(store, cache, now)

    await session.end()

    assert session.state == SessionState.UNINITIALIZED
    assert store.calls == []
