import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from wallet_tracker.state import ConversationStateStore, ConversationStep


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now += timedelta(minutes=minutes)


class Notices:
    def __init__(self, fail: bool = False) -> None:
        self.chats = []
        self.fail = fail

    async def __call__(self, chat_id: int) -> None:
        self.chats.append(chat_id)
        if self.fail:
            raise RuntimeError("chat unreachable")


async def fire(scheduler, chat_id: int, job: dict | None = None) -> None:
    job = job or scheduler.jobs[f"conversation_expiry:{chat_id}"]
    await job["func"](*job["args"])


def test_set_then_get_returns_step(scheduler) -> None:
    store = ConversationStateStore(scheduler)
    store.set_state(1, ConversationStep.AWAITING_WALLET_ADD)
    assert store.get_state(1) is ConversationStep.AWAITING_WALLET_ADD
    assert store.get_state(2) is ConversationStep.NONE


def test_clear_state_cancels_expiry_job(scheduler) -> None:
    store = ConversationStateStore(scheduler)
    store.set_state(1, ConversationStep.AWAITING_WALLET_REMOVE)
    assert "conversation_expiry:1" in scheduler.jobs

    store.clear_state(1)

    assert store.get_state(1) is ConversationStep.NONE
    assert "conversation_expiry:1" not in scheduler.jobs
    # Clearing again is harmless.
    store.clear_state(1)


def test_set_state_schedules_job_at_ttl(scheduler) -> None:
    clock = FakeClock()
    store = ConversationStateStore(scheduler, clock=clock)
    state = store.set_state(7, ConversationStep.AWAITING_WALLET_ADD, ttl_minutes=3)

    job = scheduler.jobs["conversation_expiry:7"]
    assert job["trigger"] == "date"
    assert job["run_date"] == clock.now + timedelta(minutes=3)
    assert job["args"] == [7, state.version]
    assert job["misfire_grace_time"] is None
    assert job["coalesce"] is True


def test_versions_increase_per_set(scheduler) -> None:
    store = ConversationStateStore(scheduler)
    first = store.set_state(1, ConversationStep.AWAITING_WALLET_ADD)
    second = store.set_state(1, ConversationStep.AWAITING_WALLET_REMOVE)
    other = store.set_state(2, ConversationStep.AWAITING_WALLET_ADD)
    assert first.version < second.version < other.version
    assert store.current_version(1) == second.version


@pytest.mark.asyncio
async def test_expiry_clears_state_and_sends_one_notice(scheduler) -> None:
    clock = FakeClock()
    notices = Notices()
    store = ConversationStateStore(scheduler, notify_timeout=notices, clock=clock)
    store.set_state(5, ConversationStep.AWAITING_WALLET_ADD, ttl_minutes=5)
    job = scheduler.jobs["conversation_expiry:5"]

    clock.advance(5)
    assert store.get_state(5) is ConversationStep.NONE

    await fire(scheduler, 5, job)
    await fire(scheduler, 5, job)

    assert store.get_state(5) is ConversationStep.NONE
    assert store.current_version(5) is None
    assert notices.chats == [5]


@pytest.mark.asyncio
async def test_stale_timer_does_not_clear_newer_state(scheduler) -> None:
    notices = Notices()
    store = ConversationStateStore(scheduler, notify_timeout=notices)
    store.set_state(3, ConversationStep.AWAITING_WALLET_ADD)
    stale_job = dict(scheduler.jobs["conversation_expiry:3"])

    store.set_state(3, ConversationStep.AWAITING_WALLET_REMOVE)
    await fire(scheduler, 3, stale_job)

    assert store.get_state(3) is ConversationStep.AWAITING_WALLET_REMOVE
    assert notices.chats == []


@pytest.mark.asyncio
async def test_timer_after_clear_is_noop(scheduler) -> None:
    notices = Notices()
    store = ConversationStateStore(scheduler, notify_timeout=notices)
    store.set_state(3, ConversationStep.AWAITING_WALLET_ADD)
    job = dict(scheduler.jobs["conversation_expiry:3"])

    store.clear_state(3)
    await fire(scheduler, 3, job)

    assert notices.chats == []


@pytest.mark.asyncio
async def test_notice_failure_is_swallowed(scheduler) -> None:
    notices = Notices(fail=True)
    store = ConversationStateStore(scheduler, notify_timeout=notices)
    store.set_state(9, ConversationStep.AWAITING_WALLET_ADD)

    await fire(scheduler, 9)

    assert notices.chats == [9]
    assert store.get_state(9) is ConversationStep.NONE


def test_setting_none_clears(scheduler) -> None:
    store = ConversationStateStore(scheduler)
    store.set_state(4, ConversationStep.AWAITING_WALLET_ADD)
    assert store.set_state(4, ConversationStep.NONE) is None
    assert store.get_state(4) is ConversationStep.NONE
    assert "conversation_expiry:4" not in scheduler.jobs


@pytest.mark.asyncio
async def test_expiry_with_real_scheduler() -> None:
    scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop())
    scheduler.start()
    notices = Notices()
    store = ConversationStateStore(scheduler, notify_timeout=notices)
    try:
        store.set_state(11, ConversationStep.AWAITING_WALLET_ADD, ttl_minutes=0.002)
        for _ in range(40):
            if notices.chats:
                break
            await asyncio.sleep(0.05)
    finally:
        scheduler.shutdown(wait=False)

    assert notices.chats == [11]
    assert store.get_state(11) is ConversationStep.NONE


@pytest.mark.asyncio
async def test_overdue_expiry_still_fires() -> None:
    def late() -> datetime:
        # One minute behind, so the job is already well past its run date.
        return datetime.now(timezone.utc) - timedelta(minutes=1)

    scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop())
    scheduler.start()
    notices = Notices()
    store = ConversationStateStore(scheduler, notify_timeout=notices, clock=late)
    try:
        store.set_state(12, ConversationStep.AWAITING_WALLET_ADD, ttl_minutes=0.01)
        for _ in range(40):
            if notices.chats:
                break
            await asyncio.sleep(0.05)
    finally:
        scheduler.shutdown(wait=False)

    assert notices.chats == [12]
    assert store.current_version(12) is None
