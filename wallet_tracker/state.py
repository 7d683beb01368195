"""Per-chat conversation state with soft expiry."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

from apscheduler.jobstores.base import JobLookupError

from wallet_tracker.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_MINUTES = 5


class ConversationStep(Enum):
    """What the bot expects the next free-text message to be."""

    NONE = "none"
    AWAITING_WALLET_ADD = "awaiting_wallet_add"
    AWAITING_WALLET_REMOVE = "awaiting_wallet_remove"


@dataclass
class ConversationState:
    chat_id: int
    step: ConversationStep
    created_at: datetime
    expires_at: datetime
    version: int


TimeoutNotifier = Callable[[int], Awaitable[None]]


class ConversationStateStore:
    """One pending step per chat, cleared on reply or after a TTL.

    Every `set_state` takes a fresh version from a store-wide counter and
    schedules a one-shot expiry job carrying that version. When the job runs
    it only acts if the chat still holds the same version, so a job that
    outlived its state (replaced, cleared, or cancelled too late) cannot wipe
    a newer one.

    All mutations run between awaits on a single event loop, so no locking
    is needed.
    """

    def __init__(
        self,
        scheduler,
        notify_timeout: Optional[TimeoutNotifier] = None,
        default_ttl_minutes: float = DEFAULT_TTL_MINUTES,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.scheduler = scheduler
        self.notify_timeout = notify_timeout
        self.default_ttl_minutes = default_ttl_minutes
        self._clock = clock
        self._states: Dict[int, ConversationState] = {}
        self._versions = itertools.count(1)

    def set_state(
        self,
        chat_id: int,
        step: ConversationStep,
        ttl_minutes: Optional[float] = None,
    ) -> Optional[ConversationState]:
        if step is ConversationStep.NONE:
            self.clear_state(chat_id)
            return None

        ttl = self.default_ttl_minutes if ttl_minutes is None else ttl_minutes
        now = self._clock()
        state = ConversationState(
            chat_id=chat_id,
            step=step,
            created_at=now,
            expires_at=now + timedelta(minutes=ttl),
            version=next(self._versions),
        )
        self._cancel_expiry(chat_id)
        self._states[chat_id] = state
        self.scheduler.add_job(
            self._expire,
            trigger="date",
            run_date=state.expires_at,
            args=[chat_id, state.version],
            id=self._job_id(chat_id),
            replace_existing=True,
            misfire_grace_time=None,
            coalesce=True,
        )
        logger.debug(
            "conversation_state_set",
            chat_id=chat_id,
            step=step.value,
            version=state.version,
        )
        return state

    def get_state(self, chat_id: int) -> ConversationStep:
        state = self._states.get(chat_id)
        if state is None or self._clock() >= state.expires_at:
            return ConversationStep.NONE
        return state.step

    def clear_state(self, chat_id: int) -> None:
        self._states.pop(chat_id, None)
        self._cancel_expiry(chat_id)

    def current_version(self, chat_id: int) -> Optional[int]:
        state = self._states.get(chat_id)
        return state.version if state else None

    async def _expire(self, chat_id: int, version: int) -> None:
        state = self._states.get(chat_id)
        if state is None or state.version != version:
            return

        self._states.pop(chat_id, None)
        logger.info(
            "conversation_state_timed_out",
            chat_id=chat_id,
            step=state.step.value,
            version=version,
        )
        if self.notify_timeout is None:
            return
        try:
            await self.notify_timeout(chat_id)
        except Exception as exc:
            logger.warning("timeout_notice_failed", chat_id=chat_id, error=str(exc))

    def _cancel_expiry(self, chat_id: int) -> None:
        try:
            self.scheduler.remove_job(self._job_id(chat_id))
        except JobLookupError:
            pass

    @staticmethod
    def _job_id(chat_id: int) -> str:
        return f"conversation_expiry:{chat_id}"
