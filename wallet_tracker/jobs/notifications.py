"""Fan swap notifications out to every subscriber of the traded wallet."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from telegram.error import BadRequest

from wallet_tracker.errors import DeliveryFailure, UnparseableDescription
from wallet_tracker.store.subscriptions import SubscriptionIndex
from wallet_tracker.swap_card import NotificationComposer
from wallet_tracker.utils.formatting import unescape_markdown
from wallet_tracker.utils.logging import bind_context, clear_context, get_logger
from wallet_tracker.utils.swap_parser import (
    TransactionEvent,
    is_swap_event,
    parse_swap,
)

logger = get_logger(__name__)


@dataclass
class DeliveryOutcome:
    user_id: int
    delivered: bool
    error: Optional[str] = None


@dataclass
class BatchReport:
    received: int = 0
    skipped: int = 0
    unparseable: int = 0
    failed: int = 0
    notified: int = 0
    outcomes: List[DeliveryOutcome] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "received": self.received,
            "skipped": self.skipped,
            "unparseable": self.unparseable,
            "failed": self.failed,
            "notified": self.notified,
            "deliveries": len(self.outcomes),
            "delivery_failures": sum(1 for o in self.outcomes if not o.delivered),
        }


class NotificationDispatcher:
    """Send one message to each subscriber, one at a time.

    A failed send is recorded and logged, never raised, so N subscribers
    always get N delivery attempts.
    """

    def __init__(self, bot, subscriptions: SubscriptionIndex) -> None:
        self.bot = bot
        self.subscriptions = subscriptions

    async def dispatch(
        self,
        wallet_address: str,
        message: str,
        recipients: Optional[Sequence[int]] = None,
    ) -> List[DeliveryOutcome]:
        if recipients is None:
            recipients = await self.subscriptions.find_users_for_wallet(wallet_address)

        outcomes: List[DeliveryOutcome] = []
        for user_id in recipients:
            try:
                await self._send(user_id, message)
            except Exception as exc:
                failure = DeliveryFailure(user_id, str(exc))
                logger.error(
                    "notification_delivery_failed",
                    user_id=user_id,
                    wallet=wallet_address,
                    error=failure.reason,
                )
                outcomes.append(
                    DeliveryOutcome(user_id=user_id, delivered=False, error=failure.reason)
                )
            else:
                outcomes.append(DeliveryOutcome(user_id=user_id, delivered=True))
        return outcomes

    async def _send(self, chat_id: int, message: str) -> None:
        try:
            await self.bot.send_message(
                chat_id=chat_id,
                text=message,
                parse_mode="MarkdownV2",
                disable_web_page_preview=True,
            )
        except BadRequest as exc:
            logger.warning("telegram_markdown_failed", chat_id=chat_id, error=str(exc))
            await self.bot.send_message(
                chat_id=chat_id,
                text=unescape_markdown(message),
                disable_web_page_preview=True,
            )


class SwapPipeline:
    """Drive one webhook batch through parse, lookup, compose and dispatch.

    Every event is isolated: an unparseable or failing event is logged and the
    loop moves on to the next one.
    """

    def __init__(
        self,
        subscriptions: SubscriptionIndex,
        composer: NotificationComposer,
        dispatcher: NotificationDispatcher,
    ) -> None:
        self.subscriptions = subscriptions
        self.composer = composer
        self.dispatcher = dispatcher

    async def process_batch(self, payloads: Iterable[Any]) -> BatchReport:
        report = BatchReport()
        for payload in payloads:
            report.received += 1
            if not isinstance(payload, Mapping):
                report.skipped += 1
                continue
            bind_context(signature=str(payload.get("signature") or ""))
            try:
                event = TransactionEvent.from_payload(payload)
                await self._process_event(event, report)
            except UnparseableDescription as exc:
                report.unparseable += 1
                logger.warning(
                    "swap_event_unparseable",
                    description=(exc.description or "")[:200],
                )
            except Exception as exc:
                report.failed += 1
                logger.error("swap_event_failed", error=str(exc))
            finally:
                clear_context()

        logger.info("webhook_batch_processed", **report.as_dict())
        return report

    async def _process_event(self, event: TransactionEvent, report: BatchReport) -> None:
        if not is_swap_event(event):
            report.skipped += 1
            return

        swap = parse_swap(event)
        recipients = await self.subscriptions.find_users_for_wallet(swap.trader_address)
        if not recipients:
            report.skipped += 1
            logger.debug("swap_without_subscribers", wallet=swap.trader_address)
            return

        message = await self.composer.compose(
            swap, event.signature, timestamp=event.timestamp
        )
        outcomes = await self.dispatcher.dispatch(
            swap.trader_address, message, recipients=recipients
        )
        report.outcomes.extend(outcomes)
        report.notified += 1
