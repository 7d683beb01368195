"""Subscription index: the invariants on top of the row store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Set

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from wallet_tracker.errors import (
    DuplicateSubscription,
    ExternalSyncFailure,
    UpstreamUnavailable,
)
from wallet_tracker.store.db import Database
from wallet_tracker.store.repository import Repository
from wallet_tracker.utils.logging import get_logger

if TYPE_CHECKING:
    from wallet_tracker.jobs.allowlist import AllowlistSynchronizer

logger = get_logger(__name__)


@dataclass
class MutationResult:
    """Outcome of add/remove; `warning` is set when the allowlist push failed."""

    wallet_address: str
    changed: bool
    synced: bool
    warning: Optional[str] = None


class SubscriptionIndex:
    """Add, remove and query wallet subscriptions.

    The duplicate check and the insert are separate round-trips. A concurrent
    request can slip between them; the table's unique constraint then rejects
    the second insert and it is reported as a duplicate all the same.
    """

    def __init__(
        self,
        db: Database,
        synchronizer: "AllowlistSynchronizer | None" = None,
    ) -> None:
        self.db = db
        self.synchronizer = synchronizer

    async def add_wallet(self, user_id: int, wallet_address: str) -> MutationResult:
        wallet = wallet_address.strip()
        try:
            async with self.db.session() as session:
                repo = Repository(session)
                if await repo.find_active_subscription(user_id, wallet):
                    raise DuplicateSubscription(user_id, wallet)
                try:
                    await repo.insert_subscription(user_id, wallet)
                except IntegrityError as exc:
                    raise DuplicateSubscription(user_id, wallet) from exc
        except SQLAlchemyError as exc:
            logger.error("subscription_add_failed", user_id=user_id, error=str(exc))
            raise UpstreamUnavailable("subscription store unavailable") from exc

        logger.info("wallet_added", user_id=user_id, wallet=wallet)
        return await self._after_mutation(wallet, changed=True)

    async def remove_wallet(self, user_id: int, wallet_address: str) -> MutationResult:
        wallet = wallet_address.strip()
        try:
            async with self.db.session() as session:
                removed = await Repository(session).delete_subscription(user_id, wallet)
        except SQLAlchemyError as exc:
            logger.error("subscription_remove_failed", user_id=user_id, error=str(exc))
            raise UpstreamUnavailable("subscription store unavailable") from exc

        logger.info("wallet_removed", user_id=user_id, wallet=wallet, rows=removed)
        return await self._after_mutation(wallet, changed=removed > 0)

    async def list_wallets(self, user_id: int) -> List[str]:
        try:
            async with self.db.session() as session:
                return await Repository(session).list_wallets(user_id)
        except SQLAlchemyError as exc:
            raise UpstreamUnavailable("subscription store unavailable") from exc

    async def find_users_for_wallet(self, wallet_address: str) -> List[int]:
        try:
            async with self.db.session() as session:
                return await Repository(session).find_users_for_wallet(wallet_address)
        except SQLAlchemyError as exc:
            raise UpstreamUnavailable("subscription store unavailable") from exc

    async def get_all_active_wallets(self) -> Set[str]:
        try:
            async with self.db.session() as session:
                return await Repository(session).all_active_wallets()
        except SQLAlchemyError as exc:
            raise UpstreamUnavailable("subscription store unavailable") from exc

    async def _after_mutation(self, wallet: str, changed: bool) -> MutationResult:
        if self.synchronizer is None:
            return MutationResult(wallet_address=wallet, changed=changed, synced=False)
        try:
            await self.synchronizer.sync()
        except (ExternalSyncFailure, UpstreamUnavailable) as exc:
            # The subscription change stays committed.
            return MutationResult(
                wallet_address=wallet,
                changed=changed,
                synced=False,
                warning=str(exc),
            )
        return MutationResult(wallet_address=wallet, changed=changed, synced=True)
