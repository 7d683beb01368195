"""High-level database operations."""

from __future__ import annotations

from typing import List, Optional, Set

from sqlalchemy import delete, select

from .db import WalletSubscription


class Repository:
    """CRUD utilities wrapping SQLModel sessions."""

    def __init__(self, session) -> None:
        self.session = session

    async def find_active_subscription(
        self, user_id: int, wallet_address: str
    ) -> Optional[WalletSubscription]:
        result = await self.session.execute(
            select(WalletSubscription).where(
                WalletSubscription.telegram_user_id == user_id,
                WalletSubscription.wallet_address == wallet_address,
                WalletSubscription.is_active == True,  # noqa: E712
            )
        )
        return result.scalars().first()

    async def insert_subscription(
        self, user_id: int, wallet_address: str
    ) -> WalletSubscription:
        """Insert an active row; the unique constraint may reject it."""
        subscription = WalletSubscription(
            telegram_user_id=user_id,
            wallet_address=wallet_address,
            is_active=True,
        )
        self.session.add(subscription)
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        await self.session.refresh(subscription)
        return subscription

    async def delete_subscription(self, user_id: int, wallet_address: str) -> int:
        """Delete matching active rows and return how many went away."""
        result = await self.session.execute(
            delete(WalletSubscription).where(
                WalletSubscription.telegram_user_id == user_id,
                WalletSubscription.wallet_address == wallet_address,
                WalletSubscription.is_active == True,  # noqa: E712
            )
        )
        await self.session.commit()
        return result.rowcount or 0

    async def list_wallets(self, user_id: int) -> List[str]:
        result = await self.session.execute(
            select(WalletSubscription.wallet_address).where(
                WalletSubscription.telegram_user_id == user_id,
                WalletSubscription.is_active == True,  # noqa: E712
            )
        )
        return list(result.scalars().all())

    async def find_users_for_wallet(self, wallet_address: str) -> List[int]:
        result = await self.session.execute(
            select(WalletSubscription.telegram_user_id)
            .where(
                WalletSubscription.wallet_address == wallet_address,
                WalletSubscription.is_active == True,  # noqa: E712
            )
            .order_by(WalletSubscription.id)
        )
        return list(result.scalars().all())

    async def all_active_wallets(self) -> Set[str]:
        result = await self.session.execute(
            select(WalletSubscription.wallet_address)
            .where(WalletSubscription.is_active == True)  # noqa: E712
            .distinct()
        )
        return set(result.scalars().all())
