"""Keep the webhook provider's address allowlist in step with subscriptions."""

from __future__ import annotations

import asyncio
from typing import Iterable, Protocol, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from wallet_tracker.errors import ExternalSyncFailure, UpstreamUnavailable
from wallet_tracker.utils.logging import get_logger

logger = get_logger(__name__)

RESYNC_JOB_ID = "allowlist_resync"


class WalletSource(Protocol):
    async def get_all_active_wallets(self) -> Set[str]: ...


class AllowlistClient(Protocol):
    async def replace_addresses(self, addresses: Iterable[str]) -> None: ...


class AllowlistSynchronizer:
    """Push the full set of watched wallets in one replace-all call.

    There are no delta updates. A failed push leaves the provider stale until
    the next successful sync, which is the next subscription change or, when
    `resync_minutes` is set, the next periodic resync.
    """

    def __init__(
        self,
        client: AllowlistClient,
        source: WalletSource,
        retries: int = 0,
        retry_delay_seconds: float = 1.0,
    ) -> None:
        self.client = client
        self.source = source
        self.retries = retries
        self.retry_delay_seconds = retry_delay_seconds

    async def sync(self) -> Set[str]:
        """Push the current wallet set; raise ExternalSyncFailure if it never lands."""
        try:
            wallets = await self.source.get_all_active_wallets()
        except UpstreamUnavailable as exc:
            logger.error("allowlist_sync_read_failed", error=str(exc))
            raise ExternalSyncFailure(f"Could not read active wallets: {exc}") from exc

        attempts = self.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                await self.client.replace_addresses(wallets)
            except ExternalSyncFailure as exc:
                logger.warning(
                    "allowlist_sync_failed",
                    attempt=attempt,
                    attempts=attempts,
                    error=str(exc),
                )
                if attempt >= attempts:
                    raise
                await asyncio.sleep(self.retry_delay_seconds)
            else:
                logger.info("allowlist_synced", wallets=len(wallets), attempt=attempt)
                return wallets
        raise ExternalSyncFailure("allowlist sync exhausted retries")  # pragma: no cover

    def schedule_resync(self, scheduler: AsyncIOScheduler, minutes: int) -> None:
        """Register a periodic full resync; `minutes <= 0` leaves it off."""
        if minutes <= 0:
            return
        scheduler.add_job(
            self._resync,
            trigger="interval",
            minutes=minutes,
            id=RESYNC_JOB_ID,
            replace_existing=True,
        )
        logger.info("allowlist_resync_scheduled", minutes=minutes)

    async def _resync(self) -> None:
        try:
            await self.sync()
        except Exception as exc:  # pragma: no cover - background errors are logged
            logger.error("allowlist_resync_failed", error=str(exc))
