"""Helius webhook configuration client."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, Optional

import aiohttp

from wallet_tracker.errors import ExternalSyncFailure
from wallet_tracker.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TRANSACTION_TYPES = ("SWAP",)


class HeliusClient:
    """Replace the set of account addresses an enhanced webhook watches."""

    def __init__(
        self,
        api_key: str,
        webhook_id: str,
        webhook_url: str,
        api_base: str = "https://api.helius.xyz",
        auth_header: Optional[str] = None,
        transaction_types: Iterable[str] = DEFAULT_TRANSACTION_TYPES,
        timeout_seconds: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.api_key = api_key
        self.webhook_id = webhook_id
        self.webhook_url = webhook_url
        self.api_base = api_base.rstrip("/")
        self.auth_header = auth_header
        self.transaction_types = list(transaction_types)
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None

    @property
    def endpoint(self) -> str:
        return f"{self.api_base}/v0/webhooks/{self.webhook_id}"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    def build_payload(self, addresses: Iterable[str]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "webhookURL": self.webhook_url,
            "transactionTypes": self.transaction_types,
            "accountAddresses": sorted(set(addresses)),
            "webhookType": "enhanced",
        }
        if self.auth_header:
            payload["authHeader"] = self.auth_header
        return payload

    async def replace_addresses(self, addresses: Iterable[str]) -> None:
        """PUT the full address set; raise ExternalSyncFailure on any failure."""
        payload = self.build_payload(addresses)
        session = self._get_session()
        try:
            async with session.put(
                self.endpoint,
                params={"api-key": self.api_key},
                json=payload,
            ) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise ExternalSyncFailure(
                        f"Helius webhook update returned {resp.status}: {body[:200]}"
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise ExternalSyncFailure(f"Helius webhook update failed: {exc}") from exc

        logger.info(
            "helius_webhook_updated",
            webhook_id=self.webhook_id,
            addresses=len(payload["accountAddresses"]),
        )

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
