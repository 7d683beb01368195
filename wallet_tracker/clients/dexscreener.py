"""Dexscreener market-data lookups."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from wallet_tracker.errors import UpstreamUnavailable
from wallet_tracker.utils.formatting import to_number
from wallet_tracker.utils.logging import get_logger
from wallet_tracker.utils.swap_parser import ADDRESS_PATTERN

logger = get_logger(__name__)

CHAIN_ID = "solana"


@dataclass
class MarketSnapshot:
    symbol: str
    price_usd: float
    market_cap: float
    volume_24h: float
    url: Optional[str] = None


class DexscreenerClient:
    """Resolve a mint address or a ticker symbol to its most liquid Solana pair."""

    def __init__(
        self,
        api_base: str = "https://api.dexscreener.com",
        timeout_seconds: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def lookup(self, token: str) -> Optional[MarketSnapshot]:
        """Return market data for `token`, None when nothing is listed.

        Raises UpstreamUnavailable when the API cannot be reached.
        """
        if ADDRESS_PATTERN.fullmatch(token):
            url = f"{self.api_base}/latest/dex/tokens/{token}"
            params: Dict[str, str] = {}
        else:
            url = f"{self.api_base}/latest/dex/search"
            params = {"q": token}

        session = self._get_session()
        try:
            async with session.get(url, params=params) as resp:
                if resp.status >= 400:
                    raise UpstreamUnavailable(
                        f"Dexscreener returned {resp.status} for {token}"
                    )
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise UpstreamUnavailable(f"Dexscreener lookup failed: {exc}") from exc

        pair = self._best_pair(data, token)
        if pair is None:
            logger.debug("dexscreener_no_pairs", token=token)
            return None
        return self._snapshot(pair, token)

    @staticmethod
    def _best_pair(data: Any, token: str) -> Optional[Dict[str, Any]]:
        pairs: List[Dict[str, Any]] = []
        if isinstance(data, dict):
            pairs = [p for p in data.get("pairs") or [] if isinstance(p, dict)]
        solana_pairs = [p for p in pairs if p.get("chainId") == CHAIN_ID]
        if not solana_pairs:
            return None

        # Prefer pairs where the looked-up token is the base side.
        token_lower = token.lower()
        as_base = [
            p
            for p in solana_pairs
            if token_lower
            in {
                str((p.get("baseToken") or {}).get("address", "")).lower(),
                str((p.get("baseToken") or {}).get("symbol", "")).lower(),
            }
        ]
        candidates = as_base or solana_pairs
        return max(
            candidates,
            key=lambda p: to_number((p.get("liquidity") or {}).get("usd")),
        )

    @staticmethod
    def _snapshot(pair: Dict[str, Any], token: str) -> MarketSnapshot:
        base_token = pair.get("baseToken") or {}
        market_cap = pair.get("marketCap")
        if market_cap is None:
            market_cap = pair.get("fdv")
        return MarketSnapshot(
            symbol=str(base_token.get("symbol") or token),
            price_usd=to_number(pair.get("priceUsd")),
            market_cap=to_number(market_cap),
            volume_24h=to_number((pair.get("volume") or {}).get("h24")),
            url=pair.get("url"),
        )

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
