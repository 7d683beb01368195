"""Swap notification card formatter for Telegram display."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Protocol

from wallet_tracker.clients.dexscreener import MarketSnapshot
from wallet_tracker.utils.formatting import (
    escape_markdown,
    escape_markdown_url,
    format_amount,
    shorten_address,
)
from wallet_tracker.utils.logging import get_logger
from wallet_tracker.utils.swap_parser import (
    ADDRESS_PATTERN,
    NATIVE_SYMBOL,
    ParsedSwap,
    is_native,
)

logger = get_logger(__name__)

EXPLORER_TX_URL = "https://solscan.io/tx/{signature}"


class TradeSide(Enum):
    BUY = "buy"
    SELL = "sell"
    SWAP = "swap"


SIDE_TITLES = {
    TradeSide.BUY: "🟢 Buy",
    TradeSide.SELL: "🔴 Sell",
    TradeSide.SWAP: "🔄 Swap",
}


class MarketDataSource(Protocol):
    async def lookup(self, token: str) -> Optional[MarketSnapshot]: ...


def classify_swap(swap: ParsedSwap) -> TradeSide:
    """Paying with the native asset is a buy, receiving it is a sell."""
    if is_native(swap.from_token):
        return TradeSide.BUY
    if is_native(swap.to_token):
        return TradeSide.SELL
    return TradeSide.SWAP


def traded_token(swap: ParsedSwap) -> str:
    """The non-native side of the trade (the `to` side for token/token swaps)."""
    if is_native(swap.to_token) and not is_native(swap.from_token):
        return swap.from_token
    return swap.to_token


def token_label(token: str, market: Optional[MarketSnapshot] = None) -> str:
    if is_native(token):
        return NATIVE_SYMBOL
    if market is not None and market.symbol and market.symbol != token:
        return market.symbol
    if ADDRESS_PATTERN.fullmatch(token):
        return shorten_address(token)
    return token


def format_swap_card(
    swap: ParsedSwap,
    signature: str,
    timestamp: Optional[int] = None,
    market: Optional[MarketSnapshot] = None,
) -> str:
    """Render a swap as a Telegram MarkdownV2 message.

    Args:
        swap: The parsed swap.
        signature: Transaction signature used for the explorer link.
        timestamp: Unix seconds of the transaction, if known.
        market: Market data for the non-native side; omitted when
            enrichment was unavailable.

    Returns:
        Formatted MarkdownV2 text.
    """
    side = classify_swap(swap)
    target = traded_token(swap)
    from_label = token_label(
        swap.from_token, market if swap.from_token == target else None
    )
    to_label = token_label(swap.to_token, market if swap.to_token == target else None)

    lines: List[str] = []
    title = f"*{escape_markdown(SIDE_TITLES[side])}*"
    if side is not TradeSide.SWAP:
        title += f" {escape_markdown(token_label(target, market))}"
    lines.append(title)
    lines.append("")

    lines.append(
        escape_markdown(
            f"💱 {format_amount(swap.from_amount)} {from_label} ➡️ "
            f"{format_amount(swap.to_amount)} {to_label}"
        )
    )
    lines.append(f"👛 Wallet: `{escape_markdown(swap.trader_address)}`")

    if market is not None:
        metrics = [
            f"💰 Price: ${format_amount(market.price_usd)}",
            f"📈 MCap: ${format_amount(market.market_cap)}",
            f"📊 Vol 24h: ${format_amount(market.volume_24h)}",
        ]
        lines.append(escape_markdown(" · ".join(metrics)))

    moment = _utc_moment(timestamp)
    if moment is not None:
        lines.append(escape_markdown(f"⏰ {moment:%Y-%m-%d %H:%M:%S} UTC"))

    links: List[str] = []
    if signature:
        tx_url = EXPLORER_TX_URL.format(signature=signature)
        links.append(f"[View on Solscan]({escape_markdown_url(tx_url)})")
    if market is not None and market.url:
        links.append(f"[Chart]({escape_markdown_url(market.url)})")
    if links:
        lines.append("")
        lines.append(" · ".join(links))

    return "\n".join(lines)


def _utc_moment(timestamp: Optional[int]) -> Optional[datetime]:
    if not timestamp:
        return None
    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (OverflowError, ValueError, OSError):
        logger.debug("swap_timestamp_out_of_range", timestamp=timestamp)
        return None


class NotificationComposer:
    """Build swap notifications, enriching them with market data when possible."""

    def __init__(self, market_data: Optional[MarketDataSource] = None) -> None:
        self.market_data = market_data

    async def compose(
        self,
        swap: ParsedSwap,
        signature: str,
        timestamp: Optional[int] = None,
    ) -> str:
        market = await self._enrich(swap, signature)
        return format_swap_card(swap, signature, timestamp=timestamp, market=market)

    async def _enrich(self, swap: ParsedSwap, signature: str) -> Optional[MarketSnapshot]:
        if self.market_data is None:
            return None
        target = traded_token(swap)
        if is_native(target):
            return None
        try:
            return await self.market_data.lookup(target)
        except Exception as exc:
            logger.warning(
                "market_data_unavailable",
                token=target,
                signature=signature,
                error=str(exc),
            )
            return None
