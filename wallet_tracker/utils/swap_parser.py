"""Swap extraction from enhanced transaction webhook events.

Providers have sent three event shapes over time:

* a ``DEX_TRADE`` event carrying a decoded ``events.dexTrade`` object,
* a narrative ``description`` such as
  ``"<wallet> swapped 2.5 SOL for 1,000 FOO"``,
* a structured event whose ``description`` starts with the trader address
  while the traded mints sit in ``tokenTransfers[0]`` and ``tokenTransfers[1]``.

Each shape has its own strategy. Strategies return ``None`` when the event is
not theirs and never raise; :func:`parse_swap` tries them in
:data:`STRATEGIES` order and raises :class:`UnparseableDescription` when none
applies.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from wallet_tracker.errors import UnparseableDescription
from wallet_tracker.utils.formatting import to_number

SWAP_EVENT_TYPES = {"SWAP", "DEX_TRADE"}

NATIVE_SYMBOL = "SOL"
WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"

# SPL mints use at most 9; anything far beyond is a corrupt payload.
MAX_DECIMALS = 30

BASE58_CHARS = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

ADDRESS_PATTERN = re.compile(rf"[{BASE58_CHARS}]{{32,44}}")
LEADING_ADDRESS_PATTERN = re.compile(rf"^\s*([{BASE58_CHARS}]{{32,44}})(?![{BASE58_CHARS}])")

_AMOUNT = r"[-+]?\d[\d,]*(?:\.\d+)?|[-+]?\.\d+"
NARRATIVE_PATTERN = re.compile(
    r"(?P<trader>\S+)\s+swapped\s+"
    rf"(?P<from_amount>{_AMOUNT})\s+(?P<from_token>\S+)\s+for\s+"
    rf"(?P<to_amount>{_AMOUNT})\s+(?P<to_token>\S+?)[.,;]?(?:\s|$)",
    re.IGNORECASE,
)


@dataclass
class TokenTransfer:
    mint: str
    amount: float


@dataclass
class TransactionEvent:
    """One inbound enhanced transaction, read-only to us."""

    type: str
    description: str
    signature: str
    token_transfers: List[TokenTransfer] = field(default_factory=list)
    timestamp: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TransactionEvent":
        """Build an event from provider JSON, tolerating missing fields."""
        transfers: List[TokenTransfer] = []
        raw_transfers = payload.get("tokenTransfers")
        if not isinstance(raw_transfers, (list, tuple)):
            raw_transfers = []
        for entry in raw_transfers:
            if not isinstance(entry, Mapping):
                continue
            amount = entry.get("tokenAmount")
            if amount is None:
                amount = entry.get("amount")
            transfers.append(
                TokenTransfer(mint=str(entry.get("mint") or ""), amount=to_number(amount))
            )

        timestamp = payload.get("timestamp")
        return cls(
            type=str(payload.get("type") or "").upper(),
            description=str(payload.get("description") or ""),
            signature=str(payload.get("signature") or ""),
            token_transfers=transfers,
            timestamp=int(to_number(timestamp)) if timestamp is not None else None,
            raw=dict(payload),
        )


@dataclass
class ParsedSwap:
    trader_address: str
    from_token: str
    from_amount: float
    to_token: str
    to_amount: float


def is_swap_event(event: TransactionEvent) -> bool:
    return event.type in SWAP_EVENT_TYPES


def is_native(token: str) -> bool:
    """Return True for the network's native asset, by symbol or wrapped mint."""
    return token.upper() == NATIVE_SYMBOL or token == WRAPPED_SOL_MINT


def parse_dex_trade(event: TransactionEvent) -> Optional[ParsedSwap]:
    """Read a decoded ``events.dexTrade`` object."""
    events = event.raw.get("events")
    trade = events.get("dexTrade") if isinstance(events, Mapping) else None
    if not isinstance(trade, Mapping):
        return None

    wallet = trade.get("wallet")
    token_in = trade.get("tokenIn")
    token_out = trade.get("tokenOut")
    if not wallet or not isinstance(token_in, Mapping) or not isinstance(token_out, Mapping):
        return None

    from_amount = _scale(trade.get("tokenInAmount"), token_in.get("decimals"))
    to_amount = _scale(trade.get("tokenOutAmount"), token_out.get("decimals"))
    if from_amount is None or to_amount is None:
        return None

    return ParsedSwap(
        trader_address=str(wallet),
        from_token=_token_label(token_in),
        from_amount=from_amount,
        to_token=_token_label(token_out),
        to_amount=to_amount,
    )


def parse_narrative(event: TransactionEvent) -> Optional[ParsedSwap]:
    """Extract the whole swap from one ``<addr> swapped X A for Y B`` sentence."""
    match = NARRATIVE_PATTERN.search(event.description)
    if not match:
        return None
    return ParsedSwap(
        trader_address=match.group("trader"),
        from_token=match.group("from_token"),
        from_amount=to_number(match.group("from_amount")),
        to_token=match.group("to_token"),
        to_amount=to_number(match.group("to_amount")),
    )


def parse_structured(event: TransactionEvent) -> Optional[ParsedSwap]:
    """Trader from the leading address of the description, mints from transfers."""
    if len(event.token_transfers) < 2:
        return None
    match = LEADING_ADDRESS_PATTERN.match(event.description)
    if not match:
        return None

    sold, bought = event.token_transfers[0], event.token_transfers[1]
    if not sold.mint or not bought.mint:
        return None
    return ParsedSwap(
        trader_address=match.group(1),
        from_token=sold.mint,
        from_amount=sold.amount,
        to_token=bought.mint,
        to_amount=bought.amount,
    )


Strategy = Callable[[TransactionEvent], Optional[ParsedSwap]]

STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    ("dex_trade", parse_dex_trade),
    ("narrative", parse_narrative),
    ("structured", parse_structured),
)


def parse_swap(
    event: TransactionEvent, strategies: Sequence[Tuple[str, Strategy]] = STRATEGIES
) -> ParsedSwap:
    """Return the first strategy hit or raise :class:`UnparseableDescription`."""
    for _name, strategy in strategies:
        parsed = strategy(event)
        if parsed is not None:
            return parsed
    raise UnparseableDescription(event.signature, event.description)


def _token_label(token: Mapping[str, Any]) -> str:
    return str(token.get("symbol") or token.get("mint") or token.get("address") or "?")


def _scale(raw_amount: Any, decimals: Any) -> Optional[float]:
    amount = to_number(raw_amount)
    places = int(to_number(decimals))
    if places > MAX_DECIMALS:
        return None
    if places <= 0:
        return amount
    return amount / (10**places)
