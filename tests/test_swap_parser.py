"""Tests for swap extraction from webhook events."""

import pytest

from wallet_tracker.errors import UnparseableDescription
from wallet_tracker.utils.swap_parser import (
    WRAPPED_SOL_MINT,
    TransactionEvent,
    is_native,
    is_swap_event,
    parse_dex_trade,
    parse_narrative,
    parse_structured,
    parse_swap,
)

TRADER = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
BONK_MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"


def make_event(**overrides) -> TransactionEvent:
    payload = {
        "type": "SWAP",
        "description": "",
        "signature": "5sig",
        "tokenTransfers": [],
        "timestamp": 1700000000,
    }
    payload.update(overrides)
    return TransactionEvent.from_payload(payload)


class TestNarrative:
    """Tests for the `<addr> swapped X A for Y B` sentence."""

    def test_abbreviated_trader(self) -> None:
        event = make_event(description="7xKXtg2CW9...1 swapped 2.5 SOL for 1000 FOO")
        swap = parse_narrative(event)
        assert swap is not None
        assert swap.from_amount == 2.5
        assert swap.from_token == "SOL"
        assert swap.to_amount == 1000
        assert swap.to_token == "FOO"

    def test_full_address_and_thousands_separator(self) -> None:
        event = make_event(
            description=f"{TRADER} swapped 1,234,567.89 BONK for 0.75 SOL."
        )
        swap = parse_narrative(event)
        assert swap is not None
        assert swap.trader_address == TRADER
        assert swap.from_amount == pytest.approx(1234567.89)
        assert swap.to_token == "SOL"
        assert swap.to_amount == 0.75

    def test_not_a_swap_sentence(self) -> None:
        event = make_event(description=f"{TRADER} transferred 1 SOL to someone")
        assert parse_narrative(event) is None


class TestStructured:
    """Tests for leading-address descriptions with token transfers."""

    def test_reads_mints_from_transfers(self) -> None:
        event = make_event(
            description=f"{TRADER} made a trade on Jupiter",
            tokenTransfers=[
                {"mint": WRAPPED_SOL_MINT, "tokenAmount": 1.5},
                {"mint": BONK_MINT, "tokenAmount": "2,000,000"},
            ],
        )
        swap = parse_structured(event)
        assert swap is not None
        assert swap.trader_address == TRADER
        assert swap.from_token == WRAPPED_SOL_MINT
        assert swap.from_amount == 1.5
        assert swap.to_token == BONK_MINT
        assert swap.to_amount == 2_000_000

    def test_accepts_plain_amount_field(self) -> None:
        event = make_event(
            description=TRADER,
            tokenTransfers=[
                {"mint": BONK_MINT, "amount": 10},
                {"mint": WRAPPED_SOL_MINT, "amount": "abc"},
            ],
        )
        swap = parse_structured(event)
        assert swap is not None
        assert swap.to_amount == 0

    def test_requires_two_transfers(self) -> None:
        event = make_event(
            description=f"{TRADER} did something",
            tokenTransfers=[{"mint": BONK_MINT, "tokenAmount": 1}],
        )
        assert parse_structured(event) is None

    def test_requires_leading_address(self) -> None:
        event = make_event(
            description="Swap on Raydium",
            tokenTransfers=[
                {"mint": BONK_MINT, "tokenAmount": 1},
                {"mint": WRAPPED_SOL_MINT, "tokenAmount": 1},
            ],
        )
        assert parse_structured(event) is None

    def test_rejects_too_long_leading_token(self) -> None:
        event = make_event(
            description=TRADER + "abcdefghij",
            tokenTransfers=[
                {"mint": BONK_MINT, "tokenAmount": 1},
                {"mint": WRAPPED_SOL_MINT, "tokenAmount": 1},
            ],
        )
        assert parse_structured(event) is None


class TestDexTrade:
    def test_scales_by_decimals(self) -> None:
        event = make_event(
            type="DEX_TRADE",
            events={
                "dexTrade": {
                    "wallet": TRADER,
                    "tokenIn": {"symbol": "SOL", "decimals": 9},
                    "tokenInAmount": 2_500_000_000,
                    "tokenOut": {"symbol": "BONK", "decimals": 5},
                    "tokenOutAmount": 150_000_000,
                }
            },
        )
        swap = parse_dex_trade(event)
        assert swap is not None
        assert swap.from_token == "SOL"
        assert swap.from_amount == 2.5
        assert swap.to_token == "BONK"
        assert swap.to_amount == 1500

    def test_missing_object(self) -> None:
        assert parse_dex_trade(make_event()) is None

    def test_absurd_decimals_are_not_a_trade(self) -> None:
        event = make_event(
            type="DEX_TRADE",
            description="corrupt",
            events={
                "dexTrade": {
                    "wallet": TRADER,
                    "tokenIn": {"symbol": "SOL", "decimals": 400},
                    "tokenInAmount": 1,
                    "tokenOut": {"symbol": "BONK", "decimals": 5},
                    "tokenOutAmount": 1,
                }
            },
        )
        assert parse_dex_trade(event) is None
        with pytest.raises(UnparseableDescription):
            parse_swap(event)


class TestParseSwap:
    def test_narrative_preferred_over_structured(self) -> None:
        event = make_event(
            description=f"{TRADER} swapped 1 SOL for 500 BONK",
            tokenTransfers=[
                {"mint": WRAPPED_SOL_MINT, "tokenAmount": 1},
                {"mint": BONK_MINT, "tokenAmount": 500},
            ],
        )
        swap = parse_swap(event)
        assert swap.to_token == "BONK"

    def test_falls_back_to_structured(self) -> None:
        event = make_event(
            description=f"{TRADER} routed through 3 pools",
            tokenTransfers=[
                {"mint": WRAPPED_SOL_MINT, "tokenAmount": 1},
                {"mint": BONK_MINT, "tokenAmount": 500},
            ],
        )
        assert parse_swap(event).to_token == BONK_MINT

    def test_unparseable_raises(self) -> None:
        event = make_event(description="garbage", signature="bad-sig")
        with pytest.raises(UnparseableDescription) as info:
            parse_swap(event)
        assert info.value.signature == "bad-sig"


def test_event_from_payload_is_lenient() -> None:
    event = TransactionEvent.from_payload(
        {"type": "swap", "tokenTransfers": [None, {"mint": "x"}], "timestamp": "17"}
    )
    assert event.type == "SWAP"
    assert event.description == ""
    assert len(event.token_transfers) == 1
    assert event.token_transfers[0].amount == 0
    assert event.timestamp == 17


def test_event_from_payload_ignores_non_list_transfers() -> None:
    for transfers in (5, "abc", {"mint": "x"}):
        event = TransactionEvent.from_payload({"type": "SWAP", "tokenTransfers": transfers})
        assert event.token_transfers == []


def test_is_swap_event() -> None:
    assert is_swap_event(make_event(type="SWAP"))
    assert is_swap_event(make_event(type="DEX_TRADE"))
    assert not is_swap_event(make_event(type="TRANSFER"))


def test_is_native() -> None:
    assert is_native("SOL")
    assert is_native("sol")
    assert is_native(WRAPPED_SOL_MINT)
    assert not is_native(BONK_MINT)
