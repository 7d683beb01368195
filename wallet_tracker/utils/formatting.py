"""Helpers for Telegram-safe Markdown formatting and number display."""

from __future__ import annotations

import re
from typing import Any, Sequence

MARKDOWN_SPECIAL_CHARS = r"_*[]()~`>#+-=|{}.!\\"

_UNESCAPE_PATTERN = re.compile(r"\\([_*\[\]()~`>#+\-=|{}.!\\])")


def escape_markdown(text: Any) -> str:
    """Escape Telegram MarkdownV2 control characters."""
    if text is None:
        text = ""
    if not isinstance(text, str):
        text = str(text)
    return "".join(
        f"\\{char}" if char in MARKDOWN_SPECIAL_CHARS else char for char in text
    )


def escape_markdown_url(url: str) -> str:
    """Escape Telegram MarkdownV2-sensitive characters inside link URLs."""
    if not url:
        return ""
    return url.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def unescape_markdown(text: str) -> str:
    """Strip MarkdownV2 escapes so a message can be resent as plain text."""
    if not text:
        return ""
    return _UNESCAPE_PATTERN.sub(r"\1", text)


def to_number(value: Any) -> float:
    """Coerce loose numeric input ("1,234.5", 12, None) to a float.

    Anything that is not a number becomes 0.0 instead of raising.
    """
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        cleaned = str(value if value is not None else "").replace(",", "").strip()
        try:
            number = float(cleaned)
        except ValueError:
            return 0.0
    # NaN and infinities are not displayable amounts.
    if number != number or number in (float("inf"), float("-inf")):
        return 0.0
    return number


def format_amount(value: Any) -> str:
    """Abbreviate a magnitude: 1.23M, 4.56K or two decimals."""
    if isinstance(value, bool):
        return "0"
    try:
        number = float(str(value).replace(",", "")) if value is not None else None
    except ValueError:
        number = None
    if number is None or number != number or abs(number) == float("inf"):
        return "0"

    magnitude = abs(number)
    if magnitude >= 1_000_000:
        return f"{number / 1_000_000:.2f}M"
    if magnitude >= 1_000:
        return f"{number / 1_000:.2f}K"
    return f"{number:.2f}"


def shorten_address(address: str, keep: int = 4) -> str:
    """Render long base58 addresses as `AbCd…WxYz`."""
    if not address or len(address) <= keep * 2 + 1:
        return address or ""
    return f"{address[:keep]}…{address[-keep:]}"


def join_messages(parts: Sequence[str]) -> str:
    """Join sections with blank lines."""
    return "\n\n".join(part for part in parts if part)
