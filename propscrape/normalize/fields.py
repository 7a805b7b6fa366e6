"""Field level coercion helpers for scraped listing text."""
from __future__ import annotations

from typing import Optional

MAX_COUNT = 32767
MAX_PRICE = 2**63 - 1


def clean_text(text: Optional[str]) -> str:
    """Trim surrounding whitespace, treating ``None`` as empty."""
    if text is None:
        return ""
    return text.strip()


def _digits(text: str) -> str:
    return "".join(ch for ch in text if ch.isascii() and ch.isdigit())


def parse_price(text: Optional[str]) -> Optional[int]:
    """Keep only ASCII digits and parse them as an integer price.

    ``"R 1,250,000"`` becomes ``1250000``; text without digits such as
    ``"Contact us"`` or a value beyond a signed 64-bit integer yields ``None``.
    """
    if not text:
        return None
    digits = _digits(text)
    if not digits:
        return None
    value = int(digits)
    if value > MAX_PRICE:
        return None
    return value


def parse_count(text: Optional[str]) -> Optional[int]:
    """Parse bedroom/bathroom style counts as a small integer."""
    value = parse_price(text)
    if value is None or value > MAX_COUNT:
        return None
    return value


def parse_size(text: Optional[str]) -> Optional[float]:
    """Keep digits and ``.`` and parse the remainder as a float."""
    if not text:
        return None
    cleaned = "".join(ch for ch in text if (ch.isascii() and ch.isdigit()) or ch == ".")
    try:
        return float(cleaned)
    except ValueError:
        return None
