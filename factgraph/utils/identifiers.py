"""Helpers for external identifiers (CIK, tickers) and bounded integers."""

import re
from typing import Optional

_DIGITS = re.compile(r"\D")


def normalize_cik(value: Optional[str]) -> str:
    """Strip whitespace and leading zeros. `"0000320193"` -> `"320193"`.

    An all-zero input normalizes to `"0"`; empty input stays empty.
    """
    if value is None:
        return ""
    trimmed = str(value).strip()
    if not trimmed:
        return ""
    stripped = trimmed.lstrip("0")
    return stripped or "0"


def pad_cik(value: str, width: int = 10) -> str:
    """Zero-pad a CIK the way EDGAR URLs expect it."""
    return normalize_cik(value).zfill(width)


def digits_only(value: str) -> str:
    return _DIGITS.sub("", value or "")


def clamp_int(value: Optional[int], default: int, lower: int, upper: int) -> int:
    """Bound an optional integer option; None and non-numeric fall back to the default."""
    if value is None:
        return default
    try:
        n = int(value)
    except (TypeError, ValueError):
        return default
    return max(lower, min(upper, n))
