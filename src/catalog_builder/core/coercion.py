"""Value coercion helpers shared by the engines.

Imported records carry loosely typed scalars (numbers may arrive as strings,
booleans as "true"/"false"). These helpers give every engine the same view of
"as text", "as number" and "compare as text".
"""

from __future__ import annotations

import math
import re
import unicodedata
from datetime import UTC, date, datetime
from typing import Any

# Leading numeric prefix, the way a lenient float parser reads "12.5cm" as 12.5
_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_FULL_NUMBER = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?\s*$")
_INFINITY = re.compile(r"^\s*([+-]?)Infinity")


def format_number(value: float | int) -> str:
    """Render a number the way it should appear in text.

    Integral floats drop the trailing ``.0`` so ``CONCAT(5)`` gives ``"5"``.
    """
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(value)


def to_text(value: Any) -> str:
    """String form of a field value; absent values become the empty string."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return format_number(value)
    return str(value)


def parse_float(value: Any) -> float | None:
    """Lenient float parse: numbers pass, strings use their leading numeric prefix.

    Returns None when nothing numeric can be read (booleans included).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
        return None if math.isnan(number) else number
    text = str(value)
    match = _LEADING_NUMBER.match(text)
    if match:
        return float(match.group(1))
    infinity = _INFINITY.match(text)
    if infinity:
        return -math.inf if infinity.group(1) == "-" else math.inf
    return None


def to_number(value: Any, default: float = 0.0) -> float:
    """Parse a value as a float, falling back to ``default``."""
    number = parse_float(value)
    return default if number is None else number


def is_numeric(value: Any) -> bool:
    """True when the whole value reads as a number (``"12"`` yes, ``"12cm"`` no)."""
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, int | float):
        return not math.isnan(value)
    if isinstance(value, str):
        return bool(_FULL_NUMBER.match(value))
    return False


def collation_key(value: Any) -> tuple[str, str, str]:
    """Sort key approximating locale-aware string comparison.

    Accents and case are ignored first, then case, then the raw text breaks
    ties so that equal keys mean equal text.
    """
    text = to_text(value)
    folded = text.casefold()
    decomposed = unicodedata.normalize("NFKD", folded)
    base = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return (base, folded, text)


def compare_text(a: Any, b: Any) -> int:
    """Three-way comparison of two values by collation key."""
    key_a = collation_key(a)
    key_b = collation_key(b)
    if key_a < key_b:
        return -1
    if key_a > key_b:
        return 1
    return 0


def parse_date(value: Any) -> datetime | None:
    """Parse an ISO-8601 date or datetime; None when the value is not a date."""
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return _naive_utc(parsed)


def _naive_utc(moment: datetime) -> datetime:
    # Mixed naive/aware values must still compare
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(UTC).replace(tzinfo=None)
