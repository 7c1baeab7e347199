"""Built-in formula functions.

Each function receives already-evaluated arguments (floats, strings or
booleans) and returns a single value that the engine substitutes back into
the expression text.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from typing import Any

from catalog_builder.core.coercion import format_number
from catalog_builder.formulas.interpreter import as_number, truthy


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float | int):
        return format_number(value)
    return str(value)


def round_half_away(value: Any, decimals: Any = 0) -> float:
    """Round half away from zero at ``decimals`` digits (multiply, round, divide)."""
    number = as_number(value)
    multiplier = 10 ** int(as_number(decimals))
    scaled = abs(number) * multiplier
    rounded = math.floor(scaled + 0.5)
    return math.copysign(rounded / multiplier, number) if rounded else 0.0


def _ceil(value: Any) -> float:
    return float(math.ceil(as_number(value)))


def _floor(value: Any) -> float:
    return float(math.floor(as_number(value)))


def _abs(value: Any) -> float:
    return abs(as_number(value))


def _min(*values: Any) -> float:
    if not values:
        return math.inf
    return min(as_number(v) for v in values)


def _max(*values: Any) -> float:
    if not values:
        return -math.inf
    return max(as_number(v) for v in values)


def _if(condition: Any, value_if_true: Any, value_if_false: Any = "") -> Any:
    return value_if_true if truthy(condition) else value_if_false


def _concat(*values: Any) -> str:
    return "".join(_text(v) for v in values)


def _upper(value: Any) -> str:
    return _text(value).upper()


def _lower(value: Any) -> str:
    return _text(value).lower()


def _trim(value: Any) -> str:
    return _text(value).strip()


def _len(value: Any) -> float:
    return float(len(_text(value)))


BUILTIN_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "ROUND": round_half_away,
    "CEIL": _ceil,
    "FLOOR": _floor,
    "ABS": _abs,
    "MIN": _min,
    "MAX": _max,
    "IF": _if,
    "CONCAT": _concat,
    "UPPER": _upper,
    "LOWER": _lower,
    "TRIM": _trim,
    "LEN": _len,
}
