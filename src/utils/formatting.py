from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

USD_PLACES = Decimal("0.01")
QTY_PLACES = Decimal("0.00000001")


def to_decimal(value: Any, default: Decimal | None = None) -> Decimal | None:
    """Parse a provider number (str, int or float) into a finite Decimal."""
    if value is None or isinstance(value, bool):
        return default
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    if not parsed.is_finite():
        return default
    return parsed


def num(value: Any) -> Decimal:
    parsed = to_decimal(value)
    return parsed if parsed is not None else Decimal(0)


def usd(value: Decimal) -> float:
    return float(value.quantize(USD_PLACES, rounding=ROUND_HALF_UP))


def qty(value: Decimal, places: Decimal = QTY_PLACES) -> float:
    return float(value.quantize(places, rounding=ROUND_HALF_UP))


def optional_qty(value: Decimal | None, places: Decimal = QTY_PLACES) -> float | None:
    if value is None:
        return None
    return qty(value, places)
