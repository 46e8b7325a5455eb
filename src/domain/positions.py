from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import Any, Iterable, Sequence

from domain.aggregation import DEFAULT_MIN_USD, DEFAULT_TOP_N
from utils.formatting import optional_qty, qty, usd

DEFAULT_MAJORS = ("BTC", "ETH")


class Direction(StrEnum):
    LONG = "LONG"
    SHORT = "SHORT"


@dataclass(frozen=True)
class FuturesPosition:
    """A futures position normalized to signed base quantity and signed USD value."""

    symbol: str
    base: str
    side: str
    quantity: Decimal
    usd: Decimal
    mark_price: Decimal | None = None
    contracts: Decimal | None = None
    contract_value: Decimal | None = None

    @property
    def direction(self) -> Direction:
        return Direction.LONG if self.usd > 0 else Direction.SHORT

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "symbol": self.symbol,
            "base": self.base,
            "side": self.side,
            "size": qty(abs(self.quantity), Decimal("0.000001")),
            "markPrice": optional_qty(self.mark_price, Decimal("0.000001")),
            "usd": usd(self.usd),
            "direction": str(self.direction),
        }
        if self.contracts is not None:
            out["contracts"] = qty(self.contracts, Decimal("0.0001"))
            out["ctVal"] = float(self.contract_value) if self.contract_value is not None else None
        return out


@dataclass(frozen=True)
class FuturesSummary:
    major_net_qty: dict[str, Decimal]
    alt_net_usd: Decimal
    alt_top: list[FuturesPosition]

    def net_qty(self, base: str) -> Decimal:
        return self.major_net_qty.get(base, Decimal(0))

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {f"{base.lower()}NetQty": qty(value) for base, value in self.major_net_qty.items()}
        out["altFuturesUSD"] = usd(self.alt_net_usd)
        out["altFuturesTop"] = [position.to_dict() for position in self.alt_top]
        return out


def summarize_positions(
    positions: Iterable[FuturesPosition],
    *,
    majors: Sequence[str] = DEFAULT_MAJORS,
    min_usd: Decimal = DEFAULT_MIN_USD,
    top_n: int = DEFAULT_TOP_N,
) -> FuturesSummary:
    """Net directional exposure: longs add, shorts subtract.

    Majors are reported as signed net base quantity. Every other position with
    ``abs(usd) >= min_usd`` adds its signed USD value to the alt total and to
    the top list, which is ordered by signed value (largest long first).
    """
    major_net: dict[str, Decimal] = defaultdict(Decimal)
    for base in majors:
        major_net[base] = Decimal(0)
    alt_net = Decimal(0)
    alt: list[FuturesPosition] = []

    for position in positions:
        if position.base in major_net:
            major_net[position.base] += position.quantity
            continue
        if not position.usd or abs(position.usd) < min_usd:
            continue
        alt_net += position.usd
        alt.append(position)

    alt.sort(key=lambda position: position.usd, reverse=True)
    return FuturesSummary(major_net_qty=dict(major_net), alt_net_usd=alt_net, alt_top=alt[:top_n])


def signed(value: Decimal, side: str, *, short_sides: Sequence[str] = ("SHORT", "SELL")) -> Decimal:
    """Apply a provider side label to an unsigned magnitude."""
    magnitude = abs(value)
    return -magnitude if side.upper() in short_sides else magnitude


__all__ = ["Direction", "FuturesPosition", "FuturesSummary", "signed", "summarize_positions"]
