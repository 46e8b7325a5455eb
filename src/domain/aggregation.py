from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Mapping, Sequence

from utils.formatting import to_decimal, usd

DEFAULT_MIN_USD = Decimal(100)
DEFAULT_TOP_N = 25
DEFAULT_QUOTES = ("USDT", "USDC")
STABLE_QUOTES = ("USDT", "USDC", "BUSD")


@dataclass(frozen=True)
class AssetEntry:
    """One raw per-asset amount as reported by a provider."""

    asset: str
    quantity: Decimal
    usd: Decimal | None = None
    source: str | None = None


@dataclass(frozen=True)
class AssetBalance:
    asset: str
    quantity: Decimal
    valuation_usd: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {"asset": self.asset, "usd": usd(self.valuation_usd)}


@dataclass(frozen=True)
class AggregateResult:
    total_usd: Decimal
    top_entries: list[AssetBalance]
    diagnostics: list[dict[str, Any]] = field(default_factory=list)


def base_asset(symbol: str, quotes: Sequence[str] = STABLE_QUOTES) -> str:
    for quote in quotes:
        if symbol.endswith(quote) and len(symbol) > len(quote):
            return symbol[: -len(quote)]
    return symbol


class PriceTable:
    """Spot USD prices per base asset, looked up by quote preference (USDT, then USDC)."""

    def __init__(self, prices: Mapping[str, Mapping[str, Decimal]], quotes: Sequence[str] = DEFAULT_QUOTES) -> None:
        self._prices = {quote: dict(prices.get(quote, {})) for quote in quotes}
        self._quotes = tuple(quotes)

    @classmethod
    def from_tickers(cls, rows: Iterable[Any], quotes: Sequence[str] = DEFAULT_QUOTES) -> PriceTable:
        prices: dict[str, dict[str, Decimal]] = defaultdict(dict)
        for row in rows:
            if not isinstance(row, dict):
                continue
            symbol = str(row.get("symbol") or "")
            price = to_decimal(row.get("price"))
            if not symbol or price is None or price <= 0:
                continue
            for quote in quotes:
                if symbol.endswith(quote) and len(symbol) > len(quote):
                    prices[quote][symbol[: -len(quote)]] = price
        return cls(prices, quotes)

    def usd_price(self, asset: str) -> Decimal | None:
        for quote in self._quotes:
            price = self._prices[quote].get(asset)
            if price:
                return price
        return None

    def __len__(self) -> int:
        return sum(len(table) for table in self._prices.values())


def aggregate_balances(
    entries: Iterable[AssetEntry],
    *,
    prices: PriceTable | None = None,
    excluded: Iterable[str] = (),
    min_usd: Decimal = DEFAULT_MIN_USD,
    top_n: int = DEFAULT_TOP_N,
) -> AggregateResult:
    """Value spot balances in USD and keep the ones worth showing.

    Excluded assets are dropped first. Each remaining entry uses its embedded
    USD valuation when the provider supplied one, otherwise ``quantity`` times
    the table price. The ``min_usd`` threshold applies to each entry on its own;
    entries that pass are then merged per asset, and the total is the sum of
    exactly those entries. An asset without a price is skipped, never fatal.
    """
    skip = {asset.upper() for asset in excluded}
    quantities: dict[str, Decimal] = defaultdict(Decimal)
    valuations: dict[str, Decimal] = defaultdict(Decimal)
    diagnostics: list[dict[str, Any]] = []

    for entry in entries:
        asset = entry.asset.upper()
        if not asset or asset in skip:
            continue
        if entry.usd is not None:
            valuation = entry.usd
        else:
            if not entry.quantity:
                continue
            price = prices.usd_price(asset) if prices is not None else None
            if price is None:
                diagnostics.append({"asset": asset, "source": entry.source, "reason": "no price"})
                continue
            valuation = entry.quantity * price
        if not valuation.is_finite() or valuation <= 0 or valuation < min_usd:
            continue
        quantities[asset] += entry.quantity
        valuations[asset] += valuation

    total = sum(valuations.values(), Decimal(0))
    kept = [
        AssetBalance(asset=asset, quantity=quantities[asset], valuation_usd=valuation)
        for asset, valuation in valuations.items()
    ]

    kept.sort(key=lambda balance: balance.valuation_usd, reverse=True)
    return AggregateResult(total_usd=total, top_entries=kept[:top_n], diagnostics=diagnostics)


__all__ = [
    "AggregateResult",
    "AssetBalance",
    "AssetEntry",
    "PriceTable",
    "aggregate_balances",
    "base_asset",
]
