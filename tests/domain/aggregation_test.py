from __future__ import annotations

from decimal import Decimal

from domain.aggregation import AssetEntry, PriceTable, aggregate_balances, base_asset


def _entry(asset: str, usd: str | None = None, quantity: str = "1") -> AssetEntry:
    return AssetEntry(asset=asset, quantity=Decimal(quantity), usd=Decimal(usd) if usd is not None else None)


def test_exclusion_and_threshold() -> None:
    entries = [_entry("BTC", "500"), _entry("ALT1", "50"), _entry("ALT2", "150")]

    result = aggregate_balances(entries, excluded={"BTC"}, min_usd=Decimal(100))

    assert result.total_usd == Decimal(150)
    assert [(balance.asset, balance.valuation_usd) for balance in result.top_entries] == [("ALT2", Decimal(150))]
    assert result.top_entries[0].to_dict() == {"asset": "ALT2", "usd": 150.0}


def test_threshold_applies_to_each_entry_before_merging() -> None:
    entries = [_entry("SOL", "60"), _entry("SOL", "60"), _entry("DOT", "99")]

    result = aggregate_balances(entries, min_usd=Decimal(100))

    assert result.total_usd == Decimal(0)
    assert result.top_entries == []


def test_surviving_entries_of_one_asset_are_merged() -> None:
    entries = [_entry("SOL", "150"), _entry("SOL", "60"), _entry("SOL", "120", quantity="2")]

    result = aggregate_balances(entries, min_usd=Decimal(100))

    assert result.total_usd == Decimal(270)
    assert [(balance.asset, balance.valuation_usd) for balance in result.top_entries] == [("SOL", Decimal(270))]
    assert result.top_entries[0].quantity == Decimal(3)


def test_quantities_are_valued_from_price_table() -> None:
    prices = PriceTable.from_tickers(
        [
            {"symbol": "SOLUSDT", "price": "150"},
            {"symbol": "ARBUSDC", "price": "1.25"},
            {"symbol": "ARBUSDT", "price": "0"},
            {"symbol": "ETHBTC", "price": "0.05"},
        ]
    )
    entries = [
        AssetEntry(asset="SOL", quantity=Decimal("2"), source="spot"),
        AssetEntry(asset="ARB", quantity=Decimal("100"), source="funding"),
        AssetEntry(asset="NOPRICE", quantity=Decimal("5"), source="spot"),
    ]

    result = aggregate_balances(entries, prices=prices, min_usd=Decimal(100))

    assert [(balance.asset, balance.valuation_usd) for balance in result.top_entries] == [
        ("SOL", Decimal("300")),
        ("ARB", Decimal("125.00")),
    ]
    assert result.diagnostics == [{"asset": "NOPRICE", "source": "spot", "reason": "no price"}]


def test_price_table_prefers_usdt_market() -> None:
    prices = PriceTable.from_tickers([{"symbol": "SOLUSDC", "price": "151"}, {"symbol": "SOLUSDT", "price": "150"}])

    assert prices.usd_price("SOL") == Decimal("150")
    assert prices.usd_price("DOGE") is None
    assert len(prices) == 2


def test_non_positive_and_non_finite_valuations_are_dropped() -> None:
    entries = [
        AssetEntry(asset="NEG", quantity=Decimal(1), usd=Decimal(-500)),
        AssetEntry(asset="NAN", quantity=Decimal(1), usd=Decimal("NaN")),
        _entry("OK", "200"),
    ]

    result = aggregate_balances(entries, min_usd=Decimal(0))

    assert [balance.asset for balance in result.top_entries] == ["OK"]
    assert result.total_usd == Decimal(200)


def test_top_entries_are_sorted_and_capped_but_total_covers_all() -> None:
    entries = [_entry(f"A{index}", str(100 + index)) for index in range(30)]

    result = aggregate_balances(entries, min_usd=Decimal(100), top_n=25)

    assert len(result.top_entries) == 25
    assert result.top_entries[0].asset == "A29"
    valuations = [balance.valuation_usd for balance in result.top_entries]
    assert valuations == sorted(valuations, reverse=True)
    assert sum(valuations) <= result.total_usd
    assert all(value >= Decimal(100) for value in valuations)


def test_base_asset_strips_stable_quote() -> None:
    assert base_asset("SOLUSDT") == "SOL"
    assert base_asset("ARBUSDC") == "ARB"
    assert base_asset("USDT") == "USDT"
