from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from typing import Any, Callable

from clients.binance import (
    PROVIDER,
    BinanceClient,
    cross_margin_net,
    normalize_position,
    parse_capital_config,
    parse_cross_margin,
    parse_funding_assets,
    parse_isolated_margin,
    parse_lending_daily,
    parse_lending_project,
    parse_lending_union,
    parse_simple_earn,
    parse_user_assets,
)
from clients.http import FetchResult
from clients.signing import now_ms
from domain.aggregation import AssetEntry, PriceTable, aggregate_balances, base_asset
from domain.positions import FuturesPosition, summarize_positions
from errors import PriceTableUnavailableError, ProviderAPIError
from utils.formatting import num, qty, usd

logger = logging.getLogger(__name__)

ALT_EXCLUDED = ("BTC", "ETH", "USDT", "USDC")
FUTURES_EXCLUDED_BASES = ("BTC", "ETH")
FUTURES_QUOTE = "USDT"
ALT_MIN_USD = Decimal(100)
ALT_TOP_N = 25

Steps = list[dict[str, Any]]
WalletCall = tuple[str, Callable[[], FetchResult], Callable[[Any], list[AssetEntry]]]


def account_label(account: str | None) -> str:
    return "acct2" if account == "2" else "acct1"


def load_price_table(client: BinanceClient) -> PriceTable:
    result = client.ticker_prices()
    if not result.ok or not isinstance(result.payload, list):
        raise PriceTableUnavailableError(
            "Failed to fetch spot prices",
            provider=PROVIDER,
            status_code=result.status,
            payload=result.diagnostic(),
        )
    return PriceTable.from_tickers(result.payload)


class _FuturesPriceCache:
    """Per-request futures ticker lookups, one call per symbol."""

    def __init__(self, client: BinanceClient) -> None:
        self._client = client
        self._prices: dict[str, Decimal | None] = {}

    def __call__(self, symbol: str) -> Decimal | None:
        if symbol not in self._prices:
            self._prices[symbol] = self._client.futures_ticker_price(symbol)
        return self._prices[symbol]


def alt_futures_positions(client: BinanceClient, steps: Steps) -> list[FuturesPosition]:
    result, attempts = client.position_risk()
    steps.append({"futuresFetch": attempts})
    if not result.ok or not isinstance(result.payload, list):
        logger.warning("Binance futures positions unavailable, reporting wallet only")
        return []

    lookup = _FuturesPriceCache(client)
    positions = []
    for row in result.payload:
        symbol = str(row.get("symbol") or "") if isinstance(row, dict) else ""
        if not symbol.endswith(FUTURES_QUOTE) or base_asset(symbol) in FUTURES_EXCLUDED_BASES:
            continue
        position = normalize_position(row, lookup)
        if position is not None:
            positions.append(position)
    return positions


def _fallback_wallet_calls(client: BinanceClient) -> list[WalletCall]:
    return [
        ("capital", client.capital_config, parse_capital_config),
        ("funding", client.funding_assets, parse_funding_assets),
        ("marginCross", client.margin_account, parse_cross_margin),
        ("marginIso", client.isolated_margin_account, parse_isolated_margin),
    ]


def alt_wallet_entries(client: BinanceClient, steps: Steps) -> tuple[list[AssetEntry], str]:
    """Spot-side holdings: the consolidated user-asset call, else the per-wallet chain, plus Simple Earn."""
    entries: list[AssetEntry] = []
    path = "getUserAsset"

    user_assets = client.user_assets(need_btc_valuation=True)
    steps.append({"getUserAsset": user_assets.diagnostic()})
    if user_assets.ok and isinstance(user_assets.payload, list):
        entries.extend(parse_user_assets(user_assets.payload))
    else:
        path = "fallback"
        for name, call, parser in _fallback_wallet_calls(client):
            result = call()
            steps.append({name: result.diagnostic()})
            if result.ok:
                entries.extend(parser(result.payload))

    earn_calls = (("simpleEarnFlexible", client.simple_earn_flexible), ("simpleEarnLocked", client.simple_earn_locked))
    for name, call in earn_calls:
        result = call()
        steps.append({name: result.diagnostic()})
        if result.ok:
            entries.extend(parse_simple_earn(result.payload, name))
    return entries, path


def alt_summary(client: BinanceClient, *, account: str | None = None, debug: bool = False) -> dict[str, Any]:
    steps: Steps = []
    prices = load_price_table(client)
    steps.append({"spotPricePairs": len(prices)})

    futures_steps: Steps = []
    wallet_steps: Steps = []
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="binance-alt") as pool:
        futures_job = pool.submit(alt_futures_positions, client, futures_steps)
        wallet_job = pool.submit(alt_wallet_entries, client, wallet_steps)
        positions = futures_job.result()
        entries, path = wallet_job.result()
    steps.extend(futures_steps)
    steps.extend(wallet_steps)

    wallet = aggregate_balances(
        entries, prices=prices, excluded=ALT_EXCLUDED, min_usd=ALT_MIN_USD, top_n=ALT_TOP_N
    )
    futures = summarize_positions(positions, majors=(), min_usd=ALT_MIN_USD, top_n=ALT_TOP_N)
    if wallet.diagnostics:
        steps.append({"unpriced": wallet.diagnostics})

    out: dict[str, Any] = {
        "account": account_label(account),
        "altWalletUSD": usd(wallet.total_usd),
        "altWalletTop": [balance.to_dict() for balance in wallet.top_entries],
        "altFuturesUSD": usd(futures.alt_net_usd),
        "altFuturesTop": [position.to_dict() for position in futures.alt_top],
        "altTotalUSD": usd(wallet.total_usd + futures.alt_net_usd),
        "minUSD": int(ALT_MIN_USD),
        "excluded": list(ALT_EXCLUDED),
        "path": path,
        "t": now_ms(),
    }
    if debug:
        out["_debug"] = {"steps": steps}
    return out


def _sum_asset(entries: list[AssetEntry], asset: str) -> Decimal:
    return sum((entry.quantity for entry in entries if entry.asset == asset), Decimal(0))


def _quantity_of(result: FetchResult, parse: Callable[[Any], Decimal]) -> Decimal:
    if not result.ok:
        return Decimal(0)
    return parse(result.payload)


def asset_summary(
    client: BinanceClient,
    asset: str,
    *,
    account: str | None = None,
    debug: bool = False,
) -> dict[str, Any]:
    """Quantity of a single major asset across every Binance wallet, plus its USDⓈ-M net position."""
    asset = asset.upper()
    symbol = f"{asset}{FUTURES_QUOTE}"

    with ThreadPoolExecutor(max_workers=4, thread_name_prefix=f"binance-{asset.lower()}") as pool:
        jobs = {
            "spot": pool.submit(client.user_assets, asset),
            "funding": pool.submit(client.funding_assets, asset),
            "marginCross": pool.submit(client.margin_account),
            "simpleEarnFlexible": pool.submit(client.simple_earn_flexible, asset),
            "simpleEarnLocked": pool.submit(client.simple_earn_locked, asset),
            "lendingUnion": pool.submit(client.lending_union_account),
            "lendingDaily": pool.submit(client.lending_daily_positions, asset),
            "lendingProject": pool.submit(client.lending_project_positions, asset),
            "futures": pool.submit(client.position_risk, portfolio_margin_first=True),
        }
        results: dict[str, Any] = {name: job.result() for name, job in jobs.items()}

    futures_result, futures_attempts = results.pop("futures")

    spot = _quantity_of(results["spot"], lambda payload: _sum_asset(parse_user_assets(payload), asset))
    funding = _quantity_of(results["funding"], lambda payload: _sum_asset(parse_funding_assets(payload), asset))
    margin_cross = _quantity_of(results["marginCross"], lambda payload: cross_margin_net(payload, asset))
    margin_isolated = Decimal(0)

    earn_parsers: dict[str, Callable[[Any], list[AssetEntry]]] = {
        "simpleEarnFlexible": lambda payload: parse_simple_earn(payload, "simpleEarnFlexible"),
        "simpleEarnLocked": lambda payload: parse_simple_earn(payload, "simpleEarnLocked"),
        "lendingUnion": parse_lending_union,
        "lendingDaily": parse_lending_daily,
        "lendingProject": parse_lending_project,
    }
    earn = Decimal(0)
    for name, parser in earn_parsers.items():
        earn += _quantity_of(results[name], lambda payload, parser=parser: _sum_asset(parser(payload), asset))

    futures_net = Decimal(0)
    if futures_result.ok and isinstance(futures_result.payload, list):
        for row in futures_result.payload:
            if isinstance(row, dict) and row.get("symbol") == symbol:
                futures_net += num(row.get("positionAmt"))

    wallets_total = spot + funding + margin_cross + margin_isolated + earn
    out: dict[str, Any] = {
        "account": account_label(account),
        "spot": {
            f"spot{asset}": qty(spot),
            f"funding{asset}": qty(funding),
            f"marginCross{asset}": qty(margin_cross),
            f"marginIso{asset}": qty(margin_isolated),
            f"earn{asset}": qty(earn),
            f"walletsTotal{asset}": qty(wallets_total),
        },
        "futures": {f"usdM_{asset}netQty": qty(futures_net)},
        "t": now_ms(),
    }
    if debug:
        steps = {name: result.diagnostic() for name, result in results.items()}
        steps["futuresFetch"] = futures_attempts
        out["_debug"] = steps
    return out


def wallet_balance_summary(client: BinanceClient) -> dict[str, Any]:
    """Account total as Binance itself values it: every activated wallet, quoted in USDT."""
    result = client.wallet_balance("USDT")
    payload = result.raise_for_failure(PROVIDER)
    if not isinstance(payload, list):
        raise ProviderAPIError(
            "Unexpected Binance response format", provider=PROVIDER, status_code=result.status, payload=payload
        )

    wallets = [row for row in payload if isinstance(row, dict)]
    total = sum((num(row.get("balance")) for row in wallets if row.get("activate")), Decimal(0))
    return {
        "totalUSD": usd(total),
        "breakdown": [
            {"wallet": row.get("walletName"), "balance": row.get("balance")}
            for row in wallets
            if num(row.get("balance")) > 0
        ],
        "t": now_ms(),
    }


def portfolio_account(client: BinanceClient) -> Any:
    return client.portfolio_account().raise_for_failure(PROVIDER)


__all__ = [
    "ALT_EXCLUDED",
    "ALT_MIN_USD",
    "account_label",
    "alt_futures_positions",
    "alt_summary",
    "alt_wallet_entries",
    "asset_summary",
    "load_price_table",
    "portfolio_account",
    "wallet_balance_summary",
]
