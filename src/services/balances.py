from __future__ import annotations

from decimal import Decimal
from typing import Any

from clients.bitget import BitgetClient, parse_account_balances
from clients.bithumb import BithumbClient
from clients.bybit import BybitClient
from clients.okx import PROVIDER as OKX, OkxClient
from clients.signing import now_ms
from errors import ProviderAPIError
from utils.formatting import num, to_decimal, usd

OKX_TOP_COINS = 5


def bitget_balance(client: BitgetClient) -> dict[str, Any]:
    total, breakdown = parse_account_balances(client.all_account_balance())
    return {"totalUSD": usd(total), "breakdown": breakdown, "t": now_ms()}


def bybit_balance(client: BybitClient, account_type: str = "UNIFIED") -> dict[str, Any]:
    account_type = account_type.upper()
    return {"success": True, "accountType": account_type, "raw": client.wallet_balance(account_type), "t": now_ms()}


def bybit_key_info(client: BybitClient) -> dict[str, Any]:
    return {"success": True, "data": client.api_key_info()}


def _okx_coins(details: Any) -> list[dict[str, Any]]:
    coins = []
    for row in details if isinstance(details, list) else []:
        if not isinstance(row, dict):
            continue
        value = num(row.get("eqUsd"))
        if value > 0:
            coins.append({"coin": row.get("ccy"), "usd": value})
    coins.sort(key=lambda coin: coin["usd"], reverse=True)
    return coins


def okx_balance(client: OkxClient, valuation_ccy: str = "USD") -> dict[str, Any]:
    """Unified-account equity in USD; the asset valuation endpoint is asked only when equity is missing."""
    valuation_ccy = valuation_ccy.upper()
    info = client.balance()
    if info is None:
        raise ProviderAPIError("No account data", provider=OKX)

    total = to_decimal(info.get("totalEq"))
    source = "account.balance.totalEq"
    if total is None or total <= 0:
        source = "asset.valuation"
        valuation = client.asset_valuation(valuation_ccy) if valuation_ccy == "USD" else None
        total = valuation if valuation is not None else Decimal(0)

    details = info.get("details")
    coins = _okx_coins(details)
    return {
        "mode": "UA-Advanced-MultiCurrency",
        "totalUSD": usd(total),
        "source": source,
        "valuationCcy": valuation_ccy,
        "topCoinsUSD": [{"coin": coin["coin"], "usd": usd(coin["usd"])} for coin in coins[:OKX_TOP_COINS]],
        "t": now_ms(),
        "rawHints": {
            "hasEqUsdPerCoin": isinstance(details, list)
            and any(isinstance(row, dict) and "eqUsd" in row for row in details),
        },
    }


def bithumb_balance(client: BithumbClient) -> dict[str, Any]:
    data = client.balance("ALL")
    return {"totalKRW": float(num(data.get("total_krw"))), "raw": data, "t": now_ms()}


def bithumb_account(client: BithumbClient) -> dict[str, Any]:
    return {"success": True, "data": client.account()}


__all__ = [
    "bitget_balance",
    "bithumb_account",
    "bithumb_balance",
    "bybit_balance",
    "bybit_key_info",
    "okx_balance",
]
