from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Callable
from urllib.parse import urlencode

from config import ExchangeCredentials
from domain.aggregation import AssetEntry, base_asset
from domain.positions import FuturesPosition
from utils.formatting import num as _dec

from .http import FetchResult, JsonHttpClient, json_rows
from .signing import ServerClock, SignedRequest, hex_sha256

logger = logging.getLogger(__name__)

PROVIDER = "Binance"
SPOT_BASE = "https://api.binance.com"
FUTURES_BASE = "https://fapi.binance.com"
PORTFOLIO_BASE = "https://papi.binance.com"


class BinanceClient:
    """Signed Binance REST calls (spot/SAPI, USDⓈ-M futures, portfolio margin).

    Every call returns a :class:`FetchResult`; callers decide whether a failed
    endpoint falls back to another or surfaces as an error.
    """

    def __init__(
        self,
        credentials: ExchangeCredentials,
        *,
        http: JsonHttpClient | None = None,
        clock: ServerClock | None = None,
        recv_window: int = 5000,
    ) -> None:
        self.credentials = credentials
        self._signer = hex_sha256(credentials.secret_key)
        self._http = http or JsonHttpClient()
        self.clock = clock or ServerClock()
        self.recv_window = recv_window

    def sign_request(self, method: str, path: str, params: dict[str, Any] | None = None) -> SignedRequest:
        timestamp = str(self.clock.now())
        query = urlencode({"recvWindow": str(self.recv_window), "timestamp": timestamp, **(params or {})})
        signature = self._signer.sign(query)
        headers = {"X-MBX-APIKEY": self.credentials.api_key}
        if method.upper() == "GET":
            return SignedRequest(
                method="GET",
                path=path,
                query_string=f"{query}&signature={signature}",
                body="",
                timestamp=timestamp,
                signature=signature,
                headers=headers,
            )
        headers["Content-Type"] = "application/x-www-form-urlencoded"
        return SignedRequest(
            method=method.upper(),
            path=path,
            query_string=f"signature={signature}",
            body=query,
            timestamp=timestamp,
            signature=signature,
            headers=headers,
        )

    def signed(self, method: str, base: str, path: str, params: dict[str, Any] | None = None) -> FetchResult:
        request = self.sign_request(method, path, params)
        return self._http.fetch(
            request.method,
            f"{base}{request.request_path}",
            data=request.body or None,
            headers=request.headers,
        )

    def public(self, base: str, path: str, params: dict[str, Any] | None = None) -> FetchResult:
        return self._http.fetch("GET", f"{base}{path}", params=params)

    # Clock

    def server_time(self) -> int | None:
        result = self.public(SPOT_BASE, "/api/v3/time")
        if not result.ok or not isinstance(result.payload, dict):
            return None
        server_ms = result.payload.get("serverTime")
        return int(server_ms) if server_ms is not None else None

    def sync_time(self) -> int:
        return self.clock.sync(self.server_time)

    # Market data

    def ticker_prices(self) -> FetchResult:
        return self.public(SPOT_BASE, "/api/v3/ticker/price")

    def futures_ticker_price(self, symbol: str) -> Decimal | None:
        result = self.public(FUTURES_BASE, "/fapi/v1/ticker/price", {"symbol": symbol})
        if not result.ok or not isinstance(result.payload, dict):
            return None
        return _dec(result.payload.get("price")) or None

    # Futures

    def position_risk(self, *, portfolio_margin_first: bool = False) -> tuple[FetchResult, dict[str, Any]]:
        """USDⓈ-M positions from the futures endpoint, falling back to portfolio margin (or the reverse)."""
        endpoints = [
            ("fapi", FUTURES_BASE, "/fapi/v2/positionRisk"),
            ("papi", PORTFOLIO_BASE, "/papi/v1/um/positionRisk"),
        ]
        if portfolio_margin_first:
            endpoints.reverse()

        attempts: dict[str, Any] = {}
        result = FetchResult(status=0, error="not attempted")
        for name, base, path in endpoints:
            result = self.signed("GET", base, path)
            attempts[name] = result.diagnostic()
            if result.ok and isinstance(result.payload, list):
                return result, attempts
            logger.info("Binance %s positionRisk unavailable (status=%s)", name, result.status)
        return result, attempts

    # Wallets

    def user_assets(self, asset: str | None = None, *, need_btc_valuation: bool = False) -> FetchResult:
        params: dict[str, Any] = {}
        if asset:
            params["asset"] = asset
        if need_btc_valuation:
            params["needBtcValuation"] = "true"
        return self.signed("POST", SPOT_BASE, "/sapi/v3/asset/getUserAsset", params)

    def capital_config(self) -> FetchResult:
        return self.signed("GET", SPOT_BASE, "/sapi/v1/capital/config/getall")

    def funding_assets(self, asset: str | None = None) -> FetchResult:
        return self.signed("POST", SPOT_BASE, "/sapi/v1/asset/get-funding-asset", _asset_param(asset))

    def margin_account(self) -> FetchResult:
        return self.signed("GET", SPOT_BASE, "/sapi/v1/margin/account")

    def isolated_margin_account(self) -> FetchResult:
        return self.signed("GET", SPOT_BASE, "/sapi/v1/margin/isolated/account")

    def simple_earn_flexible(self, asset: str | None = None) -> FetchResult:
        return self.signed("GET", SPOT_BASE, "/sapi/v1/simple-earn/flexible/position", _asset_param(asset))

    def simple_earn_locked(self, asset: str | None = None) -> FetchResult:
        return self.signed("GET", SPOT_BASE, "/sapi/v1/simple-earn/locked/position", _asset_param(asset))

    def lending_union_account(self) -> FetchResult:
        return self.signed("GET", SPOT_BASE, "/sapi/v1/lending/union/account")

    def lending_daily_positions(self, asset: str) -> FetchResult:
        return self.signed("GET", SPOT_BASE, "/sapi/v1/lending/daily/token/position", {"asset": asset})

    def lending_project_positions(self, asset: str) -> FetchResult:
        return self.signed(
            "GET", SPOT_BASE, "/sapi/v1/lending/project/position/list", {"asset": asset, "type": "ALL"}
        )

    def wallet_balance(self, quote_asset: str = "USDT") -> FetchResult:
        return self.signed("GET", SPOT_BASE, "/sapi/v1/asset/wallet/balance", {"quoteAsset": quote_asset})

    def portfolio_account(self) -> FetchResult:
        return self.signed("GET", SPOT_BASE, "/sapi/v1/portfolio/account")


def _asset_param(asset: str | None) -> dict[str, Any] | None:
    return {"asset": asset} if asset else None


def parse_user_assets(payload: Any, source: str = "spot") -> list[AssetEntry]:
    return [
        AssetEntry(
            asset=str(row.get("asset") or ""),
            quantity=_dec(row.get("free")) + _dec(row.get("locked")),
            source=source,
        )
        for row in json_rows(payload)
    ]


def parse_capital_config(payload: Any) -> list[AssetEntry]:
    return [
        AssetEntry(
            asset=str(row.get("coin") or ""),
            quantity=_dec(row.get("free")) + _dec(row.get("locked")),
            source="capital",
        )
        for row in json_rows(payload)
    ]


def parse_funding_assets(payload: Any) -> list[AssetEntry]:
    return [
        AssetEntry(
            asset=str(row.get("asset") or ""),
            quantity=_dec(row.get("free")) + _dec(row.get("locked")) + _dec(row.get("freeze")),
            source="funding",
        )
        for row in json_rows(payload)
    ]


def _margin_net(row: dict[str, Any]) -> Decimal:
    if row.get("netAsset") is not None:
        return _dec(row.get("netAsset"))
    return _dec(row.get("free")) + _dec(row.get("locked")) - _dec(row.get("borrowed")) - _dec(row.get("interest"))


def parse_cross_margin(payload: Any) -> list[AssetEntry]:
    entries = []
    for row in json_rows(payload, "userAssets"):
        net = _margin_net(row)
        if net > 0:
            entries.append(AssetEntry(asset=str(row.get("asset") or ""), quantity=net, source="marginCross"))
    return entries


def parse_isolated_margin(payload: Any) -> list[AssetEntry]:
    entries = []
    for pair in json_rows(payload, "assets"):
        for side in ("baseAsset", "quoteAsset"):
            row = pair.get(side)
            if not isinstance(row, dict):
                continue
            net = _margin_net(row)
            if net > 0:
                entries.append(AssetEntry(asset=str(row.get("asset") or ""), quantity=net, source="marginIsolated"))
    return entries


def earn_amount(row: dict[str, Any]) -> Decimal:
    for key in ("totalAmount", "amount", "purchasedAmount"):
        if row.get(key) is not None:
            return _dec(row.get(key))
    return Decimal(0)


def earn_rows(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, dict):
        return json_rows(payload, "rows")
    return json_rows(payload)


def parse_simple_earn(payload: Any, source: str) -> list[AssetEntry]:
    return [
        AssetEntry(asset=str(row.get("asset") or ""), quantity=earn_amount(row), source=source)
        for row in earn_rows(payload)
    ]


def cross_margin_net(payload: Any, asset: str) -> Decimal:
    """Signed net amount of one asset in the cross-margin account (borrowings can make it negative)."""
    for row in json_rows(payload, "userAssets"):
        if str(row.get("asset")) == asset:
            return _margin_net(row)
    return Decimal(0)


def parse_lending_union(payload: Any) -> list[AssetEntry]:
    return [
        AssetEntry(asset=str(row.get("asset") or ""), quantity=_dec(row.get("amount")), source="lendingUnion")
        for row in json_rows(payload, "positionAmountVos")
    ]


def parse_lending_daily(payload: Any) -> list[AssetEntry]:
    entries = []
    for row in json_rows(payload):
        if row.get("totalAmount") is not None:
            amount = _dec(row.get("totalAmount"))
        else:
            amount = _dec(row.get("freeAmount")) + _dec(row.get("lockedAmount"))
        entries.append(AssetEntry(asset=str(row.get("asset") or ""), quantity=amount, source="lendingDaily"))
    return entries


def parse_lending_project(payload: Any) -> list[AssetEntry]:
    return [
        AssetEntry(asset=str(row.get("asset") or ""), quantity=_dec(row.get("amount")), source="lendingProject")
        for row in json_rows(payload)
    ]


def normalize_position(
    row: dict[str, Any],
    price_lookup: Callable[[str], Decimal | None] | None = None,
) -> FuturesPosition | None:
    """Signed USD for a positionRisk row: notional, else amount × mark, else amount × ticker."""
    amount = _dec(row.get("positionAmt"))
    symbol = str(row.get("symbol") or "")
    if not amount or not symbol:
        return None

    notional = _dec(row.get("notional"))
    mark = _dec(row.get("markPrice"))
    value = Decimal(0)
    if notional:
        value = notional
    elif mark:
        value = amount * mark
    elif price_lookup is not None:
        price = price_lookup(symbol)
        if price:
            value = amount * price

    return FuturesPosition(
        symbol=symbol,
        base=base_asset(symbol),
        side=str(row.get("positionSide") or "BOTH"),
        quantity=amount,
        usd=value,
        mark_price=mark or None,
    )


__all__ = [
    "BinanceClient",
    "cross_margin_net",
    "normalize_position",
    "parse_capital_config",
    "parse_cross_margin",
    "parse_funding_assets",
    "parse_isolated_margin",
    "parse_lending_daily",
    "parse_lending_project",
    "parse_lending_union",
    "parse_simple_earn",
    "parse_user_assets",
]
