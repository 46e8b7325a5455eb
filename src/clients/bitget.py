from __future__ import annotations

from decimal import Decimal
from typing import Any
from urllib.parse import urlencode

from config import ExchangeCredentials
from domain.aggregation import base_asset
from domain.positions import FuturesPosition, signed
from errors import ProviderAPIError
from utils.formatting import num

from .http import JsonHttpClient, json_rows
from .signing import ServerClock, SignedRequest, base64_sha256, prehash_canonical

PROVIDER = "Bitget"
BASE_URL = "https://api.bitget.com"
SUCCESS_CODE = "00000"


class BitgetClient:
    # https://www.bitget.com/api-doc/common/signature
    def __init__(
        self,
        credentials: ExchangeCredentials,
        *,
        http: JsonHttpClient | None = None,
        clock: ServerClock | None = None,
        base_url: str = BASE_URL,
    ) -> None:
        if not credentials.passphrase:
            msg = "Bitget requires an API passphrase"
            raise ValueError(msg)
        self.credentials = credentials
        self._signer = base64_sha256(credentials.secret_key)
        self._http = http or JsonHttpClient()
        self.clock = clock or ServerClock()
        self.base_url = base_url.rstrip("/")

    def sign_request(
        self, method: str, path: str, params: dict[str, Any] | None = None, body: str = ""
    ) -> SignedRequest:
        timestamp = str(self.clock.now())
        query = urlencode(params or {})
        signature = self._signer.sign(
            prehash_canonical(timestamp=timestamp, method=method, path=path, query=query, body=body)
        )
        return SignedRequest(
            method=method.upper(),
            path=path,
            query_string=query,
            body=body,
            timestamp=timestamp,
            signature=signature,
            headers={
                "ACCESS-KEY": self.credentials.api_key,
                "ACCESS-SIGN": signature,
                "ACCESS-TIMESTAMP": timestamp,
                "ACCESS-PASSPHRASE": self.credentials.passphrase or "",
                "Content-Type": "application/json",
                "locale": "en-US",
            },
        )

    def get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        request = self.sign_request("GET", path, params)
        result = self._http.fetch("GET", f"{self.base_url}{request.request_path}", headers=request.headers)
        payload = result.raise_for_failure(PROVIDER)
        if not isinstance(payload, dict) or payload.get("code") != SUCCESS_CODE:
            raise ProviderAPIError("Bitget API Error", provider=PROVIDER, status_code=result.status, payload=payload)
        return payload

    def all_account_balance(self) -> list[dict[str, Any]]:
        return json_rows(self.get("/api/v2/account/all-account-balance"), "data")

    def all_positions(self, *, product_type: str = "USDT-FUTURES", margin_coin: str = "USDT") -> list[dict[str, Any]]:
        params = {"productType": product_type, "marginCoin": margin_coin}
        payload = self.get("/api/v2/mix/position/all-position", params)
        return json_rows(payload, "data")


def normalize_position(row: dict[str, Any]) -> FuturesPosition | None:
    symbol = str(row.get("symbol") or row.get("instId") or "")
    side = str(row.get("holdSide") or row.get("posSide") or "").upper()
    total = num(row.get("total") or row.get("totalPos") or row.get("size"))
    if not symbol or not total or side not in ("LONG", "SHORT"):
        return None

    quantity = signed(total, side)
    mark = num(row.get("markPrice"))
    embedded = num(row.get("usdt") or row.get("positionValue"))
    value = signed(embedded, side) if embedded else quantity * mark

    return FuturesPosition(
        symbol=symbol,
        base=base_asset(symbol),
        side=side,
        quantity=quantity,
        usd=value,
        mark_price=mark or None,
    )


def parse_account_balances(rows: list[dict[str, Any]]) -> tuple[Decimal, list[dict[str, Any]]]:
    total = Decimal(0)
    breakdown: list[dict[str, Any]] = []
    for row in rows:
        if row.get("usdtBalance") is None:
            continue
        balance = num(row.get("usdtBalance"))
        total += balance
        breakdown.append({"accountType": row.get("accountType"), "usdt": float(balance)})
    return total, breakdown


__all__ = ["BitgetClient", "normalize_position", "parse_account_balances"]
