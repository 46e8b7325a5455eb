from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any
from urllib.parse import urlencode

from config import ExchangeCredentials
from domain.positions import FuturesPosition
from errors import ProviderAPIError
from utils.formatting import num

from .http import FetchResult, JsonHttpClient, json_rows
from .signing import ServerClock, SignedRequest, bybit_canonical, hex_sha256

logger = logging.getLogger(__name__)

PROVIDER = "Bybit"
BASE_URL = "https://api.bybit.com"


class BybitClient:
    # https://bybit-exchange.github.io/docs/v5/guide#authentication
    def __init__(
        self,
        credentials: ExchangeCredentials,
        *,
        http: JsonHttpClient | None = None,
        clock: ServerClock | None = None,
        recv_window: int = 5000,
        base_url: str = BASE_URL,
    ) -> None:
        self.credentials = credentials
        self._signer = hex_sha256(credentials.secret_key)
        self._http = http or JsonHttpClient()
        self.clock = clock or ServerClock()
        self.recv_window = str(recv_window)
        self.base_url = base_url.rstrip("/")

    def sign_request(self, path: str, params: dict[str, Any] | None = None) -> SignedRequest:
        timestamp = str(self.clock.now())
        query = urlencode(params or {})
        signature = self._signer.sign(
            bybit_canonical(
                timestamp=timestamp,
                api_key=self.credentials.api_key,
                recv_window=self.recv_window,
                payload=query,
            )
        )
        return SignedRequest(
            method="GET",
            path=path,
            query_string=query,
            body="",
            timestamp=timestamp,
            signature=signature,
            headers={
                "X-BAPI-API-KEY": self.credentials.api_key,
                "X-BAPI-SIGN": signature,
                "X-BAPI-SIGN-TYPE": "2",
                "X-BAPI-TIMESTAMP": timestamp,
                "X-BAPI-RECV-WINDOW": self.recv_window,
            },
        )

    def get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        request = self.sign_request(path, params)
        result = self._http.fetch("GET", f"{self.base_url}{request.request_path}", headers=request.headers)
        return _checked(result)

    def server_time(self) -> int | None:
        result = self._http.fetch("GET", f"{self.base_url}/v5/market/time")
        if not result.ok or not isinstance(result.payload, dict):
            return None
        server_ms = result.payload.get("time")
        return int(server_ms) if server_ms is not None else None

    def sync_time(self) -> int:
        return self.clock.sync(self.server_time)

    def wallet_balance(self, account_type: str = "UNIFIED") -> Any:
        payload = self.get("/v5/account/wallet-balance", {"accountType": account_type.upper()})
        return payload.get("result")

    def positions(self, *, category: str = "linear", settle_coin: str = "USDT") -> list[dict[str, Any]]:
        payload = self.get("/v5/position/list", {"category": category, "settleCoin": settle_coin, "limit": "200"})
        return json_rows(payload, "result", "list")

    def api_key_info(self) -> dict[str, Any]:
        return self.get("/v5/user/query-api")


def _checked(result: FetchResult) -> dict[str, Any]:
    payload = result.raise_for_failure(PROVIDER)
    if not isinstance(payload, dict) or payload.get("retCode") != 0:
        raise ProviderAPIError("Bybit API Error", provider=PROVIDER, status_code=result.status, payload=payload)
    return payload


def normalize_position(row: dict[str, Any]) -> FuturesPosition | None:
    symbol = str(row.get("symbol") or "")
    size = num(row.get("size"))
    if not symbol or not size:
        return None

    side = str(row.get("side") or "").upper()
    sign = Decimal(1) if side == "BUY" else Decimal(-1) if side == "SELL" else Decimal(0)
    quantity = size * sign
    mark = num(row.get("markPrice"))
    position_value = num(row.get("positionValue"))
    value = position_value * sign if position_value else quantity * mark

    return FuturesPosition(
        symbol=symbol,
        base=symbol.removesuffix("USDT").removesuffix("PERP"),
        side=side,
        quantity=quantity,
        usd=value,
        mark_price=mark or None,
    )


__all__ = ["BybitClient", "normalize_position"]
