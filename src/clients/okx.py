from __future__ import annotations

from decimal import Decimal
from typing import Any
from urllib.parse import urlencode

from config import ExchangeCredentials
from domain.positions import FuturesPosition, signed
from errors import ProviderAPIError
from utils.formatting import num, to_decimal

from .http import JsonHttpClient, json_rows
from .signing import ServerClock, SignedRequest, base64_sha256, iso_timestamp, prehash_canonical

PROVIDER = "OKX"
BASE_URL = "https://www.okx.com"


class OkxClient:
    # https://www.okx.com/docs-v5/en/#overview-rest-authentication
    def __init__(
        self,
        credentials: ExchangeCredentials,
        *,
        http: JsonHttpClient | None = None,
        clock: ServerClock | None = None,
        base_url: str = BASE_URL,
    ) -> None:
        if not credentials.passphrase:
            msg = "OKX requires an API passphrase"
            raise ValueError(msg)
        self.credentials = credentials
        self._signer = base64_sha256(credentials.secret_key)
        self._http = http or JsonHttpClient()
        self.clock = clock or ServerClock()
        self.base_url = base_url.rstrip("/")

    def sign_request(
        self, method: str, path: str, params: dict[str, Any] | None = None, body: str = ""
    ) -> SignedRequest:
        timestamp = iso_timestamp(self.clock.now())
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
                "OK-ACCESS-KEY": self.credentials.api_key,
                "OK-ACCESS-SIGN": signature,
                "OK-ACCESS-TIMESTAMP": timestamp,
                "OK-ACCESS-PASSPHRASE": self.credentials.passphrase or "",
                "Content-Type": "application/json",
            },
        )

    def get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        request = self.sign_request("GET", path, params)
        result = self._http.fetch("GET", f"{self.base_url}{request.request_path}", headers=request.headers)
        payload = result.raise_for_failure(PROVIDER)
        if not isinstance(payload, dict) or payload.get("code") != "0":
            code = payload.get("code") if isinstance(payload, dict) else None
            message = payload.get("msg") if isinstance(payload, dict) else None
            raise ProviderAPIError(
                f"OKX API error {path} code={code} msg={message or '?'}",
                provider=PROVIDER,
                status_code=result.status,
                payload=payload,
            )
        return payload

    def balance(self) -> dict[str, Any] | None:
        rows = json_rows(self.get("/api/v5/account/balance"), "data")
        return rows[0] if rows else None

    def asset_valuation(self, ccy: str = "USD") -> Decimal | None:
        rows = json_rows(self.get("/api/v5/asset/asset-valuation", {"ccy": ccy}), "data")
        if not rows:
            return None
        return to_decimal(rows[0].get("totalBal", rows[0].get("totalVal")))

    def positions(self, inst_type: str = "SWAP") -> list[dict[str, Any]]:
        return json_rows(self.get("/api/v5/account/positions", {"instType": inst_type}), "data")

    def contract_values(self, inst_type: str = "SWAP") -> dict[str, Decimal]:
        payload = self.get("/api/v5/public/instruments", {"instType": inst_type})
        return {str(row.get("instId")): num(row.get("ctVal")) for row in json_rows(payload, "data")}


def normalize_position(row: dict[str, Any], contract_values: dict[str, Decimal]) -> FuturesPosition | None:
    """Contracts are converted to coin quantity through the instrument's ``ctVal`` before valuation."""
    inst_id = str(row.get("instId") or "")
    if not inst_id.endswith("-SWAP"):
        return None
    contracts = num(row.get("pos") or row.get("sz"))
    if not contracts:
        return None

    side = str(row.get("posSide") or "").upper()
    if side not in ("LONG", "SHORT"):
        # net mode: the sign lives on ``pos``
        side = "LONG" if contracts > 0 else "SHORT"
    contract_value = contract_values.get(inst_id, Decimal(0))
    quantity = signed(contracts * contract_value, side)

    mark = num(row.get("markPx"))
    if row.get("notionalUsd") not in (None, ""):
        value = signed(num(row.get("notionalUsd")), side)
    else:
        value = quantity * mark

    return FuturesPosition(
        symbol=inst_id,
        base=inst_id.split("-", 1)[0],
        side=side,
        quantity=quantity,
        usd=value,
        mark_price=mark or None,
        contracts=abs(contracts),
        contract_value=contract_value,
    )


__all__ = ["OkxClient", "normalize_position"]
