from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from utils.formatting import num, to_decimal

from .http import FetchResult, JsonHttpClient, json_rows

PROVIDER = "Covalent"
BASE_URL = "https://api.covalenthq.com/v1"

EVM_CHAINS: dict[str, int] = {
    "eth": 1,
    "bsc": 56,
    "polygon": 137,
    "arbitrum": 42161,
    "optimism": 10,
    "avalanche": 43114,
    "base": 8453,
}
SOLANA_CHAIN = "solana-mainnet-beta"


@dataclass(frozen=True)
class TokenBalance:
    symbol: str
    name: str
    contract_address: str | None
    decimals: int
    quantity: Decimal
    price_usd: Decimal | None
    usd: Decimal
    is_native: bool = False


class CovalentClient:
    # https://goldrush.dev/docs/api/balances/get-token-balances-for-address
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = BASE_URL,
        http: JsonHttpClient | None = None,
        timeout: float = 12.0,
    ) -> None:
        if not api_key:
            msg = "api_key must be provided"
            raise ValueError(msg)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        # 429 is retried with back-off before the call is reported as failed
        self._http = http or JsonHttpClient(timeout=timeout, retry_attempts=2, retry_backoff_seconds=0.5)

    def balances(self, chain: str | int, address: str) -> FetchResult:
        return self._http.fetch(
            "GET",
            f"{self.base_url}/{chain}/address/{address}/balances_v2/",
            params={"quote-currency": "USD", "nft": "false", "no-nft-fetch": "true", "no-spam": "true"},
            headers={"Authorization": f"Bearer {self.api_key}"},
        )


def parse_token(item: dict[str, Any]) -> TokenBalance:
    decimals = int(num(item.get("contract_decimals")))
    raw = item.get("balance")
    if raw is not None:
        quantity = num(raw).scaleb(-decimals)
    else:
        # some chains only report the already scaled amount
        quantity = num(item.get("formatted_balance"))
    price = to_decimal(item.get("quote_rate"))
    quote = to_decimal(item.get("quote"))
    if quote is None:
        quote = quantity * price if price is not None else Decimal(0)
    symbol = str(item.get("contract_ticker_symbol") or "").upper()
    return TokenBalance(
        symbol=symbol,
        name=str(item.get("contract_name") or symbol or "-"),
        contract_address=item.get("contract_address"),
        decimals=decimals,
        quantity=quantity,
        price_usd=price,
        usd=quote,
        is_native=bool(item.get("native_token")),
    )


def parse_tokens(payload: Any) -> list[TokenBalance]:
    return [parse_token(item) for item in json_rows(payload, "data", "items")]


__all__ = ["EVM_CHAINS", "SOLANA_CHAIN", "CovalentClient", "TokenBalance", "parse_tokens"]
