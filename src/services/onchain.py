from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from clients.covalent import EVM_CHAINS, PROVIDER, SOLANA_CHAIN, CovalentClient, TokenBalance, parse_tokens
from clients.http import FetchResult
from clients.signing import now_ms
from domain.aggregation import AggregateResult, AssetEntry, aggregate_balances
from errors import InvalidRequestError, UpstreamUnavailableError
from utils.formatting import optional_qty, qty, to_decimal, usd

logger = logging.getLogger(__name__)

DEFAULT_MIN_USD = Decimal(10)
SOLANA_TOP_N = 25
EVM_TOP_N = 50
PRICE_PLACES = Decimal("0.000001")


def parse_min_usd(raw: str | None, default: Decimal = DEFAULT_MIN_USD) -> Decimal:
    value = to_decimal(raw)
    if value is None or value < 0:
        return default
    return value


def _token_key(token: TokenBalance) -> str:
    return (token.contract_address or token.symbol).upper()


def _checked_tokens(result: FetchResult, sample: int, *, relay_status: bool = False) -> list[TokenBalance]:
    payload = result.payload if isinstance(result.payload, dict) else {}
    if not result.ok or not isinstance(payload.get("data"), dict):
        # an upstream error status can be passed through; anything else is a bad gateway
        relayed = result.status if relay_status and result.status >= 400 else 502
        raise UpstreamUnavailableError(
            "Covalent API failed",
            response_status=relayed,
            provider=PROVIDER,
            status_code=result.status,
            payload=result.text[:sample],
        )
    return parse_tokens(payload)


def aggregate_tokens(
    tokens: list[TokenBalance],
    *,
    min_usd: Decimal,
    top_n: int,
) -> tuple[AggregateResult, dict[str, TokenBalance]]:
    """Tokens are keyed by contract so two tokens sharing a ticker are not merged."""
    by_key: dict[str, TokenBalance] = {}
    entries = []
    for token in tokens:
        key = _token_key(token)
        by_key.setdefault(key, token)
        entries.append(AssetEntry(asset=key, quantity=token.quantity, usd=token.usd, source="covalent"))
    return aggregate_balances(entries, min_usd=min_usd, top_n=top_n), by_key


def solana_summary(
    client: CovalentClient,
    address: str | None,
    *,
    min_usd: Decimal = DEFAULT_MIN_USD,
) -> dict[str, Any]:
    address = (address or "").strip()
    if not address:
        raise InvalidRequestError("addr (Solana address) required")

    tokens = _checked_tokens(client.balances(SOLANA_CHAIN, address), sample=140)
    result, by_key = aggregate_tokens(tokens, min_usd=min_usd, top_n=SOLANA_TOP_N)
    top = []
    for balance in result.top_entries:
        token = by_key[balance.asset]
        top.append(
            {
                "symbol": token.symbol,
                "name": token.name,
                "qty": qty(balance.quantity),
                "priceUSD": qty(token.price_usd or Decimal(0), PRICE_PLACES),
                "usd": usd(balance.valuation_usd),
            }
        )
    return {
        "chain": SOLANA_CHAIN,
        "address": address,
        "minUSD": float(min_usd),
        "totalUSD": usd(result.total_usd),
        "top": top,
        "countAll": len(tokens),
        "t": now_ms(),
    }


def resolve_evm_chain(chain: str | None) -> tuple[str, int]:
    name = (chain or "eth").strip().lower()
    if name.startswith("sol"):
        raise InvalidRequestError(
            "Solana balances not supported by Foundational REST (use /api/solana-balance)", status_code=501
        )
    if name not in EVM_CHAINS:
        raise InvalidRequestError(f"Unsupported chain '{name}'. Use one of: {', '.join(EVM_CHAINS)}")
    return name, EVM_CHAINS[name]


def evm_summary(
    client: CovalentClient,
    chain: str | None,
    address: str | None,
    *,
    min_usd: Decimal = DEFAULT_MIN_USD,
) -> dict[str, Any]:
    address = (address or "").strip()
    if not address:
        raise InvalidRequestError("Missing 'address' query param")
    name, chain_id = resolve_evm_chain(chain)

    tokens = _checked_tokens(client.balances(chain_id, address), sample=300, relay_status=True)
    result, by_key = aggregate_tokens(tokens, min_usd=min_usd, top_n=EVM_TOP_N)
    logger.info(
        "Covalent %s %s: %d tokens, %d above %s USD", name, address, len(tokens), len(result.top_entries), min_usd
    )
    top_tokens = []
    for balance in result.top_entries:
        token = by_key[balance.asset]
        top_tokens.append(
            {
                "chain": name,
                "contract_address": token.contract_address,
                "symbol": token.symbol,
                "name": token.name,
                "decimals": token.decimals,
                "balance": qty(balance.quantity),
                "price": optional_qty(token.price_usd, PRICE_PLACES),
                "usd": usd(balance.valuation_usd),
                "is_native": token.is_native,
            }
        )
    return {
        "chain": name,
        "address": address,
        "totalUSD": usd(result.total_usd),
        "topTokens": top_tokens,
        "minUSD": float(min_usd),
        "t": now_ms(),
    }


__all__ = ["aggregate_tokens", "evm_summary", "parse_min_usd", "resolve_evm_chain", "solana_summary"]
