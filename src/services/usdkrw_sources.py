from __future__ import annotations

from typing import Any

from clients.http import JsonHttpClient

from .price_sources import FallbackPriceFetcher, PriceSourceSpec, SourceRequest

BROWSER_HEADERS = {"Accept": "application/json", "User-Agent": "Mozilla/5.0 (portfolio-proxy)"}


def _dunamu_rate(payload: Any) -> Any:
    return payload[0]["basePrice"]


def _yahoo_rate(payload: Any) -> Any:
    return payload["quoteResponse"]["result"][0]["regularMarketPrice"]


def _exchangerate_host_rate(payload: Any) -> Any:
    return payload["rates"]["KRW"]


USDKRW_SOURCES: tuple[PriceSourceSpec, ...] = (
    PriceSourceSpec(
        name="dunamu",
        build_request=lambda: SourceRequest(
            url="https://quotation-api-cdn.dunamu.com/v1/forex/recent",
            params={"codes": "FRX.KRWUSD"},
            headers=BROWSER_HEADERS,
        ),
        extract_rate=_dunamu_rate,
    ),
    PriceSourceSpec(
        name="yahoo",
        build_request=lambda: SourceRequest(
            url="https://query1.finance.yahoo.com/v7/finance/quote",
            params={"symbols": "USDKRW=X"},
            headers=BROWSER_HEADERS,
        ),
        extract_rate=_yahoo_rate,
    ),
    PriceSourceSpec(
        name="host",
        build_request=lambda: SourceRequest(
            url="https://api.exchangerate.host/latest",
            params={"base": "USD", "symbols": "KRW"},
        ),
        extract_rate=_exchangerate_host_rate,
    ),
)


def build_usdkrw_fetcher(*, timeout: float = 5.0, http: JsonHttpClient | None = None) -> FallbackPriceFetcher:
    return FallbackPriceFetcher(USDKRW_SOURCES, http=http, timeout=timeout)


__all__ = ["USDKRW_SOURCES", "build_usdkrw_fetcher"]
