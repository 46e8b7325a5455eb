from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from typing import Any, Callable, Mapping

from clients import bitget, bybit, okx
from clients.signing import now_ms
from domain.positions import FuturesPosition, FuturesSummary, summarize_positions
from errors import InvalidRequestError
from utils.formatting import qty, usd

logger = logging.getLogger(__name__)

EXCHANGES = ("bybit", "bitget", "okx")

PositionLoader = Callable[[], list[FuturesPosition]]


def bybit_positions(client: bybit.BybitClient) -> list[FuturesPosition]:
    return [position for row in client.positions() if (position := bybit.normalize_position(row)) is not None]


def bitget_positions(client: bitget.BitgetClient) -> list[FuturesPosition]:
    return [position for row in client.all_positions() if (position := bitget.normalize_position(row)) is not None]


def okx_positions(client: okx.OkxClient) -> list[FuturesPosition]:
    rows = client.positions()
    contract_values = client.contract_values()
    return [
        position
        for row in rows
        if (position := okx.normalize_position(row, contract_values)) is not None
    ]


def exchange_summary(exchange: str, positions: list[FuturesPosition]) -> tuple[FuturesSummary, dict[str, Any]]:
    summary = summarize_positions(positions)
    return summary, {"exchange": exchange, "futures": summary.to_dict(), "t": now_ms()}


def aggregate_summaries(summaries: list[FuturesSummary]) -> dict[str, Any]:
    btc = sum((summary.net_qty("BTC") for summary in summaries), Decimal(0))
    eth = sum((summary.net_qty("ETH") for summary in summaries), Decimal(0))
    alt = sum((summary.alt_net_usd for summary in summaries), Decimal(0))
    return {
        "exchange": "aggregate",
        "futures": {"btcNetQty": qty(btc), "ethNetQty": qty(eth), "altFuturesUSD": usd(alt)},
        "t": now_ms(),
    }


def position_summary(exchange: str, loaders: Mapping[str, PositionLoader]) -> dict[str, Any]:
    """Futures exposure for one exchange, or for all of them side by side.

    With ``all`` the loaders run concurrently and a failing exchange is reported
    as ``{"error": ...}`` in its slot instead of failing the whole response.
    The ``aggregate`` entry sums only the exchanges that succeeded.
    """
    exchange = exchange.lower()
    if exchange in loaders:
        _, body = exchange_summary(exchange, loaders[exchange]())
        return body
    if exchange != "all":
        raise InvalidRequestError(f"Unsupported exchange '{exchange}'. Use one of: {', '.join(loaders)}, all")

    results: dict[str, Any] = {}
    summaries: list[FuturesSummary] = []
    with ThreadPoolExecutor(max_workers=len(loaders) or 1, thread_name_prefix="positions") as pool:
        jobs = {name: pool.submit(loader) for name, loader in loaders.items()}
        for name, job in jobs.items():
            try:
                positions = job.result()
            except Exception as exc:  # noqa: BLE001
                logger.warning("Position summary for %s failed: %s", name, exc)
                results[name] = {"error": str(exc)}
                continue
            summary, results[name] = exchange_summary(name, positions)
            summaries.append(summary)

    results["aggregate"] = aggregate_summaries(summaries)
    return results


__all__ = [
    "EXCHANGES",
    "PositionLoader",
    "aggregate_summaries",
    "bitget_positions",
    "bybit_positions",
    "okx_positions",
    "position_summary",
]
