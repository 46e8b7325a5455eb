from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Mapping, Protocol, Sequence

from clients.http import JsonHttpClient
from clients.signing import now_ms
from errors import AllSourcesFailedError
from utils.formatting import to_decimal

from .price_types import PriceQuote

logger = logging.getLogger(__name__)


class PriceSource(Protocol):
    def fetch(self) -> PriceQuote: ...


@dataclass(frozen=True)
class SourceRequest:
    url: str
    params: Mapping[str, Any] | None = None
    headers: Mapping[str, str] | None = None
    method: str = "GET"


@dataclass(frozen=True)
class PriceSourceSpec:
    name: str
    build_request: Callable[[], SourceRequest]
    extract_rate: Callable[[Any], Any]


@dataclass(frozen=True)
class SourceAttempt:
    source: str
    status: int
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "status": self.status, "error": self.error}


def accept_rate(value: Any) -> Decimal | None:
    rate = to_decimal(value)
    if rate is None or rate <= 0:
        return None
    return rate


class FallbackPriceFetcher(PriceSource):
    """Ask each source once, in order, and return the first finite positive rate.

    Every failure (transport, HTTP status, body that is not JSON, missing field,
    zero, negative or non-numeric rate) only moves on to the next source. When
    the list is exhausted an :class:`AllSourcesFailedError` carries one
    :class:`SourceAttempt` per source in attempt order.
    """

    def __init__(
        self,
        sources: Sequence[PriceSourceSpec],
        *,
        http: JsonHttpClient | None = None,
        timeout: float = 5.0,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        if not sources:
            msg = "sources must contain at least one entry"
            raise ValueError(msg)
        self.sources = tuple(sources)
        self.timeout = timeout
        self._http = http or JsonHttpClient(timeout=timeout)
        self._clock = clock

    def fetch(self) -> PriceQuote:
        attempts: list[SourceAttempt] = []
        for spec in self.sources:
            outcome = self._try(spec)
            if isinstance(outcome, PriceQuote):
                return outcome
            logger.info("Price source %s rejected: status=%s error=%s", spec.name, outcome.status, outcome.error)
            attempts.append(outcome)

        logger.warning("All %d price sources failed", len(attempts))
        raise AllSourcesFailedError(attempts)

    def _try(self, spec: PriceSourceSpec) -> PriceQuote | SourceAttempt:
        try:
            request = spec.build_request()
        except Exception as exc:  # noqa: BLE001
            return SourceAttempt(source=spec.name, status=0, error=f"bad request: {exc!r}")

        result = self._http.fetch(
            request.method,
            request.url,
            params=request.params,
            headers=request.headers,
            timeout=self.timeout,
        )
        if not result.ok:
            return SourceAttempt(source=spec.name, status=result.status, error=result.error or "request failed")

        try:
            candidate = spec.extract_rate(result.payload)
        except Exception as exc:  # noqa: BLE001
            return SourceAttempt(source=spec.name, status=result.status, error=f"unexpected payload: {exc!r}")

        rate = accept_rate(candidate)
        if rate is None:
            return SourceAttempt(source=spec.name, status=result.status, error=f"invalid rate: {candidate!r}")
        return PriceQuote(rate=rate, source=spec.name, timestamp=self._clock())


__all__ = [
    "FallbackPriceFetcher",
    "PriceSource",
    "PriceSourceSpec",
    "SourceAttempt",
    "SourceRequest",
    "accept_rate",
]
