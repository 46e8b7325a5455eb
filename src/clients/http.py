from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Mapping

import requests
from requests.adapters import HTTPAdapter
from urllib3.util import Retry

from errors import ProviderAPIError, ResponseParseError, TransportError

logger = logging.getLogger(__name__)


class FailureKind(StrEnum):
    TRANSPORT = "transport"
    HTTP = "http"
    PARSE = "parse"


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one HTTP call. Failures are values, not exceptions."""

    status: int
    payload: Any | None = None
    text: str = ""
    error: str | None = None
    failure: FailureKind | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def diagnostic(self, sample: int = 120) -> dict[str, Any]:
        out: dict[str, Any] = {"status": self.status}
        if self.error:
            out["error"] = self.error
        if self.text:
            out["textSample"] = self.text[:sample]
        return out

    def raise_for_failure(self, provider: str) -> Any:
        if self.failure is None:
            return self.payload
        if self.failure == FailureKind.TRANSPORT:
            raise TransportError(f"{provider} request failed: {self.error}", provider=provider, status_code=self.status)
        if self.failure == FailureKind.PARSE:
            raise ResponseParseError(
                f"{provider} returned non-JSON response",
                provider=provider,
                status_code=self.status,
                payload=self.text,
            )
        raise ProviderAPIError(
            f"{provider} API error (HTTP {self.status})",
            provider=provider,
            status_code=self.status,
            payload=self.payload if self.payload is not None else self.text,
        )


class JsonHttpClient:
    def __init__(
        self,
        *,
        timeout: float = 10.0,
        session: requests.Session | None = None,
        retry_attempts: int = 0,
        retry_backoff_seconds: float = 0.5,
    ) -> None:
        self.timeout = timeout
        self._session = session or requests.Session()

        if retry_attempts > 0:
            retry = Retry(
                total=retry_attempts,
                backoff_factor=retry_backoff_seconds,
                status_forcelist={429},
                allowed_methods={"GET"},
                raise_on_status=False,
            )
            adapter = HTTPAdapter(max_retries=retry)
            self._session.mount("https://", adapter)
            self._session.mount("http://", adapter)

    def fetch(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        data: str | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> FetchResult:
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                data=data,
                headers=dict(headers or {}),
                timeout=timeout if timeout is not None else self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, _strip_query(url), exc)
            return FetchResult(status=0, error=str(exc), failure=FailureKind.TRANSPORT)

        status = int(response.status_code)
        text = response.text or ""
        payload: Any | None = None
        parse_failed = False
        try:
            payload = response.json()
        except ValueError:
            parse_failed = True

        if not 200 <= status < 300:
            logger.info("%s %s returned HTTP %s", method, _strip_query(url), status)
            return FetchResult(
                status=status, payload=payload, text=text, error=f"HTTP {status}", failure=FailureKind.HTTP
            )
        if parse_failed:
            return FetchResult(status=status, text=text, error="invalid JSON", failure=FailureKind.PARSE)
        return FetchResult(status=status, payload=payload, text=text)


def json_rows(payload: Any, *keys: str) -> list[dict[str, Any]]:
    """Walk ``keys`` into nested objects and return the dict rows of the list found there."""
    for key in keys:
        payload = payload.get(key) if isinstance(payload, dict) else None
    if not isinstance(payload, list):
        return []
    return [row for row in payload if isinstance(row, dict)]


def _strip_query(url: str) -> str:
    # signed query strings carry signatures; keep them out of logs
    return url.split("?", 1)[0]


__all__ = ["FailureKind", "FetchResult", "JsonHttpClient", "json_rows"]
