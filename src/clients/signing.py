from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Literal, Protocol

logger = logging.getLogger(__name__)


class Signer(Protocol):
    def sign(self, canonical: str) -> str: ...


@dataclass(frozen=True)
class HmacSigner:
    secret: str = field(repr=False)
    digest: Literal["sha256", "sha512"] = "sha256"
    encoding: Literal["hex", "base64"] = "hex"

    def sign(self, canonical: str) -> str:
        mac = hmac.new(self.secret.encode("utf-8"), canonical.encode("utf-8"), getattr(hashlib, self.digest))
        if self.encoding == "hex":
            return mac.hexdigest()
        return base64.b64encode(mac.digest()).decode("ascii")


def hex_sha256(secret: str) -> HmacSigner:
    return HmacSigner(secret=secret, digest="sha256", encoding="hex")


def base64_sha256(secret: str) -> HmacSigner:
    return HmacSigner(secret=secret, digest="sha256", encoding="base64")


def base64_sha512(secret: str) -> HmacSigner:
    return HmacSigner(secret=secret, digest="sha512", encoding="base64")


@dataclass(frozen=True)
class SignedRequest:
    method: str
    path: str
    query_string: str
    body: str
    timestamp: str
    signature: str
    headers: dict[str, str]

    @property
    def request_path(self) -> str:
        return f"{self.path}?{self.query_string}" if self.query_string else self.path


# Canonical strings. Each must match the provider's documented construction byte for byte.


def bybit_canonical(*, timestamp: str, api_key: str, recv_window: str, payload: str) -> str:
    return f"{timestamp}{api_key}{recv_window}{payload}"


def prehash_canonical(*, timestamp: str, method: str, path: str, query: str = "", body: str = "") -> str:
    """``timestamp + METHOD + path[?query] + body``, shared by OKX and Bitget."""
    qs = f"?{query}" if query else ""
    return f"{timestamp}{method.upper()}{path}{qs}{body}"


def bithumb_canonical(*, endpoint: str, body: str, nonce: str) -> str:
    return f"{endpoint}\0{body}\0{nonce}"


def iso_timestamp(epoch_ms: int) -> str:
    moment = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_ms() -> int:
    return int(time.time() * 1000)


class ServerClock:
    """Local clock corrected by the drift measured against an exchange's server time."""

    def __init__(self, local_ms: Callable[[], int] = now_ms) -> None:
        self._local_ms = local_ms
        self.offset_ms = 0

    def now(self) -> int:
        return self._local_ms() + self.offset_ms

    def sync(self, fetch_server_ms: Callable[[], int | None]) -> int:
        before = self._local_ms()
        server_ms = fetch_server_ms()
        after = self._local_ms()
        if server_ms is None:
            logger.warning("Server time unavailable; keeping clock offset %sms", self.offset_ms)
            return self.offset_ms
        self.offset_ms = server_ms - (before + after) // 2
        logger.info("Clock offset against server time: %sms", self.offset_ms)
        return self.offset_ms


__all__ = [
    "HmacSigner",
    "ServerClock",
    "SignedRequest",
    "Signer",
    "base64_sha256",
    "base64_sha512",
    "bithumb_canonical",
    "bybit_canonical",
    "hex_sha256",
    "iso_timestamp",
    "now_ms",
    "prehash_canonical",
]
