from __future__ import annotations

from itertools import count
from typing import Any
from urllib.parse import urlencode

from config import ExchangeCredentials
from errors import ProviderAPIError

from .http import JsonHttpClient
from .signing import ServerClock, SignedRequest, base64_sha512, bithumb_canonical

PROVIDER = "Bithumb"
BASE_URL = "https://api.bithumb.com"
SUCCESS_STATUS = "0000"

# shared by every client in the process; a client is built per request
_NONCE_SEQUENCE = count()


class BithumbClient:
    """Bithumb v1 private API: HMAC-SHA512 over ``endpoint NUL body NUL nonce``."""

    def __init__(
        self,
        credentials: ExchangeCredentials,
        *,
        http: JsonHttpClient | None = None,
        clock: ServerClock | None = None,
        base_url: str = BASE_URL,
    ) -> None:
        self.credentials = credentials
        self._signer = base64_sha512(credentials.secret_key)
        self._http = http or JsonHttpClient()
        self.clock = clock or ServerClock()
        self.base_url = base_url.rstrip("/")

    def next_nonce(self) -> str:
        return f"{self.clock.now()}{next(_NONCE_SEQUENCE) % 1000:03d}"

    def sign_request(self, endpoint: str, params: dict[str, Any] | None = None) -> SignedRequest:
        nonce = self.next_nonce()
        body = urlencode({"endpoint": endpoint, **(params or {})})
        signature = self._signer.sign(bithumb_canonical(endpoint=endpoint, body=body, nonce=nonce))
        return SignedRequest(
            method="POST",
            path=endpoint,
            query_string="",
            body=body,
            timestamp=nonce,
            signature=signature,
            headers={
                "Api-Key": self.credentials.api_key,
                "Api-Sign": signature,
                "Api-Nonce": nonce,
                "Api-Client-Type": "2",
                "Content-Type": "application/x-www-form-urlencoded",
            },
        )

    def post(self, endpoint: str, params: dict[str, Any] | None = None, *, check_status: bool = True) -> dict[str, Any]:
        request = self.sign_request(endpoint, params)
        # the body sent must be byte-identical to the one signed
        result = self._http.fetch("POST", f"{self.base_url}{endpoint}", data=request.body, headers=request.headers)
        payload = result.raise_for_failure(PROVIDER)
        if not isinstance(payload, dict):
            raise ProviderAPIError("Bithumb API Error", provider=PROVIDER, status_code=result.status, payload=payload)
        if check_status and payload.get("status") != SUCCESS_STATUS:
            raise ProviderAPIError("Bithumb API Error", provider=PROVIDER, status_code=result.status, payload=payload)
        return payload

    def balance(self, currency: str = "ALL") -> dict[str, Any]:
        data = self.post("/info/balance", {"currency": currency}).get("data")
        return data if isinstance(data, dict) else {}

    def account(self) -> dict[str, Any]:
        return self.post("/info/account", check_status=False)


__all__ = ["BithumbClient"]
