from __future__ import annotations

from typing import Any


class MissingCredentialsError(Exception):
    def __init__(self, provider: str, *, message: str | None = None) -> None:
        super().__init__(message or f"Missing {provider} API credentials")
        self.provider = provider


class UpstreamError(Exception):
    """Base for failures reported by, or while talking to, a remote service."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status_code: int | None = None,
        payload: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.payload = payload


class TransportError(UpstreamError):
    pass


class ProviderAPIError(UpstreamError):
    pass


class ResponseParseError(UpstreamError):
    pass


class PriceTableUnavailableError(UpstreamError):
    pass


class UpstreamUnavailableError(UpstreamError):
    """A data provider answered, but without the data the handler needs.

    ``response_status`` is the HTTP status the handler answers with.
    """

    def __init__(self, message: str, *, response_status: int = 502, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.response_status = response_status


class AllSourcesFailedError(Exception):
    def __init__(self, attempts: list[Any]) -> None:
        super().__init__("All sources failed")
        self.attempts = attempts


class InvalidRequestError(Exception):
    def __init__(self, message: str, *, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


__all__ = [
    "AllSourcesFailedError",
    "InvalidRequestError",
    "MissingCredentialsError",
    "PriceTableUnavailableError",
    "ProviderAPIError",
    "ResponseParseError",
    "TransportError",
    "UpstreamError",
    "UpstreamUnavailableError",
]
