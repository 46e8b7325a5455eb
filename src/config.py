from __future__ import annotations

from dataclasses import dataclass
from functools import cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from errors import MissingCredentialsError


@dataclass(frozen=True)
class ExchangeCredentials:
    api_key: str
    secret_key: str
    passphrase: str | None = None

    def __repr__(self) -> str:
        return f"ExchangeCredentials(api_key={self.api_key[:4]}***)"


class AppSettings(BaseSettings):
    binance_api_key: str | None = None
    binance_secret_key: str | None = None
    binance2_api_key: str | None = None
    binance2_secret_key: str | None = None

    bybit_api_key: str | None = None
    bybit_secret_key: str | None = None

    bitget_api_key: str | None = None
    bitget_secret_key: str | None = None
    bitget_api_passphrase: str | None = None

    okx_api_key: str | None = None
    okx_secret_key: str | None = Field(default=None, validation_alias=AliasChoices("OKX_SECRET_KEY", "OKX_API_SECRET"))
    okx_passphrase: str | None = Field(
        default=None, validation_alias=AliasChoices("OKX_PASSPHRASE", "OKX_API_PASSPHRASE")
    )

    bithumb_api_key: str | None = None
    bithumb_secret_key: str | None = None

    covalent_api_key: str | None = None

    price_timeout_seconds: float = 5.0
    exchange_timeout_seconds: float = 10.0
    covalent_timeout_seconds: float = 12.0
    sync_server_time: bool = False
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    def binance_credentials(self, account: str | None = None) -> ExchangeCredentials:
        if account == "2":
            return _require("Binance", self.binance2_api_key, self.binance2_secret_key)
        return _require("Binance", self.binance_api_key, self.binance_secret_key)

    def bybit_credentials(self) -> ExchangeCredentials:
        return _require("Bybit", self.bybit_api_key, self.bybit_secret_key)

    def bitget_credentials(self) -> ExchangeCredentials:
        return _require("Bitget", self.bitget_api_key, self.bitget_secret_key, self.bitget_api_passphrase)

    def okx_credentials(self) -> ExchangeCredentials:
        return _require("OKX", self.okx_api_key, self.okx_secret_key, self.okx_passphrase)

    def bithumb_credentials(self) -> ExchangeCredentials:
        return _require("Bithumb", self.bithumb_api_key, self.bithumb_secret_key)

    def covalent_key(self) -> str:
        if not self.covalent_api_key:
            raise MissingCredentialsError("Covalent", message="Missing COVALENT_API_KEY")
        return self.covalent_api_key


def _require(
    provider: str,
    api_key: str | None,
    secret_key: str | None,
    *extra: str | None,
) -> ExchangeCredentials:
    if not api_key or not secret_key or not all(extra):
        raise MissingCredentialsError(provider)
    passphrase = extra[0] if extra else None
    return ExchangeCredentials(api_key=api_key, secret_key=secret_key, passphrase=passphrase)


@cache
def config() -> AppSettings:
    return AppSettings()
