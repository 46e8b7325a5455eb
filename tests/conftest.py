from typing import Generator

import pytest

from config import AppSettings, ExchangeCredentials, config
from tests.helpers.stub_http import fixed_clock

CREDENTIALS = ExchangeCredentials(api_key="test-key", secret_key="test-secret", passphrase="test-pass")


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    for name in (
        "BINANCE_API_KEY",
        "BINANCE_SECRET_KEY",
        "BINANCE2_API_KEY",
        "BINANCE2_SECRET_KEY",
        "BYBIT_API_KEY",
        "BYBIT_SECRET_KEY",
        "BITGET_API_KEY",
        "BITGET_SECRET_KEY",
        "BITGET_API_PASSPHRASE",
        "OKX_API_KEY",
        "OKX_SECRET_KEY",
        "OKX_API_SECRET",
        "OKX_PASSPHRASE",
        "OKX_API_PASSPHRASE",
        "BITHUMB_API_KEY",
        "BITHUMB_SECRET_KEY",
        "COVALENT_API_KEY",
        "SYNC_SERVER_TIME",
    ):
        monkeypatch.delenv(name, raising=False)
    config.cache_clear()
    yield
    config.cache_clear()


@pytest.fixture(scope="function")
def credentials() -> ExchangeCredentials:
    return CREDENTIALS


@pytest.fixture(scope="function")
def clock():  # type: ignore[no-untyped-def]
    return fixed_clock()


@pytest.fixture(scope="function")
def empty_settings() -> AppSettings:
    return AppSettings(_env_file=None)
