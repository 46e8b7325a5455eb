from typing import Annotated

from fastapi import Depends

from clients.binance import BinanceClient
from clients.bitget import BitgetClient
from clients.bithumb import BithumbClient
from clients.bybit import BybitClient
from clients.covalent import CovalentClient
from clients.http import JsonHttpClient
from clients.okx import OkxClient
from config import AppSettings, config
from services.position_summary import PositionLoader, bitget_positions, bybit_positions, okx_positions
from services.price_sources import FallbackPriceFetcher
from services.usdkrw_sources import build_usdkrw_fetcher


def get_settings() -> AppSettings:
    return config()


Settings = Annotated[AppSettings, Depends(get_settings)]


def _exchange_http(settings: AppSettings) -> JsonHttpClient:
    return JsonHttpClient(timeout=settings.exchange_timeout_seconds)


def get_usdkrw_fetcher(settings: Settings) -> FallbackPriceFetcher:
    return build_usdkrw_fetcher(timeout=settings.price_timeout_seconds)


def get_binance_client(settings: Settings, acct: str | None = None) -> BinanceClient:
    client = BinanceClient(settings.binance_credentials(acct), http=_exchange_http(settings))
    if settings.sync_server_time:
        client.sync_time()
    return client


def build_bybit_client(settings: AppSettings) -> BybitClient:
    client = BybitClient(settings.bybit_credentials(), http=_exchange_http(settings))
    if settings.sync_server_time:
        client.sync_time()
    return client


def build_bitget_client(settings: AppSettings) -> BitgetClient:
    return BitgetClient(settings.bitget_credentials(), http=_exchange_http(settings))


def build_okx_client(settings: AppSettings) -> OkxClient:
    return OkxClient(settings.okx_credentials(), http=_exchange_http(settings))


def get_bybit_client(settings: Settings) -> BybitClient:
    return build_bybit_client(settings)


def get_bitget_client(settings: Settings) -> BitgetClient:
    return build_bitget_client(settings)


def get_okx_client(settings: Settings) -> OkxClient:
    return build_okx_client(settings)


def get_bithumb_client(settings: Settings) -> BithumbClient:
    return BithumbClient(settings.bithumb_credentials(), http=_exchange_http(settings))


def get_covalent_client(settings: Settings) -> CovalentClient:
    return CovalentClient(settings.covalent_key(), timeout=settings.covalent_timeout_seconds)


def get_position_loaders(settings: Settings) -> dict[str, PositionLoader]:
    # clients are built inside each loader so missing credentials fail only that exchange
    return {
        "bybit": lambda: bybit_positions(build_bybit_client(settings)),
        "bitget": lambda: bitget_positions(build_bitget_client(settings)),
        "okx": lambda: okx_positions(build_okx_client(settings)),
    }
