import logging
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Annotated, Any, AsyncGenerator, Awaitable, Callable

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from api.dependencies import (
    get_binance_client,
    get_bitget_client,
    get_bithumb_client,
    get_bybit_client,
    get_covalent_client,
    get_okx_client,
    get_position_loaders,
    get_usdkrw_fetcher,
)
from clients.binance import BinanceClient
from clients.bitget import BitgetClient
from clients.bithumb import BithumbClient
from clients.bybit import BybitClient
from clients.covalent import CovalentClient
from clients.okx import OkxClient
from config import config
from errors import (
    AllSourcesFailedError,
    InvalidRequestError,
    MissingCredentialsError,
    PriceTableUnavailableError,
    ProviderAPIError,
    ResponseParseError,
    TransportError,
    UpstreamUnavailableError,
)
from services import balances, binance_summary, onchain
from services.position_summary import PositionLoader, position_summary
from services.price_sources import FallbackPriceFetcher

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI) -> AsyncGenerator[None, None]:
    logging.basicConfig(level=config().log_level.upper(), format=LOG_FORMAT)
    yield


app = FastAPI(lifespan=lifespan)


@app.middleware("http")
async def log_process_time(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    start_time = perf_counter()
    response = await call_next(request)
    process_time = perf_counter() - start_time
    logger.info(
        "Request time: %s %s: %.4fs -> %s", request.method, request.url.path, process_time, response.status_code
    )
    return response


# Error mapping


def _error(status_code: int, body: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(MissingCredentialsError)
async def missing_credentials(request: Request, exc: MissingCredentialsError) -> JSONResponse:
    return _error(500, {"error": str(exc)})


@app.exception_handler(TransportError)
async def transport_failed(request: Request, exc: TransportError) -> JSONResponse:
    return _error(502, {"error": str(exc), "status": exc.status_code or 0, "detail": exc.payload})


@app.exception_handler(ProviderAPIError)
async def provider_error(request: Request, exc: ProviderAPIError) -> JSONResponse:
    return _error(500, {"error": str(exc), "data": exc.payload})


@app.exception_handler(ResponseParseError)
async def unparseable_response(request: Request, exc: ResponseParseError) -> JSONResponse:
    return _error(500, {"error": str(exc), "raw": exc.payload})


@app.exception_handler(PriceTableUnavailableError)
async def price_table_unavailable(request: Request, exc: PriceTableUnavailableError) -> JSONResponse:
    return _error(502, {"error": str(exc), "detail": exc.payload})


@app.exception_handler(UpstreamUnavailableError)
async def upstream_unavailable(request: Request, exc: UpstreamUnavailableError) -> JSONResponse:
    return _error(exc.response_status, {"error": str(exc), "status": exc.status_code, "sample": exc.payload})


@app.exception_handler(AllSourcesFailedError)
async def all_sources_failed(request: Request, exc: AllSourcesFailedError) -> JSONResponse:
    return _error(502, {"error": str(exc), "tries": [attempt.to_dict() for attempt in exc.attempts]})


@app.exception_handler(InvalidRequestError)
async def invalid_request(request: Request, exc: InvalidRequestError) -> JSONResponse:
    return _error(exc.status_code, {"error": str(exc)})


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    return _error(500, {"error": str(exc) or exc.__class__.__name__})


def debug_enabled(debug: str | None) -> bool:
    return (debug or "").lower() in ("1", "true")


# Price feeds


@app.get("/api/usdkrw")
def get_usdkrw(fetcher: Annotated[FallbackPriceFetcher, Depends(get_usdkrw_fetcher)]) -> dict[str, Any]:
    return fetcher.fetch().to_dict()


# Binance


@app.get("/api/binance-alt-summary")
def get_binance_alt_summary(
    client: Annotated[BinanceClient, Depends(get_binance_client)],
    acct: str | None = None,
    debug: str | None = None,
) -> dict[str, Any]:
    return binance_summary.alt_summary(client, account=acct, debug=debug_enabled(debug))


@app.get("/api/binance-btc-summary")
def get_binance_btc_summary(
    client: Annotated[BinanceClient, Depends(get_binance_client)],
    acct: str | None = None,
    debug: str | None = None,
) -> dict[str, Any]:
    return binance_summary.asset_summary(client, "BTC", account=acct, debug=debug_enabled(debug))


@app.get("/api/binance-eth-summary")
def get_binance_eth_summary(
    client: Annotated[BinanceClient, Depends(get_binance_client)],
    acct: str | None = None,
    debug: str | None = None,
) -> dict[str, Any]:
    return binance_summary.asset_summary(client, "ETH", account=acct, debug=debug_enabled(debug))


@app.get("/api/account-summary")
def get_account_summary(client: Annotated[BinanceClient, Depends(get_binance_client)]) -> dict[str, Any]:
    return binance_summary.wallet_balance_summary(client)


@app.get("/api/binance")
def get_binance_portfolio(client: Annotated[BinanceClient, Depends(get_binance_client)]) -> Any:
    return binance_summary.portfolio_account(client)


# Other exchanges


@app.get("/api/bitget-balance")
def get_bitget_balance(client: Annotated[BitgetClient, Depends(get_bitget_client)]) -> dict[str, Any]:
    return balances.bitget_balance(client)


@app.get("/api/bybit-balance")
def get_bybit_balance(
    client: Annotated[BybitClient, Depends(get_bybit_client)],
    accountType: str = "UNIFIED",  # noqa: N803
) -> dict[str, Any]:
    return balances.bybit_balance(client, accountType)


@app.get("/api/bybit-test")
def get_bybit_test(client: Annotated[BybitClient, Depends(get_bybit_client)]) -> dict[str, Any]:
    return balances.bybit_key_info(client)


@app.get("/api/okx-balance")
def get_okx_balance(
    client: Annotated[OkxClient, Depends(get_okx_client)],
    valuationCcy: str = "USD",  # noqa: N803
) -> dict[str, Any]:
    return balances.okx_balance(client, valuationCcy)


@app.get("/api/bithumb-balance")
def get_bithumb_balance(client: Annotated[BithumbClient, Depends(get_bithumb_client)]) -> dict[str, Any]:
    return balances.bithumb_balance(client)


@app.get("/api/bithumb-test")
def get_bithumb_test(client: Annotated[BithumbClient, Depends(get_bithumb_client)]) -> dict[str, Any]:
    return balances.bithumb_account(client)


@app.get("/api/position-summary")
def get_position_summary(
    loaders: Annotated[dict[str, PositionLoader], Depends(get_position_loaders)],
    exchange: str = "all",
) -> dict[str, Any]:
    return position_summary(exchange, loaders)


# On-chain wallets


@app.get("/api/solana-balance")
def get_solana_balance(
    client: Annotated[CovalentClient, Depends(get_covalent_client)],
    addr: str | None = None,
    minUSD: str | None = None,  # noqa: N803
) -> dict[str, Any]:
    return onchain.solana_summary(client, addr, min_usd=onchain.parse_min_usd(minUSD))


@app.get("/api/wallet-balances")
def get_wallet_balances(
    client: Annotated[CovalentClient, Depends(get_covalent_client)],
    chain: str = "eth",
    address: str | None = None,
    minUSD: str | None = None,  # noqa: N803
) -> dict[str, Any]:
    return onchain.evm_summary(client, chain, address, min_usd=onchain.parse_min_usd(minUSD))
