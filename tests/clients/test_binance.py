from __future__ import annotations

from decimal import Decimal
from urllib.parse import parse_qs

from clients.binance import (
    BinanceClient,
    cross_margin_net,
    normalize_position,
    parse_cross_margin,
    parse_funding_assets,
    parse_isolated_margin,
    parse_lending_daily,
    parse_simple_earn,
    parse_user_assets,
)
from clients.signing import hex_sha256
from config import ExchangeCredentials
from tests.helpers.stub_http import FIXED_MS, StubResponse, fixed_clock, stub_http


def _client(routes: dict, credentials: ExchangeCredentials):  # type: ignore[no-untyped-def]
    http, session = stub_http(routes)
    return BinanceClient(credentials, http=http, clock=fixed_clock()), session


def test_get_signature_covers_query_and_is_appended(credentials: ExchangeCredentials) -> None:
    client = BinanceClient(credentials, clock=fixed_clock())

    request = client.sign_request("GET", "/sapi/v1/asset/wallet/balance", {"quoteAsset": "USDT"})

    query = f"recvWindow=5000&timestamp={FIXED_MS}&quoteAsset=USDT"
    signature = hex_sha256(credentials.secret_key).sign(query)
    assert request.query_string == f"{query}&signature={signature}"
    assert request.body == ""
    assert request.timestamp == str(FIXED_MS)
    assert request.headers == {"X-MBX-APIKEY": credentials.api_key}


def test_post_signature_covers_body(credentials: ExchangeCredentials) -> None:
    client = BinanceClient(credentials, clock=fixed_clock())

    request = client.sign_request("POST", "/sapi/v3/asset/getUserAsset", {"asset": "BTC"})

    assert request.body == f"recvWindow=5000&timestamp={FIXED_MS}&asset=BTC"
    assert request.query_string == f"signature={hex_sha256(credentials.secret_key).sign(request.body)}"
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"


def test_signed_call_sends_api_key_and_signature(credentials: ExchangeCredentials) -> None:
    client, session = _client({"/sapi/v1/margin/account": StubResponse({"userAssets": []})}, credentials)

    result = client.margin_account()

    assert result.ok
    call = session.calls[0]
    assert call.url.startswith("https://api.binance.com/sapi/v1/margin/account?")
    assert "signature" in call.query
    assert call.headers["X-MBX-APIKEY"] == "test-key"
    assert call.data is None


def test_post_call_sends_signed_body(credentials: ExchangeCredentials) -> None:
    client, session = _client({"/sapi/v1/asset/get-funding-asset": StubResponse([])}, credentials)

    client.funding_assets("ETH")

    call = session.calls[0]
    assert call.method == "POST"
    assert parse_qs(call.data or "")["asset"] == ["ETH"]
    assert list(call.query) == ["signature"]


def test_position_risk_falls_back_to_portfolio_margin(credentials: ExchangeCredentials) -> None:
    client, session = _client(
        {
            "/fapi/v2/positionRisk": StubResponse({"code": -2015}, status_code=401),
            "/papi/v1/um/positionRisk": StubResponse([{"symbol": "SOLUSDT", "positionAmt": "1"}]),
        },
        credentials,
    )

    result, attempts = client.position_risk()

    assert result.ok
    assert result.payload == [{"symbol": "SOLUSDT", "positionAmt": "1"}]
    assert attempts["fapi"]["status"] == 401
    assert attempts["papi"]["status"] == 200
    assert session.paths() == ["/fapi/v2/positionRisk", "/papi/v1/um/positionRisk"]


def test_position_risk_portfolio_margin_first_stops_on_success(credentials: ExchangeCredentials) -> None:
    client, session = _client({"/papi/v1/um/positionRisk": StubResponse([])}, credentials)

    result, attempts = client.position_risk(portfolio_margin_first=True)

    assert result.ok
    assert list(attempts) == ["papi"]
    assert session.paths() == ["/papi/v1/um/positionRisk"]


def test_position_risk_reports_both_failures(credentials: ExchangeCredentials) -> None:
    client, _ = _client({}, credentials)

    result, attempts = client.position_risk()

    assert not result.ok
    assert set(attempts) == {"fapi", "papi"}


def test_server_time_sync(credentials: ExchangeCredentials) -> None:
    client, _ = _client({"/api/v3/time": StubResponse({"serverTime": FIXED_MS + 2500})}, credentials)

    assert client.sync_time() == 2500
    assert client.clock.now() == FIXED_MS + 2500


def test_futures_ticker_price(credentials: ExchangeCredentials) -> None:
    client, _ = _client({"/fapi/v1/ticker/price": StubResponse({"symbol": "SOLUSDT", "price": "150.5"})}, credentials)

    assert client.futures_ticker_price("SOLUSDT") == Decimal("150.5")


def test_parse_wallet_payloads() -> None:
    spot = parse_user_assets([{"asset": "SOL", "free": "1.5", "locked": "0.5"}])
    funding = parse_funding_assets([{"asset": "SOL", "free": "1", "locked": "2", "freeze": "3"}])

    assert spot[0].quantity == Decimal("2.0")
    assert funding[0].quantity == Decimal("6")
    assert funding[0].source == "funding"


def test_parse_margin_keeps_positive_net_only() -> None:
    cross = parse_cross_margin(
        {
            "userAssets": [
                {"asset": "SOL", "netAsset": "2"},
                {"asset": "DOGE", "netAsset": "-5"},
                {"asset": "ADA", "free": "10", "locked": "0", "borrowed": "3", "interest": "1"},
            ]
        }
    )
    isolated = parse_isolated_margin(
        {"assets": [{"baseAsset": {"asset": "ARB", "netAsset": "7"}, "quoteAsset": {"asset": "USDT", "netAsset": "0"}}]}
    )

    assert [(entry.asset, entry.quantity) for entry in cross] == [("SOL", Decimal("2")), ("ADA", Decimal("6"))]
    assert [(entry.asset, entry.quantity) for entry in isolated] == [("ARB", Decimal("7"))]


def test_cross_margin_net_can_be_negative() -> None:
    payload = {"userAssets": [{"asset": "BTC", "netAsset": "-0.1"}]}

    assert cross_margin_net(payload, "BTC") == Decimal("-0.1")
    assert cross_margin_net(payload, "ETH") == Decimal(0)


def test_parse_simple_earn_rows_and_amount_fallbacks() -> None:
    entries = parse_simple_earn(
        {"rows": [{"asset": "SOL", "totalAmount": "3"}, {"asset": "DOT", "amount": "4"}]}, "simpleEarnFlexible"
    )

    assert [(entry.asset, entry.quantity) for entry in entries] == [("SOL", Decimal("3")), ("DOT", Decimal("4"))]
    assert parse_simple_earn([{"asset": "BTC", "purchasedAmount": "0.5"}], "x")[0].quantity == Decimal("0.5")


def test_parse_lending_daily_prefers_total() -> None:
    entries = parse_lending_daily(
        [
            {"asset": "BTC", "totalAmount": "1", "freeAmount": "1"},
            {"asset": "BTC", "freeAmount": "0.2", "lockedAmount": "0.3"},
        ]
    )

    assert [entry.quantity for entry in entries] == [Decimal("1"), Decimal("0.5")]


def test_normalize_position_prefers_signed_notional() -> None:
    position = normalize_position({"symbol": "SOLUSDT", "positionAmt": "-2", "notional": "-300", "markPrice": "151"})

    assert position is not None
    assert position.usd == Decimal("-300")
    assert position.quantity == Decimal("-2")
    assert position.base == "SOL"
    assert position.side == "BOTH"


def test_normalize_position_falls_back_to_mark_then_lookup() -> None:
    by_mark = normalize_position({"symbol": "SOLUSDT", "positionAmt": "2", "notional": "0", "markPrice": "150"})
    by_lookup = normalize_position({"symbol": "ARBUSDT", "positionAmt": "-100"}, lambda symbol: Decimal("1.5"))

    assert by_mark is not None and by_mark.usd == Decimal("300")
    assert by_lookup is not None and by_lookup.usd == Decimal("-150.0")


def test_normalize_position_skips_flat_rows() -> None:
    assert normalize_position({"symbol": "SOLUSDT", "positionAmt": "0"}) is None
