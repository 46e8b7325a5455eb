from __future__ import annotations

from decimal import Decimal

import pytest

from clients.okx import OkxClient, normalize_position
from clients.signing import base64_sha256
from config import ExchangeCredentials
from errors import ProviderAPIError
from tests.helpers.stub_http import StubResponse, fixed_clock, stub_http

ISO_FIXED = "2023-11-14T22:13:20.000Z"


def _ok(data: list) -> StubResponse:
    return StubResponse({"code": "0", "msg": "", "data": data})


def test_sign_request_uses_iso_timestamp(credentials: ExchangeCredentials) -> None:
    client = OkxClient(credentials, clock=fixed_clock())

    request = client.sign_request("GET", "/api/v5/account/positions", {"instType": "SWAP"})

    expected = base64_sha256(credentials.secret_key).sign(f"{ISO_FIXED}GET/api/v5/account/positions?instType=SWAP")
    assert request.timestamp == ISO_FIXED
    assert request.headers["OK-ACCESS-TIMESTAMP"] == ISO_FIXED
    assert request.headers["OK-ACCESS-SIGN"] == expected
    assert request.headers["OK-ACCESS-PASSPHRASE"] == "test-pass"


def test_error_code_message(credentials: ExchangeCredentials) -> None:
    http, _ = stub_http({"/api/v5/account/balance": StubResponse({"code": "50113", "msg": "Invalid Sign"})})
    client = OkxClient(credentials, http=http, clock=fixed_clock())

    with pytest.raises(ProviderAPIError, match="code=50113 msg=Invalid Sign"):
        client.balance()


def test_balance_returns_first_row(credentials: ExchangeCredentials) -> None:
    http, _ = stub_http({"/api/v5/account/balance": _ok([{"totalEq": "100"}])})
    client = OkxClient(credentials, http=http, clock=fixed_clock())

    assert client.balance() == {"totalEq": "100"}


def test_asset_valuation_falls_back_to_total_val(credentials: ExchangeCredentials) -> None:
    http, session = stub_http({"/api/v5/asset/asset-valuation": _ok([{"totalVal": "250.5"}])})
    client = OkxClient(credentials, http=http, clock=fixed_clock())

    assert client.asset_valuation("USD") == Decimal("250.5")
    assert session.calls[0].query == {"ccy": ["USD"]}


def test_contract_values_map(credentials: ExchangeCredentials) -> None:
    http, _ = stub_http(
        {
            "/api/v5/public/instruments": _ok(
                [{"instId": "BTC-USDT-SWAP", "ctVal": "0.01"}, {"instId": "X", "ctVal": "1"}]
            )
        }
    )
    client = OkxClient(credentials, http=http, clock=fixed_clock())

    assert client.contract_values() == {"BTC-USDT-SWAP": Decimal("0.01"), "X": Decimal("1")}


def test_normalize_position_converts_contracts() -> None:
    position = normalize_position(
        {"instId": "BTC-USDT-SWAP", "posSide": "short", "pos": "5", "markPx": "60000"},
        {"BTC-USDT-SWAP": Decimal("0.01")},
    )

    assert position is not None
    assert position.base == "BTC"
    assert position.quantity == Decimal("-0.05")
    assert position.usd == Decimal("-3000.00")
    assert position.contracts == Decimal("5")


def test_normalize_position_net_mode_sign_from_pos() -> None:
    position = normalize_position(
        {"instId": "SOL-USDT-SWAP", "posSide": "net", "pos": "-10", "notionalUsd": "1500"},
        {"SOL-USDT-SWAP": Decimal("1")},
    )

    assert position is not None
    assert position.side == "SHORT"
    assert position.quantity == Decimal("-10")
    assert position.usd == Decimal("-1500")


def test_normalize_position_ignores_non_swap() -> None:
    assert normalize_position({"instId": "BTC-USDT-240628", "pos": "1"}, {}) is None
