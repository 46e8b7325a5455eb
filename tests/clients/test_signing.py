from __future__ import annotations

import base64
from itertools import count

from clients.signing import (
    ServerClock,
    SignedRequest,
    base64_sha256,
    base64_sha512,
    bithumb_canonical,
    bybit_canonical,
    hex_sha256,
    iso_timestamp,
    prehash_canonical,
)

# RFC 4231, test case 2
RFC_KEY = "Jefe"
RFC_DATA = "what do ya want for nothing?"
RFC_SHA256 = "5bdcc146bf60754e6a042426089575c75a003f089d2739839dec58b964ec3843"
RFC_SHA512 = (
    "164b7a7bfcf819e2e395fbe73b56e0a387bd64222e831fd610270cd7ea250554"
    "9758bf75c05a994a6d034f65f8f0e6fdcaeab1a34d4a6b4b636e070a38bce737"
)


def test_hex_sha256_matches_rfc_vector() -> None:
    assert hex_sha256(RFC_KEY).sign(RFC_DATA) == RFC_SHA256


def test_base64_signers_encode_the_raw_digest() -> None:
    assert base64_sha256(RFC_KEY).sign(RFC_DATA) == base64.b64encode(bytes.fromhex(RFC_SHA256)).decode()
    assert base64_sha512(RFC_KEY).sign(RFC_DATA) == base64.b64encode(bytes.fromhex(RFC_SHA512)).decode()


def test_binance_documented_signature() -> None:
    secret = "NhqPtmdSJYdKjVHjA7PZj4Mge3R5YNiP1e3UZjInClVN65XAbvqqM6A7H5fATj0j"
    query = (
        "symbol=LTCBTC&side=BUY&type=LIMIT&timeInForce=GTC&quantity=1&price=0.1"
        "&recvWindow=5000&timestamp=1499827319559"
    )

    assert hex_sha256(secret).sign(query) == "c8db56825ae71d6d79447849e617115f4a920fa2acdcab2b053c4b2838bd6b71"


def test_signer_repr_hides_secret() -> None:
    assert "Jefe" not in repr(hex_sha256(RFC_KEY))


def test_bybit_canonical_concatenates_fields() -> None:
    canonical = bybit_canonical(timestamp="1700000000000", api_key="key", recv_window="5000", payload="a=1&b=2")

    assert canonical == "1700000000000key5000a=1&b=2"


def test_prehash_canonical_with_and_without_query() -> None:
    assert (
        prehash_canonical(timestamp="T", method="get", path="/api/v5/account/positions", query="instType=SWAP")
        == "TGET/api/v5/account/positions?instType=SWAP"
    )
    assert prehash_canonical(timestamp="T", method="POST", path="/p", body='{"a":1}') == 'TPOST/p{"a":1}'


def test_bithumb_canonical_uses_nul_separators() -> None:
    canonical = bithumb_canonical(endpoint="/info/balance", body="endpoint=%2Finfo%2Fbalance", nonce="42")

    assert canonical == "/info/balance\x00endpoint=%2Finfo%2Fbalance\x0042"


def test_iso_timestamp_has_milliseconds_and_z() -> None:
    assert iso_timestamp(1_700_000_000_123) == "2023-11-14T22:13:20.123Z"
    assert iso_timestamp(1_700_000_000_000) == "2023-11-14T22:13:20.000Z"


def test_signed_request_path() -> None:
    request = SignedRequest(
        method="GET", path="/p", query_string="a=1", body="", timestamp="1", signature="s", headers={}
    )

    assert request.request_path == "/p?a=1"
    assert SignedRequest("GET", "/p", "", "", "1", "s", {}).request_path == "/p"


def test_server_clock_applies_midpoint_offset() -> None:
    ticks = count(1000, 10)
    clock = ServerClock(local_ms=lambda: next(ticks))

    offset = clock.sync(lambda: 2005)

    assert offset == 1000
    assert clock.now() == 1020 + 1000


def test_server_clock_keeps_offset_when_server_time_missing() -> None:
    clock = ServerClock(local_ms=lambda: 5000)

    assert clock.sync(lambda: None) == 0
    assert clock.now() == 5000
