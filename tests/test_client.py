"""Tests for the Kite Connect HTTP client."""

import asyncio
import hashlib
import json
from datetime import datetime
from urllib.parse import parse_qs

import httpx
import pytest

from kite_mcp.client import KiteClient, _parse_candle
from kite_mcp.errors import BrokerError


def make_client(handler, access_token=None) -> KiteClient:
    client = KiteClient(api_key="test_key", transport=httpx.MockTransport(handler))
    if access_token:
        client.set_access_token(access_token)
    return client


def ok(data) -> httpx.Response:
    return httpx.Response(200, json={"status": "success", "data": data})


class TestLoginAndHeaders:
    """Tests for URL and header construction."""

    def test_login_url(self):
        """Test the login URL carries the API key and version."""
        client = KiteClient(api_key="test_key")
        assert client.login_url() == (
            "https://kite.zerodha.com/connect/login?v=3&api_key=test_key"
        )

    def test_headers_without_token(self):
        """Test no Authorization header before the session is bound."""
        client = KiteClient(api_key="test_key")
        headers = client._get_headers()
        assert headers == {"X-Kite-Version": "3"}

    def test_headers_with_token(self):
        """Test the Authorization header uses api_key:access_token."""
        client = KiteClient(api_key="test_key")
        client.set_access_token("access123")
        headers = client._get_headers()
        assert headers["Authorization"] == "token test_key:access123"
        assert client.access_token == "access123"


class TestGenerateSession:
    """Tests for the request token exchange."""

    def test_generate_session_sends_checksum(self):
        """Test the exchange posts api_key, request_token and checksum."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["form"] = parse_qs(request.content.decode())
            return ok({"access_token": "access123", "user_id": "AB1234"})

        client = make_client(handler)
        data = asyncio.run(client.generate_session("req456", "secret789"))

        assert data["access_token"] == "access123"
        assert seen["method"] == "POST"
        assert seen["path"] == "/session/token"
        assert seen["form"]["api_key"] == ["test_key"]
        assert seen["form"]["request_token"] == ["req456"]
        expected = hashlib.sha256(b"test_keyreq456secret789").hexdigest()
        assert seen["form"]["checksum"] == [expected]


class TestErrors:
    """Tests for error translation."""

    def test_error_envelope(self):
        """Test an HTTP error with a Kite envelope becomes BrokerError."""

        def handler(request):
            return httpx.Response(
                403,
                json={
                    "status": "error",
                    "message": "Incorrect `api_key` or `access_token`.",
                    "error_type": "TokenException",
                },
            )

        client = make_client(handler, access_token="expired")
        with pytest.raises(BrokerError) as exc_info:
            asyncio.run(client.get_holdings())

        assert exc_info.value.message == "Incorrect `api_key` or `access_token`."
        assert exc_info.value.error_type == "TokenException"
        assert exc_info.value.status_code == 403

    def test_error_status_in_ok_response(self):
        """Test an error envelope with a 200 status still raises."""

        def handler(request):
            return httpx.Response(
                200, json={"status": "error", "message": "Bad input", "error_type": "InputException"}
            )

        with pytest.raises(BrokerError) as exc_info:
            asyncio.run(make_client(handler).get_user_profile())
        assert exc_info.value.error_type == "InputException"

    def test_non_json_error(self):
        """Test an HTTP error without JSON keeps the body text."""

        def handler(request):
            return httpx.Response(502, text="Bad Gateway")

        with pytest.raises(BrokerError) as exc_info:
            asyncio.run(make_client(handler).get_positions())
        assert exc_info.value.status_code == 502
        assert "Bad Gateway" in str(exc_info.value)

    def test_transport_error(self):
        """Test connection failures become BrokerError."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(BrokerError) as exc_info:
            asyncio.run(make_client(handler).get_holdings())
        assert exc_info.value.error_type == "NetworkException"


class TestEndpoints:
    """Tests for endpoint paths and payloads."""

    def test_get_holdings(self):
        """Test holdings are unwrapped from the envelope."""

        def handler(request):
            assert request.url.path == "/portfolio/holdings"
            assert request.headers["Authorization"] == "token test_key:access123"
            return ok([{"tradingsymbol": "INFY"}])

        client = make_client(handler, access_token="access123")
        assert asyncio.run(client.get_holdings()) == [{"tradingsymbol": "INFY"}]

    def test_get_quote_repeats_instrument_param(self):
        """Test instruments are sent as repeated `i` parameters."""

        def handler(request):
            assert request.url.path == "/quote/ltp"
            assert request.url.params.get_list("i") == ["NSE:INFY", "BSE:SENSEX"]
            return ok({"NSE:INFY": {"last_price": 1500.5}})

        data = asyncio.run(make_client(handler).get_ltp("NSE:INFY", "BSE:SENSEX"))
        assert data == {"NSE:INFY": {"last_price": 1500.5}}

    def test_get_order_margins_posts_json(self):
        """Test order margins post a JSON list with an upper-cased exchange."""
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return ok([{"type": "equity", "total": 1500.0}])

        orders = [{"exchange": "nse", "tradingsymbol": "INFY", "quantity": 1}]
        result = asyncio.run(make_client(handler).get_order_margins(orders))

        assert seen["path"] == "/margins/orders"
        assert seen["body"] == [{"exchange": "NSE", "tradingsymbol": "INFY", "quantity": 1}]
        assert orders[0]["exchange"] == "nse"
        assert result == [{"type": "equity", "total": 1500.0}]

    def test_get_user_segment_margins(self):
        """Test the segment is part of the path."""

        def handler(request):
            assert request.url.path == "/user/margins/equity"
            return ok({"net": 1000.0})

        assert asyncio.run(make_client(handler).get_user_segment_margins("EQUITY")) == {
            "net": 1000.0
        }

    def test_get_instruments_by_exchange_parses_csv(self):
        """Test instrument dumps are parsed into ordered rows."""

        def handler(request):
            assert request.url.path == "/instruments/NSE"
            return httpx.Response(
                200,
                text="instrument_token,exchange,tradingsymbol\n408065,NSE,INFY\n884737,NSE,TATAMOTORS\n",
            )

        rows = asyncio.run(make_client(handler).get_instruments("nse"))

        assert len(rows) == 2
        assert list(rows[0].keys()) == ["instrument_token", "exchange", "tradingsymbol"]
        assert rows[1]["tradingsymbol"] == "TATAMOTORS"

    def test_get_all_instruments(self):
        """Test the full dump uses the bare path."""

        def handler(request):
            assert request.url.path == "/instruments"
            return httpx.Response(200, text="instrument_token,tradingsymbol\n1,A\n")

        assert asyncio.run(make_client(handler).get_instruments()) == [
            {"instrument_token": "1", "tradingsymbol": "A"}
        ]

    def test_get_historical_data(self):
        """Test historical params are formatted and candles named."""

        def handler(request):
            assert request.url.path == "/instruments/historical/408065/day"
            params = request.url.params
            assert params["from"] == "2024-01-01 09:15:00"
            assert params["to"] == "2024-01-31 15:30:00"
            assert params["continuous"] == "0"
            assert params["oi"] == "1"
            return ok(
                {"candles": [["2024-01-01T00:00:00+0530", 1500, 1510, 1490, 1505, 12000, 0]]}
            )

        candles = asyncio.run(
            make_client(handler).get_historical_data(
                408065,
                "day",
                datetime(2024, 1, 1, 9, 15),
                datetime(2024, 1, 31, 15, 30),
                continuous=False,
                oi=True,
            )
        )

        assert candles == [
            {
                "date": "2024-01-01T00:00:00+0530",
                "open": 1500,
                "high": 1510,
                "low": 1490,
                "close": 1505,
                "volume": 12000,
                "oi": 0,
            }
        ]

    def test_mf_paths(self):
        """Test mutual fund lookups hit the expected paths."""
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return ok({})

        client = make_client(handler)

        async def calls():
            await client.get_mf_orders()
            await client.get_mf_order_info("ord1")
            await client.get_mf_sip_info("sip1")
            await client.get_mf_holdings()
            await client.get_mf_holding_info("INF123")
            await client.get_mf_allotted_isins()

        asyncio.run(calls())

        assert paths == [
            "/mf/orders",
            "/mf/orders/ord1",
            "/mf/sips/sip1",
            "/mf/holdings",
            "/mf/holdings/INF123",
            "/mf/allotments",
        ]


class TestParseCandle:
    """Tests for candle parsing."""

    def test_parse_candle_without_oi(self):
        """Test a six-value candle has no oi key."""
        result = _parse_candle(["2024-01-01", 1, 2, 0.5, 1.5, 100])
        assert "oi" not in result
        assert result["close"] == 1.5
