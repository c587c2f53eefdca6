"""
Kite Connect API HTTP client.

Handles all API requests against the Kite Connect v3 REST API.
READ-ONLY: No order placement.
"""

import csv
import hashlib
import io
import logging
from datetime import datetime
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from .errors import BrokerError

logger = logging.getLogger(__name__)


class KiteClient:
    """Async HTTP client for Kite Connect."""

    API_BASE = "https://api.kite.trade"
    LOGIN_BASE = "https://kite.zerodha.com/connect/login"
    KITE_VERSION = "3"

    def __init__(
        self,
        api_key: str,
        timeout: int = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize KiteClient.

        Args:
            api_key: Kite Connect API key
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._access_token: Optional[str] = None

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    def set_access_token(self, access_token: str) -> None:
        """Bind the session access token used for all subsequent calls."""
        self._access_token = access_token

    def login_url(self) -> str:
        """Build the Kite login URL for this API key."""
        return f"{self.LOGIN_BASE}?{urlencode({'v': self.KITE_VERSION, 'api_key': self.api_key})}"

    def _get_headers(self) -> dict[str, str]:
        """Get headers, including the session token once one is bound."""
        headers = {"X-Kite-Version": self.KITE_VERSION}
        if self._access_token:
            headers["Authorization"] = f"token {self.api_key}:{self._access_token}"
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        params: Any = None,
        data: Optional[dict] = None,
        json_data: Any = None,
    ) -> httpx.Response:
        """
        Make a request to Kite Connect.

        Raises:
            BrokerError: On transport failure or a non-2xx response
        """
        url = f"{self.API_BASE}{path}"

        try:
            async with httpx.AsyncClient(
                timeout=float(self.timeout), transport=self._transport
            ) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=self._get_headers(),
                    params=params,
                    data=data,
                    json=json_data,
                )
        except httpx.HTTPError as e:
            raise BrokerError(str(e), error_type="NetworkException") from e

        # Log non-sensitive request info
        logger.debug(f"{method} {path} -> {response.status_code}")

        if response.is_error:
            raise self._error_from_response(response)
        return response

    @staticmethod
    def _error_from_response(response: httpx.Response) -> BrokerError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("message") or response.text or response.reason_phrase
        return BrokerError(
            message,
            error_type=body.get("error_type"),
            status_code=response.status_code,
        )

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """Make a request and unwrap the `data` field of the JSON envelope."""
        response = await self._send(method, path, **kwargs)
        try:
            body = response.json()
        except ValueError as e:
            raise BrokerError(
                f"Unparseable response from {path}",
                error_type="DataException",
                status_code=response.status_code,
            ) from e

        if not isinstance(body, dict):
            raise BrokerError(
                f"Unexpected response shape from {path}",
                error_type="DataException",
                status_code=response.status_code,
            )
        if body.get("status") == "error":
            raise BrokerError(
                body.get("message", "Unknown error"),
                error_type=body.get("error_type"),
                status_code=response.status_code,
            )
        return body.get("data")

    async def get(self, path: str, params: Any = None) -> Any:
        """Make GET request."""
        return await self._request("GET", path, params=params)

    async def get_csv(self, path: str) -> list[dict[str, str]]:
        """Make GET request against an endpoint that returns a CSV dump."""
        response = await self._send("GET", path)
        return list(csv.DictReader(io.StringIO(response.text)))

    # ==========================================================================
    # Session
    # ==========================================================================

    async def generate_session(self, request_token: str, api_secret: str) -> dict:
        """
        Exchange a request token for an access token.

        Args:
            request_token: Token delivered to the login redirect
            api_secret: Kite Connect API secret

        Returns:
            Session data including 'access_token' and 'user_id'
        """
        checksum = hashlib.sha256(
            f"{self.api_key}{request_token}{api_secret}".encode()
        ).hexdigest()
        return await self._request(
            "POST",
            "/session/token",
            data={
                "api_key": self.api_key,
                "request_token": request_token,
                "checksum": checksum,
            },
        )

    # ==========================================================================
    # Portfolio
    # ==========================================================================

    async def get_holdings(self) -> list[dict]:
        """Get long-term equity holdings."""
        return await self.get("/portfolio/holdings")

    async def get_auction_instruments(self) -> list[dict]:
        """Get holdings that are open for the current auction session."""
        return await self.get("/portfolio/holdings/auctions")

    async def get_positions(self) -> dict:
        """
        Get day and net positions.

        Returns:
            Dict with 'day' and 'net' position lists
        """
        return await self.get("/portfolio/positions")

    # ==========================================================================
    # Margins
    # ==========================================================================

    async def get_order_margins(self, orders: list[dict]) -> list[dict]:
        """
        Calculate margins required for a list of prospective orders.

        Args:
            orders: Order dicts with exchange, tradingsymbol, transaction_type,
                variety, product, order_type, quantity, price, trigger_price

        Returns:
            One margin breakdown per order
        """
        payload = []
        for order in orders:
            order = dict(order)
            order["exchange"] = order["exchange"].upper()
            payload.append(order)
        return await self._request("POST", "/margins/orders", json_data=payload)

    async def get_user_margins(self) -> dict:
        """Get funds and margins for all segments."""
        return await self.get("/user/margins")

    async def get_user_segment_margins(self, segment: str) -> dict:
        """Get funds and margins for one segment (equity or commodity)."""
        return await self.get(f"/user/margins/{segment.lower()}")

    # ==========================================================================
    # Market Data
    # ==========================================================================

    async def get_quote(self, *instruments: str) -> dict:
        """
        Get full market quotes.

        Args:
            instruments: Instruments as 'exchange:tradingsymbol'

        Returns:
            Dict of instrument -> quote data
        """
        return await self.get("/quote", params=[("i", i) for i in instruments])

    async def get_ltp(self, *instruments: str) -> dict:
        """Get last traded price for instruments."""
        return await self.get("/quote/ltp", params=[("i", i) for i in instruments])

    async def get_ohlc(self, *instruments: str) -> dict:
        """Get OHLC and last traded price for instruments."""
        return await self.get("/quote/ohlc", params=[("i", i) for i in instruments])

    async def get_historical_data(
        self,
        instrument_token: int,
        interval: str,
        from_date: datetime,
        to_date: datetime,
        continuous: bool = False,
        oi: bool = False,
    ) -> list[dict]:
        """
        Get historical candles for an instrument.

        Args:
            instrument_token: Numeric instrument token
            interval: minute, day, 3minute, 5minute, 10minute, 15minute,
                30minute or 60minute
            from_date: Start of range
            to_date: End of range
            continuous: Continuous data for expired futures
            oi: Include open interest

        Returns:
            List of candle dicts (date, open, high, low, close, volume[, oi])
        """
        params = {
            "from": from_date.strftime("%Y-%m-%d %H:%M:%S"),
            "to": to_date.strftime("%Y-%m-%d %H:%M:%S"),
            "continuous": 1 if continuous else 0,
            "oi": 1 if oi else 0,
        }
        data = await self.get(
            f"/instruments/historical/{instrument_token}/{interval}", params=params
        )
        return [_parse_candle(c) for c in (data or {}).get("candles", [])]

    async def get_instruments(self, exchange: Optional[str] = None) -> list[dict[str, str]]:
        """
        Get the tradable instrument dump.

        Args:
            exchange: Optional exchange to restrict the dump to (e.g. 'nse')
        """
        if exchange:
            return await self.get_csv(f"/instruments/{exchange.upper()}")
        return await self.get_csv("/instruments")

    # ==========================================================================
    # Mutual Funds
    # ==========================================================================

    async def get_mf_instruments(self) -> list[dict[str, str]]:
        """Get the mutual fund instrument dump."""
        return await self.get_csv("/mf/instruments")

    async def get_mf_orders(self) -> list[dict]:
        return await self.get("/mf/orders")

    async def get_mf_order_info(self, order_id: str) -> dict:
        return await self.get(f"/mf/orders/{order_id}")

    async def get_mf_sip_info(self, sip_id: str) -> dict:
        return await self.get(f"/mf/sips/{sip_id}")

    async def get_mf_holdings(self) -> list[dict]:
        return await self.get("/mf/holdings")

    async def get_mf_holding_info(self, isin: str) -> dict:
        return await self.get(f"/mf/holdings/{isin}")

    async def get_mf_allotted_isins(self) -> list[str]:
        return await self.get("/mf/allotments")

    # ==========================================================================
    # User
    # ==========================================================================

    async def get_user_profile(self) -> dict:
        """Get the basic user profile."""
        return await self.get("/user/profile")


def _parse_candle(candle: list) -> dict[str, Any]:
    """
    Convert a positional candle into a dict.

    Args:
        candle: [timestamp, open, high, low, close, volume] with an optional
            trailing open interest value

    Returns:
        Candle dict with named fields
    """
    parsed = {
        "date": candle[0],
        "open": candle[1],
        "high": candle[2],
        "low": candle[3],
        "close": candle[4],
        "volume": candle[5],
    }
    if len(candle) > 6:
        parsed["oi"] = candle[6]
    return parsed
