"""
Kite MCP Server - Main entry point

Exposes Zerodha Kite Connect data to Claude via Model Context Protocol.
READ-ONLY: No order placement.
"""

import asyncio
import json
import logging
import os
import signal
import sys
from typing import Any, Awaitable, Callable

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .auth import AuthHandshake, Session
from .callback import CallbackListener
from .client import KiteClient
from .config import settings
from .errors import (
    AuthCancelledError,
    AuthError,
    BrokerError,
    ConfigError,
    ListenerError,
    ToolError,
)
from .tools import margins, market, mutual_funds, portfolio, user

logger = logging.getLogger(__name__)

ToolHandler = Callable[[KiteClient, dict], Awaitable[str]]

# Bound once the login handshake succeeds
_kite_client: KiteClient | None = None


def configure_logging(level: str) -> None:
    """Send all logs to stderr; stdout carries the MCP transport."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def set_kite_client(client: KiteClient | None) -> None:
    global _kite_client
    _kite_client = client


def get_kite_client() -> KiteClient:
    """Get the authenticated KiteClient instance."""
    if _kite_client is None:
        raise RuntimeError("Kite session not established")
    return _kite_client


# Initialize MCP server
server = Server("kite-mcp")

HANDLERS: dict[str, ToolHandler] = {
    "get_kite_holdings": portfolio.get_holdings,
    "get_auction_instruments": portfolio.get_auction_instruments,
    "get_positions": portfolio.get_positions,
    "get_order_margins": margins.get_order_margins,
    "get_user_margins": margins.get_user_margins,
    "get_user_segment_margins": margins.get_user_segment_margins,
    "get_quote": market.get_quote,
    "get_ltp": market.get_ltp,
    "get_ohlc": market.get_ohlc,
    "get_historical_data": market.get_historical_data,
    "get_instruments": market.get_instruments,
    "get_instruments_by_exchange": market.get_instruments_by_exchange,
    "get_mf_instruments": mutual_funds.get_mf_instruments,
    "get_mf_orders": mutual_funds.get_mf_orders,
    "get_mf_order_info": mutual_funds.get_mf_order_info,
    "get_mf_sip_info": mutual_funds.get_mf_sip_info,
    "get_mf_holdings": mutual_funds.get_mf_holdings,
    "get_mf_holdings_info": mutual_funds.get_mf_holdings_info,
    "get_mf_allotted_isins": mutual_funds.get_mf_allotted_isins,
    "get_user_profile": user.get_user_profile,
}


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    return [
        Tool(
            name="get_kite_holdings",
            description="Get current holdings in the Zerodha Kite account. This includes stocks, ETFs, and other securities traded on NSE/BSE. Does not include mutual fund holdings.",
            inputSchema=portfolio.GET_HOLDINGS_SCHEMA,
        ),
        Tool(
            name="get_auction_instruments",
            description="Get holdings that are available in the current auction session",
            inputSchema=portfolio.GET_AUCTION_INSTRUMENTS_SCHEMA,
        ),
        Tool(
            name="get_positions",
            description="Get day and net positions. Day positions show intraday trades; net positions show delivery and carried forward F&O positions, with quantity, average price and PnL.",
            inputSchema=portfolio.GET_POSITIONS_SCHEMA,
        ),
        Tool(
            name="get_order_margins",
            description="Get margin requirements for placing an order on an instrument, to check there is enough margin to execute the trade",
            inputSchema=margins.GET_ORDER_MARGINS_SCHEMA,
        ),
        Tool(
            name="get_user_margins",
            description="Get available funds and margins across the equity and commodity segments",
            inputSchema=margins.GET_USER_MARGINS_SCHEMA,
        ),
        Tool(
            name="get_user_segment_margins",
            description="Get available funds and margins for a single segment",
            inputSchema=margins.GET_USER_SEGMENT_MARGINS_SCHEMA,
        ),
        Tool(
            name="get_quote",
            description="Get the full market quote for an instrument on NSE/BSE, including depth, OHLC and volume",
            inputSchema=market.GET_QUOTE_SCHEMA,
        ),
        Tool(
            name="get_ltp",
            description="Get the Last Traded Price (LTP) for an instrument",
            inputSchema=market.GET_LTP_SCHEMA,
        ),
        Tool(
            name="get_ohlc",
            description="Get Open, High, Low, Close (OHLC) and last price for an instrument",
            inputSchema=market.GET_OHLC_SCHEMA,
        ),
        Tool(
            name="get_historical_data",
            description="Get historical OHLCV candles for an instrument token over a date range",
            inputSchema=market.GET_HISTORICAL_DATA_SCHEMA,
        ),
        Tool(
            name="get_instruments",
            description="Get all instruments tradable on Zerodha, including stocks, ETFs, futures and options",
            inputSchema=market.GET_INSTRUMENTS_SCHEMA,
        ),
        Tool(
            name="get_instruments_by_exchange",
            description="Get all instruments tradable on a single exchange",
            inputSchema=market.GET_INSTRUMENTS_BY_EXCHANGE_SCHEMA,
        ),
        Tool(
            name="get_mf_instruments",
            description="Get all mutual fund schemes available on Zerodha Coin",
            inputSchema=mutual_funds.GET_MF_INSTRUMENTS_SCHEMA,
        ),
        Tool(
            name="get_mf_orders",
            description="Get all mutual fund orders",
            inputSchema=mutual_funds.GET_MF_ORDERS_SCHEMA,
        ),
        Tool(
            name="get_mf_order_info",
            description="Get details of a single mutual fund order, including status and amounts",
            inputSchema=mutual_funds.GET_MF_ORDER_INFO_SCHEMA,
        ),
        Tool(
            name="get_mf_sip_info",
            description="Get details of a single mutual fund SIP, including status, frequency and instalments",
            inputSchema=mutual_funds.GET_MF_SIP_INFO_SCHEMA,
        ),
        Tool(
            name="get_mf_holdings",
            description="Get all mutual fund holdings",
            inputSchema=mutual_funds.GET_MF_HOLDINGS_SCHEMA,
        ),
        Tool(
            name="get_mf_holdings_info",
            description="Get details of a single mutual fund holding by ISIN",
            inputSchema=mutual_funds.GET_MF_HOLDINGS_INFO_SCHEMA,
        ),
        Tool(
            name="get_mf_allotted_isins",
            description="Get ISINs of mutual funds with allotted units",
            inputSchema=mutual_funds.GET_MF_ALLOTTED_ISINS_SCHEMA,
        ),
        Tool(
            name="get_user_profile",
            description="Get the basic user profile, including user ID, name, email and enabled exchanges",
            inputSchema=user.GET_USER_PROFILE_SCHEMA,
        ),
    ]


def error_payload(e: Exception) -> dict[str, Any]:
    """Build the JSON error body returned to the tool caller."""
    payload: dict[str, Any] = {
        "error": True,
        "error_type": type(e).__name__,
        "message": str(e),
    }
    if isinstance(e, BrokerError):
        payload["broker_error_type"] = e.error_type
        payload["status_code"] = e.status_code
    return payload


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool invocations."""
    logger.info(f"Tool called: {name}")
    logger.debug(f"Arguments: {arguments}")

    handler = HANDLERS.get(name)
    if not handler:
        raise ValueError(f"Unknown tool: {name}")

    try:
        result = await handler(get_kite_client(), arguments or {})
        return [TextContent(type="text", text=result)]
    except ToolError as e:
        logger.warning(f"Tool {name} failed: {type(e).__name__}: {e}")
        return [TextContent(type="text", text=json.dumps(error_payload(e), indent=2))]
    except Exception as e:
        logger.error(f"Tool {name} failed: {e}", exc_info=True)
        return [TextContent(type="text", text=json.dumps(error_payload(e), indent=2))]


async def serve_stdio() -> None:
    """Serve MCP over stdin/stdout until the host disconnects."""
    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )


def install_signal_handlers(shutdown: asyncio.Event) -> None:
    """Set the shutdown event on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown.set)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(shutdown.set))


async def run_server() -> int:
    """
    Run the login handshake, then serve MCP until shutdown.

    Returns:
        Process exit status
    """
    try:
        cfg = settings()
    except ConfigError as e:
        print(str(e), file=sys.stderr)
        return 1

    configure_logging(cfg.log_level)

    session = Session()
    client = KiteClient(api_key=cfg.zerodha_api_key, timeout=cfg.kite_timeout)
    listener = CallbackListener(
        session, host=cfg.kite_callback_host, port=cfg.kite_callback_port
    )

    try:
        listener.start()
    except ListenerError as e:
        logger.error(str(e))
        return 1

    shutdown = asyncio.Event()
    install_signal_handlers(shutdown)

    handshake = AuthHandshake(
        client,
        session,
        api_secret=cfg.zerodha_api_secret,
        timeout=cfg.kite_auth_timeout,
        poll_interval=cfg.kite_poll_interval,
    )
    try:
        await handshake.run(shutdown)
    except AuthCancelledError:
        logger.info("Login cancelled, exiting")
        await asyncio.to_thread(listener.stop, cfg.kite_shutdown_grace)
        return 0
    except AuthError as e:
        logger.error(f"{e}, exiting...")
        await asyncio.to_thread(listener.stop, 0)
        return 1

    set_kite_client(client)
    logger.info("Kite authentication successful, starting MCP Server...")

    serve_task = asyncio.create_task(serve_stdio())
    shutdown_task = asyncio.create_task(shutdown.wait())
    await asyncio.wait({serve_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED)

    logger.info("Shutting down server...")
    shutdown_task.cancel()
    serve_task.cancel()

    await asyncio.to_thread(listener.stop, cfg.kite_shutdown_grace)

    done, _ = await asyncio.wait({serve_task}, timeout=cfg.kite_shutdown_grace)
    if not done:
        # stdin reads block in a worker thread and cannot be interrupted
        logger.warning("MCP server shutdown timed out, forcing exit")
        logging.shutdown()
        os._exit(0)
        return 0

    if not serve_task.cancelled() and serve_task.exception() is not None:
        logger.error("MCP server stopped with an error", exc_info=serve_task.exception())
        return 1

    logger.info("Server exiting")
    return 0


def main():
    """Entry point for the server."""
    sys.exit(asyncio.run(run_server()))


if __name__ == "__main__":
    main()
