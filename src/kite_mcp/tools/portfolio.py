"""Portfolio tools for Kite MCP Server."""

from ..client import KiteClient
from ..formatting import format_holdings, format_records

NO_PARAMS_SCHEMA = {
    "type": "object",
    "properties": {},
    "required": [],
}

# Schema for get_kite_holdings tool
GET_HOLDINGS_SCHEMA = NO_PARAMS_SCHEMA

# Schema for get_auction_instruments tool
GET_AUCTION_INSTRUMENTS_SCHEMA = NO_PARAMS_SCHEMA

# Schema for get_positions tool
GET_POSITIONS_SCHEMA = NO_PARAMS_SCHEMA


async def get_holdings(client: KiteClient, args: dict) -> str:
    """
    Get equity holdings, one curated line per holding.

    Args:
        client: KiteClient instance
        args: Tool arguments (none)

    Returns:
        Holdings text
    """
    holdings = await client.get_holdings()
    return format_holdings(holdings)


async def get_auction_instruments(client: KiteClient, args: dict) -> str:
    """Get holdings that are listed in the current auction session."""
    instruments = await client.get_auction_instruments()
    return format_records(instruments)


async def get_positions(client: KiteClient, args: dict) -> str:
    """
    Get day and net positions.

    Args:
        client: KiteClient instance
        args: Tool arguments (none)

    Returns:
        Day positions section followed by the net positions section
    """
    positions = await client.get_positions() or {}

    day_positions = "DAY POSITIONS --- " + format_records(positions.get("day", []))
    net_positions = "NET POSITIONS --- " + format_records(positions.get("net", []))

    return day_positions + " \n \n " + net_positions
