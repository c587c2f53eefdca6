"""Market data tools for Kite MCP Server."""

from ..arguments import extract_args, parse_bool, parse_datetime
from ..client import KiteClient
from ..errors import InvalidArgument
from ..formatting import format_keyed_records, format_records

INSTRUMENT_PROPERTY = {
    "type": "string",
    "description": "Instrument in the format `exchange:tradingsymbol` (e.g., 'NSE:INFY')",
}

# Schema for get_quote tool
GET_QUOTE_SCHEMA = {
    "type": "object",
    "properties": {"instrument": INSTRUMENT_PROPERTY},
    "required": ["instrument"],
}

# Schema for get_ltp tool
GET_LTP_SCHEMA = {
    "type": "object",
    "properties": {"instrument": INSTRUMENT_PROPERTY},
    "required": ["instrument"],
}

# Schema for get_ohlc tool
GET_OHLC_SCHEMA = {
    "type": "object",
    "properties": {"instrument": INSTRUMENT_PROPERTY},
    "required": ["instrument"],
}

# Schema for get_historical_data tool
GET_HISTORICAL_DATA_SCHEMA = {
    "type": "object",
    "properties": {
        "instrumentToken": {
            "type": "integer",
            "description": "Numeric instrument token (see get_instruments)",
        },
        "interval": {
            "type": "string",
            "enum": [
                "minute",
                "3minute",
                "5minute",
                "10minute",
                "15minute",
                "30minute",
                "60minute",
                "day",
            ],
            "description": "Candle interval",
        },
        "fromDate": {
            "type": "string",
            "description": "Start of range (YYYY-MM-DD HH:MM:SS)",
        },
        "toDate": {
            "type": "string",
            "description": "End of range (YYYY-MM-DD HH:MM:SS)",
        },
        "continuous": {
            "type": "string",
            "description": "Continuous data for expired contracts ('true' or 'false', default: false)",
        },
        "oi": {
            "type": "string",
            "description": "Include open interest ('true' or 'false', default: false)",
        },
    },
    "required": ["instrumentToken", "interval", "fromDate", "toDate"],
}

# Schema for get_instruments tool
GET_INSTRUMENTS_SCHEMA = {
    "type": "object",
    "properties": {},
    "required": [],
}

# Schema for get_instruments_by_exchange tool
GET_INSTRUMENTS_BY_EXCHANGE_SCHEMA = {
    "type": "object",
    "properties": {
        "exchange": {
            "type": "string",
            "enum": ["nse", "bse"],
            "description": "The exchange value",
        }
    },
    "required": ["exchange"],
}


def _instrument(args: dict, schema: dict) -> str:
    """Extract and sanity check an `exchange:tradingsymbol` argument."""
    instrument = extract_args(schema, args)["instrument"]
    exchange, sep, symbol = instrument.partition(":")
    if not sep or not exchange or not symbol:
        raise InvalidArgument(
            f"instrument must be in the format exchange:tradingsymbol, got {instrument!r}"
        )
    return instrument


async def get_quote(client: KiteClient, args: dict) -> str:
    """
    Get the full market quote for an instrument.

    Args:
        client: KiteClient instance
        args: Tool arguments with 'instrument'

    Returns:
        Quote text, one line per instrument
    """
    instrument = _instrument(args, GET_QUOTE_SCHEMA)
    quotes = await client.get_quote(instrument)
    return format_keyed_records(quotes, "instrument")


async def get_ltp(client: KiteClient, args: dict) -> str:
    """Get the last traded price for an instrument."""
    instrument = _instrument(args, GET_LTP_SCHEMA)
    ltp = await client.get_ltp(instrument)
    return format_keyed_records(ltp, "instrument")


async def get_ohlc(client: KiteClient, args: dict) -> str:
    """Get the OHLC quote for an instrument."""
    instrument = _instrument(args, GET_OHLC_SCHEMA)
    ohlc = await client.get_ohlc(instrument)
    return format_keyed_records(ohlc, "instrument")


async def get_historical_data(client: KiteClient, args: dict) -> str:
    """
    Get historical candles for an instrument.

    Args:
        client: KiteClient instance
        args: Tool arguments with token, interval, date range and flags

    Returns:
        One line per candle in broker order
    """
    params = extract_args(GET_HISTORICAL_DATA_SCHEMA, args)

    from_date = parse_datetime(params["fromDate"], "fromDate")
    to_date = parse_datetime(params["toDate"], "toDate")
    if from_date > to_date:
        raise InvalidArgument("fromDate must not be after toDate")

    continuous = parse_bool(params.get("continuous", "false"), "continuous")
    oi = parse_bool(params.get("oi", "false"), "oi")

    candles = await client.get_historical_data(
        params["instrumentToken"],
        params["interval"],
        from_date,
        to_date,
        continuous,
        oi,
    )
    return format_records(candles)


async def get_instruments(client: KiteClient, args: dict) -> str:
    """Get every tradable instrument across exchanges."""
    instruments = await client.get_instruments()
    return format_records(instruments)


async def get_instruments_by_exchange(client: KiteClient, args: dict) -> str:
    """Get tradable instruments for one exchange."""
    params = extract_args(GET_INSTRUMENTS_BY_EXCHANGE_SCHEMA, args)
    instruments = await client.get_instruments(params["exchange"])
    return format_records(instruments)
