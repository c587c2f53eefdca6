"""Margin tools for Kite MCP Server."""

from ..arguments import extract_args
from ..client import KiteClient
from ..formatting import format_record, format_records

# Schema for get_order_margins tool
GET_ORDER_MARGINS_SCHEMA = {
    "type": "object",
    "properties": {
        "exchange": {
            "type": "string",
            "enum": ["nse", "bse"],
            "description": "The exchange value",
        },
        "tradingSymbol": {
            "type": "string",
            "description": "The trading symbol (e.g., 'INFY')",
        },
        "transactionType": {
            "type": "string",
            "description": "The transaction type (BUY or SELL)",
        },
        "variety": {
            "type": "string",
            "description": "Order variety (regular, amo, co, iceberg, auction)",
        },
        "product": {
            "type": "string",
            "description": "Product (CNC, NRML, MIS, MTF)",
        },
        "orderType": {
            "type": "string",
            "description": "Order type (MARKET, LIMIT, SL, SL-M)",
        },
        "quantity": {
            "type": "number",
            "description": "Quantity",
        },
        "price": {
            "type": "number",
            "description": "Price",
        },
        "triggerPrice": {
            "type": "number",
            "description": "Trigger price",
        },
    },
    "required": [
        "exchange",
        "tradingSymbol",
        "transactionType",
        "variety",
        "product",
        "orderType",
        "quantity",
        "price",
        "triggerPrice",
    ],
}

# Schema for get_user_margins tool
GET_USER_MARGINS_SCHEMA = {
    "type": "object",
    "properties": {},
    "required": [],
}

# Schema for get_user_segment_margins tool
GET_USER_SEGMENT_MARGINS_SCHEMA = {
    "type": "object",
    "properties": {
        "segment": {
            "type": "string",
            "enum": ["equity", "commodity"],
            "description": "Margin segment",
        }
    },
    "required": ["segment"],
}


async def get_order_margins(client: KiteClient, args: dict) -> str:
    """
    Get margin requirements for a single prospective order.

    Args:
        client: KiteClient instance
        args: Tool arguments describing the order

    Returns:
        One line per margin breakdown
    """
    params = extract_args(GET_ORDER_MARGINS_SCHEMA, args)

    margins = await client.get_order_margins(
        [
            {
                "exchange": params["exchange"],
                "tradingsymbol": params["tradingSymbol"],
                "transaction_type": params["transactionType"],
                "variety": params["variety"],
                "product": params["product"],
                "order_type": params["orderType"],
                "quantity": params["quantity"],
                "price": params["price"],
                "trigger_price": params["triggerPrice"],
            }
        ]
    )
    return format_records(margins)


async def get_user_margins(client: KiteClient, args: dict) -> str:
    """Get funds and margins across all segments."""
    margins = await client.get_user_margins()
    return format_record(margins or {})


async def get_user_segment_margins(client: KiteClient, args: dict) -> str:
    """Get funds and margins for a single segment."""
    params = extract_args(GET_USER_SEGMENT_MARGINS_SCHEMA, args)
    margins = await client.get_user_segment_margins(params["segment"])
    return format_record(margins or {})
