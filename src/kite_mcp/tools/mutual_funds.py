"""Mutual fund tools for Kite MCP Server."""

from ..arguments import extract_args
from ..client import KiteClient
from ..formatting import format_record, format_records, render_value

NO_PARAMS_SCHEMA = {
    "type": "object",
    "properties": {},
    "required": [],
}

GET_MF_INSTRUMENTS_SCHEMA = NO_PARAMS_SCHEMA
GET_MF_ORDERS_SCHEMA = NO_PARAMS_SCHEMA
GET_MF_HOLDINGS_SCHEMA = NO_PARAMS_SCHEMA
GET_MF_ALLOTTED_ISINS_SCHEMA = NO_PARAMS_SCHEMA

# Schema for get_mf_order_info tool
GET_MF_ORDER_INFO_SCHEMA = {
    "type": "object",
    "properties": {
        "orderId": {
            "type": "string",
            "description": "The Order ID of the mutual fund order",
        }
    },
    "required": ["orderId"],
}

# Schema for get_mf_sip_info tool
GET_MF_SIP_INFO_SCHEMA = {
    "type": "object",
    "properties": {
        "sipId": {
            "type": "string",
            "description": "The SIP ID of the mutual fund SIP",
        }
    },
    "required": ["sipId"],
}

# Schema for get_mf_holdings_info tool
GET_MF_HOLDINGS_INFO_SCHEMA = {
    "type": "object",
    "properties": {
        "isin": {
            "type": "string",
            "description": "The ISIN of the mutual fund holding",
        }
    },
    "required": ["isin"],
}


async def get_mf_instruments(client: KiteClient, args: dict) -> str:
    """Get every mutual fund scheme available on Coin."""
    instruments = await client.get_mf_instruments()
    return format_records(instruments)


async def get_mf_orders(client: KiteClient, args: dict) -> str:
    orders = await client.get_mf_orders()
    return format_records(orders)


async def get_mf_order_info(client: KiteClient, args: dict) -> str:
    """
    Get a single mutual fund order.

    Args:
        client: KiteClient instance
        args: Tool arguments with 'orderId'

    Returns:
        Order text
    """
    params = extract_args(GET_MF_ORDER_INFO_SCHEMA, args)
    order = await client.get_mf_order_info(params["orderId"])
    return format_record(order or {})


async def get_mf_sip_info(client: KiteClient, args: dict) -> str:
    params = extract_args(GET_MF_SIP_INFO_SCHEMA, args)
    sip = await client.get_mf_sip_info(params["sipId"])
    return format_record(sip or {})


async def get_mf_holdings(client: KiteClient, args: dict) -> str:
    holdings = await client.get_mf_holdings()
    return format_records(holdings)


async def get_mf_holdings_info(client: KiteClient, args: dict) -> str:
    """Get the trade breakdown for a single mutual fund holding."""
    params = extract_args(GET_MF_HOLDINGS_INFO_SCHEMA, args)
    holding = await client.get_mf_holding_info(params["isin"])
    if isinstance(holding, list):
        return format_records(holding)
    return format_record(holding or {})


async def get_mf_allotted_isins(client: KiteClient, args: dict) -> str:
    """Get ISINs of funds with at least one allotment."""
    isins = await client.get_mf_allotted_isins()
    return render_value(isins or [])
