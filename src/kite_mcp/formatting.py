"""
Text rendering for Kite records.

Every record is flattened to one line of `field: value` pairs in the order
the broker returned the fields. Holdings use a fixed, curated template.
"""

from datetime import date, datetime
from typing import Any, Iterable, Mapping

RECORD_START = "<start>"
RECORD_END = "<end>"

HOLDING_TEMPLATE = (
    "Holding: Tradingsymbol: {tradingsymbol}, Exchange: {exchange}, "
    "InstrumentToken: {instrument_token}, ISIN: {isin}, Product: {product}, "
    "Price: {price:.2f}, UsedQuantity: {used_quantity}, Quantity: {quantity}, "
    "T1Quantity: {t1_quantity}, RealisedQuantity: {realised_quantity}, "
    "AveragePrice: {average_price:.2f}, LastPrice: {last_price:.2f}, "
    "ClosePrice: {close_price:.2f}, PnL: {pnl:.2f}, DayChange: {day_change:.2f}, "
    "DayChangePercentage: {day_change_percentage:.2f}, "
    "BuyValue: {buy_value:.2f}, CurrentValue: {current_value:.2f}"
)


def render_value(value: Any) -> str:
    """Render a single field value."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        inner = ", ".join(f"{k}: {render_value(v)}" for k, v in value.items())
        return "{" + inner + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(render_value(v) for v in value) + "]"
    return str(value)


def format_record(record: Mapping[str, Any]) -> str:
    """
    Flatten one record.

    >>> format_record({"A": 1, "B": "x"})
    '<start> A: 1, B: x,  <end>'
    """
    fields = "".join(f"{name}: {render_value(value)}, " for name, value in record.items())
    return f"{RECORD_START} {fields} {RECORD_END}"


def format_records(records: Iterable[Mapping[str, Any]]) -> str:
    """Flatten records one per newline-terminated line, in broker order."""
    return "".join(format_record(record) + "\n" for record in records or [])


def format_keyed_records(records: Mapping[str, Mapping[str, Any]], key_name: str) -> str:
    """Flatten a mapping of key -> record, leading each line with the key."""
    return format_records(
        {key_name: key, **record} for key, record in (records or {}).items()
    )


def _number(value: Any) -> float:
    return float(value) if value is not None else 0.0


def format_holding(holding: Mapping[str, Any]) -> str:
    """Render one equity holding with the curated holdings template."""
    quantity = holding.get("quantity") or 0
    average_price = _number(holding.get("average_price"))
    last_price = _number(holding.get("last_price"))

    return HOLDING_TEMPLATE.format(
        tradingsymbol=holding.get("tradingsymbol", ""),
        exchange=holding.get("exchange", ""),
        instrument_token=holding.get("instrument_token", ""),
        isin=holding.get("isin", ""),
        product=holding.get("product", ""),
        price=_number(holding.get("price")),
        used_quantity=holding.get("used_quantity") or 0,
        quantity=quantity,
        t1_quantity=holding.get("t1_quantity") or 0,
        realised_quantity=holding.get("realised_quantity") or 0,
        average_price=average_price,
        last_price=last_price,
        close_price=_number(holding.get("close_price")),
        pnl=_number(holding.get("pnl")),
        day_change=_number(holding.get("day_change")),
        day_change_percentage=_number(holding.get("day_change_percentage")),
        buy_value=average_price * quantity,
        current_value=last_price * quantity,
    )


def format_holdings(holdings: Iterable[Mapping[str, Any]]) -> str:
    """Render holdings one per newline-terminated line."""
    return "".join(format_holding(h) + "\n" for h in holdings or [])
