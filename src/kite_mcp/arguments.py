"""Tool argument validation against the declared input schemas."""

from datetime import datetime
from typing import Any

from .errors import InvalidArgument

TIME_LAYOUT = "%Y-%m-%d %H:%M:%S"

_TRUE_STRINGS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_STRINGS = {"0", "f", "F", "FALSE", "false", "False"}


def _type_matches(expected: str, value: Any) -> bool:
    if expected == "string":
        return isinstance(value, str)
    if expected == "boolean":
        return isinstance(value, bool)
    # bool is an int subclass but never a valid number here
    if isinstance(value, bool):
        return False
    if expected == "integer":
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    if expected == "number":
        return isinstance(value, (int, float))
    return True


def extract_args(schema: dict, args: dict | None) -> dict[str, Any]:
    """
    Validate raw tool arguments against a tool's input schema.

    Args:
        schema: JSON schema dict with 'properties' and 'required'
        args: Untyped arguments from the tool invocation

    Returns:
        Dict of declared parameters that were supplied

    Raises:
        InvalidArgument: If a required parameter is missing, a value has the
            wrong type, or a value is outside its enum
    """
    args = args or {}
    properties = schema.get("properties", {})

    for name in schema.get("required", []):
        if args.get(name) is None:
            raise InvalidArgument(f"{name} parameter is required")

    extracted: dict[str, Any] = {}
    for name, prop in properties.items():
        value = args.get(name)
        if value is None:
            continue

        expected = prop.get("type")
        if expected and not _type_matches(expected, value):
            raise InvalidArgument(f"{name} must be a {expected}")
        if expected == "integer":
            value = int(value)

        allowed = prop.get("enum")
        if allowed is not None and value not in allowed:
            raise InvalidArgument(
                f"{name} must be one of {', '.join(map(str, allowed))}"
            )

        extracted[name] = value

    return extracted


def parse_datetime(value: str, name: str) -> datetime:
    """Parse a `YYYY-MM-DD HH:MM:SS` string."""
    try:
        return datetime.strptime(value, TIME_LAYOUT)
    except ValueError as e:
        raise InvalidArgument(
            f"{name} must match YYYY-MM-DD HH:MM:SS, got {value!r}"
        ) from e


def parse_bool(value: Any, name: str) -> bool:
    """Parse a boolean or a boolean-valued string."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        if value in _TRUE_STRINGS:
            return True
        if value in _FALSE_STRINGS:
            return False
    raise InvalidArgument(f"{name} must be a boolean, got {value!r}")
