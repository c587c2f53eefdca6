"""User tools for Kite MCP Server."""

from ..client import KiteClient
from ..formatting import format_record

# Schema for get_user_profile tool
GET_USER_PROFILE_SCHEMA = {
    "type": "object",
    "properties": {},
    "required": [],
}


async def get_user_profile(client: KiteClient, args: dict) -> str:
    """
    Get the basic user profile.

    Args:
        client: KiteClient instance
        args: Tool arguments (none)

    Returns:
        Profile text
    """
    profile = await client.get_user_profile()
    return format_record(profile or {})
