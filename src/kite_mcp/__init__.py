"""
Kite MCP Server

A read-only Model Context Protocol (MCP) server for Zerodha Kite Connect.
Enables Claude to look up holdings, positions, quotes, mutual funds and margins.
"""

__version__ = "0.1.0"

from .auth import AuthHandshake, Session
from .client import KiteClient
from .config import Settings, settings

__all__ = [
    "AuthHandshake",
    "Session",
    "KiteClient",
    "Settings",
    "settings",
]
