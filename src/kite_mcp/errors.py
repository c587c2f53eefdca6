"""Error types for Kite MCP Server."""

from typing import Optional


class KiteMCPError(Exception):
    """Base error for Kite MCP Server."""


class ConfigError(KiteMCPError):
    """Missing or invalid configuration."""


class ListenerError(KiteMCPError):
    """The OAuth callback listener could not be started."""


class AuthError(KiteMCPError):
    """Login handshake failure."""


class AuthTimeoutError(AuthError):
    """No callback arrived before the handshake deadline."""


class AuthExchangeError(AuthError):
    """Exchanging the request token for an access token failed."""


class AuthCancelledError(AuthError):
    """Handshake was interrupted by a shutdown signal."""


class ToolError(KiteMCPError):
    """Error scoped to a single tool invocation."""


class InvalidArgument(ToolError):
    """Tool argument missing, mistyped, or unparseable."""


class BrokerError(ToolError):
    """Kite Connect API call failed."""

    def __init__(
        self,
        message: str,
        error_type: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.status_code = status_code
