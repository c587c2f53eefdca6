"""Configuration management for Kite MCP Server."""

from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError

USAGE = (
    "Error: ZERODHA_API_KEY and ZERODHA_API_SECRET are required\n"
    "Usage example: ZERODHA_API_KEY=YOUR_API_KEY "
    "ZERODHA_API_SECRET=YOUR_API_SECRET kite-mcp"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Required Kite Connect credentials
    zerodha_api_key: str = Field(min_length=1)
    zerodha_api_secret: str = Field(min_length=1)

    # Local listener that receives the login redirect
    kite_callback_host: str = "127.0.0.1"
    kite_callback_port: int = 5888

    # Handshake timing (seconds)
    kite_auth_timeout: float = 120.0
    kite_poll_interval: float = 5.0

    # Optional settings
    log_level: str = "INFO"
    kite_timeout: int = 30
    kite_shutdown_grace: float = 5.0


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()


def load_settings() -> Settings:
    """
    Get application settings, translating validation failures.

    Raises:
        ConfigError: If a required secret is missing or empty
    """
    try:
        return get_settings()
    except ValidationError as e:
        missing = ", ".join(
            str(err["loc"][0]).upper() for err in e.errors() if err.get("loc")
        )
        raise ConfigError(f"{USAGE}\nInvalid or missing: {missing}") from e


# Global settings instance (lazy loaded)
_settings: Optional[Settings] = None


def settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
