"""
Configuration settings for the chat-completion connector.

Settings are loaded with pydantic-settings from environment variables
(prefixed with CHAT_CONNECTOR_), a .env file, and defaults.
"""

from typing import Optional, Dict, Any
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConnectorSettings(BaseSettings):
    """
    Connection and default generation settings.

    Settings are loaded from multiple sources in order of preference:
    1. Environment variables (prefixed with CHAT_CONNECTOR_)
    2. The .env file
    3. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="CHAT_CONNECTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service Configuration
    api_key: Optional[str] = Field(
        default=None,
        description="API key sent in the api-key header"
    )

    token: Optional[str] = Field(
        default=None,
        description="Bearer token used instead of an API key"
    )

    endpoint: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the chat-completion service"
    )

    deployment: Optional[str] = Field(
        default=None,
        description="Deployment name; selects the deployment-scoped URL layout"
    )

    api_version: Optional[str] = Field(
        default=None,
        description="api-version query parameter for deployment-scoped endpoints"
    )

    # Model Configuration
    model_id: str = Field(
        default="gpt-4o-mini",
        description="Model identifier reported on responses and sent in requests"
    )

    max_tokens: Optional[int] = Field(
        default=None,
        description="Default maximum tokens for responses",
        gt=0
    )

    temperature: Optional[float] = Field(
        default=None,
        description="Default temperature for response generation"
    )

    timeout: float = Field(
        default=100.0,
        description="Request timeout in seconds",
        gt=0
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, v: Optional[float]) -> Optional[float]:
        """Validate temperature range."""
        if v is not None and not 0.0 <= v <= 2.0:
            raise ValueError(f"Invalid temperature {v}. Must be between 0.0 and 2.0")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level '{v}'. Valid levels: {', '.join(sorted(valid_levels))}")
        return v_upper

    @property
    def is_configured(self) -> bool:
        """Check if credentials are available."""
        return self.api_key is not None or self.token is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary, excluding sensitive data."""
        data = self.model_dump()
        for key in ("api_key", "token"):
            if data.get(key):
                data[key] = "***masked***"
        return data


def get_settings() -> ConnectorSettings:
    """Get the current connector settings."""
    return ConnectorSettings()
