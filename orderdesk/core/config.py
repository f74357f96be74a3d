"""
Settings for the order composition engine.

API location and timeouts, search debounce, ledger and status defaults, and
the messaging link are all read from ORDERDESK_* environment variables or a
local .env file.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine settings.

    Every field maps to an ORDERDESK_<FIELD> variable, e.g.
    ORDERDESK_API_BASE_URL or ORDERDESK_SEARCH_DEBOUNCE_MS.
    """

    model_config = SettingsConfigDict(
        env_prefix="ORDERDESK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API Configuration
    api_base_url: str = Field(
        default="http://localhost:5150",
        description="Base URL of the order management REST API",
    )

    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Timeout applied to every outbound API request",
    )

    # Resolver Configuration
    search_debounce_ms: int = Field(
        default=300,
        ge=0,
        le=5000,
        description="Quiet period before a customer/product search is sent",
    )

    # Ledger Configuration
    default_unit_type: str = Field(
        default="unit",
        min_length=1,
        description="Unit label used when neither product nor category has one",
    )

    default_status: str = Field(
        default="OrderPlaced",
        description="Status assigned to a new draft order",
    )

    # Messaging Configuration
    messaging_base_url: str = Field(
        default="https://wa.me",
        description="Base URL of the customer messaging link",
    )

    messaging_country_code: str = Field(
        default="55",
        description="Country calling code prefixed to customer phone numbers",
    )

    currency_symbol: str = Field(
        default="R$",
        description="Currency symbol used in customer-facing messages",
    )

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Application logging level",
    )

    # Environment Configuration
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )

    # Application Configuration
    app_name: str = Field(
        default="OrderDesk",
        description="Application name",
    )

    app_version: str = Field(
        default="1.0.0",
        description="Application version",
    )

    @field_validator("api_base_url", "messaging_base_url")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        """
        Validate HTTP URL format.

        Args:
            v: URL value

        Returns:
            URL without a trailing slash

        Raises:
            ValueError: If URL does not use http or https
        """
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with 'http://' or 'https://'")
        return v.rstrip("/")

    @field_validator("messaging_country_code")
    @classmethod
    def validate_country_code(cls, v: str) -> str:
        """
        Validate country calling code.

        Args:
            v: Country code value

        Returns:
            Country code without a leading '+'

        Raises:
            ValueError: If the code contains anything but digits
        """
        code = v.strip().lstrip("+")
        if not code.isdigit():
            raise ValueError("Country code must contain only digits")
        return code

    @property
    def search_debounce_seconds(self) -> float:
        """Search quiet period in seconds."""
        return self.search_debounce_ms / 1000

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Process-wide Settings, read from the environment on first call.

    Call ``get_settings.cache_clear()`` after changing ORDERDESK_* variables.
    """
    return Settings()
