"""Configuration management using pydantic-settings.

Key patterns:
1. Multiple env files (.env, .env.local) - local overrides shared
2. Optional endpoints with startup warnings when none are set
3. Nested endpoint settings via ``T3_ENDPOINTS__<NAME>`` variables
4. Validated, typed settings consumed by the client as-is

Usage:
    from t3services.config import load_settings
    settings = load_settings()
    print(settings.endpoints.login)

Or build one explicitly:
    settings = T3Settings(
        customer="Tester",
        app="Mocha",
        secret="secret",
        endpoints={"login": "https://t3.example.com/auth"},
    )
"""

import logging
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class Endpoints(BaseModel):
    """Full URLs of the individual SmartCare services.

    Only the endpoints that will actually be called are required; each
    operation checks for its own endpoint before sending anything.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    login: str | None = Field(default=None, description="Authentication service")
    signin: str | None = Field(
        default=None, description="Forms sign-in service (optional third step)"
    )
    search: str | None = Field(default=None, description="T3 search service")
    account: str | None = Field(default=None, description="Account and billing")
    dashboard: str | None = Field(
        default=None, description="Dashboard (learned from sign-in when unset)"
    )

    @field_validator(
        "login", "signin", "search", "account", "dashboard", mode="before"
    )
    @classmethod
    def blank_as_unset(cls, value: Any) -> Any:
        return _blank_to_none(value)


class T3Settings(BaseSettings):
    """Client settings loaded from arguments or ``T3_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="T3_",
        env_file=(".env", ".env.local"),
        env_nested_delimiter="__",
        str_strip_whitespace=True,
        extra="ignore",
    )

    @model_validator(mode="after")
    def warn_missing_endpoints(self) -> Self:
        """Warn at startup if no endpoint at all is configured."""
        configured = [
            name for name, url in self.endpoints.model_dump().items() if url
        ]
        if not configured:
            logger.warning("No T3 endpoints configured; every call will be rejected")
        return self

    # ==========================================================================
    # REQUIRED SETTINGS
    # ==========================================================================

    customer: str = Field(min_length=1, description="Customer/tenant identifier")
    app: str = Field(min_length=1, description="Calling application identifier")
    secret: str = Field(
        min_length=1, description="Shared secret used for token derivation"
    )

    # ==========================================================================
    # ENDPOINTS
    # ==========================================================================

    endpoints: Endpoints = Field(default_factory=Endpoints)

    proxy: str | None = Field(default=None, description="Optional HTTP(S) proxy URL")

    # ==========================================================================
    # REQUEST IDENTITY
    # ==========================================================================

    name: str | None = Field(
        default=None, description="Application name sent as the User-Agent"
    )
    platform: str | None = Field(
        default=None, description="Client platform, e.g. 'Web' or 'DesktopWeb'"
    )
    culture: str = Field(default="en-us", description="Culture header value")
    session_id: str | None = Field(
        default=None,
        description="Fixed session correlation ID (None = random UUID per client)",
    )

    # ==========================================================================
    # FRESHNESS
    # ==========================================================================

    touchmap_ttl_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Touchmap lifetime before search refreshes it (None = forever)",
    )
    token_ttl_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Local lifetime of a login before it counts as expired",
    )

    # ==========================================================================
    # TRANSPORT / DIAGNOSTICS
    # ==========================================================================

    http_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Timeout for HTTP requests"
    )
    verbose: bool = Field(
        default=False, description="Log wire-level diagnostics at INFO level"
    )

    @field_validator("proxy", "name", "platform", "session_id", mode="before")
    @classmethod
    def blank_as_unset(cls, value: Any) -> Any:
        return _blank_to_none(value)


def load_settings(**overrides: Any) -> T3Settings:
    """Load settings from the environment, applying explicit overrides."""
    return T3Settings(**overrides)
