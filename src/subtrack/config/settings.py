"""Application configuration schema and validation."""

from typing import Literal

from pydantic import Field, PostgresDsn, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from subtrack.db.models import PlanName


class AppConfig(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    env: Literal["dev", "staging", "prod"] = Field(
        ...,
        description="Application environment",
    )
    db_dsn: PostgresDsn = Field(
        ...,
        description="PostgreSQL database connection string",
    )
    db_pool_min: int = Field(
        default=1,
        ge=1,
        description="Minimum database connection pool size",
    )
    db_pool_max: int = Field(
        default=5,
        ge=1,
        description="Maximum database connection pool size",
    )
    stripe_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe secret API key",
    )
    stripe_webhook_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Signing secret of the Stripe webhook endpoint",
    )
    stripe_basic_price_id: str = Field(
        default="price_basic",
        description="Stripe price ID for the Basic plan",
    )
    stripe_pro_price_id: str = Field(
        default="price_pro",
        description="Stripe price ID for the Pro plan",
    )
    stripe_enterprise_price_id: str = Field(
        default="price_enterprise",
        description="Stripe price ID for the Enterprise plan",
    )
    frontend_url: str = Field(
        default="http://localhost:8080",
        description="Base URL of the frontend for checkout redirects",
    )
    server_host: str = Field(
        default="0.0.0.0",
        description="Interface the HTTP server binds to",
    )
    server_port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port the HTTP server listens on",
    )
    ping_message: str = Field(
        default="ping",
        description="Message returned by GET /api/ping",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )

    @field_validator("db_pool_max")
    @classmethod
    def validate_pool_max(cls, v: int, info) -> int:
        """Ensure pool_max >= pool_min."""
        if "db_pool_min" in info.data and v < info.data["db_pool_min"]:
            raise ValueError("db_pool_max must be >= db_pool_min")
        return v

    @field_validator("frontend_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def price_id_for(self, plan: PlanName) -> str:
        """Return the configured Stripe price ID for a plan."""
        prices = {
            PlanName.BASIC: self.stripe_basic_price_id,
            PlanName.PRO: self.stripe_pro_price_id,
            PlanName.ENTERPRISE: self.stripe_enterprise_price_id,
        }
        return prices[PlanName(plan)]

    @property
    def checkout_success_url(self) -> str:
        # Stripe substitutes {CHECKOUT_SESSION_ID} itself
        return f"{self.frontend_url}/success?session_id={{CHECKOUT_SESSION_ID}}"

    @property
    def checkout_cancel_url(self) -> str:
        return f"{self.frontend_url}/"


_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Get or create the singleton AppConfig instance."""
    global _config
    if _config is None:
        _config = AppConfig()
    return _config
