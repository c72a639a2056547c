"""Application settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Stripe Configuration
    stripe_secret_key: str = Field(..., description="Stripe secret API key (sk_test_...)")
    stripe_api_version: Optional[str] = Field(
        default=None, description="Pinned Stripe API version (SDK default when unset)"
    )

    # Application Configuration
    app_name: str = Field(default="connect-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(
        default=3000,
        validation_alias=AliasChoices("api_port", "port"),
        description="API port",
    )
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        description="CORS allowed origins (comma-separated)",
    )

    # Connected accounts
    connected_account_type: str = Field(default="custom", description="Stripe account type")
    default_country: str = Field(default="US", description="Country for new accounts")
    default_currency: str = Field(default="usd", description="Currency when none is given")
    onboarding_refresh_url: str = Field(
        default="http://localhost:3000/onboarding/refresh",
        description="Where Stripe sends users whose onboarding link expired",
    )
    onboarding_return_url: str = Field(
        default="http://localhost:3000/onboarding/complete",
        description="Where Stripe sends users after onboarding",
    )

    # Identity resolution
    identity_store_backend: str = Field(
        default="memory", description="Identity store backend (memory/redis)"
    )
    redis_url: Optional[str] = Field(default=None, description="Redis connection URL")
    identity_key_prefix: str = Field(
        default="identity:customer:", description="Redis key prefix for identity mappings"
    )
    customer_metadata_key: str = Field(
        default="user_id", description="Customer metadata field holding the user id"
    )
    customer_page_size: int = Field(
        default=100, ge=1, le=100, description="Customers fetched per directory page"
    )
    customer_scan_max_pages: int = Field(
        default=10, ge=1, description="Hard ceiling on directory pages scanned"
    )
    directory_read_attempts: int = Field(
        default=3, ge=1, description="Attempts per directory page on transient errors"
    )

    # Circuit breaker
    circuit_breaker_failure_threshold: int = Field(
        default=5, description="Consecutive failures before the breaker opens"
    )
    circuit_breaker_timeout: int = Field(
        default=60, description="Seconds before an open breaker is probed again"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("stripe_secret_key")
    @classmethod
    def validate_stripe_key(cls, v: str) -> str:
        """Validate the Stripe secret or restricted key format."""
        if not v.startswith(("sk_test_", "sk_live_", "rk_test_", "rk_live_")):
            raise ValueError(
                "Invalid Stripe secret key format. Must start with 'sk_test_', "
                "'sk_live_', 'rk_test_' or 'rk_live_'"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("identity_store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        """Validate identity store backend name."""
        if v.lower() not in ("memory", "redis"):
            raise ValueError("Identity store backend must be 'memory' or 'redis'")
        return v.lower()

    @model_validator(mode="after")
    def require_redis_url(self) -> "Settings":
        """A Redis-backed identity store needs a Redis URL."""
        if self.identity_store_backend == "redis" and not self.redis_url:
            raise ValueError("redis_url is required when identity_store_backend is 'redis'")
        return self

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def is_test_mode(self) -> bool:
        """Check if using Stripe test mode."""
        return "_test_" in self.stripe_secret_key


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
