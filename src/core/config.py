"""
Application configuration and settings management.

This module loads configuration from environment variables and provides
a centralized settings object for the entire application.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from .constants import (
    DEFAULT_APP_PORT,
    EXCHANGE_RATE_CACHE_TTL_SECONDS,
    EXPLORER_TIMEOUT_SECONDS,
    JWT_EXPIRATION_HOURS,
    PAYMENT_EXPIRY_HOURS,
    PENDING_TRANSACTION_MAX_AGE_HOURS,
    PRICE_BUFFER_PERCENT,
    TRANSACTION_MONITOR_INTERVAL_SECONDS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Ghostli Billing"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = Field(default="development", description="deployment environment")

    # API Server
    host: str = "0.0.0.0"
    port: int = DEFAULT_APP_PORT

    # Security
    jwt_secret: str = Field(default="development-secret-change-in-production")
    jwt_algorithm: str = "HS256"
    jwt_expiration_hours: int = JWT_EXPIRATION_HOURS
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000", "http://localhost:8000"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from string or list.

        Args:
            v: CORS origins as string (comma-separated) or list

        Returns:
            list[str]: List of CORS origin URLs
        """
        if isinstance(v, str):
            if not v.strip():
                return ["http://localhost:3000", "http://localhost:8000"]
            return [origin.strip() for origin in v.split(",")]
        return v

    # Wallet custody
    wallet_encryption_key: str = Field(
        default="development-wallet-key-change-in-production",
        description="Secret used to encrypt wallet private keys and seed phrases",
    )
    wallet_seed_secret: str = Field(
        default="development-seed-secret-change-in-production",
        description="Server-wide secret mixed into per-user wallet seeds",
    )
    crypto_webhook_secret: str | None = Field(
        default=None,
        description="Shared secret expected in the x-webhook-secret header",
    )

    # Block explorers and RPC endpoints
    bitcoin_explorer_url: str = "https://api.blockchair.com/bitcoin"
    blockchair_api_key: str | None = None
    solana_rpc_url: str = "https://api.mainnet-beta.solana.com"
    ethereum_rpc_url: str = "https://eth-mainnet.g.alchemy.com/v2/demo"
    tron_api_url: str = "https://api.trongrid.io"
    trongrid_api_key: str | None = None
    usdt_erc20_contract: str = "0xdAC17F958D2ee523a2206206994597C13D831ec7"
    usdt_trc20_contract: str = "TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t"
    explorer_timeout_seconds: float = EXPLORER_TIMEOUT_SECONDS

    # Exchange rates
    coingecko_api_url: str = "https://api.coingecko.com/api/v3"
    exchange_rate_cache_ttl_seconds: int = EXCHANGE_RATE_CACHE_TTL_SECONDS

    # Payments
    payment_expiry_hours: int = PAYMENT_EXPIRY_HOURS
    price_buffer_percent: Decimal = PRICE_BUFFER_PERCENT

    # Background transaction monitor
    transaction_monitor_enabled: bool = True
    transaction_monitor_interval_seconds: int = TRANSACTION_MONITOR_INTERVAL_SECONDS
    pending_transaction_max_age_hours: int = PENDING_TRANSACTION_MAX_AGE_HOURS

    # Database Configuration
    # Postgres (production)
    postgres_url: str | None = Field(default=None, description="Postgres connection URL")
    # Local development - file-backed SQLite by default
    database_url: str = Field(
        default="sqlite:///./billing.db",
        description="Database connection URL (PostgreSQL or SQLite)"
    )

    # Redis Configuration
    # Local development - optional, will gracefully disable cache if not available
    redis_url: str = Field(
        default="redis://localhost:6379",
        description="Redis connection URL (optional, cache disabled if not reachable)"
    )

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @property
    def effective_database_url(self) -> str:
        """Get the effective database URL (Postgres or local)."""
        return self.postgres_url or self.database_url

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
