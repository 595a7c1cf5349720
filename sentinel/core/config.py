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
    BALANCE_TIMEOUT_SECONDS,
    CONFIRMATION_TIMEOUT_SECONDS,
    DEFAULT_APP_PORT,
    DEFAULT_CHECK_INTERVAL_SECONDS,
    DEFAULT_STOP_TIMEOUT_SECONDS,
    MAINNET_MAX_SINGLE_PAYMENT,
    MAINNET_WARNING_THRESHOLD,
    NOTIFIER_TIMEOUT_SECONDS,
    PRICE_CACHE_TTL_SECONDS,
    PRICE_CHECK_COST,
    PRICE_FEED_TIMEOUT_SECONDS,
    PROOF_MAX_AGE_SECONDS,
    PROTOCOL_TIMEOUT_SECONDS,
    TESTNET_MAX_SINGLE_PAYMENT,
    TESTNET_WARNING_THRESHOLD,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Sentinel"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = Field(default="development", description="deployment environment")

    # API Server
    host: str = "0.0.0.0"
    port: int = DEFAULT_APP_PORT
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

    # Network selection ("testnet" or "mainnet"); unset means testnet
    sentinel_network: str = Field(default="testnet", description="Active blockchain network")

    # Testnet (Cronos testnet)
    testnet_rpc_url: str = "https://evm-t3.cronos.org"
    testnet_chain_id: int = 338
    testnet_explorer_url: str = "https://explorer.cronos.org/testnet"
    testnet_usdc_address: str = "0x2336cE47712A4BC7fCC4FC6c4693e54F9D75Cd72"
    testnet_max_single_payment: Decimal = Decimal(TESTNET_MAX_SINGLE_PAYMENT)
    testnet_warning_threshold: Decimal = Decimal(TESTNET_WARNING_THRESHOLD)

    # Mainnet (Cronos mainnet)
    mainnet_rpc_url: str = "https://evm.cronos.org"
    mainnet_chain_id: int = 25
    mainnet_explorer_url: str = "https://explorer.cronos.org"
    mainnet_usdc_address: str = "0xc21223249CA28397B4B6541dfFaEcC539BfF0c59"
    mainnet_usdt_address: str = "0x66e428c3f67a68878562e79A0234c1F83c208770"
    mainnet_max_single_payment: Decimal = Decimal(MAINNET_MAX_SINGLE_PAYMENT)
    mainnet_warning_threshold: Decimal = Decimal(MAINNET_WARNING_THRESHOLD)

    # x402 price-check protocol
    price_check_cost: Decimal = Field(
        default=Decimal(PRICE_CHECK_COST),
        description="Fee charged per price check, in stablecoin units"
    )
    payment_recipient_address: str = Field(
        default="0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb0",
        description="Oracle treasury wallet that receives price-check fees"
    )
    price_check_url: str = Field(
        default="http://localhost:8000/api/v1/check-price",
        description="Price-check endpoint the sentinels pay to query"
    )
    proof_max_age_seconds: int = PROOF_MAX_AGE_SECONDS
    default_payment_method: str = Field(
        default="usdc",
        description="Token used when a sentinel has no stated payment preference"
    )

    # Monitoring scheduler
    check_interval_seconds: float = DEFAULT_CHECK_INTERVAL_SECONDS
    monitoring_mode: str = Field(
        default="multi",
        description="'multi' runs every active sentinel, 'single' keeps one primary sentinel per user and network"
    )
    monitoring_autostart: bool = Field(
        default=True,
        description="Start all active sentinels when the application boots"
    )
    stop_timeout_seconds: float = DEFAULT_STOP_TIMEOUT_SECONDS
    pause_on_persistence_failure: bool = Field(
        default=False,
        description="Pause a sentinel when its activity record cannot be written"
    )

    @field_validator("monitoring_mode", mode="before")
    @classmethod
    def parse_monitoring_mode(cls, v: str) -> str:
        """Normalize and validate the monitoring mode."""
        mode = str(v).strip().lower()
        if mode not in ("multi", "single"):
            raise ValueError("monitoring_mode must be 'multi' or 'single'")
        return mode

    # Per-call timeouts
    balance_timeout_seconds: float = BALANCE_TIMEOUT_SECONDS
    protocol_timeout_seconds: float = PROTOCOL_TIMEOUT_SECONDS
    confirmation_timeout_seconds: float = CONFIRMATION_TIMEOUT_SECONDS
    notifier_timeout_seconds: float = NOTIFIER_TIMEOUT_SECONDS

    # Price feed
    coinmarketcap_api_key: str | None = Field(default=None, description="CoinMarketCap API key (primary price source)")
    coinmarketcap_url: str = "https://pro-api.coinmarketcap.com/v1/cryptocurrency/quotes/latest"
    coingecko_url: str = "https://api.coingecko.com/api/v3/simple/price"
    price_asset_symbol: str = "SOL"
    price_asset_coingecko_id: str = "solana"
    price_feed_timeout_seconds: float = PRICE_FEED_TIMEOUT_SECONDS
    price_cache_ttl_seconds: float = PRICE_CACHE_TTL_SECONDS

    # Wallet custody (development only - use HSM in production)
    sentinel_private_keys: str = Field(
        default="",
        description="Comma-separated sentinel wallet private keys (development only)"
    )

    # Database Configuration
    postgres_url: str | None = Field(default=None, description="Postgres connection URL")
    database_url: str = Field(
        default="sqlite:///./sentinel.db",
        description="Database connection URL (PostgreSQL or SQLite)"
    )

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Operator alerting
    alert_webhook_url: str | None = Field(
        default=None,
        description="Webhook URL for operator alert notifications"
    )
    alert_enabled: bool = Field(
        default=True,
        description="Whether to enable alerting for critical failures"
    )

    @property
    def effective_database_url(self) -> str:
        """Get the effective async database URL."""
        url = self.postgres_url or self.database_url
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("sqlite://"):
            return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url

    @property
    def private_keys(self) -> list[str]:
        """Get the configured sentinel private keys as a list."""
        return [key.strip() for key in self.sentinel_private_keys.split(",") if key.strip()]

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
