"""
Configuration Management Module

This module handles loading, validating, and providing access to application configuration
from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Validates the normalization scale constants and reporting currency
- Provides type-safe access to per-exchange API credentials
- Converts comma-separated strings to lists (USD-pegged quote assets)
- Handles optional settings with sensible defaults

Usage:
    from core.config import settings

    # Access configuration values
    print(settings.volume_24h_base)
    print(settings.usd_quotes_list)  # Returns a list of strings
"""

from typing import Dict, List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """
    Application Settings

    This class defines all configuration parameters for the gateway core.
    Values are automatically loaded from environment variables or .env file.

    Attributes:
        fiat_name: Reporting fiat that every price/volume is converted into (e.g., "KRW")
        usd_quotes: Comma-separated quote assets converted with the USD cross-rate
        volume_24h_base: Scale divisor applied to normalized 24h volume
        volume_1m_base: Scale divisor applied to normalized 1-minute volume
        poll_interval_seconds: Delay between market polling cycles
        state_check_interval_seconds: Delay between deposit/withdraw state checks
        request_timeout: Timeout for signed HTTP requests in seconds
        writer_queue_size: Maximum queued jobs per ticker-set writer
        environment: Current environment (development, production)
        debug: Enable debug mode with verbose logging
        log_level: Logging level
        <exchange>_api_key / <exchange>_secret_key / <exchange>_passphrase:
            Credentials for private endpoints (empty = public only)
    """

    # ============================================
    # Normalization Configuration
    # ============================================

    fiat_name: str = Field(
        default="KRW",
        description="Reporting fiat currency (quotes in this currency are not converted)"
    )

    usd_quotes: str = Field(
        default="USDT,USDC,USD",
        description="Comma-separated list of USD or USD-pegged quote assets"
    )

    volume_24h_base: float = Field(
        default=1_000_000,
        description="Divisor applied to normalized 24h volume"
    )

    volume_1m_base: float = Field(
        default=10_000,
        description="Divisor applied to normalized 1-minute volume"
    )

    # ============================================
    # Scheduling Configuration
    # ============================================

    poll_interval_seconds: float = Field(
        default=2.0,
        description="Delay between market polling cycles (seconds)"
    )

    state_check_interval_seconds: float = Field(
        default=600.0,
        description="Delay between deposit/withdraw state checks (seconds)"
    )

    request_timeout: int = Field(
        default=10,
        description="HTTP request timeout in seconds"
    )

    writer_queue_size: int = Field(
        default=100,
        description="Maximum number of pending jobs per ticker-set writer"
    )

    # ============================================
    # Application Configuration
    # ============================================

    environment: str = Field(
        default="development",
        description="Application environment (development, production)"
    )

    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # ============================================
    # Exchange Credentials
    # ============================================

    upbit_api_key: str = Field(default="", description="Upbit access key")
    upbit_secret_key: str = Field(default="", description="Upbit secret key")

    bithumb_api_key: str = Field(default="", description="Bithumb access key")
    bithumb_secret_key: str = Field(default="", description="Bithumb secret key")

    kucoin_api_key: str = Field(default="", description="KuCoin API key")
    kucoin_secret_key: str = Field(default="", description="KuCoin secret key")
    kucoin_passphrase: str = Field(default="", description="KuCoin API passphrase")

    bitget_api_key: str = Field(default="", description="Bitget API key")
    bitget_secret_key: str = Field(default="", description="Bitget secret key")
    bitget_passphrase: str = Field(default="", description="Bitget API passphrase")

    kraken_api_key: str = Field(default="", description="Kraken API key")
    kraken_secret_key: str = Field(default="", description="Kraken private key (base64)")

    # ============================================
    # Pydantic Settings Configuration
    # ============================================

    model_config = SettingsConfigDict(
        # Look for .env file in the project root
        env_file=".env",
        # Ignore extra fields in .env that aren't defined here
        extra="ignore",
        # Case-insensitive environment variable matching
        case_sensitive=False
    )

    # ============================================
    # Custom Properties
    # ============================================

    @property
    def usd_quotes_list(self) -> List[str]:
        """
        Convert comma-separated USD quote assets to a list.

        Returns:
            List of quote asset codes (e.g., ["USDT", "USDC", "USD"])

        Example:
            >>> settings.usd_quotes_list
            ['USDT', 'USDC', 'USD']
        """
        return [q.strip().upper() for q in self.usd_quotes.split(",") if q.strip()]

    def credentials_for(self, exchange: str) -> Dict[str, str]:
        """
        Get the configured credentials for an exchange.

        Args:
            exchange: Exchange name (case-insensitive, e.g., "upbit")

        Returns:
            Dictionary with "api_key", "secret" and "passphrase" keys.
            Missing values are empty strings.
        """
        prefix = exchange.lower()
        return {
            "api_key": getattr(self, f"{prefix}_api_key", ""),
            "secret": getattr(self, f"{prefix}_secret_key", ""),
            "passphrase": getattr(self, f"{prefix}_passphrase", ""),
        }


# ============================================
# Global Settings Instance
# ============================================

# Create a single instance of settings to be imported throughout the application
settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration() -> None:
    """
    Validate critical configuration settings on application startup.

    Raises:
        ValueError: If required configuration is missing or invalid
    """
    # Import logger here to avoid circular import
    # (logging.py imports config.py, so we can't import at module level)
    from core.logging import logger

    if settings.volume_24h_base <= 0:
        raise ValueError(f"VOLUME_24H_BASE must be positive, got {settings.volume_24h_base}")

    if settings.volume_1m_base <= 0:
        raise ValueError(f"VOLUME_1M_BASE must be positive, got {settings.volume_1m_base}")

    if not settings.fiat_name or not settings.fiat_name.isupper():
        raise ValueError(
            f"FIAT_NAME '{settings.fiat_name}' must be an uppercase currency code. "
            f"Please update FIAT_NAME in .env"
        )

    if not settings.usd_quotes_list:
        raise ValueError("USD_QUOTES must contain at least one quote asset")

    if settings.poll_interval_seconds <= 0:
        raise ValueError(f"Invalid POLL_INTERVAL_SECONDS: {settings.poll_interval_seconds}")

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if settings.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{settings.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    # Log successful validation
    logger.info("Configuration validated successfully")
    logger.info(f"Reporting fiat: {settings.fiat_name}")
    logger.info(f"USD quotes: {', '.join(settings.usd_quotes_list)}")
    logger.info(f"Volume bases: 24h={settings.volume_24h_base:g} 1m={settings.volume_1m_base:g}")
    logger.info(f"Log level: {settings.log_level.upper()}")
