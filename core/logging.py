"""
Unified Logging Configuration

This module sets up a centralized logging system for the entire gateway.
All modules should import and use the logger from this module instead of
using print() statements.

Usage:
    from core.logging import logger

    logger.debug("Detailed debugging information")
    logger.info("General informational messages")
    logger.warning("Warning messages for potentially harmful situations")
    logger.error("Error messages for serious problems")

Log Levels (from most to least verbose):
    DEBUG    - Detailed diagnostic information (e.g., "Signed GET /v1/accounts")
    INFO     - General informational messages (e.g., "Registered exchange upbit")
    WARNING  - Recovered problems (e.g., "Symbol KRW-XYZ unresolved, marked X")
    ERROR    - Errors that don't crash the app (e.g., "Polling upbit failed")
    CRITICAL - Severe errors that may crash

Configuration:
    Log level is controlled by the LOG_LEVEL setting in .env file.
"""

import logging
import sys
from typing import Optional

from core.config import settings


def setup_logging(
    log_level: str = "INFO",
    log_format: Optional[str] = None,
    include_timestamp: bool = True,
    include_module: bool = True
) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string (uses default if None)
        include_timestamp: Include timestamp in log messages
        include_module: Include module name in log messages

    Returns:
        logging.Logger: Configured logger instance

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Gateway started")
        2024-01-01 12:00:00 [INFO] gateway: Gateway started
    """
    if log_format is None:
        format_parts = []

        if include_timestamp:
            format_parts.append("%(asctime)s")

        format_parts.append("[%(levelname)s]")

        if include_module:
            format_parts.append("%(name)s")

        format_parts.append("%(message)s")

        log_format = " ".join(format_parts)

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True
    )

    logger = logging.getLogger("gateway")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    return logger


# ============================================
# Initialize Logger with Settings
# ============================================

# Create the global logger instance
logger = setup_logging(log_level=settings.log_level)


# ============================================
# Convenience Functions
# ============================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module or component.

    Args:
        name: Name for the logger (typically __name__)

    Returns:
        logging.Logger: Logger instance for the specified name

    Example:
        from core.logging import get_logger
        logger = get_logger(__name__)  # Creates "gateway.core.snapshot_normalizer"
    """
    return logging.getLogger(f"gateway.{name}")


def set_log_level(level: str) -> None:
    """
    Change the log level at runtime.

    Args:
        level: New log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))


# ============================================
# Log Helper Functions
# ============================================

def log_api_request(exchange: str, method: str, endpoint: str, params: dict = None) -> None:
    """
    Log a signed API request with consistent formatting.

    Only the request shape is logged; headers (which carry signatures and
    keys) never are.

    Args:
        exchange: Exchange name (e.g., "upbit")
        method: HTTP method
        endpoint: Request path being called
        params: URL query parameters (optional)

    Example:
        >>> log_api_request("upbit", "GET", "/v1/orders", {"market": "KRW-BTC"})
        [DEBUG] API Request: upbit GET /v1/orders | Params: {'market': 'KRW-BTC'}
    """
    if params:
        logger.debug(f"API Request: {exchange} {method} {endpoint} | Params: {params}")
    else:
        logger.debug(f"API Request: {exchange} {method} {endpoint}")


def log_api_response(exchange: str, endpoint: str, status: int, response_time: float = None) -> None:
    """
    Log an API response with status and timing information.

    Args:
        exchange: Exchange name
        endpoint: Request path
        status: HTTP status code
        response_time: Response time in seconds (optional)

    Example:
        >>> log_api_response("upbit", "/v1/accounts", 200, 0.342)
        [DEBUG] API Response: upbit /v1/accounts | Status: 200 | Time: 0.342s
    """
    time_str = f" | Time: {response_time:.3f}s" if response_time else ""
    logger.debug(f"API Response: {exchange} {endpoint} | Status: {status}{time_str}")


def log_market_event(exchange: str, event: str, symbol: str = None, details: str = None) -> None:
    """
    Log a market-state event (unresolved symbol, malformed feed, ...).

    Events named "error" are logged at ERROR level, everything else at WARNING:
    these are recovered conditions that an operator should still see.

    Args:
        exchange: Exchange name
        event: Event type (e.g., "symbol_unresolved", "quote_unsupported", "snapshot_invalid")
        symbol: Exchange-native symbol (optional)
        details: Additional details (optional)

    Example:
        >>> log_market_event("upbit", "symbol_unresolved", "KRW-XYZ")
        [WARNING] Market: upbit symbol_unresolved | Symbol: KRW-XYZ
    """
    symbol_str = f" | Symbol: {symbol}" if symbol else ""
    details_str = f" | {details}" if details else ""

    level = logging.ERROR if event == "error" else logging.WARNING
    logger.log(level, f"Market: {exchange} {event}{symbol_str}{details_str}")


# ============================================
# Module Initialization
# ============================================

logger.debug("Logging system initialized")
