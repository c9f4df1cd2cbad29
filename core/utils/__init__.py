"""
Core Utilities Package

This package contains utility functions and helpers used throughout the gateway.

Modules:
    - time: Timestamp conversion and millisecond clock helpers
"""

from core.utils.time import current_utc_timestamp, datetime_to_timestamp, to_utc_datetime

__all__ = ["current_utc_timestamp", "datetime_to_timestamp", "to_utc_datetime"]
