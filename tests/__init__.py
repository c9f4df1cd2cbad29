"""
Test Suite

Contains unit tests for the gateway core.

Structure:
- tests/unit/: Tests for individual components (conversion, volume windows,
  asset states, normalization, authenticators, writers, manager)

Uses pytest with pytest-asyncio for testing async functionality.
No test performs a real network call.
"""
