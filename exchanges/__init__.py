"""
Exchange Connectors Package

Exchange-specific adapters implement core.exchange_interface.ExchangeAdapter and
return raw records (RawSnapshot, RawNetworkState) to the gateway core.

Private endpoints are called through SignedAPIClient, which signs every request
with the Authenticator configured for the exchange.
"""

from exchanges.signed_client import SignedAPIClient

__all__ = ["SignedAPIClient"]
