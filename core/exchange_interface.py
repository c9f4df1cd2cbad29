"""
Exchange Adapter Interface: Contract for All Exchange Adapters

This module defines the abstract base class that every exchange adapter must implement.
Adapters do the exchange-specific work (HTTP calls, JSON parsing) and hand the
gateway core plain records:

- fetch_snapshots:       {symbol: RawSnapshot} for the requested symbols
- fetch_network_states:  [RawNetworkState] for every asset/network the exchange lists

Everything after that (currency conversion, rolling volume, availability
aggregation) is done by the shared core, identically for every exchange.

Design Philosophy:
    "Program to an interface, not an implementation"

    The ExchangeManager and the polling services work with ExchangeAdapter, not
    specific exchange implementations.

Example:
    from core.asset_state import flags_from_wallet_state

    class UpbitAdapter(ExchangeAdapter):
        name = "upbit"

        async def fetch_snapshots(self, symbols):
            rows = await self.client.request("GET", "/v1/ticker", {"markets": ",".join(symbols)})
            return {
                r["market"]: RawSnapshot(
                    price=r["trade_price"],
                    cumulative_quote_volume=r["acc_trade_price_24h"],
                    sample_timestamp_ms=r["timestamp"],
                )
                for r in rows
            }

        async def fetch_network_states(self):
            # Upbit reports one wallet_state string per currency
            rows = await self.client.request("GET", "/v1/status/wallet")
            records = []
            for r in rows:
                flags = flags_from_wallet_state(r["wallet_state"])
                if flags is None:
                    continue
                records.append(RawNetworkState(
                    asset_code=r["currency"],
                    network_id=r["net_type"],
                    deposit_enabled=flags[0],
                    withdraw_enabled=flags[1],
                ))
            return records

Capabilities System:
    Each adapter declares which feeds it supports via the `capabilities` dict:

        capabilities = {
            "snapshots": True,
            "network_states": False,   # No public wallet-status endpoint
            "private": True            # Has an authenticator configured
        }
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from core.auth.base import Authenticator
from core.schemas import RawNetworkState, RawSnapshot


class ExchangeAdapter(ABC):
    """
    Abstract Base Class for Exchange Adapters

    Class Attributes:
        name: Unique identifier for the exchange (lowercase, e.g., "upbit", "kraken")
        capabilities: Dictionary indicating which feeds this adapter supports

    Attributes:
        authenticator: Request authenticator for private endpoints, selected once
                       at construction time (None for public-only adapters)

    Abstract Methods (MUST be implemented by all adapters):
        - fetch_snapshots: Fetch raw ticker snapshots
        - fetch_network_states: Fetch raw deposit/withdraw status per asset network

    Optional Methods (can be overridden):
        - initialize: Setup sessions, load symbol lists, etc.
        - shutdown: Cleanup connections
        - health_check: Verify exchange API is accessible
    """

    # ============================================
    # Class Attributes (must be set by subclasses)
    # ============================================

    name: str
    """Unique exchange identifier (lowercase). Example: "upbit", "kraken" """

    capabilities: Dict[str, bool] = {
        "snapshots": False,
        "network_states": False,
        "private": False
    }
    """Dictionary indicating which feeds this adapter supports"""

    authenticator: Optional[Authenticator] = None

    # ============================================
    # Data Feeds
    # ============================================

    @abstractmethod
    async def fetch_snapshots(self, symbols: List[str]) -> Dict[str, RawSnapshot]:
        """
        Fetch the latest raw snapshot for each requested symbol.

        Args:
            symbols: Exchange-native symbols still tracked by the ticker set.
                     Sentinel-marked symbols are never requested.

        Returns:
            Dict[str, RawSnapshot]: Snapshots keyed by exchange-native symbol.
                A symbol absent from the result is treated as delisted for the
                rest of the session.

        Raises:
            Exception: For network or API errors. A failed fetch skips the
                       normalization cycle; no ticker is modified.

        Notes:
            - Prices and volume stay in the symbol's quote asset; conversion is
              done by the core
            - sample_timestamp_ms should be the exchange's own timestamp when it
              provides one
        """
        ...

    @abstractmethod
    async def fetch_network_states(self) -> List[RawNetworkState]:
        """
        Fetch deposit/withdraw status for every asset network.

        Returns:
            List[RawNetworkState]: One record per (asset, network) pair. Exchanges
                that report a single wallet-state string map it to flags with
                core.asset_state.flags_from_wallet_state.

        Raises:
            NotImplementedError: If the exchange publishes no wallet status
            Exception: For network or API errors (the previous states are kept)
        """
        ...

    # ============================================
    # Optional Lifecycle Methods
    # ============================================

    async def initialize(self) -> None:
        """
        Initialize the adapter (sessions, symbol lists, ...).

        Default implementation does nothing.
        """
        pass

    async def shutdown(self) -> None:
        """
        Release the adapter's resources.

        Default implementation does nothing. Should not raise.
        """
        pass

    async def health_check(self) -> bool:
        """
        Check if the exchange API is accessible and healthy.

        Returns:
            bool: True if exchange is accessible, False otherwise
        """
        return True

    # ============================================
    # Helper Methods
    # ============================================

    def supports(self, feature: str) -> bool:
        """
        Check if this adapter supports a specific feed.

        Args:
            feature: Feature name (e.g., "snapshots", "network_states", "private")

        Returns:
            bool: True if feature is supported, False otherwise
        """
        return self.capabilities.get(feature, False)

    def __repr__(self) -> str:
        """String representation of the adapter."""
        return f"<{self.__class__.__name__}(name='{self.name}')>"
