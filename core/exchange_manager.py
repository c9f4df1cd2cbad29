"""
Exchange Manager: Central Registry for Exchange Adapters

This module provides a centralized manager for all exchange adapters and the
market state they feed.

For every registered exchange the manager owns:
    - the adapter (fetches raw records, signs private requests)
    - the TickerSet (normalized tickers and asset states)
    - the TickerSetWriter (the only task allowed to mutate that TickerSet)

Polling an exchange fetches raw records through its adapter and hands them to
the writer. Fetches for different exchanges run concurrently; updates of one
TickerSet are always applied one at a time, in order. A fetch that fails or is
cancelled never reaches the writer, so no ticker is left half-updated.

Example Usage:
    manager = ExchangeManager()
    manager.register(UpbitAdapter(), upbit_symbols)
    await manager.initialize_all()

    await manager.set_cross_rates(exchg_rate=1350.0, btc_fiat_price=90_000_000.0)
    reports = await manager.poll_all()

    await manager.shutdown_all()
"""

import asyncio
from typing import Dict, List, Optional

from core.exchange_interface import ExchangeAdapter
from core.logging import logger
from core.schemas import QueueSymbol, RefreshReport, TickerSet
from core.snapshot_normalizer import MarketSnapshotNormalizer
from services.event_bus import DIAGNOSTICS_TOPIC, EventBus, bus
from services.ticker_writer import TickerSetWriter


class ExchangeManager:
    """
    Central Manager for Exchange Adapters

    Attributes:
        exchanges: Dictionary mapping exchange names to adapter instances
        tickers: Dictionary mapping exchange names to their TickerSet
        writers: Dictionary mapping exchange names to their TickerSetWriter

    Example:
        >>> manager = ExchangeManager()
        >>> manager.register(adapter, symbols)
        >>> await manager.initialize_all()
        >>> report = await manager.poll_markets("upbit")
        >>> print(manager.list_exchanges())
        ['upbit']
    """

    def __init__(self, event_bus: Optional[EventBus] = None):
        """
        Initialize an empty Exchange Manager.

        Args:
            event_bus: Bus receiving market diagnostics (defaults to the global bus)
        """
        self.event_bus = event_bus or bus

        self.exchanges: Dict[str, ExchangeAdapter] = {}
        self.tickers: Dict[str, TickerSet] = {}
        self.writers: Dict[str, TickerSetWriter] = {}

    # ============================================
    # Registration
    # ============================================

    def register(
        self,
        adapter: ExchangeAdapter,
        symbols: List[QueueSymbol],
        normalizer: Optional[MarketSnapshotNormalizer] = None,
    ) -> TickerSet:
        """
        Register an adapter together with the symbols to track on it.

        Args:
            adapter: Exchange adapter instance
            symbols: Symbols to build the exchange's TickerSet from
            normalizer: Custom normalizer (defaults to one publishing diagnostics on the bus)

        Returns:
            TickerSet: The newly created ticker set

        Raises:
            ValueError: If an adapter with the same name is already registered
        """
        name = adapter.name.lower()
        if name in self.exchanges:
            raise ValueError(f"Exchange '{name}' is already registered")

        ticker_set = TickerSet.from_symbols(name, symbols)
        normalizer = normalizer or MarketSnapshotNormalizer(
            on_event=self.event_bus.publisher(DIAGNOSTICS_TOPIC)
        )

        self.exchanges[name] = adapter
        self.tickers[name] = ticker_set
        self.writers[name] = TickerSetWriter(ticker_set, normalizer)

        logger.info(f"Registered exchange {name} with {len(ticker_set.items)} symbol(s)")
        return ticker_set

    # ============================================
    # Exchange Retrieval Methods
    # ============================================

    def get_exchange(self, name: str) -> ExchangeAdapter:
        """
        Get an exchange adapter by name.

        Args:
            name: Exchange name (case-insensitive)

        Returns:
            ExchangeAdapter: The requested adapter

        Raises:
            ValueError: If the exchange is not registered
        """
        name = name.lower()

        if name not in self.exchanges:
            available = ", ".join(self.exchanges.keys())
            logger.error(f"Exchange '{name}' not found. Available: {available}")
            raise ValueError(
                f"Exchange '{name}' is not supported. "
                f"Available exchanges: {available}"
            )

        return self.exchanges[name]

    def get_tickers(self, name: str) -> TickerSet:
        """Get the TickerSet of a registered exchange."""
        self.get_exchange(name)
        return self.tickers[name.lower()]

    def get_writer(self, name: str) -> TickerSetWriter:
        self.get_exchange(name)
        return self.writers[name.lower()]

    def has_exchange(self, name: str) -> bool:
        return name.lower() in self.exchanges

    def list_exchanges(self) -> List[str]:
        return list(self.exchanges.keys())

    # ============================================
    # Market State
    # ============================================

    async def set_cross_rates(self, exchg_rate: float, btc_fiat_price: float, name: Optional[str] = None) -> None:
        """
        Set the USD and BTC cross-rates used by the next polling cycles.

        The update is queued on each writer, so it takes effect between two
        cycles and never in the middle of one.

        Args:
            exchg_rate: Reporting fiat per USD
            btc_fiat_price: Reporting fiat per BTC
            name: Only update this exchange (all exchanges when None)
        """
        names = [name.lower()] if name else self.list_exchanges()
        futures = []
        for exchange in names:
            writer = self.get_writer(exchange)
            futures.append(await writer.submit_cross_rates(exchg_rate, btc_fiat_price))
        await asyncio.gather(*futures)
        logger.debug(f"Cross-rates set: usd={exchg_rate} btc={btc_fiat_price} ({', '.join(names)})")

    async def poll_markets(self, name: str) -> Optional[RefreshReport]:
        """
        Fetch snapshots for one exchange and apply them to its TickerSet.

        Args:
            name: Exchange name

        Returns:
            RefreshReport for the cycle, or None when no symbol is left to poll

        Raises:
            ValueError: If the exchange is not registered
            Exception: Whatever the adapter raised while fetching (nothing is applied)
        """
        adapter = self.get_exchange(name)
        ticker_set = self.get_tickers(name)

        symbols = ticker_set.active_symbols()
        if not symbols:
            logger.debug(f"{adapter.name}: no resolvable symbols left to poll")
            return None

        snapshots = await adapter.fetch_snapshots(symbols)

        future = await self.get_writer(name).submit_snapshots(snapshots)
        return await future

    async def verify_states(self, name: str) -> int:
        """
        Fetch deposit/withdraw states for one exchange and merge them.

        Returns:
            int: Number of network records merged (0 if the adapter has no such feed)
        """
        adapter = self.get_exchange(name)
        if not adapter.supports("network_states"):
            return 0

        records = await adapter.fetch_network_states()

        future = await self.get_writer(name).submit_network_states(records)
        return await future

    async def poll_all(self) -> Dict[str, Optional[RefreshReport]]:
        """
        Poll every registered exchange concurrently.

        A failing exchange is logged and reported as None; it never affects
        the other exchanges' cycles.

        Returns:
            Dict[str, Optional[RefreshReport]]: Report per exchange
        """
        names = self.list_exchanges()
        results = await asyncio.gather(
            *(self.poll_markets(name) for name in names),
            return_exceptions=True
        )

        reports: Dict[str, Optional[RefreshReport]] = {}
        for name, result in zip(names, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error(f"Polling {name} failed: {result}")
                reports[name] = None
            else:
                reports[name] = result
        return reports

    async def verify_all_states(self) -> Dict[str, int]:
        """Merge deposit/withdraw states of every exchange that publishes them."""
        names = self.list_exchanges()
        results = await asyncio.gather(
            *(self.verify_states(name) for name in names),
            return_exceptions=True
        )

        merged: Dict[str, int] = {}
        for name, result in zip(names, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error(f"State check for {name} failed: {result}")
                merged[name] = 0
            else:
                merged[name] = result
        return merged

    # ============================================
    # Lifecycle Management
    # ============================================

    async def initialize_all(self) -> None:
        """
        Initialize all registered adapters and start their writers.

        An adapter failing to initialize is logged; the others still start.
        """
        logger.info("Initializing all exchanges...")

        for name, exchange in self.exchanges.items():
            try:
                await exchange.initialize()
                await self.writers[name].start()
                logger.info(f"✓ {name.capitalize()} initialized successfully")
            except Exception as e:
                logger.error(f"✗ Failed to initialize {name}: {e}")

        logger.info("All exchanges initialized")

    async def shutdown_all(self) -> None:
        """
        Stop all writers (applying queued updates first) and shut down all adapters.
        """
        logger.info("Shutting down all exchanges...")

        for name, exchange in self.exchanges.items():
            try:
                await self.writers[name].stop()
                await exchange.shutdown()
                logger.info(f"✓ {name.capitalize()} shut down successfully")
            except Exception as e:
                logger.error(f"✗ Error shutting down {name}: {e}")

        logger.info("All exchanges shut down")

    # ============================================
    # Health Check Methods
    # ============================================

    async def health_check_all(self) -> Dict[str, bool]:
        """
        Check health status of all exchanges.

        Returns:
            Dict[str, bool]: Dictionary mapping exchange names to health status
        """
        health_status = {}

        for name, exchange in self.exchanges.items():
            try:
                health_status[name] = await exchange.health_check()
            except Exception as e:
                logger.error(f"Health check failed for {name}: {e}")
                health_status[name] = False

        return health_status

    # ============================================
    # Capability Queries
    # ============================================

    def get_exchanges_with_feature(self, feature: str) -> List[str]:
        """
        Get list of exchanges that support a specific feature.

        Example:
            >>> manager.get_exchanges_with_feature("network_states")
            ['upbit', 'kraken']
        """
        return [
            name for name, exchange in self.exchanges.items()
            if exchange.supports(feature)
        ]

    def get_exchange_capabilities(self, name: str) -> Dict[str, bool]:
        """
        Get capabilities dictionary for a specific exchange.

        Raises:
            ValueError: If the exchange is not registered
        """
        return dict(self.get_exchange(name).capabilities)

    # ============================================
    # Utility Methods
    # ============================================

    def __repr__(self) -> str:
        return f"<ExchangeManager(exchanges={list(self.exchanges.keys())})>"

    def __len__(self) -> int:
        return len(self.exchanges)


# ============================================
# Global Manager Instance
# ============================================

_manager: Optional[ExchangeManager] = None


def get_manager() -> ExchangeManager:
    """
    Get the global ExchangeManager instance (singleton pattern).

    Returns:
        ExchangeManager: The global manager instance
    """
    global _manager
    if _manager is None:
        _manager = ExchangeManager()
    return _manager
