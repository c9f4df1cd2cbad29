"""
Normalized Market-State Schemas

This module defines the Pydantic models for the shared market-state core.

Key Principle:
    Regardless of which exchange a quote comes from (Upbit, Kraken, KuCoin, ...),
    it is copied into these records and converted into one reporting currency,
    so that every exchange's tickers are directly comparable.

Models:
    - QueueSymbol: Registration record used to build a TickerSet
    - Ticker: One tradable symbol on one exchange (prices, volumes, availability)
    - TickerSet: All tickers of one exchange plus the shared cross-rates
    - NetworkState / NetworkMeta: Per-(asset, chain) deposit/withdraw capability
    - AssetState: Per-asset aggregate of its networks
    - RawSnapshot / RawNetworkState: Inbound records produced by exchange adapters
    - RefreshReport: Counters returned by one normalization cycle

Mutability:
    Ticker, TickerSet and AssetState are mutated in place by the normalizer and
    the availability aggregator. Every mutation happens while holding the
    owning TickerSet's lock (see TickerSet.lock).
"""

import threading
from typing import Any, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


SENTINEL_SYMBOL = "X"
"""Symbol value marking a ticker as unresolvable for the rest of the TickerSet lifetime"""


# ============================================
# Registration
# ============================================

class QueueSymbol(BaseModel):
    """
    Symbol registration record.

    Attributes:
        symbol: Exchange-native identifier (e.g., "KRW-BTC", "XBTUSDT")
        comp_name: Comparison name shared across exchanges (e.g., "BTC")
        base_name: Base asset code as the exchange spells it (e.g., "XBT")
        quote_name: Quote asset code (e.g., "KRW", "USDT", "BTC")
    """

    symbol: str
    comp_name: str
    base_name: str
    quote_name: str


# ============================================
# Ticker
# ============================================

class Ticker(BaseModel):
    """
    One exchange/symbol live market view.

    Prices are expressed in the reporting fiat. Volumes are expressed in the
    reporting fiat divided by the configured scale constants.

    Invariants:
        - volume_1m and previous_24h are only rewritten when a volume sample
          arrives more than 60 seconds after `timestamp`
        - once `symbol` equals SENTINEL_SYMBOL it is never restored
    """

    symbol: str
    comp_name: str = ""
    base_name: str = ""
    quote_name: str = ""

    last_price: float = 0.0
    ask_price: float = 0.0
    bid_price: float = 0.0

    volume_24h: float = 0.0
    volume_1m: float = 0.0
    previous_24h: float = Field(
        default=0.0,
        description="Last normalized cumulative 24h volume accepted as the 1m baseline"
    )
    timestamp: int = Field(
        default=0,
        description="Epoch milliseconds of the last accepted volume sample"
    )

    active: bool = False
    deposit: bool = False
    withdraw: bool = False

    @property
    def is_resolved(self) -> bool:
        return self.symbol != SENTINEL_SYMBOL

    # Compatibility aliases
    @property
    def last(self) -> float:
        return self.last_price

    @property
    def ask(self) -> float:
        return self.ask_price

    @property
    def bid(self) -> float:
        return self.bid_price

    @property
    def quote_volume(self) -> float:
        return self.volume_24h


# ============================================
# Asset availability
# ============================================

class NetworkMeta(BaseModel):
    """Optional per-network metadata. Only used when a NetworkState is first created."""

    chain: Optional[str] = None
    withdraw_fee: float = 0.0
    min_withdrawal: float = 0.0
    max_withdrawal: float = 0.0
    min_confirm: int = 0


class NetworkState(BaseModel):
    """
    Deposit/withdraw capability of one asset on one chain.

    Attributes:
        name: Composite key "<asset>-<network>", unique within an AssetState
        network: Network identifier as reported by the exchange
        chain: Chain name with separators removed
        deposit / withdraw: Current capability flags
        withdraw_fee, min_withdrawal, max_withdrawal, min_confirm: Metadata set at creation
    """

    name: str
    network: str
    chain: str
    deposit: bool = False
    withdraw: bool = False
    withdraw_fee: float = 0.0
    min_withdrawal: float = 0.0
    max_withdrawal: float = 0.0
    min_confirm: int = 0


class AssetState(BaseModel):
    """
    Availability of one base asset on one exchange.

    Invariant:
        active   = any(n.deposit or n.withdraw for n in networks)
        deposit  = any(n.deposit for n in networks)
        withdraw = any(n.withdraw for n in networks)
    """

    base_name: str
    active: bool = False
    deposit: bool = False
    withdraw: bool = False
    networks: List[NetworkState] = Field(default_factory=list)

    def find_network(self, name: str) -> Optional[NetworkState]:
        for network in self.networks:
            if network.name == name:
                return network
        return None


# ============================================
# Ticker set
# ============================================

class TickerSet(BaseModel):
    """
    All tickers of one exchange plus the cross-rates used to normalize them.

    Owned by the calling scheduler. Adapters never own a Ticker; they feed
    snapshots to the single writer of the set, and every mutation is done
    while holding `lock`.

    Attributes:
        exchange: Exchange name (lowercase)
        items: Tickers in registration order
        states: Asset availability states, created on first observation
        exchg_rate: Reporting fiat per USD (applied to USD and USD-pegged quotes)
        btc_fiat_price: Price of 1 BTC in the reporting fiat (applied to BTC quotes)
        timestamp: Epoch milliseconds of the newest accepted sample
    """

    exchange: str
    items: List[Ticker] = Field(default_factory=list)
    states: List[AssetState] = Field(default_factory=list)
    exchg_rate: float = 1.0
    btc_fiat_price: float = 0.0
    timestamp: int = 0

    _lock: Any = PrivateAttr(default_factory=threading.RLock)

    @classmethod
    def from_symbols(cls, exchange: str, symbols: List[QueueSymbol]) -> "TickerSet":
        """
        Build a TickerSet from registration records.

        New tickers start active with deposit and withdraw enabled until the
        first availability feed says otherwise.
        """
        items = [
            Ticker(
                symbol=s.symbol,
                comp_name=s.comp_name,
                base_name=s.base_name,
                quote_name=s.quote_name,
                active=True,
                deposit=True,
                withdraw=True,
            )
            for s in symbols
        ]
        return cls(exchange=exchange.lower(), items=items)

    @property
    def lock(self) -> Any:
        return self._lock

    def find(self, symbol: str) -> Optional[Ticker]:
        for ticker in self.items:
            if ticker.symbol == symbol:
                return ticker
        return None

    def active_items(self) -> Iterator[Ticker]:
        """Tickers that have not been sentinel-marked."""
        return (t for t in self.items if t.is_resolved)

    def active_symbols(self) -> List[str]:
        return [t.symbol for t in self.active_items()]

    def tickers_for_asset(self, comp_name: str) -> Iterator[Ticker]:
        return (t for t in self.items if t.comp_name == comp_name)

    def get_state(self, base_name: str) -> Optional[AssetState]:
        for state in self.states:
            if state.base_name == base_name:
                return state
        return None

    def set_cross_rates(self, exchg_rate: float, btc_fiat_price: float) -> None:
        with self._lock:
            self.exchg_rate = exchg_rate
            self.btc_fiat_price = btc_fiat_price


# ============================================
# Inbound records
# ============================================

class RawSnapshot(BaseModel):
    """
    Raw per-symbol quote produced by an exchange adapter.

    Prices and volume are in the ticker's quote asset. Accepts both the
    snake_case field names and the camelCase wire names. NaN and infinite
    values are rejected.
    """

    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    price: float = Field(..., ge=0, description="Last trade price")
    best_ask: Optional[float] = Field(default=None, ge=0, alias="bestAsk")
    best_bid: Optional[float] = Field(default=None, ge=0, alias="bestBid")
    cumulative_quote_volume: float = Field(
        ...,
        alias="cumulativeQuoteVolume",
        description="Rolling 24h volume in the quote asset"
    )
    sample_timestamp_ms: int = Field(..., ge=0, alias="sampleTimestampMs")


class RawNetworkState(BaseModel):
    """
    Raw per-(asset, network) deposit/withdraw record produced by an exchange adapter.

    Both flags are required: a record without them is malformed and must not
    change the asset's state.
    """

    model_config = ConfigDict(populate_by_name=True)

    asset_code: str = Field(..., min_length=1, alias="assetCode")
    network_id: Optional[str] = Field(default=None, alias="networkId")
    deposit_enabled: bool = Field(..., alias="depositEnabled")
    withdraw_enabled: bool = Field(..., alias="withdrawEnabled")
    fee: Optional[float] = None
    min_withdraw: Optional[float] = Field(default=None, alias="minWithdraw")
    max_withdraw: Optional[float] = Field(default=None, alias="maxWithdraw")
    min_confirmations: Optional[int] = Field(default=None, alias="minConfirmations")


# ============================================
# Results
# ============================================

class RefreshReport(BaseModel):
    """Counters for one normalization cycle over a TickerSet."""

    exchange: str
    updated: int = 0
    volume_rolled: int = 0
    unresolved: int = 0
    failed: int = 0
    skipped: int = 0
