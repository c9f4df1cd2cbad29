"""
Market Snapshot Normalizer

Applies one polling cycle of raw exchange snapshots to a TickerSet.

For every ticker that is still resolvable:
    1. Look its symbol up in the snapshot batch. A missing symbol is replaced
       by the sentinel "X" and never polled again for the lifetime of the set.
    2. Convert last/ask/bid prices into the reporting fiat.
    3. Feed the cumulative 24h volume into the Volume Window Tracker.

Prices are always converted before volume, with the cross-rates the set held
when the cycle started, and stored only once the volume step has succeeded.
A ticker that fails (invalid or non-finite snapshot, unsupported
quote asset) never blocks the other tickers of the cycle.

The whole cycle runs while holding the TickerSet lock, so two refresh calls
on the same set can never interleave their baseline updates.
"""

import math
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from core.errors import UnsupportedQuoteError
from core.logging import get_logger, log_market_event
from core.quote_converter import QuoteConverter
from core.schemas import SENTINEL_SYMBOL, RawSnapshot, RefreshReport, Ticker, TickerSet
from core.volume_tracker import VolumeWindowTracker


SnapshotInput = Union[RawSnapshot, Mapping[str, Any]]
EventCallback = Callable[[Dict[str, Any]], None]


class MarketSnapshotNormalizer:
    """
    Per-cycle normalizer for one or more TickerSets.

    Args:
        tracker: Volume window tracker (defaults to one built from settings)
        converter: Quote converter (defaults to the tracker's converter)
        on_event: Optional callback receiving diagnostic events as dicts with
                  "type", "exchange", "symbol" and "message" keys

    Example:
        >>> normalizer = MarketSnapshotNormalizer()
        >>> report = normalizer.refresh(tickers, {"KRW-BTC": {
        ...     "price": 90_000_000, "cumulativeQuoteVolume": 1.2e11, "sampleTimestampMs": 1704110400000
        ... }})
        >>> report.updated
        1
    """

    def __init__(
        self,
        tracker: Optional[VolumeWindowTracker] = None,
        converter: Optional[QuoteConverter] = None,
        on_event: Optional[EventCallback] = None,
    ):
        self.tracker = tracker or VolumeWindowTracker(converter=converter)
        self.converter = converter or self.tracker.converter
        self.on_event = on_event
        self._logger = get_logger(__name__)

    def refresh(self, ticker_set: TickerSet, snapshots: Mapping[str, SnapshotInput]) -> RefreshReport:
        """
        Apply a batch of raw snapshots to the ticker set in place.

        Args:
            ticker_set: Ticker set to update
            snapshots: Raw snapshots keyed by exchange-native symbol

        Returns:
            RefreshReport: Counters for this cycle
        """
        report = RefreshReport(exchange=ticker_set.exchange)

        with ticker_set.lock:
            exchg_rate = ticker_set.exchg_rate
            btc_fiat_price = ticker_set.btc_fiat_price
            newest = ticker_set.timestamp

            for ticker in ticker_set.items:
                if not ticker.is_resolved:
                    report.skipped += 1
                    continue

                raw = snapshots.get(ticker.symbol)
                if raw is None:
                    self._mark_unresolved(ticker_set, ticker, "symbol_unresolved", "missing from snapshot batch")
                    report.unresolved += 1
                    continue

                try:
                    snapshot = raw if isinstance(raw, RawSnapshot) else RawSnapshot.model_validate(raw)
                except ValidationError as e:
                    log_market_event(
                        ticker_set.exchange,
                        "snapshot_invalid",
                        ticker.symbol,
                        f"{e.error_count()} validation error(s)",
                    )
                    report.failed += 1
                    continue

                try:
                    prices = self._convert_prices(ticker, snapshot, exchg_rate, btc_fiat_price)
                    observation = self.tracker.observe(
                        ticker,
                        snapshot.cumulative_quote_volume,
                        snapshot.sample_timestamp_ms,
                        exchg_rate,
                        btc_fiat_price,
                    )
                except UnsupportedQuoteError as e:
                    self._mark_unresolved(ticker_set, ticker, "quote_unsupported", str(e))
                    report.unresolved += 1
                    continue
                except (ValueError, OverflowError) as e:
                    log_market_event(ticker_set.exchange, "snapshot_invalid", ticker.symbol, str(e))
                    report.failed += 1
                    continue

                self._store_prices(ticker, *prices)

                report.updated += 1
                if observation.updated:
                    report.volume_rolled += 1
                newest = max(newest, snapshot.sample_timestamp_ms)

            ticker_set.timestamp = newest

        self._logger.debug(
            f"{ticker_set.exchange}: refreshed {report.updated} tickers "
            f"(rolled={report.volume_rolled}, unresolved={report.unresolved}, "
            f"failed={report.failed}, skipped={report.skipped})"
        )
        return report

    def _convert_prices(
        self, ticker: Ticker, snapshot: RawSnapshot, exchg_rate: float, btc_fiat_price: float
    ) -> Tuple[float, Optional[float], Optional[float]]:
        multiplier = self.converter.multiplier(ticker.quote_name, exchg_rate, btc_fiat_price)

        last = snapshot.price * multiplier
        ask = snapshot.best_ask * multiplier if snapshot.best_ask is not None else None
        bid = snapshot.best_bid * multiplier if snapshot.best_bid is not None else None

        for value in (last, ask, bid):
            if value is not None and not math.isfinite(value):
                raise OverflowError(f"{ticker.symbol}: converted price overflowed ({value})")
        return last, ask, bid

    @staticmethod
    def _store_prices(ticker: Ticker, last: float, ask: Optional[float], bid: Optional[float]) -> None:
        ticker.last_price = last
        if ask is not None:
            ticker.ask_price = ask
        if bid is not None:
            ticker.bid_price = bid

    def _mark_unresolved(self, ticker_set: TickerSet, ticker: Ticker, event: str, message: str) -> None:
        symbol = ticker.symbol
        ticker.symbol = SENTINEL_SYMBOL

        log_market_event(ticker_set.exchange, event, symbol, message)

        if self.on_event is not None:
            self.on_event({
                "type": event,
                "exchange": ticker_set.exchange,
                "symbol": symbol,
                "message": message,
            })
