"""
Volume Window Tracker

Derives a 1-minute incremental volume from the cumulative 24h volume that
exchanges report, sampled at irregular polling intervals.

Each ticker keeps one baseline (`previous_24h`) and the timestamp at which it
was taken. The baseline only moves once per minute: a sample is accepted when
it arrives strictly after `timestamp + 60_000`, at which point

    volume_1m    = floor((normalized - previous_24h) / volume_1m_base)   (0 if no baseline yet)
    previous_24h = normalized
    timestamp    = sample time

Samples inside the window only refresh `volume_24h`. Negative deltas (a 24h
window rollover or an exchange-side reset) are passed through as negative
volume_1m values.

Calls for one ticker must arrive in non-decreasing timestamp order; the
caller guarantees this by routing every update through a single writer.
"""

import math
from typing import NamedTuple, Optional

from core.config import settings
from core.logging import get_logger
from core.quote_converter import QuoteConverter
from core.schemas import Ticker
from core.utils.time import to_utc_datetime


WINDOW_MS = 60_000


class VolumeObservation(NamedTuple):
    """Result of one observe() call."""

    volume_24h: float
    volume_1m: float
    updated: bool


class VolumeWindowTracker:
    """
    Rolling 1-minute volume tracker.

    Args:
        volume_24h_base: Divisor applied to normalized 24h volume (must be > 0)
        volume_1m_base: Divisor applied to the 1-minute delta (must be > 0)
        converter: Quote converter (defaults to one built from settings)

    Example:
        >>> tracker = VolumeWindowTracker(volume_24h_base=1, volume_1m_base=1)
        >>> ticker = Ticker(symbol="KRW-BTC", quote_name="KRW")
        >>> tracker.observe(ticker, 500.0, 120_000, exchg_rate=1.0, btc_fiat_price=0.0)
        VolumeObservation(volume_24h=500, volume_1m=0, updated=True)
    """

    def __init__(
        self,
        volume_24h_base: Optional[float] = None,
        volume_1m_base: Optional[float] = None,
        converter: Optional[QuoteConverter] = None,
    ):
        self.volume_24h_base = volume_24h_base if volume_24h_base is not None else settings.volume_24h_base
        self.volume_1m_base = volume_1m_base if volume_1m_base is not None else settings.volume_1m_base

        if self.volume_24h_base <= 0 or self.volume_1m_base <= 0:
            raise ValueError(
                f"Volume bases must be positive (24h={self.volume_24h_base}, 1m={self.volume_1m_base})"
            )

        self.converter = converter or QuoteConverter.from_settings()
        self._logger = get_logger(__name__)

    def observe(
        self,
        ticker: Ticker,
        raw_cumulative_volume: float,
        sample_timestamp_ms: int,
        exchg_rate: float,
        btc_fiat_price: float,
    ) -> VolumeObservation:
        """
        Feed one cumulative 24h volume sample into the ticker's window.

        Args:
            ticker: Ticker to update in place
            raw_cumulative_volume: 24h volume in the ticker's quote asset
            sample_timestamp_ms: Sample time in epoch milliseconds
            exchg_rate: Reporting fiat per USD
            btc_fiat_price: Reporting fiat per BTC

        Returns:
            VolumeObservation: New volume_24h, current volume_1m and whether the
            1-minute window rolled over

        Raises:
            UnsupportedQuoteError: If the ticker's quote asset cannot be converted.
                The ticker is left untouched in that case.
            ValueError: If the normalized volume is not finite (NaN, or overflowed
                to infinity). The ticker is left untouched in that case.
        """
        normalized = self.converter.normalize(
            raw_cumulative_volume, ticker.quote_name, exchg_rate, btc_fiat_price
        )
        if not math.isfinite(normalized):
            raise ValueError(f"{ticker.symbol}: normalized 24h volume is not finite ({normalized})")

        ticker.volume_24h = math.floor(normalized / self.volume_24h_base)

        next_boundary = ticker.timestamp + WINDOW_MS
        if sample_timestamp_ms <= next_boundary:
            if sample_timestamp_ms < ticker.timestamp:
                self._logger.debug(
                    f"{ticker.symbol}: sample at {to_utc_datetime(sample_timestamp_ms)} "
                    f"is older than baseline at {to_utc_datetime(ticker.timestamp)}"
                )
            return VolumeObservation(ticker.volume_24h, ticker.volume_1m, False)

        delta = normalized - ticker.previous_24h if ticker.previous_24h > 0 else 0
        ticker.volume_1m = math.floor(delta / self.volume_1m_base)

        ticker.timestamp = sample_timestamp_ms
        ticker.previous_24h = normalized

        return VolumeObservation(ticker.volume_24h, ticker.volume_1m, True)
