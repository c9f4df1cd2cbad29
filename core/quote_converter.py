"""
Quote Converter

Converts a price or volume quoted in an arbitrary quote asset into the
reporting fiat, given the live USD and BTC cross-rates.

Rules (first match wins):
    USD or USD-pegged stablecoin (USDT, USDC, USD)  -> value * exchg_rate
    BTC                                             -> value * btc_fiat_price
    reporting fiat (e.g., KRW)                      -> value

Any other quote asset raises UnsupportedQuoteError. An unconverted value would
be silently off by orders of magnitude, so the caller has to decide what to
do with the ticker instead.
"""

from typing import Iterable, Optional

from core.config import settings
from core.errors import UnsupportedQuoteError


class QuoteConverter:
    """
    Quote-asset classifier and converter.

    Attributes:
        fiat_name: Reporting fiat code (no conversion)
        usd_quotes: Quote codes converted with the USD cross-rate

    Example:
        >>> converter = QuoteConverter(fiat_name="KRW")
        >>> converter.normalize(2.0, "USDT", exchg_rate=1300.0, btc_fiat_price=0.0)
        2600.0
    """

    BTC = "BTC"

    def __init__(self, fiat_name: str = "KRW", usd_quotes: Optional[Iterable[str]] = None):
        self.fiat_name = fiat_name.upper()
        self.usd_quotes = frozenset(
            q.upper() for q in (usd_quotes if usd_quotes is not None else ("USDT", "USDC", "USD"))
        )

    @classmethod
    def from_settings(cls) -> "QuoteConverter":
        return cls(fiat_name=settings.fiat_name, usd_quotes=settings.usd_quotes_list)

    def multiplier(self, quote_asset: str, exchg_rate: float, btc_fiat_price: float) -> float:
        """
        Return the factor that converts one unit of `quote_asset` into the reporting fiat.

        Raises:
            UnsupportedQuoteError: If the quote asset matches no rule
        """
        quote = (quote_asset or "").upper()

        if quote in self.usd_quotes:
            return exchg_rate
        if quote == self.BTC:
            return btc_fiat_price
        if quote == self.fiat_name:
            return 1.0

        raise UnsupportedQuoteError(quote_asset)

    def normalize(self, raw_value: float, quote_asset: str, exchg_rate: float, btc_fiat_price: float) -> float:
        return raw_value * self.multiplier(quote_asset, exchg_rate, btc_fiat_price)

    def supports(self, quote_asset: str) -> bool:
        quote = (quote_asset or "").upper()
        return quote in self.usd_quotes or quote == self.BTC or quote == self.fiat_name

    def __repr__(self) -> str:
        return f"<QuoteConverter(fiat='{self.fiat_name}', usd={sorted(self.usd_quotes)})>"


_default_converter = QuoteConverter.from_settings()


def normalize(raw_price: float, quote_asset: str, exchg_rate: float, btc_fiat_price: float) -> float:
    """
    Convert `raw_price` into the configured reporting fiat.

    Args:
        raw_price: Price or volume in `quote_asset`
        quote_asset: Quote asset code (case-insensitive)
        exchg_rate: Reporting fiat per USD
        btc_fiat_price: Reporting fiat per BTC

    Returns:
        float: Value in the reporting fiat

    Raises:
        UnsupportedQuoteError: If `quote_asset` has no conversion rule

    Example:
        >>> normalize(0.5, "BTC", exchg_rate=1300.0, btc_fiat_price=90_000_000.0)
        45000000.0
    """
    return _default_converter.normalize(raw_price, quote_asset, exchg_rate, btc_fiat_price)
