"""
Gateway Error Taxonomy

Errors that must reach the caller are raised as typed exceptions:

- UnsupportedQuoteError: a quote asset the converter cannot classify
- AuthenticationError: signer construction or signing failed (bad secret, missing nonce)
- ExchangeRequestError: a signed request was rejected by the exchange

Recovered-locally conditions (unresolvable symbols, malformed availability feeds)
are logged and never raised.
"""

from typing import Optional


class GatewayError(Exception):
    """Base class for every error raised by the gateway core."""


class UnsupportedQuoteError(GatewayError, ValueError):
    """
    Raised when a price or volume is quoted in an asset with no conversion rule.

    Attributes:
        quote: The unrecognized quote asset code
    """

    def __init__(self, quote: str):
        self.quote = quote
        super().__init__(f"Unsupported quote asset: '{quote}'")


class AuthenticationError(GatewayError):
    """Raised when a request signature cannot be produced."""


class ExchangeRequestError(GatewayError):
    """
    Raised when an exchange answers a signed request with a non-2xx status.

    Attributes:
        exchange: Exchange name
        status: HTTP status code
        body: Response body text (truncated)
    """

    def __init__(self, exchange: str, status: int, body: Optional[str] = None):
        self.exchange = exchange
        self.status = status
        self.body = (body or "")[:500]
        super().__init__(f"{exchange} request failed with HTTP {status}: {self.body}")
