"""
Request Authenticator Contract

Every exchange signs its private requests with one of three protocol shapes:

    HMAC_CONCAT        base64(HMAC-SHA256(secret, ts + METHOD + path + query + body))
    JWT_QUERY_HASH     HS256 token carrying access_key, nonce and a SHA-512 query hash
    PATH_CHAINED_HMAC  base64(HMAC-SHA512(b64decode(secret), path + SHA256(nonce + postData)))

This module defines the shared contract (`Authenticator.sign`), the signer
cache, the per-credential nonce counter and the canonical query encoding used
by all three.

Thread safety:
    An authenticator may be shared by concurrent requests. The signer for a
    secret is built once under a lock and is read-only afterwards; nonces are
    drawn from a locked counter so they strictly increase per API key.
"""

import json
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import unquote, urlencode

from core.errors import AuthenticationError
from core.utils.time import current_utc_timestamp


class SignatureProtocol(str, Enum):
    """Closed set of request-signing protocols."""

    HMAC_CONCAT = "hmac_concat"
    JWT_QUERY_HASH = "jwt_query_hash"
    PATH_CHAINED_HMAC = "path_chained_hmac"


QueryInput = Union[str, Mapping[str, Any], None]


def encode_query(params: Optional[Mapping[str, Any]]) -> str:
    """
    Render URL query parameters exactly as they are sent (percent-escaped).

    Example:
        >>> encode_query({"symbols": "BTC-USDT,ETH-USDT"})
        'symbols=BTC-USDT%2CETH-USDT'
    """
    if not params:
        return ""
    return urlencode(list(params.items()), doseq=True)


def canonical_query(query: QueryInput) -> str:
    """
    Render query parameters unescaped, the way JWT exchanges hash them.

    Parameters keep their insertion order, list values repeat the key, and
    brackets in keys such as "states[]" stay unescaped.

    Examples:
        >>> canonical_query({"market": "KRW-BTC", "states[]": ["wait", "watch"]})
        'market=KRW-BTC&states[]=wait&states[]=watch'
        >>> canonical_query("market=X-Y")
        'market=X-Y'
        >>> canonical_query(None)
        ''
    """
    if not query:
        return ""
    if isinstance(query, str):
        return query.lstrip("?")
    return unquote(encode_query(query))


class NonceCounter:
    """
    Strictly increasing millisecond nonce.

    Uses the wall clock when it has moved past the last nonce, otherwise the
    last nonce plus one, so two requests in the same millisecond still get
    distinct, ordered nonces.
    """

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._last = max(current_utc_timestamp(milliseconds=True), self._last + 1)
            return self._last

    @property
    def last(self) -> int:
        return self._last


_nonce_counters: Dict[str, NonceCounter] = {}
_nonce_counters_lock = threading.Lock()


def nonce_counter_for(api_key: str) -> NonceCounter:
    """Return the process-wide nonce counter for an API key."""
    with _nonce_counters_lock:
        counter = _nonce_counters.get(api_key)
        if counter is None:
            counter = NonceCounter()
            _nonce_counters[api_key] = counter
        return counter


class Authenticator(ABC):
    """
    Abstract base class for request authenticators.

    Class Attributes:
        protocol: Signature protocol implemented by the subclass

    Attributes:
        exchange: Exchange name the authenticator was built for
        api_key: Public API key / access key
        passphrase: API passphrase (only used by some HMAC_CONCAT exchanges)

    Subclasses implement `_build_signer` (turn a secret into a reusable,
    read-only signing object) and `sign`.
    """

    protocol: SignatureProtocol

    def __init__(self, exchange: str, api_key: str, secret: str = "", passphrase: str = ""):
        self.exchange = exchange.lower()
        self.api_key = api_key
        self.passphrase = passphrase
        self._secret = secret
        self._signers: Dict[str, Any] = {}
        self._signers_lock = threading.Lock()

    # ============================================
    # Signer cache
    # ============================================

    def signer(self, secret: Optional[str] = None) -> Any:
        """
        Return the signer for `secret` (or the configured secret), building it on first use.

        Raises:
            AuthenticationError: If no secret is available or it cannot be decoded
        """
        secret = secret if secret is not None else self._secret
        if not secret:
            raise AuthenticationError(f"{self.exchange}: no API secret configured")

        signer = self._signers.get(secret)
        if signer is None:
            with self._signers_lock:
                signer = self._signers.get(secret)
                if signer is None:
                    signer = self._build_signer(secret)
                    self._signers[secret] = signer
        return signer

    @abstractmethod
    def _build_signer(self, secret: str) -> Any:
        ...

    # ============================================
    # Signing
    # ============================================

    @abstractmethod
    def sign(
        self,
        method: str,
        path: str,
        query: QueryInput = "",
        body: str = "",
        secret: Optional[str] = None,
    ) -> Dict[str, str]:
        """
        Produce the authentication headers for one private request.

        Args:
            method: HTTP method (case-insensitive)
            path: Request path starting with "/" (e.g., "/api/v1/accounts")
            query: Query parameters as a mapping or an already encoded string
            body: Exact request body that will be sent
            secret: Secret to sign with (defaults to the configured secret)

        Returns:
            Dict[str, str]: Headers to add to the request

        Raises:
            AuthenticationError: If the signature cannot be produced
        """
        ...

    def signing_query(
        self,
        sent_query: str,
        params: Optional[Mapping[str, Any]] = None,
        body_params: Optional[Mapping[str, Any]] = None,
    ) -> QueryInput:
        """
        Query that goes into the signature.

        By default the signature covers the dispatched query string verbatim.

        Args:
            sent_query: URL query string exactly as it is dispatched
            params: URL query parameters it was encoded from
            body_params: Body parameters
        """
        return sent_query

    def encode_body(self, params: Optional[Mapping[str, Any]]) -> str:
        """
        Serialize request body parameters the way this protocol signs them.

        JSON by default; nonce-based protocols override this to inject the nonce.
        """
        if not params:
            return ""
        return json.dumps(params, separators=(",", ":"))

    @property
    def content_type(self) -> str:
        return "application/json"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(exchange='{self.exchange}', protocol='{self.protocol.value}')>"
