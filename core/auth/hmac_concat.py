"""
HMAC-concat Authenticator

    prehash   = timestamp + METHOD + path [+ "?" + query] + body
    signature = base64(HMAC-SHA256(secret_utf8, prehash))

The query is the percent-escaped string exactly as it appears in the URL.
The millisecond timestamp is sent verbatim in its own header so the exchange
can enforce its tolerance window. The passphrase travels in a header as well,
either raw (Bitget) or itself HMAC-signed with the secret (KuCoin key
version 2).
"""

import base64
import hashlib
import hmac
from typing import Dict, Optional

from core.auth.base import Authenticator, QueryInput, SignatureProtocol, encode_query
from core.errors import AuthenticationError
from core.utils.time import current_utc_timestamp


class HmacConcatAuthenticator(Authenticator):
    """
    Timestamp-prefixed HMAC-SHA256 authenticator.

    Args:
        exchange: Exchange name
        api_key: API key
        secret: API secret (raw UTF-8)
        passphrase: API passphrase
        key_header / sign_header / timestamp_header / passphrase_header: Header names
        sign_passphrase: Send base64(HMAC(secret, passphrase)) instead of the raw passphrase
        extra_headers: Static headers added to every request (e.g., key version)

    Example:
        >>> auth = HmacConcatAuthenticator("bitget", "key", "secret", "pass")
        >>> headers = auth.sign("GET", "/api/v2/spot/account/assets", {"coin": "USDT"})
        >>> sorted(headers)
        ['ACCESS-KEY', 'ACCESS-PASSPHRASE', 'ACCESS-SIGN', 'ACCESS-TIMESTAMP']
    """

    protocol = SignatureProtocol.HMAC_CONCAT

    def __init__(
        self,
        exchange: str,
        api_key: str,
        secret: str = "",
        passphrase: str = "",
        key_header: str = "ACCESS-KEY",
        sign_header: str = "ACCESS-SIGN",
        timestamp_header: str = "ACCESS-TIMESTAMP",
        passphrase_header: str = "ACCESS-PASSPHRASE",
        sign_passphrase: bool = False,
        extra_headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(exchange, api_key, secret, passphrase)
        self.key_header = key_header
        self.sign_header = sign_header
        self.timestamp_header = timestamp_header
        self.passphrase_header = passphrase_header
        self.sign_passphrase = sign_passphrase
        self.extra_headers = dict(extra_headers or {})

    def _build_signer(self, secret: str) -> "hmac.HMAC":
        return hmac.new(secret.encode("utf-8"), digestmod=hashlib.sha256)

    def _digest(self, signer: "hmac.HMAC", message: str) -> str:
        mac = signer.copy()
        mac.update(message.encode("utf-8"))
        return base64.b64encode(mac.digest()).decode()

    def prehash(self, timestamp: str, method: str, path: str, query: QueryInput = "", body: str = "") -> str:
        # Signs the request path as sent, so mappings are percent-escaped
        query_string = query.lstrip("?") if isinstance(query, str) else encode_query(query)
        request_path = f"{path}?{query_string}" if query_string else path
        return f"{timestamp}{method.upper()}{request_path}{body or ''}"

    def sign(
        self,
        method: str,
        path: str,
        query: QueryInput = "",
        body: str = "",
        secret: Optional[str] = None,
    ) -> Dict[str, str]:
        signer = self.signer(secret)
        timestamp = str(current_utc_timestamp(milliseconds=True))

        headers = {
            self.key_header: self.api_key,
            self.sign_header: self._digest(signer, self.prehash(timestamp, method, path, query, body)),
            self.timestamp_header: timestamp,
        }

        if self.passphrase_header:
            if not self.passphrase:
                raise AuthenticationError(f"{self.exchange}: API passphrase is required")
            headers[self.passphrase_header] = (
                self._digest(signer, self.passphrase) if self.sign_passphrase else self.passphrase
            )

        headers.update(self.extra_headers)
        return headers
