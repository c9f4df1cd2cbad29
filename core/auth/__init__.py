"""
Request Authentication Package

One Authenticator per exchange, chosen from a closed set of signature protocols:

- HmacConcatAuthenticator: timestamp + method + path + body, HMAC-SHA256 (KuCoin, Bitget)
- JwtQueryHashAuthenticator: HS256 JWT with SHA-512 query hash (Upbit, Bithumb)
- PathChainedAuthenticator: path + SHA256(nonce + body), HMAC-SHA512 (Kraken)
"""

from core.auth.base import (
    Authenticator,
    NonceCounter,
    SignatureProtocol,
    canonical_query,
    encode_query,
    nonce_counter_for,
)
from core.auth.hmac_concat import HmacConcatAuthenticator
from core.auth.jwt_query_hash import JwtQueryHashAuthenticator
from core.auth.path_chained import PathChainedAuthenticator
from core.auth.registry import authenticator_from_settings, create_authenticator, protocol_for

__all__ = [
    "Authenticator",
    "NonceCounter",
    "SignatureProtocol",
    "canonical_query",
    "encode_query",
    "nonce_counter_for",
    "HmacConcatAuthenticator",
    "JwtQueryHashAuthenticator",
    "PathChainedAuthenticator",
    "authenticator_from_settings",
    "create_authenticator",
    "protocol_for",
]
