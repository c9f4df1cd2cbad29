"""
Authenticator Registry

Maps each supported exchange to its signature protocol and the protocol
options it needs (header names, passphrase handling, nonce style). Adapters
pick their authenticator once, at construction time:

    auth = create_authenticator("kucoin", api_key, secret, passphrase)
    headers = auth.sign("GET", "/api/v1/accounts")

Adding an exchange that uses one of the three known protocols only needs a new
entry in AUTH_PROFILES.
"""

from typing import Any, Dict, List, Tuple, Type

from core.auth.base import Authenticator, SignatureProtocol
from core.auth.hmac_concat import HmacConcatAuthenticator
from core.auth.jwt_query_hash import JwtQueryHashAuthenticator
from core.auth.path_chained import PathChainedAuthenticator
from core.config import settings
from core.logging import get_logger


logger = get_logger(__name__)


PROTOCOL_CLASSES: Dict[SignatureProtocol, Type[Authenticator]] = {
    SignatureProtocol.HMAC_CONCAT: HmacConcatAuthenticator,
    SignatureProtocol.JWT_QUERY_HASH: JwtQueryHashAuthenticator,
    SignatureProtocol.PATH_CHAINED_HMAC: PathChainedAuthenticator,
}


AUTH_PROFILES: Dict[str, Tuple[SignatureProtocol, Dict[str, Any]]] = {
    "kucoin": (
        SignatureProtocol.HMAC_CONCAT,
        {
            "key_header": "KC-API-KEY",
            "sign_header": "KC-API-SIGN",
            "timestamp_header": "KC-API-TIMESTAMP",
            "passphrase_header": "KC-API-PASSPHRASE",
            "sign_passphrase": True,
            "extra_headers": {"KC-API-KEY-VERSION": "2"},
        },
    ),
    "bitget": (
        SignatureProtocol.HMAC_CONCAT,
        {
            "key_header": "ACCESS-KEY",
            "sign_header": "ACCESS-SIGN",
            "timestamp_header": "ACCESS-TIMESTAMP",
            "passphrase_header": "ACCESS-PASSPHRASE",
            "sign_passphrase": False,
        },
    ),
    "upbit": (
        SignatureProtocol.JWT_QUERY_HASH,
        {"nonce_style": "millis"},
    ),
    "bithumb": (
        SignatureProtocol.JWT_QUERY_HASH,
        {"nonce_style": "uuid", "include_timestamp": True},
    ),
    "kraken": (
        SignatureProtocol.PATH_CHAINED_HMAC,
        {"key_header": "API-Key", "sign_header": "API-Sign"},
    ),
}


def supported_exchanges() -> List[str]:
    return sorted(AUTH_PROFILES)


def protocol_for(exchange: str) -> SignatureProtocol:
    """
    Get the signature protocol an exchange uses.

    Raises:
        ValueError: If the exchange has no authentication profile
    """
    name = exchange.lower()
    if name not in AUTH_PROFILES:
        raise ValueError(
            f"Exchange '{exchange}' has no authentication profile. "
            f"Available exchanges: {', '.join(supported_exchanges())}"
        )
    return AUTH_PROFILES[name][0]


def create_authenticator(exchange: str, api_key: str, secret: str, passphrase: str = "") -> Authenticator:
    """
    Build the authenticator for an exchange.

    Args:
        exchange: Exchange name (case-insensitive)
        api_key: API/access key
        secret: API secret
        passphrase: API passphrase (KuCoin, Bitget)

    Returns:
        Authenticator: Protocol implementation configured for the exchange

    Raises:
        ValueError: If the exchange has no authentication profile

    Example:
        >>> auth = create_authenticator("upbit", "access", "secret")
        >>> auth.protocol
        <SignatureProtocol.JWT_QUERY_HASH: 'jwt_query_hash'>
    """
    protocol = protocol_for(exchange)
    options = AUTH_PROFILES[exchange.lower()][1]
    cls = PROTOCOL_CLASSES[protocol]

    logger.debug(f"Creating {protocol.value} authenticator for {exchange.lower()}")
    return cls(exchange, api_key, secret, passphrase, **options)


def authenticator_from_settings(exchange: str) -> Authenticator:
    """Build an exchange's authenticator from the credentials in settings."""
    credentials = settings.credentials_for(exchange)
    return create_authenticator(
        exchange,
        credentials["api_key"],
        credentials["secret"],
        credentials["passphrase"],
    )
