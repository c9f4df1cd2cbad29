"""
Unit Tests for Request Authenticators

These tests verify each signature protocol against an independent
recomputation of the expected signature:
- HMAC-concat (KuCoin, Bitget)
- JWT with SHA-512 query hash (Upbit, Bithumb)
- Path-chained HMAC-SHA512 (Kraken)

Run with:
    pytest tests/unit/test_authenticators.py -v
"""

import base64
import hashlib
import hmac
import threading

import jwt
import pytest

import core.auth.hmac_concat as hmac_concat_module
from core.auth import (
    HmacConcatAuthenticator,
    JwtQueryHashAuthenticator,
    NonceCounter,
    PathChainedAuthenticator,
    SignatureProtocol,
    canonical_query,
    create_authenticator,
    encode_query,
    protocol_for,
)
from core.auth.registry import authenticator_from_settings, supported_exchanges
from core.config import settings
from core.errors import AuthenticationError


SECRET = "0123456789abcdef0123456789abcdef"  # 32 bytes, long enough for HS256
KRAKEN_SECRET = base64.b64encode(b"kraken-private-key-bytes-0123456789").decode()


def decode(token: str, secret: str = SECRET) -> dict:
    return jwt.decode(token, secret, algorithms=["HS256"])


# ============================================
# Shared helpers
# ============================================

class TestCanonicalQuery:
    """Test canonical query rendering"""

    def test_mapping_keeps_order_and_brackets(self):
        assert canonical_query({"market": "KRW-BTC", "states[]": ["wait", "watch"]}) == \
            "market=KRW-BTC&states[]=wait&states[]=watch"

    def test_string_is_used_verbatim(self):
        assert canonical_query("?market=X-Y") == "market=X-Y"

    def test_empty_inputs(self):
        assert canonical_query(None) == ""
        assert canonical_query({}) == ""
        assert canonical_query("") == ""


class TestEncodeQuery:
    """Test the dispatched query encoding"""

    def test_escapes_reserved_characters(self):
        assert encode_query({"symbols": "BTC-USDT,ETH-USDT", "states[]": ["wait", "done"]}) == \
            "symbols=BTC-USDT%2CETH-USDT&states%5B%5D=wait&states%5B%5D=done"

    def test_canonical_query_is_the_unescaped_form(self):
        params = {"symbols": "BTC-USDT,ETH-USDT"}
        assert canonical_query(params) == "symbols=BTC-USDT,ETH-USDT"
        assert encode_query(None) == ""


class TestNonceCounter:
    """Test strictly increasing nonces"""

    def test_nonces_strictly_increase(self):
        counter = NonceCounter()
        nonces = [counter.next() for _ in range(1000)]
        assert all(b > a for a, b in zip(nonces, nonces[1:]))

    def test_nonces_unique_across_threads(self):
        counter = NonceCounter()
        results = []
        lock = threading.Lock()

        def worker():
            local = [counter.next() for _ in range(200)]
            with lock:
                results.extend(local)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == len(set(results)) == 800


# ============================================
# HMAC-concat
# ============================================

class TestHmacConcat:
    """Test timestamp-prefixed HMAC-SHA256 signing"""

    @pytest.fixture(autouse=True)
    def fixed_clock(self, monkeypatch):
        monkeypatch.setattr(hmac_concat_module, "current_utc_timestamp", lambda milliseconds=False: 1700000000123)

    @staticmethod
    def expected(message: str, secret: str = SECRET) -> str:
        digest = hmac.new(secret.encode(), message.encode(), hashlib.sha256).digest()
        return base64.b64encode(digest).decode()

    def test_bitget_headers(self):
        auth = create_authenticator("bitget", "key", SECRET, "phrase")
        headers = auth.sign("get", "/api/v2/spot/account/assets", {"coin": "USDT"})

        assert headers["ACCESS-KEY"] == "key"
        assert headers["ACCESS-TIMESTAMP"] == "1700000000123"
        assert headers["ACCESS-PASSPHRASE"] == "phrase"
        assert headers["ACCESS-SIGN"] == self.expected(
            "1700000000123GET/api/v2/spot/account/assets?coin=USDT"
        )

    def test_body_is_appended(self):
        auth = create_authenticator("bitget", "key", SECRET, "phrase")
        body = auth.encode_body({"symbol": "BTCUSDT", "side": "buy"})
        headers = auth.sign("POST", "/api/v2/spot/trade/place-order", body=body)

        assert body == '{"symbol":"BTCUSDT","side":"buy"}'
        assert headers["ACCESS-SIGN"] == self.expected(
            '1700000000123POST/api/v2/spot/trade/place-order{"symbol":"BTCUSDT","side":"buy"}'
        )

    def test_kucoin_signs_passphrase(self):
        auth = create_authenticator("kucoin", "key", SECRET, "phrase")
        headers = auth.sign("GET", "/api/v1/accounts")

        assert headers["KC-API-KEY"] == "key"
        assert headers["KC-API-KEY-VERSION"] == "2"
        assert headers["KC-API-PASSPHRASE"] == self.expected("phrase")
        assert headers["KC-API-SIGN"] == self.expected("1700000000123GET/api/v1/accounts")

    def test_missing_passphrase_raises(self):
        auth = create_authenticator("kucoin", "key", SECRET, "")
        with pytest.raises(AuthenticationError):
            auth.sign("GET", "/api/v1/accounts")

    def test_missing_secret_raises(self):
        auth = HmacConcatAuthenticator("bitget", "key", "", "phrase")
        with pytest.raises(AuthenticationError):
            auth.sign("GET", "/api/v2/spot/account/assets")

    def test_explicit_secret_overrides_configured(self):
        auth = HmacConcatAuthenticator("bitget", "key", SECRET, "phrase")
        other = "f" * 32
        headers = auth.sign("GET", "/x", secret=other)
        assert headers["ACCESS-SIGN"] == self.expected("1700000000123GET/x", other)

    def test_mapping_query_is_signed_percent_escaped(self):
        auth = create_authenticator("kucoin", "key", SECRET, "phrase")
        headers = auth.sign("GET", "/api/v1/x", {"symbols": "BTC-USDT,ETH-USDT"})
        assert headers["KC-API-SIGN"] == self.expected(
            "1700000000123GET/api/v1/x?symbols=BTC-USDT%2CETH-USDT"
        )

    def test_default_signing_query_is_the_sent_query(self):
        auth = create_authenticator("bitget", "key", SECRET, "phrase")
        sent = encode_query({"symbols": "BTC-USDT,ETH-USDT"})
        assert auth.signing_query(sent, {"symbols": "BTC-USDT,ETH-USDT"}) == sent


# ============================================
# JWT with query hash
# ============================================

class TestJwtQueryHash:
    """Test HS256 JWT signing with optional SHA-512 query hash"""

    def test_no_query_omits_hash_claims(self):
        auth = create_authenticator("upbit", "access", SECRET)
        token = auth.sign("GET", "/v1/accounts")["Authorization"].split(" ", 1)[1]
        claims = decode(token)

        assert claims["access_key"] == "access"
        assert "nonce" in claims
        assert "query_hash" not in claims
        assert "query_hash_alg" not in claims

    def test_query_hash_matches_sha512(self):
        auth = create_authenticator("upbit", "access", SECRET)
        headers = auth.sign("GET", "/v1/orders/chance", {"market": "X-Y"})

        assert headers["Authorization"].startswith("Bearer ")
        claims = decode(headers["Authorization"][len("Bearer "):])
        assert claims["query_hash"] == hashlib.sha512(b"market=X-Y").hexdigest()
        assert claims["query_hash_alg"] == "SHA512"

    def test_string_query_hashes_identically(self):
        auth = create_authenticator("upbit", "access", SECRET)
        assert auth.build_payload("market=X-Y")["query_hash"] == auth.build_payload({"market": "X-Y"})["query_hash"]

    def test_upbit_nonces_increase(self):
        auth = create_authenticator("upbit", "nonce-check", SECRET)
        first = auth.build_payload()["nonce"]
        second = auth.build_payload()["nonce"]
        assert second > first

    def test_bithumb_uses_uuid_nonce_and_timestamp(self):
        auth = create_authenticator("bithumb", "access", SECRET)
        payload = auth.build_payload()
        assert isinstance(payload["nonce"], str)
        assert len(payload["nonce"]) == 36
        assert isinstance(payload["timestamp"], int)

    def test_body_params_are_hashed(self):
        auth = create_authenticator("upbit", "access", SECRET)
        query = auth.signing_query("", None, {"market": "KRW-BTC", "side": "bid"})
        claims = decode(auth.create_token(query))
        assert claims["query_hash"] == hashlib.sha512(b"market=KRW-BTC&side=bid").hexdigest()

    def test_wrong_secret_fails_verification(self):
        auth = create_authenticator("upbit", "access", SECRET)
        token = auth.create_token()
        with pytest.raises(jwt.InvalidSignatureError):
            decode(token, "z" * 32)

    def test_invalid_nonce_style(self):
        with pytest.raises(ValueError):
            JwtQueryHashAuthenticator("upbit", "access", SECRET, nonce_style="counter")


# ============================================
# Path-chained HMAC
# ============================================

class TestPathChained:
    """Test Kraken-style HMAC-SHA512 signing"""

    def test_signature_matches_manual_computation(self):
        auth = create_authenticator("kraken", "kraken-key", KRAKEN_SECRET)
        body = auth.encode_body({"asset": "XBT"})
        headers = auth.sign("POST", "/0/private/Balance", body=body)

        nonce = auth.extract_nonce(body)
        message = b"/0/private/Balance" + hashlib.sha256((nonce + body).encode()).digest()
        expected = base64.b64encode(
            hmac.new(base64.b64decode(KRAKEN_SECRET), message, hashlib.sha512).digest()
        ).decode()

        assert headers == {"API-Key": "kraken-key", "API-Sign": expected}

    def test_body_starts_with_nonce(self):
        auth = create_authenticator("kraken", "kraken-key", KRAKEN_SECRET)
        body = auth.encode_body({"nonce": "ignored", "pair": "XBTUSD"})
        assert body.startswith("nonce=")
        assert body.endswith("&pair=XBTUSD")
        assert "ignored" not in body
        assert auth.content_type == "application/x-www-form-urlencoded"

    def test_nonces_shared_per_api_key(self):
        first = PathChainedAuthenticator("kraken", "shared-key", KRAKEN_SECRET)
        second = PathChainedAuthenticator("kraken", "shared-key", KRAKEN_SECRET)
        a = int(first.extract_nonce(first.encode_body(None)))
        b = int(second.extract_nonce(second.encode_body(None)))
        assert b > a

    def test_bad_base64_secret_raises(self):
        auth = create_authenticator("kraken", "kraken-key", "not base64!!")
        with pytest.raises(AuthenticationError):
            auth.sign("POST", "/0/private/Balance", body=auth.encode_body(None))

    def test_body_without_nonce_raises(self):
        auth = create_authenticator("kraken", "kraken-key", KRAKEN_SECRET)
        with pytest.raises(AuthenticationError):
            auth.sign("POST", "/0/private/Balance", body="asset=XBT")


# ============================================
# Signer cache and registry
# ============================================

class TestSignerCache:
    """Test lazy, shared signer construction"""

    def test_signer_built_once_per_secret(self, monkeypatch):
        auth = HmacConcatAuthenticator("bitget", "key", SECRET, "phrase")
        calls = []
        build = auth._build_signer

        def counting(secret):
            calls.append(secret)
            return build(secret)

        monkeypatch.setattr(auth, "_build_signer", counting)

        threads = [threading.Thread(target=auth.signer) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        auth.signer()

        assert calls == [SECRET]
        assert auth.signer() is auth.signer()

    def test_distinct_secrets_get_distinct_signers(self):
        auth = HmacConcatAuthenticator("bitget", "key", SECRET, "phrase")
        assert auth.signer() is not auth.signer("f" * 32)


class TestRegistry:
    """Test protocol selection per exchange"""

    @pytest.mark.parametrize("exchange, protocol", [
        ("kucoin", SignatureProtocol.HMAC_CONCAT),
        ("Bitget", SignatureProtocol.HMAC_CONCAT),
        ("upbit", SignatureProtocol.JWT_QUERY_HASH),
        ("bithumb", SignatureProtocol.JWT_QUERY_HASH),
        ("KRAKEN", SignatureProtocol.PATH_CHAINED_HMAC),
    ])
    def test_protocol_for(self, exchange, protocol):
        assert protocol_for(exchange) is protocol
        assert create_authenticator(exchange, "k", SECRET, "p").protocol is protocol

    def test_unknown_exchange_raises(self):
        with pytest.raises(ValueError, match="no authentication profile"):
            protocol_for("binance")

    def test_supported_exchanges(self):
        assert supported_exchanges() == ["bithumb", "bitget", "kraken", "kucoin", "upbit"]

    def test_from_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "upbit_api_key", "from-env")
        monkeypatch.setattr(settings, "upbit_secret_key", SECRET)
        auth = authenticator_from_settings("upbit")
        assert auth.api_key == "from-env"
        assert decode(auth.create_token())["access_key"] == "from-env"
