"""
Signed REST API Client

This module provides an async HTTP client that sends authenticated requests to
an exchange's private endpoints. It handles:
- Body encoding in the form the exchange's signature protocol expects
- Request signing through the exchange's Authenticator
- Error handling and logging

Signing is delegated entirely to the Authenticator, so one client class serves
every exchange:

    HMAC-concat (KuCoin, Bitget):   JSON body, ACCESS-* / KC-API-* headers
    JWT query-hash (Upbit, Bithumb): Authorization: Bearer <jwt>
    Path-chained HMAC (Kraken):     form body with nonce, API-Key / API-Sign

Requests are dispatched exactly once. A nonce or timestamp is consumed by every
signature, so a failed request is never replayed; callers decide whether to
build and send a fresh one.

Usage:
    auth = create_authenticator("upbit", api_key, secret)
    async with SignedAPIClient("upbit", auth, "https://api.upbit.com") as client:
        accounts = await client.request("GET", "/v1/accounts")
"""

import time
from typing import Any, Mapping, Optional

import aiohttp

from core.auth.base import Authenticator, encode_query
from core.config import settings
from core.errors import ExchangeRequestError
from core.logging import get_logger, log_api_request, log_api_response


class SignedAPIClient:
    """
    Async HTTP client for authenticated exchange endpoints.

    Attributes:
        exchange: Exchange name (used in logs and errors)
        authenticator: Signer for this exchange's protocol
        base_url: API root, without trailing slash
        timeout: Total request timeout in seconds
        session: aiohttp ClientSession for HTTP requests

    Example:
        >>> async with SignedAPIClient("kraken", auth, "https://api.kraken.com") as client:
        ...     balance = await client.request("POST", "/0/private/Balance", body_params={})

    Notes:
        - Uses context manager for automatic session cleanup
        - No retry logic: every request carries a single-use nonce or timestamp
    """

    def __init__(
        self,
        exchange: str,
        authenticator: Authenticator,
        base_url: str,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the signed client.

        Args:
            exchange: Exchange name
            authenticator: Authenticator selected for this exchange
            base_url: API root URL
            timeout: Request timeout in seconds (defaults to settings.request_timeout)
        """
        self.exchange = exchange
        self.authenticator = authenticator
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.logger = get_logger(__name__)
        self.session: Optional[aiohttp.ClientSession] = None

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        self.session = aiohttp.ClientSession()
        self.logger.debug(f"SignedAPIClient session created for {self.exchange}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.debug(f"SignedAPIClient session closed for {self.exchange}")

    # ============================================
    # Request Handling
    # ============================================

    def build_url(self, path: str, query_string: str = "") -> str:
        url = f"{self.base_url}{path}"
        if query_string:
            url = f"{url}?{query_string}"
        return url

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        body_params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """
        Sign and send one request to a private endpoint.

        Args:
            method: HTTP method ("GET", "POST", "DELETE", ...)
            path: Endpoint path including any API prefix (e.g., "/0/private/Balance")
            params: URL query parameters
            body_params: Body parameters, encoded per the signature protocol

        Returns:
            Decoded JSON response

        Raises:
            RuntimeError: If the client session is not open
            AuthenticationError: If the request cannot be signed
            ExchangeRequestError: If the exchange answers with a non-2xx status
        """
        if not self.session:
            raise RuntimeError("Client session not initialized. Use 'async with' statement.")

        method = method.upper()
        auth = self.authenticator

        # One query string is both signed and sent
        query_string = encode_query(params)
        body = auth.encode_body(body_params)
        headers = auth.sign(method, path, auth.signing_query(query_string, params, body_params), body)
        headers["Content-Type"] = auth.content_type

        log_api_request(self.exchange, method, path, dict(params) if params else None)
        started = time.monotonic()

        async with self.session.request(
            method,
            self.build_url(path, query_string),
            data=body.encode("utf-8") if body else None,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as resp:
            log_api_response(self.exchange, path, resp.status, time.monotonic() - started)

            if not 200 <= resp.status < 300:
                text = await resp.text()
                self.logger.error(f"{self.exchange}: HTTP {resp.status} on {method} {path}")
                raise ExchangeRequestError(self.exchange, resp.status, text)

            return await resp.json(content_type=None)
