"""
HTTP transport to the backend API.

Wraps aiohttp with the backend's conventions:
- JSON requests by default, bearer auth when a token is set
- JSON or plain-text responses normalized into a payload
- non-2xx responses raised as TransportError (401 also clears the token)
- unreachable backend raised as RemoteUnavailableError
"""

from __future__ import annotations

import asyncio
import json as jsonlib
import logging
from typing import Any

import aiohttp

from .auth import TokenManager
from .exceptions import RemoteUnavailableError, TransportError

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "API request failed"


def _error_message(payload: Any, reason: str | None) -> str:
    if isinstance(payload, dict):
        for key in ("error", "message"):
            value = payload.get(key)
            if value:
                return str(value)
    return reason or GENERIC_ERROR_MESSAGE


class RemoteTransport:
    """Issues requests against the configured API base.

    The aiohttp session is created on first use and closed by `close()`
    (or by leaving the async context manager). A session can be injected
    to share a connection pool with the host application; an injected
    session is never closed here.

    Example:
        >>> async with RemoteTransport("https://erp.example.com/api", tokens) as transport:
        ...     materials = await transport.request("/entities/Material")
    """

    def __init__(
        self,
        base_url: str,
        tokens: TokenManager,
        request_timeout: float | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            base_url: API base, already normalized to end in '/api'
            tokens: Token manager supplying the bearer token
            request_timeout: Total timeout per request in seconds (None = no timeout)
            session: Optional externally owned aiohttp session
        """
        self.base_url = base_url.rstrip("/")
        self.tokens = tokens
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> RemoteTransport:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def url_for(self, path: str) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    def _build_headers(self, headers: dict[str, str] | None, multipart: bool) -> dict[str, str]:
        merged: dict[str, str] = {}
        if not multipart:
            merged["Content-Type"] = "application/json"
        merged.update(headers or {})

        token = self.tokens.get_token()
        if token:
            merged["Authorization"] = f"Bearer {token}"
        return merged

    async def request(
        self,
        path: str,
        method: str = "GET",
        json: Any = None,
        data: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Send a request and return the normalized payload.

        Args:
            path: Path below the API base, e.g. '/entities/Material'
            method: HTTP method
            json: Body to send as JSON; values json cannot encode (dates,
                Decimals, UUIDs) are sent as their str() form, as the mirror
                stores them
            data: Raw body or aiohttp.FormData for multipart uploads
            headers: Extra headers; override the JSON default

        Returns:
            Parsed payload, or {} when the response had no body

        Raises:
            TransportError: Backend answered with a non-2xx status
            RemoteUnavailableError: Backend could not be reached
        """
        url = self.url_for(path)
        request_headers = self._build_headers(headers, isinstance(data, aiohttp.FormData))
        body = jsonlib.dumps(json, default=str) if json is not None else data

        session = self._get_session()
        try:
            async with session.request(
                method,
                url,
                data=body,
                headers=request_headers,
            ) as response:
                payload = await self._read_payload(response)
                status = response.status
                reason = response.reason
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.debug(f"{method} {url} unreachable: {e}")
            raise RemoteUnavailableError(url, e) from e

        if not 200 <= status < 300:
            if status == 401:
                self.tokens.set_token(None)
                logger.info("Received 401; cleared stored token")
            raise TransportError(_error_message(payload, reason), status, payload)

        return payload if payload is not None else {}

    async def _read_payload(self, response: aiohttp.ClientResponse) -> Any:
        content_type = response.headers.get("Content-Type", "")
        try:
            text = await response.text()
        except (UnicodeDecodeError, aiohttp.ClientPayloadError):
            text = ""

        if "application/json" in content_type:
            if not text.strip():
                return None
            try:
                return jsonlib.loads(text)
            except ValueError:
                return None

        return {"message": text} if text else None
