"""
Bearer token management and the auth endpoints.

The token lives in memory and is mirrored into the key/value store so a
restarted process picks it up again. The persisted value is ground truth
at startup; afterwards only `set_token` mutates it (login, logout, profile
refresh, and the transport clearing it on HTTP 401).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .storage.kv import KeyValueStore

if TYPE_CHECKING:
    from .transport import RemoteTransport

logger = logging.getLogger(__name__)


class TokenManager:
    """Holds the current bearer token.

    Example:
        >>> tokens = TokenManager(store, "resilient_entities:token")
        >>> tokens.set_token("abc")
        >>> tokens.get_token()
        'abc'
    """

    def __init__(self, store: KeyValueStore, key: str = "resilient_entities:token") -> None:
        self.store = store
        self.key = key
        self._token: str | None = store.get(key) or None

    def get_token(self) -> str | None:
        return self._token

    def set_token(self, token: str | None) -> None:
        """Store a token, or clear it when given None/empty."""
        self._token = token or None
        if self._token:
            self.store.set(self.key, self._token)
        else:
            self.store.remove(self.key)

    def clear(self) -> None:
        self.set_token(None)

    def is_authenticated(self) -> bool:
        return bool(self._token)


class AuthAPI:
    """Login, logout and profile endpoints.

    Auth calls never fall back to local data; errors propagate.
    """

    def __init__(self, transport: RemoteTransport, tokens: TokenManager) -> None:
        self.transport = transport
        self.tokens = tokens

    async def login(self, email: str, password: str) -> Any:
        """Authenticate and store the returned token.

        Returns:
            The `user` object from the login response (None if absent)
        """
        data = await self.transport.request(
            "/auth/login",
            method="POST",
            json={"email": email, "password": password},
        )
        if isinstance(data, dict) and data.get("token"):
            self.tokens.set_token(data["token"])
            logger.info("Login succeeded; token stored")
        return data.get("user") if isinstance(data, dict) else None

    async def logout(self) -> None:
        self.tokens.clear()

    async def me(self) -> Any:
        return await self.transport.request("/auth/me")

    async def request_password_reset(self, email: str) -> Any:
        return await self.transport.request(
            "/auth/password-reset",
            method="POST",
            json={"email": email},
        )

    async def update_me(self, data: dict[str, Any]) -> Any:
        """Update the current profile; a returned token replaces the stored one."""
        payload = await self.transport.request("/auth/me", method="PUT", json=data)
        if not isinstance(payload, dict):
            return payload
        if payload.get("token"):
            self.tokens.set_token(payload["token"])
        user = payload.get("user")
        return user if user is not None else payload

    def get_token(self) -> str | None:
        return self.tokens.get_token()

    def is_authenticated(self) -> bool:
        return self.tokens.is_authenticated()
