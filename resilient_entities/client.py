"""
Entity client context.

One EntityClient per process or user session owns every piece of shared
state: the key/value store, the bearer token, the HTTP session, the
fallback mirror and the uploads map. Repositories built from the same
client share all of it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import aiohttp

from .auth import AuthAPI, TokenManager
from .config import ClientConfig
from .repository import EntityRegistry, EntityRepository
from .storage.kv import KeyValueStore, create_store
from .storage.mirror import FallbackMirror
from .storage.uploads import UploadsMap
from .transport import RemoteTransport
from .uploads import UploadInput, UploadService

logger = logging.getLogger(__name__)


class EntityClient:
    """Resilient client for the warehouse backend.

    Usage:

        >>> async with EntityClient.from_environment() as client:
        ...     await client.auth.login("ops@example.com", "secret")
        ...     bins = await client.entities.Bin.filter({"zone_id": "z1"}, "code")
        ...     await client.entities.Material.create({"name": "Copper"})
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        store: KeyValueStore | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client configuration (defaults to ClientConfig())
            store: Key/value store; built from config when omitted
            session: Optional externally owned aiohttp session
        """
        self.config = config or ClientConfig()
        self.store = store if store is not None else create_store(self.config)

        self.tokens = TokenManager(self.store, self.config.token_key)
        self.transport = RemoteTransport(
            self.config.api_url,
            self.tokens,
            request_timeout=self.config.request_timeout,
            session=session,
        )
        self.mirror = FallbackMirror(
            self.store,
            key=self.config.mirror_key,
            max_records_per_entity=self.config.max_records_per_entity,
        )
        self.uploads = UploadsMap(
            self.store,
            key=self.config.uploads_key,
            max_entries=self.config.max_uploads,
        )

        self.auth = AuthAPI(self.transport, self.tokens)
        self.files = UploadService(
            self.transport,
            self.uploads,
            default_mime_type=self.config.default_mime_type,
        )
        self.entities = EntityRegistry(
            self.transport,
            self.mirror,
            serialize_writes=self.config.serialize_writes,
        )

    @classmethod
    def from_config(cls, config: ClientConfig, **kwargs: Any) -> EntityClient:
        return cls(config, **kwargs)

    @classmethod
    def from_environment(cls, **overrides: Any) -> EntityClient:
        return cls(ClientConfig.from_environment(**overrides))

    @classmethod
    def from_file(cls, path: Path | str, **overrides: Any) -> EntityClient:
        return cls(ClientConfig.from_file(path, **overrides))

    async def __aenter__(self) -> EntityClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self.transport.close()

    def entity(self, name: str) -> EntityRepository:
        """Repository for an entity name (catalogue aliases resolved)."""
        return self.entities.repository(name)

    async def upload(
        self,
        file: UploadInput,
        file_name: str | None = None,
        mime_type: str | None = None,
    ) -> dict[str, Any]:
        return await self.files.upload(file, file_name=file_name, mime_type=mime_type)
