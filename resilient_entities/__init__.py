"""
Resilient Entities

Client library for a multi-tenant warehouse/ERP backend that keeps working
when the network blips.

Provides:
- Per-entity repositories (list, filter, get, create, update, delete)
- Write-through fallback mirror persisted on disk
- Offline writes with temporary ids, offline reads from the mirror
- File uploads with a local data-URL fallback
- Bearer token handling (cleared on HTTP 401)

Usage:

    >>> from resilient_entities import EntityClient, ClientConfig
    >>> config = ClientConfig(api_url="https://erp.example.com")
    >>> async with EntityClient(config) as client:
    ...     await client.auth.login("ops@example.com", "secret")
    ...     open_orders = await client.entities.SalesOrder.filter(
    ...         {"status": ["open", "picking"]}, order_by="-created_date"
    ...     )
    ...     # Succeeds offline too: stored locally under a tmp_ id
    ...     await client.entities.ShiftLog.create({"note": "Dock 3 closed"})
"""

from .auth import AuthAPI, TokenManager
from .client import EntityClient
from .config import ClientConfig, StorageBackend, normalize_api_base
from .exceptions import (
    ConfigurationError,
    EntityClientError,
    InvalidFileDataError,
    RemoteUnavailableError,
    TransportError,
    UploadFallbackError,
)
from .query import Condition, ConditionKind, Predicate, filter_records, sort_records, values_equal
from .repository import DEFAULT_ENTITIES, EntityRegistry, EntityRepository
from .storage import (
    FallbackMirror,
    FileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    NullKeyValueStore,
    UploadsMap,
)
from .transport import RemoteTransport
from .uploads import UploadService

__all__ = [
    # Client
    "EntityClient",
    "ClientConfig",
    "StorageBackend",
    "normalize_api_base",
    # Components
    "RemoteTransport",
    "TokenManager",
    "AuthAPI",
    "EntityRepository",
    "EntityRegistry",
    "DEFAULT_ENTITIES",
    "UploadService",
    # Storage
    "KeyValueStore",
    "FileKeyValueStore",
    "MemoryKeyValueStore",
    "NullKeyValueStore",
    "FallbackMirror",
    "UploadsMap",
    # Query
    "values_equal",
    "filter_records",
    "sort_records",
    "Predicate",
    "Condition",
    "ConditionKind",
    # Exceptions
    "EntityClientError",
    "TransportError",
    "RemoteUnavailableError",
    "InvalidFileDataError",
    "UploadFallbackError",
    "ConfigurationError",
]

__version__ = "0.1.0"
