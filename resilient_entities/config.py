"""
Client configuration.

Configuration can be provided directly, via environment variables, or via
a YAML settings file.

Environment Variables:
    ENTITY_CLIENT_API_URL: Backend URL (falls back to API_URL)
    ENTITY_CLIENT_STORAGE: Persistence backend: file, memory or none
    ENTITY_CLIENT_STORAGE_PATH: JSON file used by the file backend
    ENTITY_CLIENT_REQUEST_TIMEOUT: Total request timeout in seconds
    ENTITY_CLIENT_SERIALIZE_WRITES: Serialize writes per entity (default: true)
    ENTITY_CLIENT_MAX_RECORDS: Cap on mirrored records per entity
    ENTITY_CLIENT_MAX_UPLOADS: Cap on locally stored uploads

Settings file (`client:` section):

```yaml
client:
  api_url: "https://erp.example.com"
  storage_backend: file
  storage_path: "~/.resilient_entities/storage.json"
  max_records_per_entity: 5000
```
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:3000/api"


class StorageBackend(Enum):
    """Persistence surface backing the mirror, uploads map and token.

    FILE: JSON document on disk (survives restarts)
    MEMORY: Process memory only
    NONE: No persistence surface; fallback is unavailable
    """

    FILE = "file"
    MEMORY = "memory"
    NONE = "none"


def normalize_api_base(url: str | None) -> str:
    """Normalize a backend URL so it always ends in '/api'.

    >>> normalize_api_base("https://erp.example.com/")
    'https://erp.example.com/api'
    >>> normalize_api_base("https://erp.example.com/api")
    'https://erp.example.com/api'
    """
    if not url or not url.strip():
        return DEFAULT_API_URL

    base = url.strip().rstrip("/")
    if not base.endswith("/api"):
        base = f"{base}/api"
    return base


@dataclass
class ClientConfig:
    """Configuration for the entity client.

    Attributes:
        api_url: Backend base URL, normalized to end in '/api'
        storage_backend: Persistence surface for fallback data
        storage_path: File used when storage_backend is FILE
        mirror_key: Storage key of the serialized entity mirror
        uploads_key: Storage key of the serialized uploads map
        token_key: Storage key of the bearer token
        request_timeout: Total request timeout in seconds (None = no timeout)
        serialize_writes: Run writes against the same entity one at a time
        max_records_per_entity: Mirror cap per entity (None = unbounded)
        max_uploads: Uploads map cap (None = unbounded)
        default_mime_type: MIME type used when none can be inferred
    """

    api_url: str = DEFAULT_API_URL
    storage_backend: StorageBackend = StorageBackend.FILE
    storage_path: str | None = None

    # Storage keys
    mirror_key: str = "resilient_entities:fallback"
    uploads_key: str = "resilient_entities:uploads"
    token_key: str = "resilient_entities:token"

    # Transport
    request_timeout: float | None = None

    # Mirror behaviour
    serialize_writes: bool = True
    max_records_per_entity: int | None = None
    max_uploads: int | None = None

    default_mime_type: str = "application/octet-stream"

    def __post_init__(self) -> None:
        self.api_url = normalize_api_base(self.api_url)
        if isinstance(self.storage_backend, str):
            self.storage_backend = _parse_backend(self.storage_backend)
        for name in ("max_records_per_entity", "max_uploads"):
            value = getattr(self, name)
            if value is not None and value < 1:
                raise ConfigurationError(name, "must be >= 1", str(value))
        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ConfigurationError("request_timeout", "must be > 0", str(self.request_timeout))

    @property
    def resolved_storage_path(self) -> Path:
        """Storage file path, defaulting to ~/.resilient_entities/storage.json."""
        if self.storage_path:
            return Path(self.storage_path).expanduser()
        return Path.home() / ".resilient_entities" / "storage.json"

    @classmethod
    def from_environment(cls, **overrides: Any) -> ClientConfig:
        """Create configuration from environment variables.

        Args:
            **overrides: Values that take precedence over the environment

        Returns:
            ClientConfig populated from environment variables
        """
        values = _environment_values()
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_file(cls, path: Path | str, **overrides: Any) -> ClientConfig:
        """Create configuration from a YAML settings file.

        Environment variables are layered over the file, and explicit
        overrides over both. A missing or unreadable file yields defaults.
        """
        values = _load_yaml_section(Path(path).expanduser())
        values.update(_environment_values())
        values.update(overrides)
        return cls(**values)


def _parse_backend(value: str) -> StorageBackend:
    try:
        return StorageBackend(value.strip().lower())
    except ValueError:
        raise ConfigurationError(
            "storage_backend", "expected one of: file, memory, none", value
        ) from None


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_optional_int(name: str, value: str) -> int | None:
    if not value.strip():
        return None
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(name, "must be an integer", value) from None


def _environment_values() -> dict[str, Any]:
    """Collect configuration values present in the environment."""
    env = os.environ
    values: dict[str, Any] = {}

    api_url = env.get("ENTITY_CLIENT_API_URL") or env.get("API_URL")
    if api_url:
        values["api_url"] = api_url
    if "ENTITY_CLIENT_STORAGE" in env:
        values["storage_backend"] = env["ENTITY_CLIENT_STORAGE"]
    if "ENTITY_CLIENT_STORAGE_PATH" in env:
        values["storage_path"] = env["ENTITY_CLIENT_STORAGE_PATH"]
    if "ENTITY_CLIENT_REQUEST_TIMEOUT" in env:
        raw = env["ENTITY_CLIENT_REQUEST_TIMEOUT"]
        try:
            values["request_timeout"] = float(raw) if raw.strip() else None
        except ValueError:
            raise ConfigurationError("request_timeout", "must be a number", raw) from None
    if "ENTITY_CLIENT_SERIALIZE_WRITES" in env:
        values["serialize_writes"] = _parse_bool(env["ENTITY_CLIENT_SERIALIZE_WRITES"])
    if "ENTITY_CLIENT_MAX_RECORDS" in env:
        values["max_records_per_entity"] = _parse_optional_int(
            "max_records_per_entity", env["ENTITY_CLIENT_MAX_RECORDS"]
        )
    if "ENTITY_CLIENT_MAX_UPLOADS" in env:
        values["max_uploads"] = _parse_optional_int("max_uploads", env["ENTITY_CLIENT_MAX_UPLOADS"])

    return values


def _load_yaml_section(config_path: Path) -> dict[str, Any]:
    """Load the `client:` section of a YAML settings file."""
    if not config_path.exists():
        return {}

    try:
        content = yaml.safe_load(config_path.read_text()) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Ignoring unreadable settings file {config_path}: {e}")
        return {}

    section = content.get("client", {}) if isinstance(content, dict) else {}
    if not isinstance(section, dict):
        return {}

    known = {f.name for f in fields(ClientConfig)}
    return {key: value for key, value in section.items() if key in known}
