"""
Custom exceptions for the entity client.

Transport failures carry the HTTP status and raw payload so callers can
inspect what the backend said. Write paths absorb these errors into the
fallback mirror; read paths re-raise them when nothing is mirrored.
"""

from __future__ import annotations

from typing import Any


class EntityClientError(Exception):
    """Base exception for all entity client errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransportError(EntityClientError):
    """Raised when the backend answers with a non-2xx status."""

    def __init__(self, message: str, status: int, payload: Any = None):
        super().__init__(message, {"status": status})
        self.status = status
        self.payload = payload

    @property
    def is_unauthorized(self) -> bool:
        return self.status == 401


class RemoteUnavailableError(EntityClientError):
    """Raised when the backend cannot be reached at all.

    Note: covers DNS failures, refused connections and dropped sockets,
    i.e. anything the HTTP stack reports before a status line arrives.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class InvalidFileDataError(EntityClientError):
    """Raised when upload content cannot be decoded into bytes."""

    def __init__(self, reason: str | None = None):
        details = {}
        if reason:
            details["reason"] = reason
        super().__init__("Invalid file data", details)
        self.reason = reason


class UploadFallbackError(EntityClientError):
    """Raised when both the remote upload and the local fallback fail."""

    def __init__(self, cause: Exception, remote_error: Exception | None = None):
        details = {"cause": str(cause)}
        if remote_error:
            details["remote_error"] = str(remote_error)
        super().__init__(f"Upload fallback failed: {cause}", details)
        self.cause = cause
        self.remote_error = remote_error


class ConfigurationError(EntityClientError):
    """Raised when client configuration is invalid."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Invalid configuration for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value
