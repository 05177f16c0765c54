"""ID and timestamp helpers for locally created records.

Centralizes the local ID format so callers never construct one by hand.

Fallback IDs: tmp_{base36 epoch millis}{8 random base36 chars}
Upload IDs: upload_{base36 epoch millis}{8 random base36 chars}

Backend IDs may be numeric; all comparisons go through `same_id`, which
compares string forms.
"""

from __future__ import annotations

import secrets
import time
from datetime import UTC, datetime
from typing import Any

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_RANDOM_LENGTH = 8

FALLBACK_PREFIX = "tmp"
UPLOAD_PREFIX = "upload"


def to_base36(value: int) -> str:
    """Render a non-negative integer in lower-case base 36."""
    if value < 0:
        raise ValueError(f"Cannot encode negative value: {value}")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_local_id(prefix: str = FALLBACK_PREFIX) -> str:
    """Generate a client-side identifier: time plus 8 random base36 chars."""
    stamp = to_base36(time.time_ns() // 1_000_000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(_RANDOM_LENGTH))
    return f"{prefix}_{stamp}{suffix}"


def generate_fallback_id() -> str:
    """Generate a temporary record ID for a write made against the mirror."""
    return generate_local_id(FALLBACK_PREFIX)


def is_fallback_id(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(f"{FALLBACK_PREFIX}_")


def same_id(left: Any, right: Any) -> bool:
    """Compare two record IDs by their string form."""
    return str(left) == str(right)


def utc_now_iso() -> str:
    """Current UTC time as ISO 8601 with milliseconds, e.g. 2026-10-19T08:00:00.000Z."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
