"""
Core Utilities.

Shared helpers used across the store.
"""

import json
from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    """
    Return current UTC time as timezone-naive datetime.

    All stored timestamps are timezone-naive and assumed to be UTC.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_iso(value: datetime | None = None) -> str:
    """ISO 8601 string with a trailing Z for a naive UTC datetime."""
    value = value or utc_now()
    return value.isoformat(timespec="milliseconds") + "Z"


def dumps_json(value: Any) -> str:
    """Serialize a JSON value compactly, raising TypeError/ValueError on failure."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
