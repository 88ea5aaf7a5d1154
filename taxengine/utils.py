"""
Shared helpers for timestamps, identifiers and blank values.
"""

import secrets
import uuid
from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def new_uuid() -> str:
    return str(uuid.uuid4())


def generate_pack_ref(now: datetime = None) -> str:
    """Human-readable submission reference, e.g. PACK-2025-3F9A1C."""
    now = now or utc_now()
    return f"PACK-{now.year}-{secrets.token_hex(3).upper()}"


def blank_to_none(value: Any) -> Any:
    """Empty strings are stored as NULL."""
    if isinstance(value, str) and not value.strip():
        return None
    return value
