"""Small helpers shared by the Cartwise aggregates."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""

    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def new_id() -> str:
    return uuid4().hex


def normalize_key(value: str | None) -> str:
    """Case-insensitive, whitespace-trimmed comparison key for names and stores."""

    return (value or "").strip().casefold()


def is_positive(value: Optional[float]) -> bool:
    """True for finite numbers above zero; rejects None, NaN and infinities."""

    return value is not None and math.isfinite(value) and value > 0


__all__ = ["utc_now", "ensure_utc", "new_id", "normalize_key", "is_positive"]
