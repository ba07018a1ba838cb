from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..core.exceptions import ValidationError


def parse_iso_datetime(value, field_name: str) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"{field_name} must be an ISO-8601 date/time")
    # Everything is stored as naive UTC; see utc_now.
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - (parsed.utcoffset() or timedelta(0))
    return parsed


def utc_now() -> datetime:
    """Naive UTC timestamp, the single time base of every stored datetime.

    Services take it as their default ``clock``.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def minutes_between(start: datetime, end: datetime) -> int:
    return round_half_up((end - start).total_seconds() / 60)


def percentage(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return round_half_up(part / whole * 100)
