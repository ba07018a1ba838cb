from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..stats.model import CachedStats


@dataclass(frozen=True)
class User:
    """Domain entity: an account. Teachers and students are the same kind of user.

    Note: Plain data object, no DB access here.
    """

    user_id: int
    name: str
    mobile: str
    password_hash: str
    email: Optional[str] = None
    stats: CachedStats = field(default_factory=CachedStats)
    created_at: Optional[datetime] = None

    def public_dict(self) -> dict:
        return {
            "id": self.user_id,
            "name": self.name,
            "mobile": self.mobile,
            "email": self.email,
        }


@dataclass(frozen=True)
class ProfilePatch:
    """``None`` leaves a field untouched; an empty ``email`` clears it."""

    name: Optional[str] = None
    mobile: Optional[str] = None
    email: Optional[str] = None
