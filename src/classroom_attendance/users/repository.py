from __future__ import annotations

from typing import Mapping, Optional, Protocol

from ..common.pagination import Page
from ..stats.model import CachedStats
from .model import User


class UserRepository(Protocol):
    """Repository interface for User.

    Note (DIP): services depend on this interface, never on a concrete DB.
    """

    def get_by_id(self, user_id: int) -> Optional[User]:
        raise NotImplementedError

    def get_by_mobile(self, mobile: str) -> Optional[User]:
        raise NotImplementedError

    def create_user(self, *, name: str, mobile: str, email: Optional[str], password_hash: str) -> int:
        raise NotImplementedError

    def update_profile(self, user_id: int, *, name: str, mobile: str, email: Optional[str]) -> bool:
        raise NotImplementedError

    def search_available(
        self,
        *,
        class_id: int,
        exclude_id: int,
        search: Optional[str],
        page: int,
        limit: int,
    ) -> Page[User]:
        """Users with no entry in ``class_id``, newest first, optionally matching ``search``."""

        raise NotImplementedError

    def save_stats_many(self, stats_by_user: Mapping[int, CachedStats]) -> int:
        """Write several snapshots in one transaction. Returns rows touched."""

        raise NotImplementedError
