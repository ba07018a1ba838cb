from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..common.pagination import Page
from ..core.enums import SessionState, SessionType
from .model import AttendanceSession, Location, StudentRecord


class SessionRepository(Protocol):
    def create_session(
        self,
        *,
        class_id: int,
        owner_id: int,
        session_type: SessionType,
        attendance_date: datetime,
        started_at: datetime,
        scheduled_for: Optional[datetime],
        location: Optional[Location],
        notes: Optional[str],
        records: Sequence[StudentRecord],
    ) -> Optional[int]:
        """Insert an in-progress session with its records.

        Returns None when the class already has an in-progress session.
        """

        raise NotImplementedError

    def get_by_id(self, session_id: int) -> Optional[AttendanceSession]:
        raise NotImplementedError

    def get_active_for_class(self, class_id: int) -> Optional[AttendanceSession]:
        raise NotImplementedError

    def list_for_owner(
        self,
        owner_id: int,
        *,
        class_id: Optional[int] = None,
        session_type: Optional[SessionType] = None,
        state: Optional[SessionState] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page[AttendanceSession]:
        """Newest first; records are not loaded."""

        raise NotImplementedError

    def list_ids_for_class(self, class_id: int) -> Sequence[int]:
        raise NotImplementedError

    def save_records(self, session_id: int, records: Sequence[StudentRecord]) -> bool:
        """Overwrite existing records and refresh totals, only while in progress."""

        raise NotImplementedError

    def delete_records(self, session_id: int, student_ids: Sequence[int]) -> int:
        """Delete records and refresh totals, only while in progress. Returns rows deleted."""

        raise NotImplementedError

    def finish(
        self,
        session_id: int,
        *,
        state: SessionState,
        finished_at: datetime,
        duration_minutes: Optional[int],
    ) -> bool:
        """Move an in-progress session to ``state``. False when it was not in progress."""

        raise NotImplementedError

    def update_session(
        self,
        session_id: int,
        *,
        attendance_date: datetime,
        scheduled_for: Optional[datetime],
        location: Optional[Location],
        notes: Optional[str],
        state: SessionState,
        finished_at: Optional[datetime],
        duration_minutes: Optional[int],
    ) -> bool:
        """Unguarded overwrite. False when another session of the class is already in progress."""

        raise NotImplementedError

    def delete_session(self, session_id: int) -> bool:
        raise NotImplementedError
