from __future__ import annotations

from datetime import datetime
from typing import Collection, Mapping, Optional, Protocol, Sequence

from ..core.enums import EnrollmentState
from .model import Classroom, EnrollmentEntry


class ClassRepository(Protocol):
    def create_class(self, *, class_name: str, subject: str, owner_id: int) -> int:
        raise NotImplementedError

    def get_by_id(self, class_id: int) -> Optional[Classroom]:
        """Load a class together with all of its enrollment entries."""

        raise NotImplementedError

    def list_for_user(self, user_id: int) -> Sequence[Classroom]:
        """Classes the user owns or holds an entry in, newest first."""

        raise NotImplementedError

    def list_for_student(self, student_id: int, *, state: EnrollmentState) -> Sequence[Classroom]:
        raise NotImplementedError

    def update_class(self, class_id: int, *, class_name: str, subject: str) -> bool:
        raise NotImplementedError

    def delete_class(self, class_id: int) -> bool:
        """Delete the class row. Entries go with it."""

        raise NotImplementedError

    # Enrollment entries
    def get_entry(self, class_id: int, student_id: int) -> Optional[EnrollmentEntry]:
        raise NotImplementedError

    def list_entries(self, class_id: int, *, state: Optional[EnrollmentState] = None) -> Sequence[EnrollmentEntry]:
        raise NotImplementedError

    def add_entry(
        self,
        class_id: int,
        student_id: int,
        *,
        state: EnrollmentState,
        max_entries: Optional[int] = None,
    ) -> bool:
        """Insert a new entry. Returns False when the pair already has one.

        With ``max_entries`` the class size is checked in the same transaction as
        the insert and ``LimitExceededError`` is raised when the class is full.
        """

        raise NotImplementedError

    def transition_entry(
        self,
        class_id: int,
        student_id: int,
        *,
        from_state: EnrollmentState,
        to_state: EnrollmentState,
        enrolled_at: Optional[datetime] = None,
    ) -> bool:
        """Compare-and-set the entry state. Returns False when the stored state differs."""

        raise NotImplementedError

    def delete_entry(
        self,
        class_id: int,
        student_id: int,
        *,
        states: Optional[Collection[EnrollmentState]] = None,
    ) -> bool:
        """Delete an entry, optionally only when it is in one of ``states``."""

        raise NotImplementedError

    def count_accepted_for_students(self, student_ids: Sequence[int]) -> Mapping[int, int]:
        raise NotImplementedError
