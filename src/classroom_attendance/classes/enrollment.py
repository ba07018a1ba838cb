from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional, Sequence

from ..attendance.repository import SessionRepository
from ..common.datetime_utils import utc_now
from ..core.constants import MAX_CLASS_ENTRIES
from ..core.enums import EnrollmentState
from ..core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..history.repository import HistoryRepository
from ..users.repository import UserRepository
from .model import Classroom, EnrollmentCounts, EnrollmentEntry
from .repository import ClassRepository

if TYPE_CHECKING:
    from ..stats.aggregator import StatsAggregator

logger = logging.getLogger(__name__)


class EnrollmentLedger:
    """Enrollment state machine for student/class pairs.

    ::

        (none) --invite(teacher)--> pending --accept(student)--> accepted
        (none) --request(student)--> requested --approve(teacher)--> accepted
        pending --reject(student)--> (none)
        requested --deny(teacher)--> (none)
        any --remove(teacher)--> (none)

    Teachers act only on classes they own; students act only on their own entry.
    """

    def __init__(
        self,
        classes: ClassRepository,
        users: UserRepository,
        sessions: SessionRepository,
        history: HistoryRepository,
        stats: Optional["StatsAggregator"] = None,
        *,
        max_entries: int = MAX_CLASS_ENTRIES,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._classes = classes
        self._users = users
        self._sessions = sessions
        self._history = history
        self._stats = stats
        self._max_entries = int(max_entries)
        self._clock = clock

    # -------- helpers --------
    def _get_class(self, class_id: int) -> Classroom:
        klass = self._classes.get_by_id(int(class_id))
        if not klass:
            raise NotFoundError("Class not found")
        return klass

    def _get_owned_class(self, class_id: int, teacher_id: int, action: str) -> Classroom:
        klass = self._get_class(class_id)
        if not klass.is_owner(teacher_id):
            raise AuthorizationError(f"Only the class creator can {action}")
        return klass

    def _get_entry(self, class_id: int, student_id: int) -> EnrollmentEntry:
        entry = self._classes.get_entry(int(class_id), int(student_id))
        if not entry:
            raise NotFoundError("Student is not enrolled in this class")
        return entry

    def _add(self, class_id: int, student_id: int, state: EnrollmentState) -> EnrollmentEntry:
        if self._classes.get_entry(int(class_id), int(student_id)):
            raise ConflictError("Student already has an enrollment in this class")
        if not self._classes.add_entry(int(class_id), int(student_id), state=state, max_entries=self._max_entries):
            raise ConflictError("Student already has an enrollment in this class")
        logger.info("Class %s: student %s is now %s", class_id, student_id, state.value)
        return EnrollmentEntry(class_id=int(class_id), student_id=int(student_id), state=state)

    def _promote(self, entry: EnrollmentEntry, from_state: EnrollmentState) -> EnrollmentEntry:
        enrolled_at = self._clock()
        ok = self._classes.transition_entry(
            entry.class_id,
            entry.student_id,
            from_state=from_state,
            to_state=EnrollmentState.ACCEPTED,
            enrolled_at=enrolled_at,
        )
        if not ok:
            raise InvalidStateError("Enrollment changed concurrently, please retry")
        logger.info("Class %s: student %s accepted", entry.class_id, entry.student_id)
        self._refresh_stats(entry.student_id, reason="enrollment accepted")
        return EnrollmentEntry(
            class_id=entry.class_id,
            student_id=entry.student_id,
            state=EnrollmentState.ACCEPTED,
            enrolled_at=enrolled_at,
            created_at=entry.created_at,
        )

    def _drop(self, entry: EnrollmentEntry, states: Sequence[EnrollmentState]) -> None:
        if not self._classes.delete_entry(entry.class_id, entry.student_id, states=states):
            raise InvalidStateError("Enrollment changed concurrently, please retry")

    def _refresh_stats(self, student_id: int, *, reason: str) -> None:
        if self._stats is not None:
            self._stats.refresh_quietly([student_id], reason=reason)

    def _prune_active_session(self, class_id: int, student_id: int) -> None:
        """Drop the student's record from the class's in-progress session, if any.

        History of finished sessions is kept for audit.
        """

        try:
            active = self._sessions.get_active_for_class(int(class_id))
            if not active or active.record_for(student_id) is None:
                return
            self._sessions.delete_records(active.session_id, [int(student_id)])
            self._history.delete_for_session_students(active.session_id, [int(student_id)])
        except Exception:
            logger.exception("Failed to prune student %s from active session of class %s", student_id, class_id)

    # -------- teacher side --------
    def invite(self, class_id: int, teacher_id: int, student_id: int) -> EnrollmentEntry:
        klass = self._get_owned_class(class_id, teacher_id, "add students")
        if not self._users.get_by_id(int(student_id)):
            raise NotFoundError("Student not found")
        if klass.is_owner(student_id):
            raise ValidationError("You cannot enroll in a class you created")
        return self._add(klass.class_id, int(student_id), EnrollmentState.PENDING)

    def approve(self, class_id: int, teacher_id: int, student_id: int) -> EnrollmentEntry:
        self._get_owned_class(class_id, teacher_id, "approve join requests")
        entry = self._get_entry(class_id, student_id)
        if entry.state != EnrollmentState.REQUESTED:
            raise InvalidStateError(f"Cannot approve an enrollment that is {entry.state.value}")
        return self._promote(entry, EnrollmentState.REQUESTED)

    def deny(self, class_id: int, teacher_id: int, student_id: int) -> None:
        self._get_owned_class(class_id, teacher_id, "deny join requests")
        entry = self._get_entry(class_id, student_id)
        if entry.state != EnrollmentState.REQUESTED:
            raise InvalidStateError(f"Cannot deny an enrollment that is {entry.state.value}")
        self._drop(entry, [EnrollmentState.REQUESTED])
        logger.info("Class %s: join request of student %s denied", class_id, student_id)

    def remove(self, class_id: int, teacher_id: int, student_id: int) -> None:
        self._get_owned_class(class_id, teacher_id, "remove students")
        entry = self._get_entry(class_id, student_id)
        if not self._classes.delete_entry(entry.class_id, entry.student_id):
            raise NotFoundError("Student is not enrolled in this class")
        logger.info("Class %s: student %s removed (was %s)", class_id, student_id, entry.state.value)

        if entry.state == EnrollmentState.ACCEPTED:
            self._prune_active_session(entry.class_id, entry.student_id)
            self._refresh_stats(entry.student_id, reason="removal from class")

    def list_requests(self, class_id: int, teacher_id: int) -> Sequence[EnrollmentEntry]:
        self._get_owned_class(class_id, teacher_id, "view join requests")
        return self._classes.list_entries(int(class_id), state=EnrollmentState.REQUESTED)

    def counts(self, class_id: int) -> EnrollmentCounts:
        return EnrollmentCounts.from_entries(self._classes.list_entries(int(class_id)))

    # -------- student side --------
    def request(self, class_id: int, student_id: int) -> EnrollmentEntry:
        klass = self._get_class(class_id)
        if klass.is_owner(student_id):
            raise AuthorizationError("You cannot join a class you created")
        return self._add(klass.class_id, int(student_id), EnrollmentState.REQUESTED)

    def accept(self, class_id: int, student_id: int) -> EnrollmentEntry:
        entry = self._get_entry(class_id, student_id)
        if entry.state != EnrollmentState.PENDING:
            raise InvalidStateError(f"Cannot accept an enrollment that is {entry.state.value}")
        return self._promote(entry, EnrollmentState.PENDING)

    def reject(self, class_id: int, student_id: int) -> None:
        entry = self._get_entry(class_id, student_id)
        if entry.state != EnrollmentState.PENDING:
            raise InvalidStateError(f"Cannot reject an enrollment that is {entry.state.value}")
        self._drop(entry, [EnrollmentState.PENDING])
        logger.info("Class %s: invitation of student %s rejected", class_id, student_id)

    def list_invitations(self, student_id: int) -> Sequence[Classroom]:
        return self._classes.list_for_student(int(student_id), state=EnrollmentState.PENDING)
