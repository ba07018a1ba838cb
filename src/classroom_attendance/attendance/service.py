from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Iterable, Mapping, Optional, Sequence, Union

from ..classes.repository import ClassRepository
from ..common.datetime_utils import minutes_between, utc_now
from ..common.pagination import Page, normalize_page
from ..common.validators import optional_text, require_choice, require_positive_id
from ..core.enums import AttendanceStatus, SessionState, SessionType
from ..core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..history.model import HistoryRecord
from ..history.repository import HistoryRepository
from .model import AttendanceSession, Location, RemovalResult, SessionPatch, StudentMark, StudentRecord
from .repository import SessionRepository
from .roster import SessionRoster

if TYPE_CHECKING:
    from ..stats.aggregator import StatsAggregator

logger = logging.getLogger(__name__)

MarkInput = Union[StudentMark, Mapping]


def _coerce_mark(item: MarkInput) -> StudentMark:
    if isinstance(item, StudentMark):
        return StudentMark(
            student_id=require_positive_id(item.student_id, "Student ID"),
            status=require_choice(item.status, AttendanceStatus, "Status"),
            notes=optional_text(item.notes),
        )
    if not isinstance(item, Mapping):
        raise ValidationError("Each update must be an object with studentId and status")
    student_id = item.get("studentId", item.get("student_id"))
    if student_id in (None, ""):
        raise ValidationError("Student ID is required")
    return StudentMark(
        student_id=require_positive_id(student_id, "Student ID"),
        status=require_choice(item.get("status"), AttendanceStatus, "Status"),
        notes=optional_text(item.get("notes")),
    )


class AttendanceSessionService:
    """Use case: the attendance session state machine.

    ``in-progress`` is the only live state; ``completed`` and ``cancelled`` are
    terminal for the guarded operations. ``update`` is the one exception and may
    force any state.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        classes: ClassRepository,
        history: HistoryRepository,
        stats: Optional["StatsAggregator"] = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._sessions = sessions
        self._classes = classes
        self._history = history
        self._stats = stats
        self._clock = clock

    # -------- helpers --------
    def _get(self, session_id: int) -> AttendanceSession:
        session = self._sessions.get_by_id(int(session_id))
        if not session:
            raise NotFoundError("Attendance not found")
        return session

    def _get_owned(self, session_id: int, teacher_id: int, action: str) -> AttendanceSession:
        session = self._get(session_id)
        if not session.is_owner(teacher_id):
            raise AuthorizationError(f"Only the class creator can {action}")
        return session

    @staticmethod
    def _require_in_progress(session: AttendanceSession, action: str) -> None:
        if not session.is_in_progress:
            raise ConflictError(f"Cannot {action} an attendance that is {session.state.value}")

    def _mirror(self, session: AttendanceSession, records: Iterable[StudentRecord]) -> None:
        rows = [
            HistoryRecord(
                student_id=r.student_id,
                session_id=session.session_id,
                class_id=session.class_id,
                status=r.status,
                marked_at=r.marked_at,
                notes=r.notes,
            )
            for r in records
        ]
        if not rows:
            return
        try:
            self._history.upsert_many(rows)
        except Exception:
            logger.exception("Failed to mirror %d record(s) of attendance %s into history", len(rows), session.session_id)

    def _forget(self, session_id: int, student_ids: Sequence[int]) -> None:
        try:
            self._history.delete_for_session_students(int(session_id), list(student_ids))
        except Exception:
            logger.exception("Failed to delete history of attendance %s for %s", session_id, list(student_ids))

    def _finalize(self, session_id: int) -> AttendanceSession:
        """History snapshot of every record, then a bulk stats refresh."""

        session = self._get(session_id)
        self._mirror(session, session.records)
        if self._stats is not None:
            self._stats.refresh_quietly(session.student_ids(), reason=f"attendance {session.session_id} completion")
        return session

    # -------- lifecycle --------
    def open(
        self,
        *,
        class_id: int,
        teacher_id: int,
        session_type: Union[SessionType, str] = SessionType.QUICK,
        scheduled_for: Optional[datetime] = None,
        attendance_date: Optional[datetime] = None,
        location: Optional[Location] = None,
        notes: Optional[str] = None,
        now: datetime | None = None,
    ) -> AttendanceSession:
        session_type = require_choice(session_type or SessionType.QUICK, SessionType, "Attendance type")
        class_id = require_positive_id(class_id, "Class ID")

        klass = self._classes.get_by_id(class_id)
        if not klass:
            raise NotFoundError("Class not found")
        if not klass.is_owner(teacher_id):
            raise AuthorizationError("Only the class creator can take attendance")

        if self._sessions.get_active_for_class(class_id):
            raise ConflictError("This class already has an attendance in progress")

        counts = klass.counts()
        if counts.pending > 0:
            raise ValidationError(
                f"Cannot take attendance while {counts.pending} student(s) have pending invitations"
            )
        if counts.accepted == 0:
            raise ValidationError("Cannot take attendance for a class with no accepted students")
        if session_type == SessionType.SCHEDULED and not scheduled_for:
            raise ValidationError("Scheduled attendance requires a scheduledFor date")

        now = now or self._clock()
        roster = SessionRoster.snapshot(klass.accepted_student_ids())
        session_id = self._sessions.create_session(
            class_id=class_id,
            owner_id=int(teacher_id),
            session_type=session_type,
            attendance_date=attendance_date or now,
            started_at=now,
            scheduled_for=scheduled_for if session_type == SessionType.SCHEDULED else None,
            location=location,
            notes=optional_text(notes),
            records=roster.records,
        )
        if session_id is None:
            raise ConflictError("This class already has an attendance in progress")

        logger.info(
            "Attendance %s opened for class %s (%s, %d student(s))",
            session_id,
            class_id,
            session_type.value,
            len(roster),
        )
        return self._get(session_id)

    def mark(
        self,
        session_id: int,
        teacher_id: int,
        student_id: int,
        status: Union[AttendanceStatus, str],
        notes: Optional[str] = None,
        *,
        now: datetime | None = None,
    ) -> AttendanceSession:
        mark = _coerce_mark(StudentMark(student_id=student_id, status=status, notes=notes))
        return self._apply_marks(session_id, teacher_id, [mark], now=now)

    def mark_bulk(
        self,
        session_id: int,
        teacher_id: int,
        updates: Sequence[MarkInput],
        *,
        now: datetime | None = None,
    ) -> AttendanceSession:
        if not isinstance(updates, (list, tuple)) or not updates:
            raise ValidationError("Updates must be a non-empty list")
        marks = [_coerce_mark(u) for u in updates]
        return self._apply_marks(session_id, teacher_id, marks, now=now)

    def _apply_marks(
        self,
        session_id: int,
        teacher_id: int,
        marks: Sequence[StudentMark],
        *,
        now: datetime | None,
    ) -> AttendanceSession:
        session = self._get_owned(session_id, teacher_id, "mark attendance")
        self._require_in_progress(session, "mark")

        roster = SessionRoster(session.records)
        changed = roster.mark_many(marks, at=now or self._clock())
        if not self._sessions.save_records(session.session_id, changed):
            raise ConflictError("Attendance is no longer in progress")

        self._mirror(session, changed)
        logger.debug("Attendance %s: marked %d student(s)", session.session_id, len(changed))
        return self._get(session.session_id)

    def remove_student(self, session_id: int, teacher_id: int, student_id: int) -> AttendanceSession:
        self.remove_students(session_id, teacher_id, [student_id])
        return self._get(session_id)

    def remove_students(self, session_id: int, teacher_id: int, student_ids: Sequence[int]) -> RemovalResult:
        if not isinstance(student_ids, (list, tuple)) or not student_ids:
            raise ValidationError("Student IDs must be a non-empty list")
        ids = [require_positive_id(sid, "Student ID") for sid in student_ids]

        session = self._get_owned(session_id, teacher_id, "remove students")
        self._require_in_progress(session, "remove students from")

        result = SessionRoster(session.records).remove(ids)
        if result.removed:
            deleted = self._sessions.delete_records(session.session_id, list(result.removed))
            if deleted == 0 and not self._get(session.session_id).is_in_progress:
                raise ConflictError("Attendance is no longer in progress")
            self._forget(session.session_id, result.removed)

        logger.info(
            "Attendance %s: removed %d student(s), skipped %d",
            session.session_id,
            len(result.removed),
            len(result.skipped),
        )
        return result

    def complete(self, session_id: int, teacher_id: int, *, now: datetime | None = None) -> AttendanceSession:
        session = self._get_owned(session_id, teacher_id, "complete attendance")
        self._require_in_progress(session, "complete")

        finished_at = now or self._clock()
        ok = self._sessions.finish(
            session.session_id,
            state=SessionState.COMPLETED,
            finished_at=finished_at,
            duration_minutes=minutes_between(session.started_at, finished_at),
        )
        if not ok:
            raise ConflictError("Attendance is no longer in progress")

        logger.info("Attendance %s completed", session.session_id)
        return self._finalize(session.session_id)

    def cancel(self, session_id: int, teacher_id: int, *, now: datetime | None = None) -> AttendanceSession:
        session = self._get_owned(session_id, teacher_id, "cancel attendance")
        self._require_in_progress(session, "cancel")

        ok = self._sessions.finish(
            session.session_id,
            state=SessionState.CANCELLED,
            finished_at=now or self._clock(),
            duration_minutes=None,
        )
        if not ok:
            raise ConflictError("Attendance is no longer in progress")

        logger.info("Attendance %s cancelled", session.session_id)
        return self._get(session.session_id)

    def update(
        self,
        session_id: int,
        teacher_id: int,
        patch: SessionPatch,
        *,
        now: datetime | None = None,
    ) -> AttendanceSession:
        session = self._get_owned(session_id, teacher_id, "update attendance")

        if patch.scheduled_for is not None and session.session_type != SessionType.SCHEDULED:
            raise ValidationError("scheduledFor can only be set on scheduled attendance")

        state = require_choice(patch.state, SessionState, "Status") if patch.state is not None else session.state
        finished_at = session.finished_at
        duration = session.duration_minutes
        # A cancelled session forced to completed keeps its finish time.
        finishing = state == SessionState.COMPLETED and session.state != SessionState.COMPLETED
        if finishing:
            finished_at = finished_at or now or self._clock()
            duration = minutes_between(session.started_at, finished_at)

        if patch.notes is None:
            notes = session.notes
        else:
            notes = optional_text(patch.notes)

        ok = self._sessions.update_session(
            session.session_id,
            attendance_date=patch.attendance_date or session.attendance_date,
            scheduled_for=patch.scheduled_for if patch.scheduled_for is not None else session.scheduled_for,
            location=patch.location if patch.location is not None else session.location,
            notes=notes,
            state=state,
            finished_at=finished_at,
            duration_minutes=duration,
        )
        if not ok:
            raise ConflictError("This class already has an attendance in progress")

        if state != session.state:
            logger.info(
                "Attendance %s state overridden from %s to %s",
                session.session_id,
                session.state.value,
                state.value,
            )
        if finishing:
            return self._finalize(session.session_id)
        return self._get(session.session_id)

    def delete(self, session_id: int, teacher_id: int) -> None:
        session = self._get_owned(session_id, teacher_id, "delete attendance")

        affected = set(session.student_ids())
        try:
            affected.update(self._history.student_ids_for_session(session.session_id))
        except Exception:
            logger.exception("Failed to collect history students of attendance %s", session.session_id)

        if not self._sessions.delete_session(session.session_id):
            raise NotFoundError("Attendance not found")
        logger.info("Attendance %s deleted", session.session_id)

        try:
            self._history.delete_for_session(session.session_id)
        except Exception:
            logger.exception("Failed to delete history of attendance %s", session.session_id)

        if self._stats is not None:
            self._stats.refresh_quietly(sorted(affected), reason=f"attendance {session.session_id} deletion")

    # -------- reads --------
    def get(self, session_id: int, user_id: int) -> AttendanceSession:
        session = self._get(session_id)
        if not session.is_owner(user_id) and session.record_for(user_id) is None:
            raise AuthorizationError("You do not have access to this attendance")
        return session

    def summary(self, session_id: int, user_id: int) -> dict:
        return self.get(session_id, user_id).summary()

    def list_for_teacher(
        self,
        teacher_id: int,
        *,
        class_id=None,
        session_type=None,
        state=None,
        page=None,
        limit=None,
    ) -> Page[AttendanceSession]:
        page, limit = normalize_page(page, limit)
        return self._sessions.list_for_owner(
            int(teacher_id),
            class_id=require_positive_id(class_id, "Class ID") if class_id not in (None, "") else None,
            session_type=require_choice(session_type, SessionType, "Attendance type") if session_type else None,
            state=require_choice(state, SessionState, "Status") if state else None,
            page=page,
            limit=limit,
        )

    def active_for_class(self, class_id: int, user_id: int) -> Optional[AttendanceSession]:
        klass = self._classes.get_by_id(int(class_id))
        if not klass:
            raise NotFoundError("Class not found")
        if not klass.has_access(user_id):
            raise AuthorizationError("You do not have access to this class")
        return self._sessions.get_active_for_class(klass.class_id)
