from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Sequence

from ..attendance.repository import SessionRepository
from ..common.validators import require_non_empty
from ..core.exceptions import AuthorizationError, NotFoundError
from ..history.repository import HistoryRepository
from .model import Classroom
from .repository import ClassRepository

if TYPE_CHECKING:
    from ..stats.aggregator import StatsAggregator

logger = logging.getLogger(__name__)


class ClassService:
    """Use case: class CRUD. Enrollment transitions live in EnrollmentLedger."""

    def __init__(
        self,
        classes: ClassRepository,
        sessions: SessionRepository,
        history: HistoryRepository,
        stats: Optional["StatsAggregator"] = None,
    ):
        self._classes = classes
        self._sessions = sessions
        self._history = history
        self._stats = stats

    def _get(self, class_id: int) -> Classroom:
        klass = self._classes.get_by_id(int(class_id))
        if not klass:
            raise NotFoundError("Class not found")
        return klass

    def _get_owned(self, class_id: int, owner_id: int, action: str) -> Classroom:
        klass = self._get(class_id)
        if not klass.is_owner(owner_id):
            raise AuthorizationError(f"Only the class creator can {action}")
        return klass

    def create(self, *, owner_id: int, class_name: str, subject: str) -> Classroom:
        class_name = require_non_empty(class_name, "Class name")
        subject = require_non_empty(subject, "Subject")
        class_id = self._classes.create_class(class_name=class_name, subject=subject, owner_id=int(owner_id))
        logger.info("User %s created class %s", owner_id, class_id)
        return self._get(class_id)

    def get(self, class_id: int, user_id: int) -> Classroom:
        klass = self._get(class_id)
        if not klass.has_access(user_id):
            raise AuthorizationError("You do not have access to this class")
        return klass

    def list_for_user(self, user_id: int) -> Sequence[Classroom]:
        return self._classes.list_for_user(int(user_id))

    def update(
        self,
        class_id: int,
        owner_id: int,
        *,
        class_name: Optional[str] = None,
        subject: Optional[str] = None,
    ) -> Classroom:
        klass = self._get_owned(class_id, owner_id, "update this class")
        new_name = require_non_empty(class_name, "Class name") if class_name is not None else klass.class_name
        new_subject = require_non_empty(subject, "Subject") if subject is not None else klass.subject

        if not self._classes.update_class(klass.class_id, class_name=new_name, subject=new_subject):
            raise NotFoundError("Class not found")
        return self._get(klass.class_id)

    def delete(self, class_id: int, owner_id: int) -> None:
        """Delete a class with its sessions, then clean up history and stats.

        The class and its sessions go first; the history cleanup and the
        stats refresh that follow are best-effort.
        """

        klass = self._get_owned(class_id, owner_id, "delete this class")

        affected = set(klass.accepted_student_ids())
        try:
            affected.update(self._history.student_ids_for_class(klass.class_id))
        except Exception:
            logger.exception("Failed to collect history students of class %s", klass.class_id)

        session_ids = list(self._sessions.list_ids_for_class(klass.class_id))
        for session_id in session_ids:
            self._sessions.delete_session(session_id)

        if not self._classes.delete_class(klass.class_id):
            raise NotFoundError("Class not found")
        logger.info("Class %s deleted with %d session(s)", klass.class_id, len(session_ids))

        try:
            removed = self._history.delete_for_class(klass.class_id)
            logger.debug("Removed %d history record(s) of class %s", removed, klass.class_id)
        except Exception:
            logger.exception("Failed to delete history of class %s", klass.class_id)

        if self._stats is not None:
            self._stats.refresh_quietly(sorted(affected), reason="class deletion")
