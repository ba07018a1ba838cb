from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Optional, Sequence

from ..common.pagination import Page
from ..core.enums import AttendanceStatus, SessionState, SessionType
from ..database.connection import ConnectionPool
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause, is_duplicate_key, where_clause
from .model import AttendanceSession, Location, SessionTotals, StudentRecord
from .repository import SessionRepository

_SESSION_COLUMNS = """
    session_id, class_id, owner_id, session_type, state, attendance_date, scheduled_for,
    started_at, finished_at, duration_minutes,
    location_latitude, location_longitude, location_address, location_accuracy, notes,
    total_students, total_present, total_absent, total_late, total_excused
"""

_REFRESH_TOTALS_SQL = """
    UPDATE attendance_sessions s
    SET total_students = (SELECT COUNT(*) FROM session_records r WHERE r.session_id = s.session_id),
        total_present = (SELECT COUNT(*) FROM session_records r WHERE r.session_id = s.session_id AND r.status = 'present'),
        total_absent = (SELECT COUNT(*) FROM session_records r WHERE r.session_id = s.session_id AND r.status = 'absent'),
        total_late = (SELECT COUNT(*) FROM session_records r WHERE r.session_id = s.session_id AND r.status = 'late'),
        total_excused = (SELECT COUNT(*) FROM session_records r WHERE r.session_id = s.session_id AND r.status = 'excused')
    WHERE s.session_id = %s
"""


def _location_params(location: Optional[Location]) -> tuple:
    if location is None:
        return (None, None, None, None)
    return (location.latitude, location.longitude, location.address, location.accuracy)


def _row_to_location(row: dict) -> Optional[Location]:
    values = (
        row.get("location_latitude"),
        row.get("location_longitude"),
        row.get("location_address"),
        row.get("location_accuracy"),
    )
    if all(v is None for v in values):
        return None
    return Location(latitude=values[0], longitude=values[1], address=values[2], accuracy=values[3])


def _row_to_record(row: dict) -> StudentRecord:
    return StudentRecord(
        student_id=int(row["student_id"]),
        status=AttendanceStatus(row["status"]),
        marked_at=row.get("marked_at"),
        notes=row.get("notes"),
    )


def _row_to_session(row: dict, records: Sequence[StudentRecord] = ()) -> AttendanceSession:
    return AttendanceSession(
        session_id=int(row["session_id"]),
        class_id=int(row["class_id"]),
        owner_id=int(row["owner_id"]),
        session_type=SessionType(row["session_type"]),
        state=SessionState(row["state"]),
        attendance_date=row["attendance_date"],
        started_at=row["started_at"],
        scheduled_for=row.get("scheduled_for"),
        finished_at=row.get("finished_at"),
        duration_minutes=row.get("duration_minutes"),
        location=_row_to_location(row),
        notes=row.get("notes"),
        records=tuple(records),
        totals=SessionTotals(
            students=int(row.get("total_students") or 0),
            present=int(row.get("total_present") or 0),
            absent=int(row.get("total_absent") or 0),
            late=int(row.get("total_late") or 0),
            excused=int(row.get("total_excused") or 0),
        ),
    )


class MySQLSessionRepository(SessionRepository):
    def __init__(self, conn_factory: ConnectionPool):
        self._conn_factory = conn_factory

    @staticmethod
    def _lock_in_progress(cur, session_id: int) -> bool:
        cur.execute("SELECT state FROM attendance_sessions WHERE session_id=%s FOR UPDATE", (int(session_id),))
        row = fetchone(cur)
        return bool(row) and row["state"] == SessionState.IN_PROGRESS.value

    def _load_records(self, cur, session_ids: Sequence[int]) -> dict[int, list[StudentRecord]]:
        out: dict[int, list[StudentRecord]] = defaultdict(list)
        if not session_ids:
            return out
        placeholders, params = in_clause(session_ids)
        cur.execute(
            f"""
            SELECT session_id, student_id, status, marked_at, notes
            FROM session_records
            WHERE session_id IN ({placeholders})
            ORDER BY student_id
            """,
            params,
        )
        for r in fetchall(cur):
            out[int(r["session_id"])].append(_row_to_record(r))
        return out

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
        totals = SessionTotals.from_records(records)
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO attendance_sessions(
                        class_id, owner_id, session_type, state, attendance_date, scheduled_for, started_at,
                        location_latitude, location_longitude, location_address, location_accuracy, notes,
                        total_students, total_present, total_absent, total_late, total_excused
                    )
                    VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        int(class_id),
                        int(owner_id),
                        session_type.value,
                        SessionState.IN_PROGRESS.value,
                        attendance_date,
                        scheduled_for,
                        started_at,
                        *_location_params(location),
                        notes,
                        totals.students,
                        totals.present,
                        totals.absent,
                        totals.late,
                        totals.excused,
                    ),
                )
                session_id = int(cur.lastrowid)
                if records:
                    cur.executemany(
                        """
                        INSERT INTO session_records(session_id, student_id, status, marked_at, notes)
                        VALUES(%s,%s,%s,%s,%s)
                        """,
                        [(session_id, r.student_id, r.status.value, r.marked_at, r.notes) for r in records],
                    )
                return session_id
        except Exception as exc:
            if is_duplicate_key(exc):
                return None
            raise

    def get_by_id(self, session_id: int) -> Optional[AttendanceSession]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_SESSION_COLUMNS} FROM attendance_sessions WHERE session_id=%s", (int(session_id),))
            row = fetchone(cur)
            if not row:
                return None
            records = self._load_records(cur, [int(row["session_id"])])
            return _row_to_session(row, records.get(int(row["session_id"]), ()))

    def get_active_for_class(self, class_id: int) -> Optional[AttendanceSession]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_SESSION_COLUMNS} FROM attendance_sessions WHERE class_id=%s AND state=%s",
                (int(class_id), SessionState.IN_PROGRESS.value),
            )
            row = fetchone(cur)
            if not row:
                return None
            records = self._load_records(cur, [int(row["session_id"])])
            return _row_to_session(row, records.get(int(row["session_id"]), ()))

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
        clauses = ["owner_id=%s"]
        params: list[object] = [int(owner_id)]
        if class_id is not None:
            clauses.append("class_id=%s")
            params.append(int(class_id))
        if session_type is not None:
            clauses.append("session_type=%s")
            params.append(session_type.value)
        if state is not None:
            clauses.append("state=%s")
            params.append(state.value)
        where = where_clause(clauses)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS n FROM attendance_sessions WHERE {where}", tuple(params))
            total = int((fetchone(cur) or {"n": 0})["n"])
            cur.execute(
                f"""
                SELECT {_SESSION_COLUMNS}
                FROM attendance_sessions
                WHERE {where}
                ORDER BY attendance_date DESC, session_id DESC
                LIMIT %s OFFSET %s
                """,
                tuple(params + [int(limit), (int(page) - 1) * int(limit)]),
            )
            items = [_row_to_session(r) for r in fetchall(cur)]
        return Page(items=items, total=total, page=int(page), limit=int(limit))

    def list_ids_for_class(self, class_id: int) -> Sequence[int]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT session_id FROM attendance_sessions WHERE class_id=%s", (int(class_id),))
            return [int(r["session_id"]) for r in fetchall(cur)]

    def save_records(self, session_id: int, records: Sequence[StudentRecord]) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            if not self._lock_in_progress(cur, session_id):
                return False
            cur.executemany(
                """
                UPDATE session_records
                SET status=%s, marked_at=%s, notes=%s
                WHERE session_id=%s AND student_id=%s
                """,
                [(r.status.value, r.marked_at, r.notes, int(session_id), r.student_id) for r in records],
            )
            cur.execute(_REFRESH_TOTALS_SQL, (int(session_id),))
            return True

    def delete_records(self, session_id: int, student_ids: Sequence[int]) -> int:
        if not student_ids:
            return 0
        placeholders, params = in_clause(int(s) for s in student_ids)
        with db_cursor(self._conn_factory) as (_, cur):
            if not self._lock_in_progress(cur, session_id):
                return 0
            cur.execute(
                f"DELETE FROM session_records WHERE session_id=%s AND student_id IN ({placeholders})",
                (int(session_id),) + params,
            )
            deleted = int(cur.rowcount or 0)
            cur.execute(_REFRESH_TOTALS_SQL, (int(session_id),))
            return deleted

    def finish(
        self,
        session_id: int,
        *,
        state: SessionState,
        finished_at: datetime,
        duration_minutes: Optional[int],
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE attendance_sessions
                SET state=%s, finished_at=%s, duration_minutes=%s
                WHERE session_id=%s AND state=%s
                """,
                (state.value, finished_at, duration_minutes, int(session_id), SessionState.IN_PROGRESS.value),
            )
            return cur.rowcount > 0

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
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    UPDATE attendance_sessions
                    SET attendance_date=%s, scheduled_for=%s,
                        location_latitude=%s, location_longitude=%s, location_address=%s, location_accuracy=%s,
                        notes=%s, state=%s, finished_at=%s, duration_minutes=%s
                    WHERE session_id=%s
                    """,
                    (
                        attendance_date,
                        scheduled_for,
                        *_location_params(location),
                        notes,
                        state.value,
                        finished_at,
                        duration_minutes,
                        int(session_id),
                    ),
                )
                return True
        except Exception as exc:
            if is_duplicate_key(exc):
                return False
            raise

    def delete_session(self, session_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM attendance_sessions WHERE session_id=%s", (int(session_id),))
            return cur.rowcount > 0
