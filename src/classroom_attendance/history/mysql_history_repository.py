from __future__ import annotations

from collections import defaultdict
from typing import Mapping, Optional, Sequence

from ..common.pagination import Page
from ..core.enums import AttendanceStatus, SessionState, SessionType
from ..database.connection import ConnectionPool
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause, where_clause
from .model import HistoryRecord, HistoryRow
from .repository import HistoryRepository, StatusCounts


def _row_to_history_row(r: dict) -> HistoryRow:
    return HistoryRow(
        record=HistoryRecord(
            student_id=int(r["student_id"]),
            session_id=int(r["session_id"]),
            class_id=int(r["class_id"]),
            status=AttendanceStatus(r["status"]),
            marked_at=r.get("marked_at"),
            notes=r.get("notes"),
            created_at=r.get("created_at"),
        ),
        class_name=r.get("class_name"),
        subject=r.get("subject"),
        attendance_date=r.get("attendance_date"),
        session_type=SessionType(r["session_type"]) if r.get("session_type") else None,
        session_state=SessionState(r["state"]) if r.get("state") else None,
        duration_minutes=r.get("duration_minutes"),
    )


class MySQLHistoryRepository(HistoryRepository):
    def __init__(self, conn_factory: ConnectionPool):
        self._conn_factory = conn_factory

    def upsert_many(self, records: Sequence[HistoryRecord]) -> int:
        if not records:
            return 0
        with db_cursor(self._conn_factory) as (_, cur):
            cur.executemany(
                """
                INSERT INTO attendance_history(student_id, session_id, class_id, status, marked_at, notes)
                VALUES(%s,%s,%s,%s,%s,%s)
                ON DUPLICATE KEY UPDATE
                    class_id=VALUES(class_id), status=VALUES(status),
                    marked_at=VALUES(marked_at), notes=VALUES(notes)
                """,
                [(r.student_id, r.session_id, r.class_id, r.status.value, r.marked_at, r.notes) for r in records],
            )
            return len(records)

    def delete_for_session(self, session_id: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM attendance_history WHERE session_id=%s", (int(session_id),))
            return int(cur.rowcount or 0)

    def delete_for_session_students(self, session_id: int, student_ids: Sequence[int]) -> int:
        if not student_ids:
            return 0
        placeholders, params = in_clause(int(s) for s in student_ids)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"DELETE FROM attendance_history WHERE session_id=%s AND student_id IN ({placeholders})",
                (int(session_id),) + params,
            )
            return int(cur.rowcount or 0)

    def delete_for_class(self, class_id: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM attendance_history WHERE class_id=%s", (int(class_id),))
            return int(cur.rowcount or 0)

    def student_ids_for_session(self, session_id: int) -> Sequence[int]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT student_id FROM attendance_history WHERE session_id=%s", (int(session_id),))
            return [int(r["student_id"]) for r in fetchall(cur)]

    def student_ids_for_class(self, class_id: int) -> Sequence[int]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT DISTINCT student_id FROM attendance_history WHERE class_id=%s", (int(class_id),))
            return [int(r["student_id"]) for r in fetchall(cur)]

    def list_for_student(
        self,
        student_id: int,
        *,
        class_id: Optional[int] = None,
        status: Optional[AttendanceStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page[HistoryRow]:
        clauses = ["h.student_id=%s"]
        params: list[object] = [int(student_id)]
        if class_id is not None:
            clauses.append("h.class_id=%s")
            params.append(int(class_id))
        if status is not None:
            clauses.append("h.status=%s")
            params.append(status.value)
        where = where_clause(clauses)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS n FROM attendance_history h WHERE {where}", tuple(params))
            total = int((fetchone(cur) or {"n": 0})["n"])
            cur.execute(
                f"""
                SELECT h.student_id, h.session_id, h.class_id, h.status, h.marked_at, h.notes, h.created_at,
                       c.class_name, c.subject,
                       s.attendance_date, s.session_type, s.state, s.duration_minutes
                FROM attendance_history h
                LEFT JOIN classes c ON c.class_id = h.class_id
                LEFT JOIN attendance_sessions s ON s.session_id = h.session_id
                WHERE {where}
                ORDER BY COALESCE(h.marked_at, h.created_at) DESC, h.session_id DESC
                LIMIT %s OFFSET %s
                """,
                tuple(params + [int(limit), (int(page) - 1) * int(limit)]),
            )
            items = [_row_to_history_row(r) for r in fetchall(cur)]
        return Page(items=items, total=total, page=int(page), limit=int(limit))

    def status_counts(self, student_ids: Sequence[int]) -> Mapping[int, StatusCounts]:
        out: dict[int, dict[AttendanceStatus, int]] = {int(s): {} for s in student_ids}
        if not out:
            return out
        placeholders, params = in_clause(out)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT student_id, status, COUNT(*) AS n
                FROM attendance_history
                WHERE student_id IN ({placeholders})
                GROUP BY student_id, status
                """,
                params,
            )
            for r in fetchall(cur):
                out[int(r["student_id"])][AttendanceStatus(r["status"])] = int(r["n"])
        return out

    def status_counts_by_class(self, student_id: int) -> Mapping[int, StatusCounts]:
        out: dict[int, dict[AttendanceStatus, int]] = defaultdict(dict)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT class_id, status, COUNT(*) AS n
                FROM attendance_history
                WHERE student_id=%s
                GROUP BY class_id, status
                """,
                (int(student_id),),
            )
            for r in fetchall(cur):
                out[int(r["class_id"])][AttendanceStatus(r["status"])] = int(r["n"])
        return dict(out)
