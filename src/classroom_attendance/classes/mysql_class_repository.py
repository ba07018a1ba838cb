from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Collection, Mapping, Optional, Sequence

from ..core.enums import EnrollmentState
from ..core.exceptions import LimitExceededError
from ..database.connection import ConnectionPool
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause, is_duplicate_key
from .model import Classroom, EnrollmentEntry
from .repository import ClassRepository


def _row_to_entry(row: dict) -> EnrollmentEntry:
    return EnrollmentEntry(
        class_id=int(row["class_id"]),
        student_id=int(row["student_id"]),
        state=EnrollmentState(row["state"]),
        enrolled_at=row.get("enrolled_at"),
        created_at=row.get("created_at"),
    )


class MySQLClassRepository(ClassRepository):
    def __init__(self, conn_factory: ConnectionPool):
        self._conn_factory = conn_factory

    def _load_classes(self, cur, rows: list[dict]) -> list[Classroom]:
        if not rows:
            return []
        placeholders, params = in_clause(int(r["class_id"]) for r in rows)
        cur.execute(
            f"""
            SELECT class_id, student_id, state, enrolled_at, created_at
            FROM class_enrollments
            WHERE class_id IN ({placeholders})
            ORDER BY created_at, student_id
            """,
            params,
        )
        entries: dict[int, list[EnrollmentEntry]] = defaultdict(list)
        for r in fetchall(cur):
            entries[int(r["class_id"])].append(_row_to_entry(r))

        return [
            Classroom(
                class_id=int(r["class_id"]),
                class_name=r["class_name"],
                subject=r["subject"],
                owner_id=int(r["owner_id"]),
                entries=tuple(entries.get(int(r["class_id"]), ())),
                created_at=r.get("created_at"),
            )
            for r in rows
        ]

    def create_class(self, *, class_name: str, subject: str, owner_id: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "INSERT INTO classes(class_name, subject, owner_id) VALUES(%s,%s,%s)",
                (class_name, subject, int(owner_id)),
            )
            return int(cur.lastrowid)

    def get_by_id(self, class_id: int) -> Optional[Classroom]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT class_id, class_name, subject, owner_id, created_at FROM classes WHERE class_id=%s",
                (int(class_id),),
            )
            row = fetchone(cur)
            if not row:
                return None
            return self._load_classes(cur, [row])[0]

    def list_for_user(self, user_id: int) -> Sequence[Classroom]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT c.class_id, c.class_name, c.subject, c.owner_id, c.created_at
                FROM classes c
                WHERE c.owner_id=%s
                   OR EXISTS (SELECT 1 FROM class_enrollments e WHERE e.class_id=c.class_id AND e.student_id=%s)
                ORDER BY c.created_at DESC, c.class_id DESC
                """,
                (int(user_id), int(user_id)),
            )
            return self._load_classes(cur, fetchall(cur))

    def list_for_student(self, student_id: int, *, state: EnrollmentState) -> Sequence[Classroom]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT c.class_id, c.class_name, c.subject, c.owner_id, c.created_at
                FROM classes c
                JOIN class_enrollments e ON e.class_id=c.class_id
                WHERE e.student_id=%s AND e.state=%s
                ORDER BY c.created_at DESC, c.class_id DESC
                """,
                (int(student_id), state.value),
            )
            return self._load_classes(cur, fetchall(cur))

    def update_class(self, class_id: int, *, class_name: str, subject: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE classes SET class_name=%s, subject=%s WHERE class_id=%s",
                (class_name, subject, int(class_id)),
            )
            return cur.rowcount > 0

    def delete_class(self, class_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM classes WHERE class_id=%s", (int(class_id),))
            return cur.rowcount > 0

    def get_entry(self, class_id: int, student_id: int) -> Optional[EnrollmentEntry]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT class_id, student_id, state, enrolled_at, created_at
                FROM class_enrollments
                WHERE class_id=%s AND student_id=%s
                """,
                (int(class_id), int(student_id)),
            )
            row = fetchone(cur)
            return _row_to_entry(row) if row else None

    def list_entries(self, class_id: int, *, state: Optional[EnrollmentState] = None) -> Sequence[EnrollmentEntry]:
        clauses = ["class_id=%s"]
        params: list[object] = [int(class_id)]
        if state is not None:
            clauses.append("state=%s")
            params.append(state.value)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT class_id, student_id, state, enrolled_at, created_at
                FROM class_enrollments
                WHERE {" AND ".join(clauses)}
                ORDER BY created_at, student_id
                """,
                tuple(params),
            )
            return [_row_to_entry(r) for r in fetchall(cur)]

    def add_entry(
        self,
        class_id: int,
        student_id: int,
        *,
        state: EnrollmentState,
        max_entries: Optional[int] = None,
    ) -> bool:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                if max_entries is not None:
                    # Class row lock serializes concurrent adds to the same class.
                    cur.execute("SELECT class_id FROM classes WHERE class_id=%s FOR UPDATE", (int(class_id),))
                    fetchone(cur)
                    cur.execute("SELECT COUNT(*) AS n FROM class_enrollments WHERE class_id=%s", (int(class_id),))
                    row = fetchone(cur)
                    if row and int(row["n"]) >= int(max_entries):
                        raise LimitExceededError(f"Cannot add more than {max_entries} students to a class")
                cur.execute(
                    "INSERT INTO class_enrollments(class_id, student_id, state) VALUES(%s,%s,%s)",
                    (int(class_id), int(student_id), state.value),
                )
                return True
        except Exception as exc:
            if is_duplicate_key(exc):
                return False
            raise

    def transition_entry(
        self,
        class_id: int,
        student_id: int,
        *,
        from_state: EnrollmentState,
        to_state: EnrollmentState,
        enrolled_at: Optional[datetime] = None,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE class_enrollments
                SET state=%s, enrolled_at=COALESCE(%s, enrolled_at)
                WHERE class_id=%s AND student_id=%s AND state=%s
                """,
                (to_state.value, enrolled_at, int(class_id), int(student_id), from_state.value),
            )
            return cur.rowcount > 0

    def delete_entry(
        self,
        class_id: int,
        student_id: int,
        *,
        states: Optional[Collection[EnrollmentState]] = None,
    ) -> bool:
        sql = "DELETE FROM class_enrollments WHERE class_id=%s AND student_id=%s"
        params: tuple = (int(class_id), int(student_id))
        if states:
            placeholders, state_params = in_clause(s.value for s in states)
            sql += f" AND state IN ({placeholders})"
            params += state_params

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, params)
            return cur.rowcount > 0

    def count_accepted_for_students(self, student_ids: Sequence[int]) -> Mapping[int, int]:
        counts = {int(s): 0 for s in student_ids}
        if not counts:
            return counts
        placeholders, params = in_clause(counts)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT student_id, COUNT(*) AS n
                FROM class_enrollments
                WHERE state=%s AND student_id IN ({placeholders})
                GROUP BY student_id
                """,
                (EnrollmentState.ACCEPTED.value,) + params,
            )
            for r in fetchall(cur):
                counts[int(r["student_id"])] = int(r["n"])
        return counts
