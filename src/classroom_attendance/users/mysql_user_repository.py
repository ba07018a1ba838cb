from __future__ import annotations

from typing import Mapping, Optional

from ..common.pagination import Page
from ..core.exceptions import ValidationError
from ..database.connection import ConnectionPool
from ..database.mysql_base import db_cursor, fetchall, fetchone, is_duplicate_key, where_clause
from ..stats.model import CachedStats
from .model import User
from .repository import UserRepository

_USER_COLUMNS = """
    user_id, name, mobile, email, password_hash, created_at,
    stats_sessions, stats_present, stats_absent, stats_late, stats_excused,
    stats_percentage, stats_enrolled_classes, stats_updated_at
"""


def _row_to_user(row: dict) -> User:
    return User(
        user_id=int(row["user_id"]),
        name=row["name"],
        mobile=row["mobile"],
        email=row.get("email"),
        password_hash=row["password_hash"],
        created_at=row.get("created_at"),
        stats=CachedStats(
            sessions_count=int(row.get("stats_sessions") or 0),
            present=int(row.get("stats_present") or 0),
            absent=int(row.get("stats_absent") or 0),
            late=int(row.get("stats_late") or 0),
            excused=int(row.get("stats_excused") or 0),
            percentage=int(row.get("stats_percentage") or 0),
            enrolled_classes_count=int(row.get("stats_enrolled_classes") or 0),
            updated_at=row.get("stats_updated_at"),
        ),
    )


def _stats_params(stats: CachedStats) -> tuple:
    return (
        stats.sessions_count,
        stats.present,
        stats.absent,
        stats.late,
        stats.excused,
        stats.percentage,
        stats.enrolled_classes_count,
        stats.updated_at,
    )


_UPDATE_STATS_SQL = """
    UPDATE users
    SET stats_sessions=%s, stats_present=%s, stats_absent=%s, stats_late=%s,
        stats_excused=%s, stats_percentage=%s, stats_enrolled_classes=%s, stats_updated_at=%s
    WHERE user_id=%s
"""


class MySQLUserRepository(UserRepository):
    def __init__(self, conn_factory: ConnectionPool):
        self._conn_factory = conn_factory

    def get_by_id(self, user_id: int) -> Optional[User]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE user_id=%s", (int(user_id),))
            row = fetchone(cur)
            return _row_to_user(row) if row else None

    def get_by_mobile(self, mobile: str) -> Optional[User]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE mobile=%s", (mobile,))
            row = fetchone(cur)
            return _row_to_user(row) if row else None

    def create_user(self, *, name: str, mobile: str, email: Optional[str], password_hash: str) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO users(name, mobile, email, password_hash)
                VALUES(%s,%s,%s,%s)
                """,
                (name, mobile, email, password_hash),
            )
            return int(cur.lastrowid)

    def update_profile(self, user_id: int, *, name: str, mobile: str, email: Optional[str]) -> bool:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    "UPDATE users SET name=%s, mobile=%s, email=%s WHERE user_id=%s",
                    (name, mobile, email, int(user_id)),
                )
                return cur.rowcount > 0
        except Exception as exc:
            if is_duplicate_key(exc):
                raise ValidationError("Mobile number is already registered")
            raise

    def search_available(
        self,
        *,
        class_id: int,
        exclude_id: int,
        search: Optional[str],
        page: int,
        limit: int,
    ) -> Page[User]:
        clauses = [
            "u.user_id <> %s",
            "NOT EXISTS (SELECT 1 FROM class_enrollments e WHERE e.class_id=%s AND e.student_id=u.user_id)",
        ]
        params: list = [int(exclude_id), int(class_id)]
        if search:
            like = f"%{search}%"
            clauses.append("(u.name LIKE %s OR u.mobile LIKE %s OR u.email LIKE %s)")
            params.extend([like, like, like])
        where = where_clause(clauses)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS total FROM users u WHERE {where}", tuple(params))
            total = int((fetchone(cur) or {}).get("total") or 0)
            cur.execute(
                f"""
                SELECT {_USER_COLUMNS} FROM users u
                WHERE {where}
                ORDER BY u.created_at DESC, u.user_id DESC
                LIMIT %s OFFSET %s
                """,
                tuple(params) + (int(limit), (int(page) - 1) * int(limit)),
            )
            items = [_row_to_user(r) for r in fetchall(cur)]
        return Page(items=items, total=total, page=page, limit=limit)

    def save_stats_many(self, stats_by_user: Mapping[int, CachedStats]) -> int:
        if not stats_by_user:
            return 0
        with db_cursor(self._conn_factory) as (_, cur):
            cur.executemany(
                _UPDATE_STATS_SQL,
                [_stats_params(s) + (int(uid),) for uid, s in stats_by_user.items()],
            )
            return int(cur.rowcount or 0)
