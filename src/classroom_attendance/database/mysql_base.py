from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from mysql.connector import errorcode
import mysql.connector

from .connection import ConnectionPool


@contextmanager
def db_cursor(conn_factory: ConnectionPool, *, dictionary: bool = True):
    conn = conn_factory.connect()
    try:
        cur = conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return row if row else None


def fetchall(cur) -> List[Dict[str, Any]]:
    rows = cur.fetchall()
    return list(rows or [])


def in_clause(values: Iterable[Any]) -> Tuple[str, Tuple[Any, ...]]:
    """Build ``%s,%s,...`` placeholders for an IN (...) filter."""

    params = tuple(values)
    return ",".join(["%s"] * len(params)), params


def is_duplicate_key(exc: BaseException) -> bool:
    return isinstance(exc, mysql.connector.IntegrityError) and getattr(exc, "errno", None) == errorcode.ER_DUP_ENTRY


def where_clause(clauses: Sequence[str]) -> str:
    return " AND ".join(clauses) if clauses else "1=1"
