from __future__ import annotations

import pytest

from classroom_attendance.classes.mysql_class_repository import MySQLClassRepository
from classroom_attendance.core.enums import EnrollmentState
from classroom_attendance.core.exceptions import LimitExceededError


class ScriptedCursor:
    def __init__(self, rows):
        self.rows = list(rows)
        self.executed = []

    def execute(self, sql, params=None):
        self.executed.append(" ".join(sql.split()))

    def fetchone(self):
        return self.rows.pop(0) if self.rows else None

    def close(self):
        pass


class ScriptedConnection:
    def __init__(self, rows):
        self.cur = ScriptedCursor(rows)
        self.committed = False
        self.rolled_back = False

    def cursor(self, dictionary=True):
        return self.cur

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def close(self):
        pass


class ScriptedPool:
    def __init__(self, rows):
        self.conn = ScriptedConnection(rows)

    def connect(self):
        return self.conn


def test_add_entry_checks_size_under_class_lock():
    pool = ScriptedPool([{"class_id": 1}, {"n": 99}])

    assert MySQLClassRepository(pool).add_entry(1, 7, state=EnrollmentState.REQUESTED, max_entries=100) is True

    executed = pool.conn.cur.executed
    assert executed[0].endswith("FOR UPDATE")
    assert executed[1].startswith("SELECT COUNT(*)")
    assert executed[2].startswith("INSERT INTO class_enrollments")
    assert pool.conn.committed


def test_add_entry_full_class_rolls_back():
    pool = ScriptedPool([{"class_id": 1}, {"n": 100}])

    with pytest.raises(LimitExceededError):
        MySQLClassRepository(pool).add_entry(1, 7, state=EnrollmentState.PENDING, max_entries=100)

    assert not any(sql.startswith("INSERT") for sql in pool.conn.cur.executed)
    assert pool.conn.rolled_back
