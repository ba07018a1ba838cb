from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Collection, Mapping, Optional, Sequence

import pytest

from classroom_attendance.attendance.model import AttendanceSession, Location, SessionTotals, StudentRecord
from classroom_attendance.classes.model import Classroom, EnrollmentEntry
from classroom_attendance.common.pagination import Page
from classroom_attendance.container import assemble
from classroom_attendance.core.enums import AttendanceStatus, EnrollmentState, SessionState, SessionType
from classroom_attendance.core.exceptions import LimitExceededError
from classroom_attendance.history.model import HistoryRecord, HistoryRow
from classroom_attendance.stats.model import CachedStats
from classroom_attendance.users.model import User


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class InMemoryUsers:
    def __init__(self, classes: Optional["InMemoryClasses"] = None):
        self.users: dict[int, User] = {}
        self.classes = classes
        self._id = 0

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.users.get(int(user_id))

    def get_by_mobile(self, mobile: str) -> Optional[User]:
        for user in self.users.values():
            if user.mobile == mobile:
                return user
        return None

    def create_user(self, *, name: str, mobile: str, email: Optional[str], password_hash: str) -> int:
        self._id += 1
        self.users[self._id] = User(
            user_id=self._id,
            name=name,
            mobile=mobile,
            email=email,
            password_hash=password_hash,
        )
        return self._id

    def update_profile(self, user_id: int, *, name: str, mobile: str, email: Optional[str]) -> bool:
        user = self.users.get(int(user_id))
        if user is None:
            return False
        self.users[user.user_id] = replace(user, name=name, mobile=mobile, email=email)
        return True

    def search_available(
        self,
        *,
        class_id: int,
        exclude_id: int,
        search: Optional[str],
        page: int,
        limit: int,
    ) -> Page[User]:
        taken = {sid for (cid, sid) in self.classes.entries if cid == int(class_id)} if self.classes is not None else set()
        needle = (search or "").lower()
        items = [
            u
            for u in self.users.values()
            if u.user_id != int(exclude_id)
            and u.user_id not in taken
            and (not needle or any(needle in (v or "").lower() for v in (u.name, u.mobile, u.email)))
        ]
        items.sort(key=lambda u: u.user_id, reverse=True)
        offset = (page - 1) * limit
        return Page(items=items[offset : offset + limit], total=len(items), page=page, limit=limit)

    def save_stats_many(self, stats_by_user: Mapping[int, CachedStats]) -> int:
        touched = 0
        for user_id, stats in stats_by_user.items():
            if int(user_id) in self.users:
                self.users[int(user_id)] = replace(self.users[int(user_id)], stats=stats)
                touched += 1
        return touched


class InMemoryClasses:
    def __init__(self):
        self.classes: dict[int, dict] = {}
        self.entries: dict[tuple[int, int], EnrollmentEntry] = {}
        self._id = 0

    def _build(self, class_id: int) -> Classroom:
        row = self.classes[class_id]
        return Classroom(
            class_id=class_id,
            class_name=row["class_name"],
            subject=row["subject"],
            owner_id=row["owner_id"],
            entries=tuple(e for (cid, _), e in self.entries.items() if cid == class_id),
        )

    def create_class(self, *, class_name: str, subject: str, owner_id: int) -> int:
        self._id += 1
        self.classes[self._id] = {"class_name": class_name, "subject": subject, "owner_id": int(owner_id)}
        return self._id

    def get_by_id(self, class_id: int) -> Optional[Classroom]:
        if int(class_id) not in self.classes:
            return None
        return self._build(int(class_id))

    def list_for_user(self, user_id: int) -> Sequence[Classroom]:
        items = [self._build(cid) for cid in sorted(self.classes, reverse=True)]
        return [c for c in items if c.has_access(user_id)]

    def list_for_student(self, student_id: int, *, state: EnrollmentState) -> Sequence[Classroom]:
        ids = [cid for (cid, sid), e in self.entries.items() if sid == int(student_id) and e.state == state]
        return [self._build(cid) for cid in ids]

    def update_class(self, class_id: int, *, class_name: str, subject: str) -> bool:
        if int(class_id) not in self.classes:
            return False
        self.classes[int(class_id)].update(class_name=class_name, subject=subject)
        return True

    def delete_class(self, class_id: int) -> bool:
        if self.classes.pop(int(class_id), None) is None:
            return False
        for key in [k for k in self.entries if k[0] == int(class_id)]:
            del self.entries[key]
        return True

    def get_entry(self, class_id: int, student_id: int) -> Optional[EnrollmentEntry]:
        return self.entries.get((int(class_id), int(student_id)))

    def list_entries(self, class_id: int, *, state: Optional[EnrollmentState] = None) -> Sequence[EnrollmentEntry]:
        return [
            e for (cid, _), e in self.entries.items() if cid == int(class_id) and (state is None or e.state == state)
        ]

    def add_entry(
        self,
        class_id: int,
        student_id: int,
        *,
        state: EnrollmentState,
        max_entries: Optional[int] = None,
    ) -> bool:
        key = (int(class_id), int(student_id))
        if key in self.entries:
            return False
        if max_entries is not None and len(self.list_entries(class_id)) >= max_entries:
            raise LimitExceededError(f"Cannot add more than {max_entries} students to a class")
        self.entries[key] = EnrollmentEntry(class_id=key[0], student_id=key[1], state=state)
        return True

    def transition_entry(
        self,
        class_id: int,
        student_id: int,
        *,
        from_state: EnrollmentState,
        to_state: EnrollmentState,
        enrolled_at: Optional[datetime] = None,
    ) -> bool:
        key = (int(class_id), int(student_id))
        entry = self.entries.get(key)
        if entry is None or entry.state != from_state:
            return False
        self.entries[key] = replace(entry, state=to_state, enrolled_at=enrolled_at or entry.enrolled_at)
        return True

    def delete_entry(
        self,
        class_id: int,
        student_id: int,
        *,
        states: Optional[Collection[EnrollmentState]] = None,
    ) -> bool:
        key = (int(class_id), int(student_id))
        entry = self.entries.get(key)
        if entry is None or (states is not None and entry.state not in states):
            return False
        del self.entries[key]
        return True

    def count_accepted_for_students(self, student_ids: Sequence[int]) -> Mapping[int, int]:
        counts: dict[int, int] = {}
        for (_, sid), e in self.entries.items():
            if sid in student_ids and e.state == EnrollmentState.ACCEPTED:
                counts[sid] = counts.get(sid, 0) + 1
        return counts


class InMemorySessions:
    def __init__(self):
        self.sessions: dict[int, AttendanceSession] = {}
        self._id = 0

    def _store(self, session: AttendanceSession) -> None:
        self.sessions[session.session_id] = replace(session, totals=SessionTotals.from_records(session.records))

    def _active_ids(self, class_id: int) -> list[int]:
        return [s.session_id for s in self.sessions.values() if s.class_id == class_id and s.is_in_progress]

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
        if self._active_ids(int(class_id)):
            return None
        self._id += 1
        self._store(
            AttendanceSession(
                session_id=self._id,
                class_id=int(class_id),
                owner_id=int(owner_id),
                session_type=session_type,
                state=SessionState.IN_PROGRESS,
                attendance_date=attendance_date,
                started_at=started_at,
                scheduled_for=scheduled_for,
                location=location,
                notes=notes,
                records=tuple(records),
            )
        )
        return self._id

    def get_by_id(self, session_id: int) -> Optional[AttendanceSession]:
        return self.sessions.get(int(session_id))

    def get_active_for_class(self, class_id: int) -> Optional[AttendanceSession]:
        ids = self._active_ids(int(class_id))
        return self.sessions[ids[0]] if ids else None

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
        items = [
            s
            for s in self.sessions.values()
            if s.owner_id == int(owner_id)
            and (class_id is None or s.class_id == class_id)
            and (session_type is None or s.session_type == session_type)
            and (state is None or s.state == state)
        ]
        items.sort(key=lambda s: (s.attendance_date, s.session_id), reverse=True)
        offset = (page - 1) * limit
        window = [replace(s, records=()) for s in items[offset : offset + limit]]
        return Page(items=window, total=len(items), page=page, limit=limit)

    def list_ids_for_class(self, class_id: int) -> Sequence[int]:
        return [s.session_id for s in self.sessions.values() if s.class_id == int(class_id)]

    def save_records(self, session_id: int, records: Sequence[StudentRecord]) -> bool:
        session = self.sessions.get(int(session_id))
        if session is None or not session.is_in_progress:
            return False
        by_student = {r.student_id: r for r in records}
        merged = tuple(by_student.get(r.student_id, r) for r in session.records)
        self._store(replace(session, records=merged))
        return True

    def delete_records(self, session_id: int, student_ids: Sequence[int]) -> int:
        session = self.sessions.get(int(session_id))
        if session is None or not session.is_in_progress:
            return 0
        ids = {int(s) for s in student_ids}
        kept = tuple(r for r in session.records if r.student_id not in ids)
        self._store(replace(session, records=kept))
        return len(session.records) - len(kept)

    def finish(
        self,
        session_id: int,
        *,
        state: SessionState,
        finished_at: datetime,
        duration_minutes: Optional[int],
    ) -> bool:
        session = self.sessions.get(int(session_id))
        if session is None or not session.is_in_progress:
            return False
        self._store(replace(session, state=state, finished_at=finished_at, duration_minutes=duration_minutes))
        return True

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
        session = self.sessions.get(int(session_id))
        if session is None:
            return False
        if state == SessionState.IN_PROGRESS and [i for i in self._active_ids(session.class_id) if i != session.session_id]:
            return False
        self._store(
            replace(
                session,
                attendance_date=attendance_date,
                scheduled_for=scheduled_for,
                location=location,
                notes=notes,
                state=state,
                finished_at=finished_at,
                duration_minutes=duration_minutes,
            )
        )
        return True

    def delete_session(self, session_id: int) -> bool:
        return self.sessions.pop(int(session_id), None) is not None


class InMemoryHistory:
    def __init__(self):
        self.rows: dict[tuple[int, int], HistoryRecord] = {}
        self.broken = False

    def _check(self) -> None:
        if self.broken:
            raise RuntimeError("history store unavailable")

    def upsert_many(self, records: Sequence[HistoryRecord]) -> int:
        self._check()
        for r in records:
            self.rows[(r.student_id, r.session_id)] = r
        return len(records)

    def _delete_where(self, predicate) -> int:
        self._check()
        keys = [k for k, r in self.rows.items() if predicate(r)]
        for k in keys:
            del self.rows[k]
        return len(keys)

    def delete_for_session(self, session_id: int) -> int:
        return self._delete_where(lambda r: r.session_id == int(session_id))

    def delete_for_session_students(self, session_id: int, student_ids: Sequence[int]) -> int:
        ids = {int(s) for s in student_ids}
        return self._delete_where(lambda r: r.session_id == int(session_id) and r.student_id in ids)

    def delete_for_class(self, class_id: int) -> int:
        return self._delete_where(lambda r: r.class_id == int(class_id))

    def student_ids_for_session(self, session_id: int) -> Sequence[int]:
        return sorted({r.student_id for r in self.rows.values() if r.session_id == int(session_id)})

    def student_ids_for_class(self, class_id: int) -> Sequence[int]:
        return sorted({r.student_id for r in self.rows.values() if r.class_id == int(class_id)})

    def list_for_student(
        self,
        student_id: int,
        *,
        class_id: Optional[int] = None,
        status: Optional[AttendanceStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page[HistoryRow]:
        items = [
            r
            for r in self.rows.values()
            if r.student_id == int(student_id)
            and (class_id is None or r.class_id == class_id)
            and (status is None or r.status == status)
        ]
        items.sort(key=lambda r: (r.marked_at or datetime.min, r.session_id), reverse=True)
        offset = (page - 1) * limit
        return Page(
            items=[HistoryRow(record=r) for r in items[offset : offset + limit]],
            total=len(items),
            page=page,
            limit=limit,
        )

    def status_counts(self, student_ids: Sequence[int]) -> Mapping[int, Mapping[AttendanceStatus, int]]:
        counts: dict[int, dict[AttendanceStatus, int]] = {}
        for r in self.rows.values():
            if r.student_id in student_ids:
                bucket = counts.setdefault(r.student_id, {})
                bucket[r.status] = bucket.get(r.status, 0) + 1
        return counts

    def status_counts_by_class(self, student_id: int) -> Mapping[int, Mapping[AttendanceStatus, int]]:
        counts: dict[int, dict[AttendanceStatus, int]] = {}
        for r in self.rows.values():
            if r.student_id == int(student_id):
                bucket = counts.setdefault(r.class_id, {})
                bucket[r.status] = bucket.get(r.status, 0) + 1
        return counts


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 6, 9, 0, 0))


@pytest.fixture
def users(classes):
    return InMemoryUsers(classes)


@pytest.fixture
def classes():
    return InMemoryClasses()


@pytest.fixture
def sessions():
    return InMemorySessions()


@pytest.fixture
def history():
    return InMemoryHistory()


@pytest.fixture
def container(users, classes, sessions, history, clock):
    return assemble(
        users_repo=users,
        classes_repo=classes,
        sessions_repo=sessions,
        history_repo=history,
        clock=clock,
    )


@pytest.fixture
def make_user(users):
    counter = {"n": 0}

    def _make(name: str = "") -> int:
        counter["n"] += 1
        n = counter["n"]
        return users.create_user(
            name=name or f"User {n}",
            mobile=f"9{n:09d}",
            email=None,
            password_hash="x",
        )

    return _make


@pytest.fixture
def make_class(classes):
    def _make(owner_id: int, *, accepted=(), pending=(), requested=()) -> int:
        class_id = classes.create_class(class_name="Physics", subject="Science", owner_id=owner_id)
        for state, ids in (
            (EnrollmentState.ACCEPTED, accepted),
            (EnrollmentState.PENDING, pending),
            (EnrollmentState.REQUESTED, requested),
        ):
            for sid in ids:
                classes.add_entry(class_id, sid, state=state)
        return class_id

    return _make
