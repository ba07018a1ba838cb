from __future__ import annotations

import pytest

from classroom_attendance.core.enums import AttendanceStatus, EnrollmentState
from classroom_attendance.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)


def test_invite_creates_pending_entry(container, make_user, make_class, classes):
    teacher, student = make_user(), make_user()
    class_id = make_class(teacher)

    entry = container.enrollment_ledger.invite(class_id, teacher, student)

    assert entry.state == EnrollmentState.PENDING
    assert classes.get_entry(class_id, student).state == EnrollmentState.PENDING


def test_invite_requires_owner(container, make_user, make_class):
    teacher, other, student = make_user(), make_user(), make_user()
    class_id = make_class(teacher)

    with pytest.raises(AuthorizationError):
        container.enrollment_ledger.invite(class_id, other, student)


def test_invite_unknown_student_or_class(container, make_user, make_class):
    teacher = make_user()
    class_id = make_class(teacher)

    with pytest.raises(NotFoundError):
        container.enrollment_ledger.invite(class_id, teacher, 999)
    with pytest.raises(NotFoundError):
        container.enrollment_ledger.invite(999, teacher, teacher)


def test_owner_cannot_invite_themselves(container, make_user, make_class):
    teacher = make_user()
    class_id = make_class(teacher)

    with pytest.raises(ValidationError):
        container.enrollment_ledger.invite(class_id, teacher, teacher)


def test_invite_existing_entry_conflicts(container, make_user, make_class):
    teacher, student = make_user(), make_user()
    class_id = make_class(teacher, requested=[student])

    with pytest.raises(ConflictError):
        container.enrollment_ledger.invite(class_id, teacher, student)


def test_class_entry_limit(container, make_user, make_class, classes):
    teacher = make_user()
    class_id = make_class(teacher)
    for sid in range(1000, 1100):
        classes.add_entry(class_id, sid, state=EnrollmentState.PENDING)
    late_student = make_user()

    with pytest.raises(LimitExceededError):
        container.enrollment_ledger.request(class_id, late_student)
    with pytest.raises(ValidationError):
        container.enrollment_ledger.invite(class_id, teacher, late_student)


def test_request_by_owner_is_forbidden(container, make_user, make_class):
    teacher = make_user()
    class_id = make_class(teacher)

    with pytest.raises(AuthorizationError):
        container.enrollment_ledger.request(class_id, teacher)


def test_request_twice_conflicts(container, make_user, make_class):
    teacher, student = make_user(), make_user()
    class_id = make_class(teacher)

    container.enrollment_ledger.request(class_id, student)
    with pytest.raises(ConflictError):
        container.enrollment_ledger.request(class_id, student)


def test_accept_pending_sets_enrolled_at(container, make_user, make_class, clock):
    teacher, student = make_user(), make_user()
    class_id = make_class(teacher, pending=[student])

    entry = container.enrollment_ledger.accept(class_id, student)

    assert entry.state == EnrollmentState.ACCEPTED
    assert entry.enrolled_at == clock.now


def test_accept_requested_entry_is_a_conflict(container, make_user, make_class):
    teacher, student = make_user(), make_user()
    class_id = make_class(teacher, requested=[student])

    with pytest.raises(ConflictError):
        container.enrollment_ledger.accept(class_id, student)


def test_accept_without_entry(container, make_user, make_class):
    teacher, student = make_user(), make_user()
    class_id = make_class(teacher)

    with pytest.raises(NotFoundError):
        container.enrollment_ledger.accept(class_id, student)


def test_reject_deletes_pending_entry(container, make_user, make_class, classes):
    teacher, student = make_user(), make_user()
    class_id = make_class(teacher, pending=[student])

    container.enrollment_ledger.reject(class_id, student)

    assert classes.get_entry(class_id, student) is None


def test_reject_accepted_entry_is_invalid(container, make_user, make_class):
    teacher, student = make_user(), make_user()
    class_id = make_class(teacher, accepted=[student])

    with pytest.raises(InvalidStateError):
        container.enrollment_ledger.reject(class_id, student)


@pytest.mark.parametrize("state", ["pending", "accepted"])
def test_approve_only_from_requested(container, make_user, make_class, state):
    teacher, student = make_user(), make_user()
    class_id = make_class(teacher, **{state: [student]})

    with pytest.raises(ConflictError):
        container.enrollment_ledger.approve(class_id, teacher, student)


def test_approve_refreshes_enrolled_classes_count(container, make_user, make_class, users):
    teacher, student = make_user(), make_user()
    class_id = make_class(teacher, requested=[student])

    container.enrollment_ledger.approve(class_id, teacher, student)

    assert users.get_by_id(student).stats.enrolled_classes_count == 1


def test_approve_by_non_owner(container, make_user, make_class):
    teacher, other, student = make_user(), make_user(), make_user()
    class_id = make_class(teacher, requested=[student])

    with pytest.raises(AuthorizationError):
        container.enrollment_ledger.approve(class_id, other, student)


def test_deny_removes_request(container, make_user, make_class, classes):
    teacher, student = make_user(), make_user()
    class_id = make_class(teacher, requested=[student])

    container.enrollment_ledger.deny(class_id, teacher, student)

    assert classes.get_entry(class_id, student) is None


def test_deny_pending_is_invalid(container, make_user, make_class):
    teacher, student = make_user(), make_user()
    class_id = make_class(teacher, pending=[student])

    with pytest.raises(InvalidStateError):
        container.enrollment_ledger.deny(class_id, teacher, student)


def test_remove_prunes_active_session_but_keeps_finished_history(container, make_user, make_class, sessions, history):
    teacher, a, b = make_user(), make_user(), make_user()
    class_id = make_class(teacher, accepted=[a, b])
    service = container.session_service

    finished = service.open(class_id=class_id, teacher_id=teacher)
    service.mark(finished.session_id, teacher, a, "present")
    service.complete(finished.session_id, teacher)

    live = service.open(class_id=class_id, teacher_id=teacher)
    service.mark(live.session_id, teacher, a, "late")

    container.enrollment_ledger.remove(class_id, teacher, a)

    assert sessions.get_by_id(live.session_id).record_for(a) is None
    assert (a, live.session_id) not in history.rows
    assert history.rows[(a, finished.session_id)].status == AttendanceStatus.PRESENT


def test_remove_missing_entry(container, make_user, make_class):
    teacher, student = make_user(), make_user()
    class_id = make_class(teacher)

    with pytest.raises(NotFoundError):
        container.enrollment_ledger.remove(class_id, teacher, student)


def test_counts_by_state(container, make_user, make_class):
    teacher = make_user()
    class_id = make_class(teacher, accepted=[10, 11], pending=[12], requested=[13, 14, 15])

    counts = container.enrollment_ledger.counts(class_id)

    assert (counts.accepted, counts.pending, counts.requested, counts.total) == (2, 1, 3, 6)


def test_list_invitations_and_requests(container, make_user, make_class):
    teacher, student = make_user(), make_user()
    invited = make_class(teacher, pending=[student])
    make_class(teacher, requested=[student])

    assert [c.class_id for c in container.enrollment_ledger.list_invitations(student)] == [invited]
    assert container.enrollment_ledger.list_requests(invited, teacher) == []
