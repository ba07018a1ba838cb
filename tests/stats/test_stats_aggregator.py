from __future__ import annotations

from classroom_attendance.core.enums import AttendanceStatus, EnrollmentState
from classroom_attendance.history.model import HistoryRecord
from classroom_attendance.stats.aggregator import compute_stats


def _history_for(history, student_id, statuses, class_id=1):
    history.upsert_many(
        [
            HistoryRecord(student_id=student_id, session_id=i + 1, class_id=class_id, status=s)
            for i, s in enumerate(statuses)
        ]
    )


def test_compute_stats_with_no_sessions():
    stats = compute_stats({}, 0)

    assert stats.sessions_count == 0
    assert stats.percentage == 0


def test_recompute_three_present_one_absent(container, make_user, history, users, clock):
    student = make_user()
    P, A = AttendanceStatus.PRESENT, AttendanceStatus.ABSENT
    _history_for(history, student, [P, P, P, A])

    stats = container.stats_aggregator.recompute(student)

    assert stats.percentage == 75
    assert (stats.sessions_count, stats.present, stats.absent) == (4, 3, 1)
    assert stats.updated_at == clock.now
    assert users.get_by_id(student).stats == stats


def test_recompute_counts_only_accepted_enrollments(container, make_user, classes):
    student = make_user()
    for state in (EnrollmentState.ACCEPTED, EnrollmentState.ACCEPTED, EnrollmentState.PENDING):
        class_id = classes.create_class(class_name="C", subject="S", owner_id=99)
        classes.add_entry(class_id, student, state=state)

    stats = container.stats_aggregator.recompute(student)

    assert stats.enrolled_classes_count == 2


def test_bulk_recompute_is_a_full_rederivation(container, make_user, history, users):
    a, b = make_user(), make_user()
    _history_for(history, a, [AttendanceStatus.LATE, AttendanceStatus.EXCUSED])

    first = container.stats_aggregator.bulk_recompute([a, b, a])
    second = container.stats_aggregator.bulk_recompute([a, b])

    assert set(first) == {a, b}
    assert first[a].late == 1 and first[a].excused == 1 and first[a].percentage == 0
    assert first[b].sessions_count == 0
    assert (second[a].sessions_count, second[b].sessions_count) == (2, 0)
    assert users.get_by_id(a).stats.sessions_count == 2


def test_bulk_recompute_with_nothing_to_do(container):
    assert container.stats_aggregator.bulk_recompute([]) == {}


def test_refresh_quietly_swallows_failures(container, make_user, users, monkeypatch, caplog):
    student = make_user()

    def boom(_):
        raise RuntimeError("db down")

    monkeypatch.setattr(users, "save_stats_many", boom)

    container.stats_aggregator.refresh_quietly([student], reason="test")

    assert "Failed to refresh stats" in caplog.text
