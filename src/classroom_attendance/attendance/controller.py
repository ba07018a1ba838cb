from __future__ import annotations

from typing import Optional

from flask import Flask, request

from ..common.datetime_utils import parse_iso_datetime
from ..common.http import current_user_id, json_body, login_required, ok
from ..core.exceptions import ValidationError
from ..container import Container
from .model import Location, SessionPatch


def _location(raw) -> Optional[Location]:
    if raw in (None, ""):
        return None
    if not isinstance(raw, dict):
        raise ValidationError("Location must be an object")
    try:
        return Location.from_dict(raw)
    except (TypeError, ValueError):
        raise ValidationError("Location coordinates must be numbers")


def register(app: Flask, container: Container) -> None:
    sessions = container.session_service

    @app.route("/api/attendances", methods=["POST"], endpoint="create_attendance")
    @login_required
    def create_attendance():
        body = json_body()
        if body.get("classId") in (None, ""):
            raise ValidationError("Class ID is required")
        attendance = sessions.open(
            class_id=body.get("classId"),
            teacher_id=current_user_id(),
            session_type=body.get("attendanceType") or "quick",
            scheduled_for=parse_iso_datetime(body.get("scheduledFor"), "scheduledFor"),
            attendance_date=parse_iso_datetime(body.get("attendanceDate"), "attendanceDate"),
            location=_location(body.get("location")),
            notes=body.get("notes"),
        )
        return ok({"attendance": attendance.to_dict()}, "Attendance created successfully", 201)

    @app.route("/api/attendances", methods=["GET"], endpoint="list_attendances")
    @login_required
    def list_attendances():
        args = request.args
        page = sessions.list_for_teacher(
            current_user_id(),
            class_id=args.get("classId"),
            session_type=args.get("attendanceType"),
            state=args.get("status"),
            page=args.get("page"),
            limit=args.get("limit"),
        )
        return ok(
            {
                "attendances": [a.to_dict(include_records=False) for a in page.items],
                "pagination": page.pagination(),
            }
        )

    @app.route("/api/attendances/<int:session_id>", methods=["GET"], endpoint="get_attendance")
    @login_required
    def get_attendance(session_id: int):
        return ok({"attendance": sessions.get(session_id, current_user_id()).to_dict()})

    @app.route("/api/attendances/<int:session_id>", methods=["PUT"], endpoint="update_attendance")
    @login_required
    def update_attendance(session_id: int):
        body = json_body()
        patch = SessionPatch(
            attendance_date=parse_iso_datetime(body.get("attendanceDate"), "attendanceDate"),
            scheduled_for=parse_iso_datetime(body.get("scheduledFor"), "scheduledFor"),
            location=_location(body.get("location")),
            notes=(body.get("notes") or "") if "notes" in body else None,
            state=body.get("status") or None,
        )
        attendance = sessions.update(session_id, current_user_id(), patch)
        return ok({"attendance": attendance.to_dict()}, "Attendance updated successfully")

    @app.route("/api/attendances/<int:session_id>", methods=["DELETE"], endpoint="delete_attendance")
    @login_required
    def delete_attendance(session_id: int):
        sessions.delete(session_id, current_user_id())
        return ok(message="Attendance deleted successfully")

    @app.route("/api/attendances/<int:session_id>/mark-student", methods=["PUT"], endpoint="mark_student")
    @login_required
    def mark_student(session_id: int):
        body = json_body()
        if body.get("studentId") in (None, ""):
            raise ValidationError("Student ID is required")
        attendance = sessions.mark(
            session_id,
            current_user_id(),
            body.get("studentId"),
            body.get("status"),
            body.get("notes"),
        )
        return ok({"attendance": attendance.to_dict()}, "Student attendance marked successfully")

    @app.route("/api/attendances/<int:session_id>/mark-bulk", methods=["PUT"], endpoint="mark_bulk")
    @login_required
    def mark_bulk(session_id: int):
        updates = json_body().get("updates")
        attendance = sessions.mark_bulk(session_id, current_user_id(), updates)
        return ok({"attendance": attendance.to_dict()}, f"Marked {len(updates)} student(s) successfully")

    @app.route(
        "/api/attendances/<int:session_id>/students/<int:student_id>",
        methods=["DELETE"],
        endpoint="remove_attendance_student",
    )
    @login_required
    def remove_attendance_student(session_id: int, student_id: int):
        attendance = sessions.remove_student(session_id, current_user_id(), student_id)
        return ok({"attendance": attendance.to_dict()}, "Student removed from attendance")

    @app.route("/api/attendances/<int:session_id>/remove-students", methods=["POST"], endpoint="remove_attendance_students")
    @login_required
    def remove_attendance_students(session_id: int):
        result = sessions.remove_students(session_id, current_user_id(), json_body().get("studentIds"))
        data = result.to_dict()
        data["attendance"] = sessions.get(session_id, current_user_id()).to_dict()
        return ok(data, f"Removed {len(result.removed)} student(s) from attendance")

    @app.route("/api/attendances/<int:session_id>/complete", methods=["PUT"], endpoint="complete_attendance")
    @login_required
    def complete_attendance(session_id: int):
        attendance = sessions.complete(session_id, current_user_id())
        return ok({"attendance": attendance.to_dict()}, "Attendance completed successfully")

    @app.route("/api/attendances/<int:session_id>/cancel", methods=["PUT"], endpoint="cancel_attendance")
    @login_required
    def cancel_attendance(session_id: int):
        attendance = sessions.cancel(session_id, current_user_id())
        return ok({"attendance": attendance.to_dict()}, "Attendance cancelled")

    @app.route("/api/attendances/<int:session_id>/summary", methods=["GET"], endpoint="attendance_summary")
    @login_required
    def attendance_summary(session_id: int):
        return ok({"summary": sessions.summary(session_id, current_user_id())})
