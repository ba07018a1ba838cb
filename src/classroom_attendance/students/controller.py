from __future__ import annotations

from flask import Flask, request

from ..common.http import current_user_id, login_required, ok
from ..container import Container


def register(app: Flask, container: Container) -> None:
    students = container.student_service

    @app.route("/api/students/me/classes", methods=["GET"], endpoint="my_classes")
    @login_required
    def my_classes():
        items = students.enrolled_classes(current_user_id())
        return ok({"classes": [c.to_dict(include_entries=False) for c in items], "count": len(items)})

    @app.route("/api/students/me/invitations", methods=["GET"], endpoint="my_invitations")
    @login_required
    def my_invitations():
        items = students.invitations(current_user_id())
        return ok({"invitations": [c.to_dict(include_entries=False) for c in items], "count": len(items)})

    @app.route("/api/students/me/attendance", methods=["GET"], endpoint="my_attendance")
    @login_required
    def my_attendance():
        args = request.args
        page = students.my_records(
            current_user_id(),
            class_id=args.get("classId"),
            status=args.get("status"),
            page=args.get("page"),
            limit=args.get("limit"),
        )
        return ok(
            {
                "attendanceRecords": [r.to_dict() for r in page.items],
                "pagination": page.pagination(),
            }
        )

    @app.route("/api/students/me/attendance/class/<int:class_id>", methods=["GET"], endpoint="my_class_attendance")
    @login_required
    def my_class_attendance(class_id: int):
        view = students.class_attendance(
            current_user_id(),
            class_id,
            page=request.args.get("page"),
            limit=request.args.get("limit"),
        )
        return ok(view.to_dict())

    @app.route("/api/students/me/stats", methods=["GET"], endpoint="my_stats")
    @login_required
    def my_stats():
        return ok({"stats": students.get_stats(current_user_id()).to_dict()})

    @app.route("/api/students/me/stats/refresh", methods=["POST"], endpoint="refresh_my_stats")
    @login_required
    def refresh_my_stats():
        stats = students.refresh_stats(current_user_id())
        return ok({"stats": stats.to_dict()}, "Statistics refreshed")

    @app.route("/api/students/me/summary", methods=["GET"], endpoint="my_summary")
    @login_required
    def my_summary():
        return ok(students.summary(current_user_id()).to_dict())
