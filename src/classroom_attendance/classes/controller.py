from __future__ import annotations

from flask import Flask, send_file

from ..common.http import current_user_id, json_body, login_required, ok
from ..common.validators import require_positive_id
from ..container import Container
from .join_code import parse_payload, render_png


def register(app: Flask, container: Container) -> None:
    classes = container.class_service
    ledger = container.enrollment_ledger

    def _class_data(class_id: int) -> dict:
        return {"class": classes.get(class_id, current_user_id()).to_dict()}

    @app.route("/api/classes", methods=["POST"], endpoint="create_class")
    @login_required
    def create_class():
        body = json_body()
        klass = classes.create(
            owner_id=current_user_id(),
            class_name=body.get("className", ""),
            subject=body.get("subject", ""),
        )
        return ok({"class": klass.to_dict()}, "Class created successfully", 201)

    @app.route("/api/classes", methods=["GET"], endpoint="list_classes")
    @login_required
    def list_classes():
        items = classes.list_for_user(current_user_id())
        return ok({"classes": [c.to_dict() for c in items], "count": len(items)})

    @app.route("/api/classes/<int:class_id>", methods=["GET"], endpoint="get_class")
    @login_required
    def get_class(class_id: int):
        return ok(_class_data(class_id))

    @app.route("/api/classes/<int:class_id>", methods=["PUT"], endpoint="update_class")
    @login_required
    def update_class(class_id: int):
        body = json_body()
        klass = classes.update(
            class_id,
            current_user_id(),
            class_name=body.get("className"),
            subject=body.get("subject"),
        )
        return ok({"class": klass.to_dict()}, "Class updated successfully")

    @app.route("/api/classes/<int:class_id>", methods=["DELETE"], endpoint="delete_class")
    @login_required
    def delete_class(class_id: int):
        classes.delete(class_id, current_user_id())
        return ok(message="Class deleted successfully")

    # -------- enrollment --------
    @app.route("/api/classes/<int:class_id>/students", methods=["POST"], endpoint="invite_student")
    @login_required
    def invite_student(class_id: int):
        student_id = require_positive_id(json_body().get("studentId"), "Student ID")
        ledger.invite(class_id, current_user_id(), student_id)
        return ok(_class_data(class_id), "Student invited successfully", 201)

    @app.route("/api/classes/<int:class_id>/students/<int:student_id>", methods=["DELETE"], endpoint="remove_student")
    @login_required
    def remove_student(class_id: int, student_id: int):
        ledger.remove(class_id, current_user_id(), student_id)
        return ok(_class_data(class_id), "Student removed successfully")

    @app.route("/api/classes/<int:class_id>/join", methods=["POST"], endpoint="request_join")
    @login_required
    def request_join(class_id: int):
        entry = ledger.request(class_id, current_user_id())
        return ok({"enrollment": entry.to_dict()}, "Join request sent", 201)

    @app.route("/api/classes/join-code", methods=["POST"], endpoint="request_join_from_code")
    @login_required
    def request_join_from_code():
        body = json_body()
        class_id = parse_payload(body.get("code", body))
        entry = ledger.request(class_id, current_user_id())
        return ok({"enrollment": entry.to_dict()}, "Join request sent", 201)

    @app.route("/api/classes/<int:class_id>/accept", methods=["POST"], endpoint="accept_invitation")
    @login_required
    def accept_invitation(class_id: int):
        entry = ledger.accept(class_id, current_user_id())
        return ok({"enrollment": entry.to_dict()}, "Invitation accepted")

    @app.route("/api/classes/<int:class_id>/reject", methods=["POST"], endpoint="reject_invitation")
    @login_required
    def reject_invitation(class_id: int):
        ledger.reject(class_id, current_user_id())
        return ok(message="Invitation rejected")

    @app.route(
        "/api/classes/<int:class_id>/requests/<int:student_id>/approve",
        methods=["POST"],
        endpoint="approve_join_request",
    )
    @login_required
    def approve_join_request(class_id: int, student_id: int):
        entry = ledger.approve(class_id, current_user_id(), student_id)
        return ok({"enrollment": entry.to_dict()}, "Join request approved")

    @app.route(
        "/api/classes/<int:class_id>/requests/<int:student_id>/deny",
        methods=["POST"],
        endpoint="deny_join_request",
    )
    @login_required
    def deny_join_request(class_id: int, student_id: int):
        ledger.deny(class_id, current_user_id(), student_id)
        return ok(message="Join request denied")

    @app.route("/api/classes/<int:class_id>/requests", methods=["GET"], endpoint="list_join_requests")
    @login_required
    def list_join_requests(class_id: int):
        entries = ledger.list_requests(class_id, current_user_id())
        return ok({"requests": [e.to_dict() for e in entries], "count": len(entries)})

    @app.route("/api/classes/<int:class_id>/counts", methods=["GET"], endpoint="enrollment_counts")
    @login_required
    def enrollment_counts(class_id: int):
        classes.get(class_id, current_user_id())
        return ok({"counts": ledger.counts(class_id).to_dict()})

    @app.route("/api/classes/<int:class_id>/qr", methods=["GET"], endpoint="class_join_qr")
    @login_required
    def class_join_qr(class_id: int):
        klass = classes.get(class_id, current_user_id())
        return send_file(render_png(klass.class_id), mimetype="image/png")

    @app.route("/api/classes/<int:class_id>/active-attendance", methods=["GET"], endpoint="active_attendance")
    @login_required
    def active_attendance(class_id: int):
        active = container.session_service.active_for_class(class_id, current_user_id())
        return ok({"attendance": active.to_dict() if active else None})
