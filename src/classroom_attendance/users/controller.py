from __future__ import annotations

from flask import Flask, request, session

from ..common.http import current_user_id, json_body, login_required, ok
from ..container import Container
from .model import ProfilePatch


def register(app: Flask, container: Container) -> None:
    def _start_session(user_id: int, name: str) -> None:
        session.clear()
        session["user_id"] = int(user_id)
        session["name"] = name

    @app.route("/api/users/register", methods=["POST"], endpoint="register_user")
    def register_user():
        body = json_body()
        user = container.auth_service.register(
            name=body.get("name", ""),
            mobile=body.get("mobile", ""),
            password=body.get("password", ""),
            email=body.get("email"),
        )
        _start_session(user.user_id, user.name)
        return ok({"user": user.public_dict()}, "User registered successfully", 201)

    @app.route("/api/users/login", methods=["POST"], endpoint="login")
    def login():
        body = json_body()
        s_user = container.auth_service.authenticate(body.get("mobile", ""), body.get("password", ""))
        _start_session(s_user.user_id, s_user.name)
        return ok(
            {"user": {"id": s_user.user_id, "name": s_user.name, "mobile": s_user.mobile}},
            "Login successful",
        )

    @app.route("/api/users/logout", methods=["POST"], endpoint="logout")
    def logout():
        session.clear()
        return ok(message="Logged out")

    @app.route("/api/users/me", methods=["GET"], endpoint="me")
    @login_required
    def me():
        user = container.user_service.get_profile(current_user_id())
        data = user.public_dict()
        data["stats"] = user.stats.to_dict()
        return ok({"user": data})

    @app.route("/api/users/profile", methods=["PUT"], endpoint="update_profile")
    @login_required
    def update_profile():
        body = json_body()
        patch = ProfilePatch(
            name=body.get("name"),
            mobile=body.get("mobile"),
            email=(body.get("email") or "") if "email" in body else None,
        )
        user = container.user_service.update_profile(current_user_id(), patch)
        session["name"] = user.name
        return ok({"user": user.public_dict()}, "Profile updated successfully")

    @app.route("/api/users/available", methods=["GET"], endpoint="available_users")
    @login_required
    def available_users():
        args = request.args
        page = container.user_service.available_students(
            args.get("classId"),
            current_user_id(),
            search=args.get("search"),
            page=args.get("page"),
            limit=args.get("limit"),
        )
        return ok({"users": [u.public_dict() for u in page.items], "pagination": page.pagination()})
