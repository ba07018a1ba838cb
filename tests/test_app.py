from __future__ import annotations

import pytest

from classroom_attendance.classes.join_code import build_payload
from classroom_attendance.main import create_app


@pytest.fixture
def app(container):
    return create_app(container, settings_module="classroom_attendance.config.testing")


def _signup(app, name: str, mobile: str):
    client = app.test_client()
    resp = client.post(
        "/api/users/register",
        json={"name": name, "mobile": mobile, "password": "secret1"},
    )
    assert resp.status_code == 201
    return client, resp.get_json()["data"]["user"]["id"]


def test_requires_login(app):
    resp = app.test_client().get("/api/classes")

    assert resp.status_code == 401
    assert resp.get_json()["success"] is False


def test_login_and_me(app):
    _signup(app, "Teacher", "0900000001")
    client = app.test_client()

    bad = client.post("/api/users/login", json={"mobile": "0900000001", "password": "nope!!"})
    assert bad.status_code == 401

    good = client.post("/api/users/login", json={"mobile": "0900000001", "password": "secret1"})
    assert good.status_code == 200
    me = client.get("/api/users/me").get_json()["data"]["user"]
    assert me["name"] == "Teacher"
    assert me["stats"]["attendancePercentage"] == 0

    client.post("/api/users/logout")
    assert client.get("/api/users/me").status_code == 401


def test_full_attendance_flow(app):
    teacher, _ = _signup(app, "Teacher", "0900000001")
    student, student_id = _signup(app, "Student", "0900000002")

    resp = teacher.post("/api/classes", json={"className": "Physics", "subject": "Science"})
    assert resp.status_code == 201
    class_id = resp.get_json()["data"]["class"]["id"]

    assert teacher.post(f"/api/classes/{class_id}/students", json={"studentId": student_id}).status_code == 201
    invitations = student.get("/api/students/me/invitations").get_json()["data"]["invitations"]
    assert [c["id"] for c in invitations] == [class_id]

    # pending invitation blocks attendance
    blocked = teacher.post("/api/attendances", json={"classId": class_id})
    assert blocked.status_code == 400
    assert "1 student(s)" in blocked.get_json()["message"]

    assert student.post(f"/api/classes/{class_id}/accept").status_code == 200
    counts = teacher.get(f"/api/classes/{class_id}/counts").get_json()["data"]["counts"]
    assert counts["acceptedStudentCount"] == 1

    resp = teacher.post("/api/attendances", json={"classId": class_id, "location": {"latitude": "10.1"}})
    assert resp.status_code == 201
    session_id = resp.get_json()["data"]["attendance"]["id"]
    assert teacher.post("/api/attendances", json={"classId": class_id}).status_code == 409

    active = student.get(f"/api/classes/{class_id}/active-attendance").get_json()["data"]["attendance"]
    assert active["id"] == session_id

    resp = teacher.put(
        f"/api/attendances/{session_id}/mark-bulk",
        json={"updates": [{"studentId": student_id, "status": "late"}]},
    )
    assert resp.status_code == 200
    resp = teacher.put(
        f"/api/attendances/{session_id}/mark-student",
        json={"studentId": student_id, "status": "present"},
    )
    assert resp.get_json()["data"]["attendance"]["totalPresent"] == 1
    assert student.put(f"/api/attendances/{session_id}/complete").status_code == 403

    done = teacher.put(f"/api/attendances/{session_id}/complete")
    assert done.status_code == 200
    assert done.get_json()["data"]["attendance"]["status"] == "completed"
    assert teacher.put(f"/api/attendances/{session_id}/complete").status_code == 409

    stats = student.get("/api/students/me/stats").get_json()["data"]["stats"]
    assert stats["attendancePercentage"] == 100
    assert stats["totalClassesEnrolled"] == 1

    records = student.get("/api/students/me/attendance").get_json()["data"]
    assert records["pagination"]["totalItems"] == 1
    assert records["attendanceRecords"][0]["status"] == "present"

    summary = teacher.get(f"/api/attendances/{session_id}/summary").get_json()["data"]["summary"]
    assert summary["attendancePercentage"] == 100

    listing = teacher.get("/api/attendances?status=completed").get_json()["data"]
    assert [a["id"] for a in listing["attendances"]] == [session_id]


def test_join_request_by_code(app):
    teacher, _ = _signup(app, "Teacher", "0900000001")
    student, student_id = _signup(app, "Student", "0900000002")
    class_id = teacher.post("/api/classes", json={"className": "Art", "subject": "Art"}).get_json()["data"]["class"]["id"]

    qr = teacher.get(f"/api/classes/{class_id}/qr")
    assert qr.status_code == 200
    assert qr.mimetype == "image/png"

    resp = student.post("/api/classes/join-code", json={"code": build_payload(class_id)})
    assert resp.status_code == 201
    assert resp.get_json()["data"]["enrollment"]["status"] == "requested"
    assert student.post(f"/api/classes/{class_id}/join").status_code == 409

    requests = teacher.get(f"/api/classes/{class_id}/requests").get_json()["data"]["requests"]
    assert [r["studentId"] for r in requests] == [student_id]

    assert student.post(f"/api/classes/{class_id}/accept").status_code == 409
    assert teacher.post(f"/api/classes/{class_id}/requests/{student_id}/approve").status_code == 200
    classes = student.get("/api/students/me/classes").get_json()["data"]["classes"]
    assert [c["id"] for c in classes] == [class_id]


def test_unknown_entities_map_to_404(app):
    teacher, _ = _signup(app, "Teacher", "0900000001")

    resp = teacher.get("/api/classes/999")
    assert resp.status_code == 404
    assert resp.get_json() == {"success": False, "message": "Class not found"}
    assert teacher.delete("/api/attendances/999").status_code == 404
    assert teacher.get("/api/nowhere").status_code == 404


def test_bad_input_maps_to_400(app):
    teacher, _ = _signup(app, "Teacher", "0900000001")

    assert teacher.post("/api/attendances", json={}).status_code == 400
    assert teacher.post("/api/classes", json={"className": "X"}).status_code == 400
    assert teacher.post("/api/classes/join-code", json={"code": "garbage"}).status_code == 400


def test_health(app):
    body = app.test_client().get("/api/health").get_json()

    assert body["data"]["status"] == "ok"
    assert body["data"]["database"] is None


def test_location_input_never_returns_500(app):
    teacher, _ = _signup(app, "Teacher", "0900000001")
    student, student_id = _signup(app, "Student", "0900000002")
    class_id = teacher.post("/api/classes", json={"className": "Art", "subject": "Art"}).get_json()["data"]["class"]["id"]
    teacher.post(f"/api/classes/{class_id}/students", json={"studentId": student_id})
    student.post(f"/api/classes/{class_id}/accept")

    assert teacher.post("/api/attendances", json={"classId": class_id, "location": "here"}).status_code == 400
    assert teacher.post("/api/attendances", json={"classId": class_id, "location": {"latitude": [1]}}).status_code == 400

    resp = teacher.post("/api/attendances", json={"classId": class_id, "location": {"address": 12}})
    assert resp.status_code == 201
    assert resp.get_json()["data"]["attendance"]["location"]["address"] == "12"


def test_profile_update_and_available_students(app):
    teacher, _ = _signup(app, "Teacher", "0900000001")
    _, student_id = _signup(app, "Student", "0900000002")
    _signup(app, "Other", "0900000003")

    resp = teacher.put("/api/users/profile", json={"name": "Ms Hoa", "email": "hoa@school.edu"})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["user"]["email"] == "hoa@school.edu"
    assert teacher.put("/api/users/profile", json={"mobile": "0900000002"}).status_code == 400

    class_id = teacher.post("/api/classes", json={"className": "Art", "subject": "Art"}).get_json()["data"]["class"]["id"]
    teacher.post(f"/api/classes/{class_id}/students", json={"studentId": student_id})

    data = teacher.get(f"/api/users/available?classId={class_id}&search=0900").get_json()["data"]
    assert [u["name"] for u in data["users"]] == ["Other"]
    assert data["pagination"]["totalItems"] == 1
    assert teacher.get("/api/users/available").status_code == 400
