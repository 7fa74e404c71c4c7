import pytest
from fastapi.testclient import TestClient

from student_portal.api import server
from student_portal.db import connect
from student_portal.schema import SESSION_TABLES

from conftest import ADMIN_PASSWORD, student_data


@pytest.fixture(scope="module")
def client():
    with TestClient(server.app) as c:
        yield c


@pytest.fixture(autouse=True)
def _clean(client):
    client.cookies.clear()
    with connect(server.cfg.DB_DSN) as conn:
        for table in SESSION_TABLES:
            conn.execute(f"DELETE FROM {table}")
        conn.execute("DELETE FROM students")
    yield


def _register(client, n=1, **overrides):
    r = client.post("/students/register", json=student_data(n, **overrides))
    assert r.status_code == 200, r.text
    return r.json()["student_id"]


def _student_login(client, n=1, password="Secret12"):
    r = client.post("/students/login", json={"registration_number": f"REG{n:03d}", "password": password})
    assert r.status_code == 200, r.text
    return r.json()


def _admin_headers(client):
    r = client.post("/admin/login", json={"username": "admin", "password": ADMIN_PASSWORD})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['session_token']}"}


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/sections").json()["sections"][0] == "A2"


def test_register_and_login(client):
    sid = _register(client)
    body = _student_login(client)
    assert body["student_id"] == sid
    assert body["student_name"] == "Student 1"
    assert body["token_type"] == "bearer"
    assert body["expires_at"].endswith("Z")
    assert client.cookies.get(server.cfg.STUDENT_COOKIE_NAME) == body["session_token"]


def test_register_missing_fields(client):
    r = client.post("/students/register", json={"student_name": "Only Name"})
    assert r.status_code == 400
    assert r.json() == {"detail": "All fields are required", "code": "validation_error"}


def test_register_wrong_type_is_validation_error(client):
    r = client.post("/students/register", json=student_data(1, phone_number=["x"]))
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"


def test_register_duplicate(client):
    _register(client)
    r = client.post("/students/register", json=student_data(2, registration_number="REG001"))
    assert r.status_code == 409
    assert r.json()["code"] == "duplicate"
    assert "registration number" in r.json()["detail"]


def test_login_failures_look_the_same(client):
    _register(client)
    wrong = client.post("/students/login", json={"registration_number": "REG001", "password": "nope"})
    unknown = client.post("/students/login", json={"registration_number": "REG999", "password": "Secret12"})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()


def test_profile_with_bearer_and_cookie(client):
    sid = _register(client)
    token = _student_login(client)["session_token"]

    r = client.get(f"/students/{sid}", headers=_bearer(token))
    assert r.status_code == 200
    assert r.json()["student"]["email"] == "student1@example.com"
    assert "password_hash" not in r.json()["student"]

    # login also set the session cookie
    r = client.get(f"/students/{sid}")
    assert r.status_code == 200


def test_profile_of_other_student_is_unauthorized(client):
    _register(client, 1)
    other = _register(client, 2)
    token = _student_login(client, 1)["session_token"]
    r = client.get(f"/students/{other}", headers=_bearer(token))
    assert r.status_code == 401
    assert r.json()["code"] == "unauthorized"


def test_session_check_and_logout(client):
    sid = _register(client)
    token = _student_login(client)["session_token"]
    assert client.get("/students/session", params={"student_id": sid}, headers=_bearer(token)).json() == {"valid": True}
    assert client.get("/students/session", params={"student_id": sid + 1}, headers=_bearer(token)).json() == {"valid": False}
    r = client.get("/students/session", params={"student_id": "abc"}, headers=_bearer(token))
    assert r.status_code == 200
    assert r.json() == {"valid": False}

    assert client.post("/students/logout", headers=_bearer(token)).json() == {"ok": True}
    assert client.get("/students/session", headers=_bearer(token)).json() == {"valid": False}
    # logging out twice is fine
    assert client.post("/students/logout", headers=_bearer(token)).status_code == 200


def test_self_update(client):
    sid = _register(client)
    token = _student_login(client)["session_token"]
    r = client.patch(f"/students/{sid}", json={"email": "New@Example.com"}, headers=_bearer(token))
    assert r.status_code == 200
    assert r.json()["student"]["email"] == "new@example.com"


def test_self_update_rejects_other_fields(client):
    sid = _register(client)
    token = _student_login(client)["session_token"]
    r = client.patch(f"/students/{sid}", json={"section": "A5"}, headers=_bearer(token))
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"


def test_admin_login_replaces_previous_session(client):
    first = _admin_headers(client)
    second = _admin_headers(client)
    assert client.get("/admin/me", headers=first).status_code == 401
    assert client.get("/admin/me", headers=second).json()["subject"] == "admin"


def test_admin_routes_reject_student_tokens(client):
    _register(client)
    token = _student_login(client)["session_token"]
    r = client.get("/admin/students", headers=_bearer(token))
    assert r.status_code == 401
    assert client.get("/admin/session", headers=_bearer(token)).json() == {"valid": False}


def test_admin_list_update_delete(client):
    admin = _admin_headers(client)
    a = _register(client, 1)
    b = _register(client, 2, section="A7")
    c = _register(client, 3)

    body = client.get("/admin/students", headers=admin).json()
    assert body["total"] == 3
    assert [s["student_id"] for s in body["students"]] == [c, b, a]

    body = client.get("/admin/students", params={"section": "A7"}, headers=admin).json()
    assert [s["student_id"] for s in body["students"]] == [b]

    r = client.patch(f"/admin/students/{a}", json={"student_name": "Renamed"}, headers=admin)
    assert r.status_code == 200
    assert r.json()["student"]["student_name"] == "Renamed"

    assert client.delete(f"/admin/students/{a}", headers=admin).json() == {"ok": True}
    assert client.delete(f"/admin/students/{a}", headers=admin).status_code == 404

    r = client.post("/admin/students/bulk-delete", json={"student_ids": [b, c, 4242]}, headers=admin)
    assert r.json() == {"ok": True, "deleted_count": 2}
    assert client.get("/admin/students", headers=admin).json()["total"] == 0


def test_admin_bulk_delete_requires_ids(client):
    admin = _admin_headers(client)
    r = client.post("/admin/students/bulk-delete", json={"student_ids": []}, headers=admin)
    assert r.status_code == 400


def test_admin_password_reset(client):
    admin = _admin_headers(client)
    sid = _register(client)
    token = _student_login(client)["session_token"]

    r = client.patch(f"/admin/students/{sid}", json={"new_password": "Reset123"}, headers=admin)
    assert r.status_code == 200
    assert client.get(f"/students/{sid}", headers=_bearer(token)).status_code == 401
    assert _student_login(client, 1, "Reset123")["student_id"] == sid


def test_admin_export(client):
    admin = _admin_headers(client)
    _register(client)
    r = client.get("/admin/students/export", headers=admin)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert 'filename="students_export_' in r.headers["content-disposition"]
    lines = r.text.splitlines()
    assert lines[0].startswith('"Student Name"')
    assert '"REG001"' in lines[1]


def test_admin_cookie_session(client):
    r = client.post("/admin/login", json={"username": "admin", "password": ADMIN_PASSWORD})
    assert r.status_code == 200
    assert client.get("/admin/session").json() == {"valid": True}
    client.post("/admin/logout")
    assert client.get("/admin/session").json() == {"valid": False}
