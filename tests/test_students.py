import csv
import io

import pytest

from student_portal.errors import DuplicateError, InvalidCredentials, NotFoundError, Unauthorized, ValidationError
from student_portal.students.export import CSV_HEADERS
from student_portal.students.validation import clean_admin_update, clean_registration, clean_self_update

from conftest import ADMIN_PASSWORD, student_data


@pytest.fixture()
def admin(auth):
    return auth.login_admin("admin", ADMIN_PASSWORD).token


def _login(auth, n=1, password="Secret12"):
    return auth.login_student(f"REG{n:03d}", password).token


# -----------------------------
# Validation
# -----------------------------


def test_registration_requires_every_field():
    data = student_data(1)
    data["roll_number"] = "   "
    with pytest.raises(ValidationError) as e:
        clean_registration(data)
    assert e.value.message == "All fields are required"


@pytest.mark.parametrize(
    "field,value,message",
    [
        ("email", "not-an-email", "Valid email is required"),
        ("phone_number", "12345", "Valid phone number required"),
        ("phone_number", "98765abcde", "Valid phone number required"),
        ("section", "B1", "Section must be one of: A2, A3, A4, A5, A6, A7, A8, A9, A10"),
        ("password", "abc", "Password must be at least 6 characters"),
        ("student_name", "x" * 101, "Student name must be at most 100 characters"),
    ],
)
def test_registration_field_rules(field, value, message):
    with pytest.raises(ValidationError) as e:
        clean_registration(student_data(1, **{field: value}))
    assert e.value.message == message


def test_registration_normalizes_values():
    out = clean_registration(student_data(1, email="  Student1@Example.COM ", section="a3", student_name=" Ann "))
    assert out["email"] == "student1@example.com"
    assert out["section"] == "A3"
    assert out["student_name"] == "Ann"


def test_self_update_rejects_fields_outside_allow_list():
    with pytest.raises(ValidationError) as e:
        clean_self_update({"email": "new@example.com", "section": "A5"})
    assert "section" in e.value.message


def test_self_update_skips_blank_values():
    assert clean_self_update({"email": "New@Example.com", "phone_number": "", "password": None}) == {
        "email": "new@example.com"
    }
    with pytest.raises(ValidationError):
        clean_self_update({"email": "  "})


def test_admin_update_maps_new_password():
    out = clean_admin_update({"section": "a9", "new_password": "Another1"})
    assert out == {"section": "A9", "password": "Another1"}
    with pytest.raises(ValidationError):
        clean_admin_update({"password_hash": "x"})


# -----------------------------
# Registration
# -----------------------------


@pytest.mark.parametrize(
    "overrides,field",
    [
        ({"registration_number": "REG001"}, "registration_number"),
        ({"email": "STUDENT1@example.com"}, "email"),
        ({"phone_number": "9876500001"}, "phone_number"),
    ],
)
def test_duplicate_registration(register, overrides, field):
    register(1)
    with pytest.raises(DuplicateError) as e:
        register(2, **overrides)
    assert e.value.field == field
    assert e.value.status_code == 409


def test_validation_failure_creates_nothing(register, students, admin):
    with pytest.raises(ValidationError):
        register(1, email="bad")
    rows, total = students.list_students(admin)
    assert rows == [] and total == 0


# -----------------------------
# Student self-service
# -----------------------------


def test_get_own_profile(auth, students, register):
    student = register(1)
    token = _login(auth)
    profile = students.get_profile(token, student["student_id"])
    assert profile["registration_number"] == "REG001"
    assert "password_hash" not in profile


def test_cannot_read_another_students_profile(auth, students, register):
    register(1)
    other = register(2)
    token = _login(auth, 1)
    with pytest.raises(Unauthorized):
        students.get_profile(token, other["student_id"])


def test_profile_requires_session(students, register):
    student = register(1)
    with pytest.raises(Unauthorized):
        students.get_profile(None, student["student_id"])
    with pytest.raises(Unauthorized):
        students.get_profile("forged-token", student["student_id"])


def test_update_own_contact_details(auth, students, register):
    student = register(1)
    token = _login(auth)
    updated = students.update_profile(token, student["student_id"], {"phone_number": "9000000001"})
    assert updated["phone_number"] == "9000000001"
    assert updated["email"] == "student1@example.com"


def test_update_rejects_protected_fields(auth, students, register):
    student = register(1)
    token = _login(auth)
    with pytest.raises(ValidationError):
        students.update_profile(token, student["student_id"], {"registration_number": "HACK"})
    assert students.get_profile(token, student["student_id"])["registration_number"] == "REG001"


def test_update_password_replaces_credential(auth, students, register):
    student = register(1)
    token = _login(auth)
    students.update_profile(token, student["student_id"], {"password": "Changed99"})
    assert _login(auth, 1, "Changed99")
    with pytest.raises(InvalidCredentials):
        _login(auth, 1, "Secret12")


def test_update_to_taken_email_is_duplicate(auth, students, register):
    student = register(1)
    register(2)
    token = _login(auth)
    with pytest.raises(DuplicateError):
        students.update_profile(token, student["student_id"], {"email": "student2@example.com"})


def test_update_other_student_is_unauthorized(auth, students, register):
    register(1)
    other = register(2)
    token = _login(auth, 1)
    with pytest.raises(Unauthorized):
        students.update_profile(token, other["student_id"], {"phone_number": "9000000001"})


# -----------------------------
# Admin console
# -----------------------------


def test_admin_operations_require_admin_session(auth, students, register):
    register(1)
    student_token = _login(auth)
    with pytest.raises(Unauthorized):
        students.list_students(student_token)
    with pytest.raises(Unauthorized):
        students.list_students(None)


def test_list_newest_first(students, register, admin):
    ids = [register(n)["student_id"] for n in (1, 2, 3)]
    rows, total = students.list_students(admin)
    assert total == 3
    assert [r["student_id"] for r in rows] == list(reversed(ids))
    assert all("password_hash" not in r for r in rows)


def test_list_search_and_section_filter(students, register, admin):
    register(1, student_name="Alice Smith")
    register(2, student_name="Bob Jones", section="A5")
    register(3, student_name="Carol Smith", section="A5")

    rows, total = students.list_students(admin, q="smith")
    assert total == 2
    assert {r["student_name"] for r in rows} == {"Alice Smith", "Carol Smith"}

    rows, total = students.list_students(admin, section="a5")
    assert {r["student_name"] for r in rows} == {"Bob Jones", "Carol Smith"}

    rows, total = students.list_students(admin, q="smith", section="A5")
    assert [r["student_name"] for r in rows] == ["Carol Smith"]


def test_list_pagination(students, register, admin):
    for n in range(1, 6):
        register(n)
    rows, total = students.list_students(admin, limit=2, offset=2)
    assert total == 5
    assert [r["registration_number"] for r in rows] == ["REG003", "REG002"]


def test_admin_update_any_field(students, register, admin):
    student = register(1)
    updated = students.admin_update_student(admin, student["student_id"], {"section": "A10", "roll_number": "77"})
    assert updated["section"] == "A10"
    assert updated["roll_number"] == "77"


def test_admin_password_reset_ends_student_session(auth, students, register, admin):
    student = register(1)
    token = _login(auth)
    students.admin_update_student(admin, student["student_id"], {"new_password": "Reset123"})
    assert auth.validate_student_session(token) is False
    assert _login(auth, 1, "Reset123")


def test_admin_update_unknown_student(students, admin):
    with pytest.raises(NotFoundError):
        students.admin_update_student(admin, 999, {"section": "A3"})


def test_delete_one(auth, students, register, admin):
    student = register(1)
    token = _login(auth)
    students.delete_student(admin, student["student_id"])
    assert students.list_students(admin)[1] == 0
    assert auth.validate_student_session(token) is False
    with pytest.raises(NotFoundError):
        students.delete_student(admin, student["student_id"])


def test_delete_many(students, register, admin):
    a = register(1)["student_id"]
    b = register(2)["student_id"]
    c = register(3)["student_id"]
    assert students.delete_students(admin, [a, c, 9999]) == 2
    rows, total = students.list_students(admin)
    assert total == 1 and rows[0]["student_id"] == b


def test_delete_many_input_checks(students, admin):
    with pytest.raises(ValidationError):
        students.delete_students(admin, [])
    with pytest.raises(ValidationError):
        students.delete_students(admin, ["abc"])


def test_export_csv(students, register, admin):
    register(1, student_name='Quote "Q" Person')
    register(2, section="A4")
    filename, body = students.export_csv(admin)
    assert filename == "students_export_2026-01-05.csv"
    assert body.startswith('"Student Name","Registration Number"')
    assert "Secret12" not in body and "pbkdf2" not in body

    rows = list(csv.reader(io.StringIO(body)))
    assert tuple(rows[0]) == CSV_HEADERS
    assert len(rows) == 3
    assert rows[2][0] == 'Quote "Q" Person'
    assert len(rows[1][6]) == len("2026-01-05")


def test_search_treats_wildcards_literally(students, register, admin):
    register(1, student_name="Asha Rao")
    register(2, student_name="Ravi_Kumar")

    rows, total = students.list_students(admin, q="_")
    assert total == 1
    assert [r["student_name"] for r in rows] == ["Ravi_Kumar"]

    rows, total = students.list_students(admin, q="%")
    assert total == 0 and rows == []

    _filename, body = students.export_csv(admin, q="i_k")
    assert [r[0] for r in list(csv.reader(io.StringIO(body)))[1:]] == ["Ravi_Kumar"]


def test_export_uses_service_clock(students, clock, admin):
    clock.advance(days=30)
    filename, _body = students.export_csv(admin)
    assert filename == "students_export_2026-02-04.csv"


def test_export_respects_filters(students, register, admin):
    register(1)
    register(2, section="A4")
    _filename, body = students.export_csv(admin, section="A4")
    rows = list(csv.reader(io.StringIO(body)))
    assert [r[1] for r in rows[1:]] == ["REG002"]
