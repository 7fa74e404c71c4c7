from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from student_portal.auth.security import hash_password
from student_portal.db import is_unique_violation
from student_portal.errors import DuplicateError, NotFoundError, ValidationError
from student_portal.students.validation import PROFILE_FIELDS, clean_registration
from student_portal.util.time import utcnow_iso


PUBLIC_COLUMNS = ("student_id",) + PROFILE_FIELDS + ("created_at", "updated_at", "last_login_at")

_DUPLICATE_MESSAGES = (
    (
        "registration_number",
        "This registration number is already registered. Please enter a correct registration number.",
    ),
    ("email", "This email is already registered. Please use a different email address."),
    ("phone_number", "This phone number is already registered. Please use a different phone number."),
)


def _like_pattern(term: str) -> str:
    """Substring LIKE pattern. Wildcards in `term` are escaped with a backslash."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


_SEARCH_COLUMNS = ("student_name", "registration_number", "roll_number", "email", "phone_number")

MAX_PAGE_SIZE = 1000


def public_student(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    return {k: d.get(k) for k in PUBLIC_COLUMNS}


def _duplicate_error(exc: BaseException) -> DuplicateError:
    text = str(exc)
    for field, message in _DUPLICATE_MESSAGES:
        if field in text:
            return DuplicateError(message, field=field)
    return DuplicateError("This student is already registered.")


def get_student_by_id(conn: Any, student_id: int) -> Optional[Any]:
    return conn.execute(
        "SELECT * FROM students WHERE student_id=?",
        (int(student_id),),
    ).fetchone()


def require_student(conn: Any, student_id: int) -> Any:
    row = get_student_by_id(conn, student_id)
    if row is None:
        raise NotFoundError()
    return row


def insert_student(conn: Any, fields: Mapping[str, str], *, password_hash: str) -> Dict[str, Any]:
    """Insert an already-validated record. Uniqueness is left to the schema."""
    now = utcnow_iso()
    try:
        conn.execute(
            """
            INSERT INTO students (
                student_name, registration_number, roll_number, phone_number, email, section,
                password_hash, created_at, updated_at
            )
            VALUES (?,?,?,?,?,?,?,?,?)
            """,
            (
                fields["student_name"],
                fields["registration_number"],
                fields["roll_number"],
                fields["phone_number"],
                fields["email"],
                fields["section"],
                password_hash,
                now,
                now,
            ),
        )
    except Exception as e:
        if is_unique_violation(e):
            raise _duplicate_error(e) from e
        raise
    row = conn.execute(
        "SELECT * FROM students WHERE registration_number=?",
        (fields["registration_number"],),
    ).fetchone()
    assert row is not None
    return public_student(row)


def create_student(conn: Any, data: Mapping[str, Any]) -> Dict[str, Any]:
    """Register a student. The password is always stored under the current scheme."""
    fields = clean_registration(data)
    password = fields.pop("password")
    return insert_student(conn, fields, password_hash=hash_password(password))


def update_student(conn: Any, student_id: int, fields: Mapping[str, str]) -> Dict[str, Any]:
    """Apply validated changes. A "password" entry is hashed before storage."""
    require_student(conn, student_id)

    sets: List[Tuple[str, Any]] = []
    for name in PROFILE_FIELDS:
        if name in fields:
            sets.append((name, fields[name]))
    if fields.get("password"):
        sets.append(("password_hash", hash_password(fields["password"])))
    if not sets:
        raise ValidationError("No valid fields to update")
    sets.append(("updated_at", utcnow_iso()))

    assignments = ", ".join(f"{k}=?" for k, _ in sets)
    params = [v for _, v in sets] + [int(student_id)]
    try:
        conn.execute(f"UPDATE students SET {assignments} WHERE student_id=?", params)
    except Exception as e:
        if is_unique_violation(e):
            raise _duplicate_error(e) from e
        raise
    return public_student(require_student(conn, student_id))


def _filters(q: Optional[str], section: Optional[str]) -> Tuple[str, List[Any]]:
    clauses: List[str] = []
    params: List[Any] = []
    term = (q or "").strip().lower()
    if term:
        like = _like_pattern(term)
        clauses.append("(" + " OR ".join(f"LOWER({c}) LIKE ? ESCAPE '\\'" for c in _SEARCH_COLUMNS) + ")")
        params.extend([like] * len(_SEARCH_COLUMNS))
    sec = (section or "").strip().upper()
    if sec:
        clauses.append("section=?")
        params.append(sec)
    where = ("WHERE " + " AND ".join(clauses)) if clauses else ""
    return where, params


def list_students(
    conn: Any,
    *,
    q: Optional[str] = None,
    section: Optional[str] = None,
    limit: Optional[int] = 200,
    offset: int = 0,
) -> Tuple[List[Dict[str, Any]], int]:
    """Newest first. Returns (page, total matching)."""
    where, params = _filters(q, section)
    total = conn.execute(f"SELECT COUNT(*) AS n FROM students {where}", params).fetchone()["n"]

    sql = f"SELECT * FROM students {where} ORDER BY created_at DESC, student_id DESC"
    page_params = list(params)
    if limit is not None:
        sql += " LIMIT ? OFFSET ?"
        page_params += [max(1, min(int(limit), MAX_PAGE_SIZE)), max(0, int(offset))]
    rows = conn.execute(sql, page_params).fetchall()
    return [public_student(r) for r in rows], int(total)


def delete_students(conn: Any, student_ids: Sequence[int]) -> int:
    """Delete records by id. Returns how many existed."""
    ids = [int(i) for i in student_ids]
    if not ids:
        return 0
    marks = ",".join("?" for _ in ids)
    cur = conn.execute(f"DELETE FROM students WHERE student_id IN ({marks})", ids)
    return int(cur.rowcount or 0)
