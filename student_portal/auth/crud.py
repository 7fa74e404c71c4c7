from __future__ import annotations

from typing import Any, Optional, Sequence

from student_portal.students.validation import normalize_registration_number
from student_portal.util.time import utcnow_iso


def get_credential_row(conn: Any, registration_number: str) -> Optional[Any]:
    """Fetch the fields login needs. None for blank or unknown identifiers."""
    reg = normalize_registration_number(registration_number)
    if not reg:
        return None
    return conn.execute(
        "SELECT student_id, registration_number, student_name, password_hash FROM students WHERE registration_number=?",
        (reg,),
    ).fetchone()


def touch_last_login(conn: Any, student_id: int) -> None:
    conn.execute(
        "UPDATE students SET last_login_at=? WHERE student_id=?",
        (utcnow_iso(), int(student_id)),
    )


def replace_password_hash(conn: Any, student_id: int, *, old_hash: str, new_hash: str) -> bool:
    """Swap the hash only if it still equals `old_hash`.

    Guards an on-login upgrade against a password change that landed in between.
    """
    cur = conn.execute(
        "UPDATE students SET password_hash=?, updated_at=? WHERE student_id=? AND password_hash=?",
        (new_hash, utcnow_iso(), int(student_id), old_hash),
    )
    return int(cur.rowcount or 0) == 1


def credential_unchanged(conn: Any, student_id: int, accepted_hashes: Sequence[str]) -> bool:
    """True while the row still exists and holds one of `accepted_hashes`.

    Checked in the same transaction that issues a session, so a reset or delete
    that landed after verification cannot be followed by a fresh session.
    """
    hashes = [h for h in accepted_hashes if h]
    if not hashes:
        return False
    marks = ",".join("?" for _ in hashes)
    row = conn.execute(
        f"SELECT 1 FROM students WHERE student_id=? AND password_hash IN ({marks})",
        [int(student_id)] + hashes,
    ).fetchone()
    return row is not None
