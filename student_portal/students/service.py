"""Student self-service and admin console operations.

Every operation takes the caller's token first and derives the authorized
subject from it. A student id supplied by the client is only ever used as the
cross-check passed to the session validation.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from student_portal.auth.service import AuthService
from student_portal.db import connect
from student_portal.errors import NotFoundError, ValidationError
from student_portal.students import crud
from student_portal.students.export import export_filename, students_to_csv
from student_portal.students.validation import clean_admin_update, clean_self_update


def _debug(msg: str) -> None:
    print(f"[students] {msg}")


def _student_ids(values: Sequence[Any]) -> list[int]:
    ids: list[int] = []
    for v in values:
        if isinstance(v, bool):
            raise ValidationError("Student IDs must be integers")
        try:
            ids.append(int(v))
        except (TypeError, ValueError) as e:
            raise ValidationError("Student IDs must be integers") from e
    return ids


class StudentService:
    def __init__(self, auth: AuthService):
        self.auth = auth
        self.cfg = auth.cfg
        self.clock = auth.clock

    # -----------------------------
    # Student self-service
    # -----------------------------

    def get_profile(self, token: Optional[str], student_id: Any) -> Dict[str, Any]:
        sid = self.auth.require_student(token, student_id)
        with connect(self.cfg.DB_DSN) as conn:
            return crud.public_student(crud.require_student(conn, sid))

    def update_profile(self, token: Optional[str], student_id: Any, updates: Mapping[str, Any]) -> Dict[str, Any]:
        fields = clean_self_update(updates)
        sid = self.auth.require_student(token, student_id)
        with connect(self.cfg.DB_DSN) as conn:
            student = crud.update_student(conn, sid, fields)
        _debug(f"student_id={sid} updated own fields: {', '.join(sorted(fields))}")
        return student

    # -----------------------------
    # Admin console
    # -----------------------------

    def list_students(
        self,
        token: Optional[str],
        *,
        q: Optional[str] = None,
        section: Optional[str] = None,
        limit: Optional[int] = 200,
        offset: int = 0,
    ) -> Tuple[list[Dict[str, Any]], int]:
        self.auth.require_admin(token)
        with connect(self.cfg.DB_DSN) as conn:
            return crud.list_students(conn, q=q, section=section, limit=limit, offset=offset)

    def admin_update_student(self, token: Optional[str], student_id: Any, updates: Mapping[str, Any]) -> Dict[str, Any]:
        fields = clean_admin_update(updates)
        self.auth.require_admin(token)
        sid = _student_ids([student_id])[0]
        with connect(self.cfg.DB_DSN) as conn:
            student = crud.update_student(conn, sid, fields)
            if "password" in fields:
                # A reset password must not leave the old session usable.
                self.auth.student_sessions.destroy_subjects(conn, [sid])
        _debug(f"admin updated student_id={sid}: {', '.join(sorted(fields))}")
        return student

    def delete_student(self, token: Optional[str], student_id: Any) -> None:
        self.auth.require_admin(token)
        sid = _student_ids([student_id])[0]
        with connect(self.cfg.DB_DSN) as conn:
            self.auth.student_sessions.destroy_subjects(conn, [sid])
            if crud.delete_students(conn, [sid]) == 0:
                raise NotFoundError()
        _debug(f"admin deleted student_id={sid}")

    def delete_students(self, token: Optional[str], student_ids: Sequence[Any]) -> int:
        if not student_ids:
            raise ValidationError("Student IDs are required")
        ids = _student_ids(student_ids)
        self.auth.require_admin(token)
        with connect(self.cfg.DB_DSN) as conn:
            self.auth.student_sessions.destroy_subjects(conn, ids)
            deleted = crud.delete_students(conn, ids)
        _debug(f"admin bulk-deleted {deleted} of {len(ids)} requested student(s)")
        return deleted

    def export_csv(
        self,
        token: Optional[str],
        *,
        q: Optional[str] = None,
        section: Optional[str] = None,
    ) -> Tuple[str, str]:
        """Return (filename, csv text) for the filtered student list."""
        self.auth.require_admin(token)
        with connect(self.cfg.DB_DSN) as conn:
            students, _total = crud.list_students(conn, q=q, section=section, limit=None)
        return export_filename(self.clock()), students_to_csv(students)
