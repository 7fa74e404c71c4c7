from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any, Callable, Dict, Mapping, Optional

from student_portal.auth.crud import credential_unchanged, get_credential_row, touch_last_login
from student_portal.auth.migration import upgrade_if_needed
from student_portal.auth.security import Scheme, hash_password, parse_credential, verify_password
from student_portal.auth.sessions import SessionStore
from student_portal.config import Config
from student_portal.db import connect
from student_portal.errors import InvalidCredentials, Unauthorized, ValidationError
from student_portal.models import ADMIN_SUBJECT, LoginResult
from student_portal.schema import ADMIN_SESSIONS_TABLE, STUDENT_SESSIONS_TABLE
from student_portal.students.crud import create_student
from student_portal.util.hashing import token_fingerprint
from student_portal.util.time import utcnow


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    # Verified against when the identifier is unknown, so both failure paths cost one hash.
    return hash_password(secrets.token_urlsafe(16))


def _subject_of(student_id: Any) -> Optional[str]:
    """Canonical subject string for a client-supplied student id, or None if malformed."""
    if isinstance(student_id, bool):
        return None
    try:
        return str(int(str(student_id).strip()))
    except (TypeError, ValueError):
        return None


class AuthService:
    """Login, session checks and logout for both token spaces.

    Every method opens its own short transaction(s). No state is kept between
    calls apart from the immutable config and session stores.
    """

    def __init__(self, cfg: Config, *, clock: Callable[[], datetime] = utcnow):
        self.cfg = cfg
        self.clock = clock
        ttl = timedelta(hours=max(1, int(cfg.SESSION_TTL_HOURS)))
        self.student_sessions = SessionStore(STUDENT_SESSIONS_TABLE, ttl, clock)
        self.admin_sessions = SessionStore(ADMIN_SESSIONS_TABLE, ttl, clock)

    # -----------------------------
    # Registration
    # -----------------------------

    def register_student(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        with connect(self.cfg.DB_DSN) as conn:
            student = create_student(conn, data)
        _debug(f"registered student_id={student['student_id']} reg={student['registration_number']}")
        return student

    # -----------------------------
    # Students
    # -----------------------------

    def login_student(self, registration_number: str, password: str) -> LoginResult:
        reg = (registration_number or "").strip()
        if not reg or not password:
            raise ValidationError("Registration number and password are required")

        with connect(self.cfg.DB_DSN) as conn:
            row = get_credential_row(conn, reg)

        if row is None:
            verify_password(password, _dummy_hash())
            _debug(f"student login failed: unknown reg={reg}")
            raise InvalidCredentials()

        student_id = int(row["student_id"])
        stored_hash = str(row["password_hash"] or "")
        if not verify_password(password, stored_hash):
            _debug(f"student login failed: bad password student_id={student_id}")
            raise InvalidCredentials()

        upgraded = upgrade_if_needed(self.cfg, student_id=student_id, password=password, stored_hash=stored_hash)

        with connect(self.cfg.DB_DSN) as conn:
            if not credential_unchanged(conn, student_id, [stored_hash, upgraded or ""]):
                _debug(f"student login aborted: credential changed during login student_id={student_id}")
                raise InvalidCredentials()
            session = self.student_sessions.create(conn, str(student_id))
            touch_last_login(conn, student_id)

        _debug(f"student logged in student_id={student_id}")
        return LoginResult(
            token=session.token,
            subject_id=session.subject_id,
            display_name=str(row["student_name"]),
            expires_at=session.expires_at,
        )

    def require_student(self, token: Optional[str], expected_student_id: Any = None) -> int:
        """Return the student id bound to `token`.

        `expected_student_id` is the id the client asked about. It only narrows the
        check: a token for any other student is rejected.
        """
        expected: Optional[str] = None
        if expected_student_id is not None:
            expected = _subject_of(expected_student_id)
            if expected is None:
                raise Unauthorized()

        if not token:
            raise Unauthorized()
        with connect(self.cfg.DB_DSN) as conn:
            session = self.student_sessions.validate(conn, token, expected)
        if session is None:
            raise Unauthorized()
        return int(session.subject_id)

    def validate_student_session(self, token: Optional[str], expected_student_id: Any = None) -> bool:
        try:
            self.require_student(token, expected_student_id)
        except Unauthorized:
            return False
        return True

    def logout_student(self, token: Optional[str]) -> None:
        if not token:
            return
        with connect(self.cfg.DB_DSN) as conn:
            self.student_sessions.destroy(conn, token)
        _debug(f"student logout token={token_fingerprint(token)}")

    # -----------------------------
    # Admin
    # -----------------------------

    def _admin_password_ok(self, password: str) -> bool:
        if self.cfg.ADMIN_PASSWORD_HASH:
            # Only a current-scheme hash is accepted for the admin credential.
            cred = parse_credential(self.cfg.ADMIN_PASSWORD_HASH)
            if cred is None or cred.scheme is not Scheme.CURRENT:
                _debug("admin login rejected: ADMIN_PASSWORD_HASH is not a current-scheme hash")
                return False
            return verify_password(password, cred.data)
        expected = self.cfg.ADMIN_PASSWORD or ""
        return bool(expected) and secrets.compare_digest(password.encode("utf-8"), expected.encode("utf-8"))

    def login_admin(self, username: str, password: str) -> LoginResult:
        user = (username or "").strip()
        if not user or not password:
            raise ValidationError("Username and password are required")

        if not self.cfg.admin_login_enabled:
            _debug("admin login rejected: no admin credential configured")
            raise InvalidCredentials()

        user_ok = secrets.compare_digest(user.encode("utf-8"), self.cfg.ADMIN_USERNAME.strip().encode("utf-8"))
        password_ok = self._admin_password_ok(password)
        if not (user_ok and password_ok):
            _debug("admin login failed")
            raise InvalidCredentials()

        with connect(self.cfg.DB_DSN) as conn:
            session = self.admin_sessions.create(conn, ADMIN_SUBJECT)

        _debug("admin logged in")
        return LoginResult(
            token=session.token,
            subject_id=session.subject_id,
            display_name=user,
            expires_at=session.expires_at,
        )

    def require_admin(self, token: Optional[str]) -> str:
        if not token:
            raise Unauthorized()
        with connect(self.cfg.DB_DSN) as conn:
            session = self.admin_sessions.validate(conn, token, ADMIN_SUBJECT)
        if session is None:
            raise Unauthorized()
        return session.subject_id

    def validate_admin_session(self, token: Optional[str]) -> bool:
        try:
            self.require_admin(token)
        except Unauthorized:
            return False
        return True

    def logout_admin(self, token: Optional[str]) -> None:
        if not token:
            return
        with connect(self.cfg.DB_DSN) as conn:
            self.admin_sessions.destroy(conn, token)
        _debug(f"admin logout token={token_fingerprint(token)}")

    # -----------------------------
    # Maintenance
    # -----------------------------

    def purge_expired_sessions(self) -> Dict[str, int]:
        with connect(self.cfg.DB_DSN) as conn:
            return {
                STUDENT_SESSIONS_TABLE: self.student_sessions.purge_expired(conn),
                ADMIN_SESSIONS_TABLE: self.admin_sessions.purge_expired(conn),
            }
