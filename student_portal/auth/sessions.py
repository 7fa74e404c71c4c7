"""Opaque bearer-token sessions.

One ``SessionStore`` per token space (students, admin). Each store is bound to
its own table, so a token minted in one space never validates in the other.

- Tokens: 32 random bytes from ``secrets``, URL-safe base64 (43 chars).
- Expiry is absolute from issuance (no sliding window) and lazy: an expired row
  is deleted the next time it is touched. ``purge_expired`` sweeps the rest.
- A subject holds at most one live session. ``create`` upserts on the UNIQUE
  subject column, so concurrent logins cannot leave two rows behind.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional

from student_portal.models import Session
from student_portal.schema import SESSION_TABLES
from student_portal.util.hashing import token_fingerprint
from student_portal.util.time import parse_iso, to_iso, utcnow


TOKEN_BYTES = 32
DEFAULT_TTL = timedelta(hours=24)


def _debug(msg: str) -> None:
    print(f"[sessions] {msg}")


def new_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


@dataclass(frozen=True)
class SessionStore:
    table: str
    ttl: timedelta = DEFAULT_TTL
    clock: Callable[[], datetime] = field(default=utcnow, compare=False)

    def __post_init__(self) -> None:
        # Table names are interpolated into SQL; only known tables are allowed.
        if self.table not in SESSION_TABLES:
            raise ValueError(f"unknown_session_table: {self.table}")

    def _now(self) -> datetime:
        return self.clock().replace(microsecond=0)

    def create(self, conn: Any, subject_id: str) -> Session:
        """Issue a token for `subject_id`, replacing any session it already has."""
        subject = str(subject_id)
        if not subject:
            raise ValueError("subject_blank")

        issued = self._now()
        expires = issued + self.ttl
        token = new_token()

        conn.execute(
            f"""
            INSERT INTO {self.table} (session_token, subject_id, created_at, expires_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(subject_id) DO UPDATE SET
                session_token=excluded.session_token,
                created_at=excluded.created_at,
                expires_at=excluded.expires_at
            """,
            (token, subject, to_iso(issued), to_iso(expires)),
        )
        _debug(f"issued {self.table} subject={subject} token={token_fingerprint(token)} expires={to_iso(expires)}")
        return Session(subject_id=subject, token=token, created_at=issued, expires_at=expires)

    def get(self, conn: Any, token: str) -> Optional[Session]:
        """Look a token up without expiry handling."""
        if not token or not isinstance(token, str):
            return None
        row = conn.execute(
            f"SELECT session_token, subject_id, created_at, expires_at FROM {self.table} WHERE session_token=?",
            (token,),
        ).fetchone()
        if row is None:
            return None
        return Session(
            subject_id=str(row["subject_id"]),
            token=str(row["session_token"]),
            created_at=parse_iso(row["created_at"]),
            expires_at=parse_iso(row["expires_at"]),
        )

    def validate(self, conn: Any, token: str, expected_subject: Optional[str] = None) -> Optional[Session]:
        """Return the live session for `token`, or None.

        An expired session is deleted here. When `expected_subject` is given, a
        session belonging to anyone else is treated as absent.
        """
        session = self.get(conn, token)
        if session is None:
            return None

        if not session.is_live(self._now()):
            self.destroy(conn, token)
            _debug(f"expired {self.table} subject={session.subject_id} token={token_fingerprint(token)}")
            return None

        if expected_subject is not None and str(expected_subject) != session.subject_id:
            _debug(
                f"subject mismatch on {self.table}: session={session.subject_id} "
                f"requested={expected_subject} token={token_fingerprint(token)}"
            )
            return None

        return session

    def destroy(self, conn: Any, token: str) -> None:
        """Delete a session. Unknown tokens are a no-op."""
        if not token:
            return
        conn.execute(f"DELETE FROM {self.table} WHERE session_token=?", (token,))

    def destroy_subjects(self, conn: Any, subject_ids: Iterable[Any]) -> int:
        """Delete every session held by the given subjects."""
        subjects = [str(s) for s in subject_ids]
        if not subjects:
            return 0
        marks = ",".join("?" for _ in subjects)
        cur = conn.execute(f"DELETE FROM {self.table} WHERE subject_id IN ({marks})", subjects)
        return int(cur.rowcount or 0)

    def purge_expired(self, conn: Any) -> int:
        """Delete all sessions whose expiry has passed."""
        cur = conn.execute(
            f"DELETE FROM {self.table} WHERE expires_at <= ?",
            (to_iso(self._now()),),
        )
        n = int(cur.rowcount or 0)
        if n:
            _debug(f"purged {n} expired row(s) from {self.table}")
        return n

    def count(self, conn: Any, subject_id: Optional[str] = None) -> int:
        if subject_id is None:
            row = conn.execute(f"SELECT COUNT(*) AS n FROM {self.table}").fetchone()
        else:
            row = conn.execute(
                f"SELECT COUNT(*) AS n FROM {self.table} WHERE subject_id=?",
                (str(subject_id),),
            ).fetchone()
        return int(row["n"])
