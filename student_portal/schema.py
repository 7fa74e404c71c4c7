"""Database schema for the Student Registration Portal.

Works on SQLite (default) and Postgres. Timestamps are ISO-8601 TEXT (UTC, with 'Z')
so they compare the same way on both engines.

Uniqueness of registration number / email / phone is enforced here, not with
read-then-write checks in application code. Session tables carry a UNIQUE
subject column so "replace the subject's session" is a single upsert.

NOTE: The Postgres schema is generated from the SQLite schema with a small set of
transformations (types + autoincrement).
"""

from __future__ import annotations

import re


STUDENT_SESSIONS_TABLE = "student_sessions"
ADMIN_SESSIONS_TABLE = "admin_sessions"

SESSION_TABLES = (STUDENT_SESSIONS_TABLE, ADMIN_SESSIONS_TABLE)


SCHEMA_SQLITE = r"""
PRAGMA foreign_keys = ON;

-- Students (profile + credential on the same row)
-- Only a scheme-tagged password hash is stored, never the plaintext.
CREATE TABLE IF NOT EXISTS students (
    student_id INTEGER PRIMARY KEY AUTOINCREMENT,
    student_name TEXT NOT NULL,
    registration_number TEXT NOT NULL UNIQUE,
    roll_number TEXT NOT NULL,
    phone_number TEXT NOT NULL UNIQUE,
    email TEXT NOT NULL UNIQUE,
    section TEXT NOT NULL,
    password_hash TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_login_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_students_section ON students (section);
CREATE INDEX IF NOT EXISTS idx_students_created ON students (created_at);

-- Sessions: two disjoint token spaces.
-- subject_id is the student_id (as text) or the distinguished admin subject.
CREATE TABLE IF NOT EXISTS student_sessions (
    session_id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_token TEXT NOT NULL UNIQUE,
    subject_id TEXT NOT NULL UNIQUE,
    created_at TEXT NOT NULL,
    expires_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_student_sessions_expires ON student_sessions (expires_at);

CREATE TABLE IF NOT EXISTS admin_sessions (
    session_id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_token TEXT NOT NULL UNIQUE,
    subject_id TEXT NOT NULL UNIQUE,
    created_at TEXT NOT NULL,
    expires_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_admin_sessions_expires ON admin_sessions (expires_at);
"""


def _sqlite_to_postgres(ddl: str) -> str:
    # Remove SQLite pragmas
    lines: list[str] = []
    for line in ddl.splitlines():
        if line.strip().upper().startswith("PRAGMA "):
            continue
        lines.append(line)
    out = "\n".join(lines)

    # AUTOINCREMENT primary keys
    out = re.sub(
        r"INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT",
        "BIGSERIAL PRIMARY KEY",
        out,
        flags=re.IGNORECASE,
    )
    return out


SCHEMA_POSTGRES = _sqlite_to_postgres(SCHEMA_SQLITE)


def get_schema_sql(dialect: str) -> str:
    d = (dialect or "").lower()
    if d.startswith("post"):
        return SCHEMA_POSTGRES
    return SCHEMA_SQLITE
