from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Sequence
from urllib.parse import urlparse

from student_portal.errors import StorageError
from student_portal.schema import get_schema_sql


def _debug(msg: str) -> None:
    print(f"[db] {msg}")


def _detect_dialect(dsn: str) -> str:
    """Return 'postgres' or 'sqlite'."""
    s = (dsn or "").strip()
    if not s:
        return "sqlite"
    try:
        scheme = urlparse(s).scheme.lower()
    except ValueError:
        scheme = ""
    if scheme in ("postgres", "postgresql"):
        return "postgres"
    return "sqlite"


def _qmark_to_pct(sql: str) -> str:
    """Convert SQLite qmark placeholders (?) to psycopg2 placeholders (%s).

    Skips '?' inside single/double-quoted literals. Not a full SQL parser, but
    sufficient for the statements in this codebase.
    """
    out: List[str] = []
    in_single = False
    in_double = False
    for ch in sql:
        if ch == "'" and not in_double:
            in_single = not in_single
        elif ch == '"' and not in_single:
            in_double = not in_double
        elif ch == "?" and not in_single and not in_double:
            out.append("%s")
            continue
        elif ch == "%":
            # psycopg2 treats every % as a placeholder marker.
            out.append("%%")
            continue
        out.append(ch)
    return "".join(out)


class PGCursor:
    def __init__(self, cur: Any):
        self._cur = cur

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> "PGCursor":
        self._cur.execute(_qmark_to_pct(sql), tuple(params or ()))
        return self

    def fetchone(self) -> Any:
        return self._cur.fetchone()

    def fetchall(self) -> Any:
        return self._cur.fetchall()

    @property
    def rowcount(self) -> int:
        return int(self._cur.rowcount or 0)

    def close(self) -> None:
        self._cur.close()


class PGConnection:
    """A tiny adapter that makes psycopg2 connections look like sqlite3 connections."""

    dialect = "postgres"

    def __init__(self, conn: Any):
        self._conn = conn

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> PGCursor:
        wrapper = PGCursor(self._conn.cursor())
        wrapper.execute(sql, params)
        return wrapper

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()


def is_unique_violation(exc: BaseException) -> bool:
    """True for a UNIQUE-constraint failure on either engine."""
    if isinstance(exc, sqlite3.IntegrityError):
        return "UNIQUE" in str(exc).upper()
    # psycopg2 exposes the SQLSTATE; 23505 is unique_violation.
    return getattr(exc, "pgcode", None) == "23505"


@contextmanager
def connect(db_dsn: str) -> Iterator[Any]:
    """Open one transaction against SQLite or Postgres.

    - Commits when the block exits normally, rolls back on any exception.
    - Driver errors are re-raised as StorageError. Application errors
      raised inside the block propagate unchanged.
    - SQLite: WAL + NORMAL sync, foreign keys on.
    - Postgres: psycopg2 (RealDictCursor) so rows behave like dicts.
    """
    dsn = (db_dsn or "").strip()
    dialect = _detect_dialect(dsn)

    if dialect == "postgres":
        try:
            import psycopg2
            import psycopg2.extras
        except ImportError as e:
            raise RuntimeError(
                "Postgres selected but psycopg2 is not installed. "
                "Install psycopg2-binary and try again."
            ) from e

        try:
            raw = psycopg2.connect(dsn, cursor_factory=psycopg2.extras.RealDictCursor)
        except psycopg2.Error as e:
            _debug(f"connect failed ({dialect}): {e}")
            raise StorageError() from e
        conn = PGConnection(raw)
        try:
            yield conn
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            _debug(f"query failed ({dialect}): {e}")
            raise StorageError() from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return

    # Support sqlite:///path style
    if dsn.lower().startswith("sqlite:///"):
        dsn = dsn[len("sqlite:///") :]

    try:
        Path(dsn).parent.mkdir(parents=True, exist_ok=True)
        sconn = sqlite3.connect(dsn, timeout=30, check_same_thread=False)
        sconn.row_factory = sqlite3.Row
        sconn.execute("PRAGMA journal_mode=WAL;")
        sconn.execute("PRAGMA synchronous=NORMAL;")
        sconn.execute("PRAGMA busy_timeout=5000;")  # 5s
        sconn.execute("PRAGMA foreign_keys = ON;")
    except (OSError, sqlite3.Error) as e:
        _debug(f"connect failed ({dialect}) at {dsn}: {e}")
        raise StorageError() from e

    try:
        yield sconn
        sconn.commit()
    except sqlite3.Error as e:
        sconn.rollback()
        _debug(f"query failed ({dialect}): {e}")
        raise StorageError() from e
    except Exception:
        sconn.rollback()
        raise
    finally:
        sconn.close()


def init_db(db_dsn: str) -> None:
    """Create all tables and run lightweight migrations."""
    dialect = _detect_dialect(db_dsn)
    _debug(f"Initializing DB ({dialect}) at {db_dsn}")
    with connect(db_dsn) as conn:
        schema_sql = get_schema_sql(dialect)
        if dialect == "postgres":
            # Serialize DDL across processes.
            conn.execute("SELECT pg_advisory_lock(2147483600);")
            try:
                _exec_schema(conn, schema_sql, dialect=dialect)
            finally:
                conn.execute("SELECT pg_advisory_unlock(2147483600);")
        else:
            _exec_schema(conn, schema_sql, dialect=dialect)

        _migrate(conn, dialect=dialect)


def _exec_schema(conn: Any, ddl: str, *, dialect: str) -> None:
    if dialect == "postgres":
        # Naive split is OK: the schema has no ';' inside literals or comments.
        statements = [s.strip() for s in ddl.split(";") if s.strip()]
        for stmt in statements:
            conn.execute(stmt)
        return

    conn.executescript(ddl)


def _has_column(conn: Any, table: str, col: str, *, dialect: str) -> bool:
    if dialect == "postgres":
        r = conn.execute(
            """
            SELECT 1
            FROM information_schema.columns
            WHERE table_schema='public'
              AND table_name=?
              AND column_name=?
            LIMIT 1
            """,
            (table, col),
        ).fetchone()
        return r is not None

    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return any(r["name"] == col for r in rows)


def _migrate(conn: Any, *, dialect: str) -> None:
    """Lightweight forward-only migrations for existing DBs."""
    # Older deployments kept a plaintext copy of each password next to the hash
    # for "admin viewing". Drop it: the portal never reads or writes it.
    if _has_column(conn, "students", "password", dialect=dialect):
        _debug("Dropping plaintext password column from students")
        conn.execute("ALTER TABLE students DROP COLUMN password")

    if not _has_column(conn, "students", "last_login_at", dialect=dialect):
        conn.execute("ALTER TABLE students ADD COLUMN last_login_at TEXT")
