from __future__ import annotations

import os
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Test-mode runtime config for the HTTP app (read once at import):
# - throwaway SQLite file
# - known admin credential
# - cheap password hashing
_API_DB_DIR = tempfile.mkdtemp(prefix="student_portal_api_")
os.environ["PORTAL_DB_PATH"] = os.path.join(_API_DB_DIR, "api.sqlite")
os.environ.pop("PORTAL_DATABASE_URL", None)
os.environ.pop("DATABASE_URL", None)
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "admin-pass-123"
os.environ.pop("ADMIN_PASSWORD_HASH", None)
os.environ["PASSWORD_HASH_ROUNDS"] = "1000"

from student_portal.auth.security import configure_rounds  # noqa: E402
from student_portal.auth.service import AuthService  # noqa: E402
from student_portal.config import Config  # noqa: E402
from student_portal.db import init_db  # noqa: E402
from student_portal.students.service import StudentService  # noqa: E402

ADMIN_PASSWORD = "admin-pass-123"


class FakeClock:
    """Deterministic clock for session expiry tests."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now = self.now + timedelta(**kwargs)


def student_data(n: int = 1, **overrides: Any) -> Dict[str, Any]:
    data = {
        "student_name": f"Student {n}",
        "registration_number": f"REG{n:03d}",
        "roll_number": str(n),
        "phone_number": f"98765{n:05d}",
        "email": f"student{n}@example.com",
        "section": "A2",
        "password": "Secret12",
    }
    data.update(overrides)
    return data


@pytest.fixture(scope="session", autouse=True)
def _fast_hashing():
    configure_rounds(1000)


@pytest.fixture()
def cfg(tmp_path) -> Config:
    c = Config(
        DB_DSN=str(tmp_path / "portal.sqlite"),
        ADMIN_USERNAME="admin",
        ADMIN_PASSWORD=ADMIN_PASSWORD,
        ADMIN_PASSWORD_HASH=None,
        SESSION_TTL_HOURS=24,
    )
    init_db(c.DB_DSN)
    return c


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture()
def auth(cfg, clock) -> AuthService:
    return AuthService(cfg, clock=clock)


@pytest.fixture()
def students(auth) -> StudentService:
    return StudentService(auth)


@pytest.fixture()
def register(auth):
    def _register(n: int = 1, **overrides: Any) -> Dict[str, Any]:
        return auth.register_student(student_data(n, **overrides))

    return _register
