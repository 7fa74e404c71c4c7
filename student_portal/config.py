import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load a local .env file if present. Real environment variables win.
load_dotenv()


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a boolean environment variable.

    Returns:
      - True/False if the env var is set to a recognizable value
      - default if unset or unrecognized

    Accepted truthy: 1, true, yes, y, on
    Accepted falsy:  0, false, no, n, off
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    IMPORTANT: Provide the admin credential via environment variables or a .env file.
    Do not hardcode secrets in source code.
    """

    # -----------------
    # Core
    # -----------------
    # Preferred: set PORTAL_DATABASE_URL (or DATABASE_URL) to use Postgres.
    # Fallback: PORTAL_DB_PATH for SQLite.
    DB_DSN: str = (
        os.environ.get("PORTAL_DATABASE_URL")
        or os.environ.get("DATABASE_URL")
        or os.environ.get("PORTAL_DB_PATH", "./student_portal.sqlite")
    )

    # -----------------
    # Admin (single global identity, no table of its own)
    # -----------------
    # ADMIN_PASSWORD_HASH takes precedence; generate one with scripts/hash_password.py.
    # When neither password form is set, admin login is disabled.
    ADMIN_USERNAME: str = os.environ.get("ADMIN_USERNAME", "admin")
    ADMIN_PASSWORD: str | None = os.environ.get("ADMIN_PASSWORD") or None
    ADMIN_PASSWORD_HASH: str | None = os.environ.get("ADMIN_PASSWORD_HASH") or None

    # -----------------
    # Sessions / passwords
    # -----------------
    SESSION_TTL_HOURS: int = int(os.environ.get("SESSION_TTL_HOURS", "24"))
    # Cost factor for the current password scheme (pbkdf2_sha256 rounds).
    PASSWORD_HASH_ROUNDS: int = int(os.environ.get("PASSWORD_HASH_ROUNDS", "29000"))

    # -----------------
    # Cookie-based browser sessions
    # -----------------
    # The API reads tokens from either Authorization: Bearer ... OR these cookies.
    # Student and admin tokens live in separate cookies (separate token spaces).
    STUDENT_COOKIE_NAME: str = os.environ.get("STUDENT_COOKIE_NAME", "sp_session")
    ADMIN_COOKIE_NAME: str = os.environ.get("ADMIN_COOKIE_NAME", "sp_admin_session")
    AUTH_COOKIE_DOMAIN: str | None = (os.environ.get("AUTH_COOKIE_DOMAIN") or "").strip() or None
    AUTH_COOKIE_PATH: str = os.environ.get("AUTH_COOKIE_PATH", "/")
    AUTH_COOKIE_SAMESITE: str = os.environ.get("AUTH_COOKIE_SAMESITE", "lax")  # lax|strict|none

    # If AUTH_COOKIE_SECURE is unset, we default to secure cookies when PUBLIC_APP_URL is https.
    PUBLIC_APP_URL: str = os.environ.get("PUBLIC_APP_URL", "http://localhost:5173")
    AUTH_COOKIE_SECURE: bool = (
        _env_bool("AUTH_COOKIE_SECURE", None)
        if _env_bool("AUTH_COOKIE_SECURE", None) is not None
        else PUBLIC_APP_URL.lower().startswith("https://")
    )

    # -----------------
    # CORS (development)
    # -----------------
    CORS_ALLOW_ORIGINS: str = os.environ.get(
        "CORS_ALLOW_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:8080",
    )

    @property
    def admin_login_enabled(self) -> bool:
        return bool((self.ADMIN_USERNAME or "").strip() and (self.ADMIN_PASSWORD_HASH or self.ADMIN_PASSWORD))


def load_config() -> Config:
    return Config()
