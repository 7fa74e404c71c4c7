"""Password hashing.

Two schemes live side by side while old rows are upgraded:

- CURRENT: pbkdf2_sha256 via passlib, per-credential random salt, adaptive cost.
  Stored as ``$pbkdf2-sha256$<rounds>$<salt>$<checksum>``.
- LEGACY: SHA-256 hex digest of ``password + LEGACY_SALT`` (one salt shared by
  every row). Only ever verified, never produced for new credentials.

A stored string is parsed once into a tagged ``Credential``; ``dispatch`` picks
the routine for its scheme, so a hash is never checked with the wrong routine.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from passlib.context import CryptContext
from passlib.hash import hex_sha256, pbkdf2_sha256


# Shared salt of the legacy digest. Kept only to verify rows not yet upgraded.
LEGACY_SALT = "au_site_salt_2024"

DEFAULT_ROUNDS = 29000

_pwd = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
    pbkdf2_sha256__default_rounds=DEFAULT_ROUNDS,
    pbkdf2_sha256__min_rounds=DEFAULT_ROUNDS,
)


class Scheme(str, Enum):
    LEGACY = "legacy"
    CURRENT = "current"


@dataclass(frozen=True)
class Credential:
    scheme: Scheme
    data: str


def configure_rounds(rounds: int) -> None:
    """Change the cost factor used for new hashes.

    Existing hashes below the new cost are reported by `needs_upgrade`.
    """
    n = max(1000, int(rounds))
    _pwd.update(pbkdf2_sha256__default_rounds=n, pbkdf2_sha256__min_rounds=n)


def parse_credential(stored: Optional[str]) -> Optional[Credential]:
    """Tag a stored hash with its scheme, or None if unrecognized."""
    if not stored or not isinstance(stored, str):
        return None
    if pbkdf2_sha256.identify(stored):
        return Credential(Scheme.CURRENT, stored)
    if hex_sha256.identify(stored):
        return Credential(Scheme.LEGACY, stored.lower())
    return None


class _CurrentScheme:
    @staticmethod
    def hash(password: str) -> str:
        return _pwd.hash(password)

    @staticmethod
    def verify(password: str, data: str) -> bool:
        return _pwd.verify(password, data)


class _LegacyScheme:
    @staticmethod
    def hash(password: str) -> str:
        return hex_sha256.hash(password + LEGACY_SALT)

    @staticmethod
    def verify(password: str, data: str) -> bool:
        return hex_sha256.verify(password + LEGACY_SALT, data)


_ROUTINES = {
    Scheme.CURRENT: _CurrentScheme,
    Scheme.LEGACY: _LegacyScheme,
}


def dispatch(scheme: Scheme):
    return _ROUTINES[scheme]


def hash_password(password: str) -> str:
    """Hash under the current scheme. Every new credential goes through here."""
    if not password:
        raise ValueError("password_blank")
    return dispatch(Scheme.CURRENT).hash(password)


def legacy_hash(password: str) -> str:
    """Produce a legacy digest. Used by tests and imports of old data only."""
    return dispatch(Scheme.LEGACY).hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plaintext attempt. Malformed input yields False, never an exception."""
    if not password or not isinstance(password, str):
        return False
    cred = parse_credential(password_hash)
    if cred is None:
        return False
    try:
        return bool(dispatch(cred.scheme).verify(password, cred.data))
    except (ValueError, TypeError):
        return False


def needs_upgrade(password_hash: str) -> bool:
    """True when the stored hash should be replaced by a fresh current-scheme hash."""
    cred = parse_credential(password_hash)
    if cred is None:
        return False
    if cred.scheme is Scheme.LEGACY:
        return True
    try:
        return bool(_pwd.needs_update(cred.data))
    except (ValueError, TypeError):
        return False
