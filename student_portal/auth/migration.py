"""Transparent upgrade of stored credentials.

Runs after a successful verification, with the plaintext that was just proven
correct. The new hash is written in its own transaction: a failed write is
logged and the login that triggered it still succeeds.
"""

from __future__ import annotations

from typing import Optional

from student_portal.auth.crud import replace_password_hash
from student_portal.auth.security import hash_password, needs_upgrade, parse_credential
from student_portal.config import Config
from student_portal.db import connect
from student_portal.errors import StorageError


def _debug(msg: str) -> None:
    print(f"[migration] {msg}")


def upgrade_if_needed(cfg: Config, *, student_id: int, password: str, stored_hash: str) -> Optional[str]:
    """Re-hash under the current scheme when the stored form is outdated.

    Returns the new hash when a replacement was persisted, else None. Never raises
    for storage failures.
    """
    if not needs_upgrade(stored_hash):
        return None

    cred = parse_credential(stored_hash)
    from_scheme = cred.scheme.value if cred is not None else "unknown"
    new_hash = hash_password(password)
    try:
        with connect(cfg.DB_DSN) as conn:
            replaced = replace_password_hash(
                conn,
                int(student_id),
                old_hash=stored_hash,
                new_hash=new_hash,
            )
    except StorageError as e:
        _debug(f"credential upgrade failed for student_id={student_id} ({from_scheme}): {e.__cause__ or e}")
        return None

    if not replaced:
        _debug(f"skipped credential upgrade for student_id={student_id}: hash changed concurrently")
        return None
    _debug(f"upgraded credential for student_id={student_id} from {from_scheme} to current")
    return new_hash
