"""Delete expired student and admin sessions.

Expired sessions are already rejected (and removed) when presented. This sweep
only keeps the tables small. Safe to run from cron.
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from student_portal.auth.service import AuthService
from student_portal.config import load_config
from student_portal.db import init_db


def main() -> None:
    cfg = load_config()
    init_db(cfg.DB_DSN)
    purged = AuthService(cfg).purge_expired_sessions()
    for table, n in purged.items():
        print(f"{table}: purged {n}")


if __name__ == "__main__":
    main()
