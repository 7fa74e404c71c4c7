"""Print a current-scheme hash, e.g. for ADMIN_PASSWORD_HASH.

Usage:
  python scripts/hash_password.py            # prompts without echo
  python scripts/hash_password.py --password '...'
"""

import argparse
import getpass
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from student_portal.auth.security import configure_rounds, hash_password
from student_portal.config import load_config


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--password", default=None)
    args = ap.parse_args()

    password = args.password
    if password is None:
        password = getpass.getpass("Password: ")
        if password != getpass.getpass("Repeat: "):
            print("Passwords do not match", file=sys.stderr)
            raise SystemExit(1)
    if not password:
        print("Password must not be empty", file=sys.stderr)
        raise SystemExit(1)

    configure_rounds(load_config().PASSWORD_HASH_ROUNDS)
    print(hash_password(password))


if __name__ == "__main__":
    main()
