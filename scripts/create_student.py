"""Register a student directly in the DB.

Usage:
  python scripts/create_student.py --name 'Asha Rao' --reg REG001 --roll 17 \
      --phone 9876543210 --email asha@example.com --section A4 --password '...'

NOTE: This is intended for local/dev. The password is stored under the current scheme.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from student_portal.auth.security import configure_rounds
from student_portal.config import load_config
from student_portal.db import init_db, connect
from student_portal.errors import PortalError
from student_portal.students.crud import create_student
from student_portal.students.validation import SECTIONS


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--name", required=True)
    ap.add_argument("--reg", required=True, help="registration number (login identifier)")
    ap.add_argument("--roll", required=True)
    ap.add_argument("--phone", required=True)
    ap.add_argument("--email", required=True)
    ap.add_argument("--section", choices=list(SECTIONS), required=True)
    ap.add_argument("--password", required=True)
    args = ap.parse_args()

    cfg = load_config()
    configure_rounds(cfg.PASSWORD_HASH_ROUNDS)
    init_db(cfg.DB_DSN)

    try:
        with connect(cfg.DB_DSN) as conn:
            s = create_student(
                conn,
                {
                    "student_name": args.name,
                    "registration_number": args.reg,
                    "roll_number": args.roll,
                    "phone_number": args.phone,
                    "email": args.email,
                    "section": args.section,
                    "password": args.password,
                },
            )
    except PortalError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        raise SystemExit(1)

    print("Created student:")
    print(s)


if __name__ == "__main__":
    main()
