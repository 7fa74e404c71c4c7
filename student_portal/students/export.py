from __future__ import annotations

import csv
import io
from datetime import datetime
from typing import Any, Dict, Iterable

from student_portal.util.time import iso_date, parse_iso


CSV_HEADERS = (
    "Student Name",
    "Registration Number",
    "Roll Number",
    "Phone Number",
    "Email",
    "Section",
    "Created At",
)

_COLUMNS = ("student_name", "registration_number", "roll_number", "phone_number", "email", "section")


def _created_date(value: Any) -> str:
    if not value:
        return ""
    try:
        return iso_date(parse_iso(str(value)))
    except ValueError:
        return str(value)


def students_to_csv(students: Iterable[Dict[str, Any]]) -> str:
    """Render public student dicts as an Excel-friendly CSV (every cell quoted).

    Credentials are never part of the export.
    """
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\r\n")
    writer.writerow(CSV_HEADERS)
    for s in students:
        writer.writerow([s.get(c) or "" for c in _COLUMNS] + [_created_date(s.get("created_at"))])
    return buf.getvalue()


def export_filename(now: datetime) -> str:
    return f"students_export_{iso_date(now)}.csv"
