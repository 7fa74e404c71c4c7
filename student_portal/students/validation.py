from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Optional

from student_portal.errors import ValidationError


SECTIONS = ("A2", "A3", "A4", "A5", "A6", "A7", "A8", "A9", "A10")

PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 100

# Profile fields in display order. Never includes credentials.
PROFILE_FIELDS = (
    "student_name",
    "registration_number",
    "roll_number",
    "phone_number",
    "email",
    "section",
)

# Fields a student may change on their own record.
SELF_EDITABLE_FIELDS = ("phone_number", "email", "password")

_LABELS = {
    "student_name": "Student name",
    "registration_number": "Registration number",
    "roll_number": "Roll number",
    "phone_number": "Phone number",
    "email": "Email",
    "section": "Section",
    "password": "Password",
}

_MAX_LENGTHS = {
    "student_name": 100,
    "registration_number": 50,
    "roll_number": 20,
    "phone_number": 15,
    "email": 255,
}

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^\+?[0-9][0-9 \-]*$")


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalize_registration_number(value: Any) -> str:
    return _text(value)


def normalize_email(value: Any) -> str:
    return _text(value).lower()


def clean_field(name: str, value: Any) -> str:
    """Validate and normalize one profile field. Raises ValidationError."""
    label = _LABELS.get(name, name)
    if name == "section":
        s = _text(value).upper()
        if s not in SECTIONS:
            raise ValidationError(f"Section must be one of: {', '.join(SECTIONS)}")
        return s

    s = normalize_email(value) if name == "email" else _text(value)
    if not s:
        raise ValidationError(f"{label} is required")

    max_len = _MAX_LENGTHS.get(name)
    if max_len is not None and len(s) > max_len:
        raise ValidationError(f"{label} must be at most {max_len} characters")

    if name == "phone_number":
        if len(s) < 10 or not _PHONE_RE.match(s):
            raise ValidationError("Valid phone number required")
    elif name == "email":
        if not _EMAIL_RE.match(s):
            raise ValidationError("Valid email is required")
    return s


def check_password(password: Any) -> str:
    """Password rules. The plaintext is returned untouched (no trimming)."""
    if not isinstance(password, str) or not password:
        raise ValidationError("Password is required")
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if len(password) > PASSWORD_MAX_LENGTH:
        raise ValidationError(f"Password must be at most {PASSWORD_MAX_LENGTH} characters")
    return password


def clean_registration(data: Mapping[str, Any]) -> Dict[str, str]:
    """Validate a full registration payload (all profile fields + password)."""
    missing = [f for f in PROFILE_FIELDS if not _text(data.get(f))]
    if missing or not data.get("password"):
        raise ValidationError("All fields are required")

    out = {f: clean_field(f, data.get(f)) for f in PROFILE_FIELDS}
    out["password"] = check_password(data.get("password"))
    return out


def clean_self_update(updates: Mapping[str, Any]) -> Dict[str, str]:
    """Validate a student's own edit. Only SELF_EDITABLE_FIELDS are accepted.

    Empty values are skipped. Nothing left to change is an error.
    """
    forbidden = sorted(k for k in updates if k not in SELF_EDITABLE_FIELDS)
    if forbidden:
        raise ValidationError(f"These fields cannot be changed here: {', '.join(forbidden)}")

    out: Dict[str, str] = {}
    for name in SELF_EDITABLE_FIELDS:
        value = updates.get(name)
        if value is None or (isinstance(value, str) and value.strip() == ""):
            continue
        if name == "password":
            out["password"] = check_password(value)
        else:
            out[name] = clean_field(name, value)

    if not out:
        raise ValidationError("No valid fields to update")
    return out


def clean_admin_update(updates: Mapping[str, Any]) -> Dict[str, str]:
    """Validate an admin edit: any profile field plus an optional new password."""
    allowed = set(PROFILE_FIELDS) | {"new_password"}
    unknown = sorted(k for k in updates if k not in allowed)
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(unknown)}")

    out: Dict[str, str] = {}
    for name in PROFILE_FIELDS:
        if updates.get(name) is None:
            continue
        out[name] = clean_field(name, updates[name])

    new_password: Optional[str] = updates.get("new_password")
    if new_password:
        out["password"] = check_password(new_password)

    if not out:
        raise ValidationError("No valid fields to update")
    return out
