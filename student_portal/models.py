from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


# Distinguished subject id of the single global admin identity.
ADMIN_SUBJECT = "admin"


@dataclass(frozen=True)
class Session:
    subject_id: str
    token: str
    created_at: datetime
    expires_at: datetime

    def is_live(self, now: datetime) -> bool:
        return now < self.expires_at


@dataclass(frozen=True)
class LoginResult:
    token: str
    subject_id: str
    display_name: str
    expires_at: datetime
