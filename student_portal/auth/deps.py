from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from student_portal.auth.service import AuthService
from student_portal.config import Config


_bearer = HTTPBearer(auto_error=False)


def get_cfg(request: Request) -> Config:
    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise HTTPException(status_code=500, detail="server_config_missing")
    return cfg


def get_auth(request: Request) -> AuthService:
    auth = getattr(request.app.state, "auth", None)
    if auth is None:
        raise HTTPException(status_code=500, detail="server_config_missing")
    return auth


def _token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
    cookie_name: str,
) -> Optional[str]:
    """Prefer an explicit Bearer token, fall back to the session cookie."""
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(cookie_name) or None


def student_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Optional[str]:
    return _token(request, credentials, get_cfg(request).STUDENT_COOKIE_NAME)


def admin_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Optional[str]:
    return _token(request, credentials, get_cfg(request).ADMIN_COOKIE_NAME)


def require_admin(
    token: Optional[str] = Depends(admin_token),
    auth: AuthService = Depends(get_auth),
) -> str:
    """Gate for admin-only routes. Raises Unauthorized (401) without a live admin session."""
    return auth.require_admin(token)
