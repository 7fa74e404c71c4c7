from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from student_portal.auth.deps import admin_token, require_admin, student_token
from student_portal.auth.security import configure_rounds
from student_portal.auth.service import AuthService
from student_portal.config import Config, load_config
from student_portal.db import init_db
from student_portal.errors import PUBLIC_ERRORS, InternalError, PortalError, ValidationError
from student_portal.models import LoginResult
from student_portal.students.service import StudentService
from student_portal.students.validation import SECTIONS
from student_portal.util.time import to_iso


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


app = FastAPI(title="Student Registration Portal", version="0.1.0")
cfg: Config = load_config()
auth = AuthService(cfg)
students = StudentService(auth)

_cors_origins = [o.strip() for o in (cfg.CORS_ALLOW_ORIGINS or "").split(",") if o.strip()]
if _cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.on_event("startup")
def _on_startup() -> None:
    # Make config and services available to auth deps.
    app.state.cfg = cfg
    app.state.auth = auth

    configure_rounds(cfg.PASSWORD_HASH_ROUNDS)
    init_db(cfg.DB_DSN)

    if not cfg.admin_login_enabled:
        _debug("Admin login disabled: set ADMIN_PASSWORD_HASH (or ADMIN_PASSWORD) to enable it")


# -----------------------------
# Errors
# -----------------------------


def _error_response(exc: PortalError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(PortalError)
async def _portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    if isinstance(exc, PUBLIC_ERRORS):
        return _error_response(exc)
    # Storage / internal: detail stays in the server log.
    _debug(f"{exc.code} on {request.method} {request.url.path}: {exc.__cause__ or exc!r}")
    return _error_response(type(exc)())


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"Invalid value for {field}" if field else "Invalid request"
    return _error_response(ValidationError(message))


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    _debug(f"unhandled error on {request.method} {request.url.path}: {exc!r}")
    return _error_response(InternalError())


# -----------------------------
# Health
# -----------------------------


@app.get("/health")
def health() -> Dict[str, Any]:
    return {"status": "ok"}


@app.get("/sections")
def list_sections() -> Dict[str, Any]:
    return {"sections": list(SECTIONS)}


# -----------------------------
# Cookies
# -----------------------------


def _cookie_secure() -> bool:
    """Return whether auth cookies should be marked Secure."""
    samesite = str(cfg.AUTH_COOKIE_SAMESITE or "lax").lower()
    # Browsers require Secure when SameSite=None
    if samesite == "none":
        return True
    return bool(cfg.AUTH_COOKIE_SECURE)


def _set_session_cookie(response: Response, *, name: str, result: LoginResult) -> None:
    response.set_cookie(
        key=name,
        value=result.token,
        httponly=True,
        samesite=str(cfg.AUTH_COOKIE_SAMESITE or "lax").lower(),
        secure=_cookie_secure(),
        max_age=int(cfg.SESSION_TTL_HOURS) * 3600,
        path=str(cfg.AUTH_COOKIE_PATH or "/"),
        domain=cfg.AUTH_COOKIE_DOMAIN,
    )


def _clear_session_cookie(response: Response, *, name: str) -> None:
    response.delete_cookie(key=name, path=str(cfg.AUTH_COOKIE_PATH or "/"), domain=cfg.AUTH_COOKIE_DOMAIN)


# -----------------------------
# Students
# -----------------------------


class RegisterRequest(BaseModel):
    student_name: str = ""
    registration_number: str = ""
    roll_number: str = ""
    phone_number: str = ""
    email: str = ""
    section: str = ""
    password: str = ""


class StudentLoginRequest(BaseModel):
    registration_number: str = ""
    password: str = ""


class StudentUpdateRequest(BaseModel):
    # Anything outside the self-editable fields is a 400, not silently dropped.
    model_config = ConfigDict(extra="forbid")

    phone_number: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


@app.post("/students/register")
def student_register(payload: RegisterRequest) -> Dict[str, Any]:
    student = auth.register_student(payload.model_dump())
    return {"ok": True, "student_id": student["student_id"]}


@app.post("/students/login")
def student_login(payload: StudentLoginRequest, response: Response) -> Dict[str, Any]:
    result = auth.login_student(payload.registration_number, payload.password)
    _set_session_cookie(response, name=cfg.STUDENT_COOKIE_NAME, result=result)
    return {
        "session_token": result.token,
        "token_type": "bearer",
        "student_id": int(result.subject_id),
        "student_name": result.display_name,
        "expires_at": to_iso(result.expires_at),
    }


@app.post("/students/logout")
def student_logout(response: Response, token: Optional[str] = Depends(student_token)) -> Dict[str, Any]:
    auth.logout_student(token)
    _clear_session_cookie(response, name=cfg.STUDENT_COOKIE_NAME)
    return {"ok": True}


@app.get("/students/session")
def student_session(
    student_id: Optional[str] = None,
    token: Optional[str] = Depends(student_token),
) -> Dict[str, Any]:
    """Page-guard check. Never errors for a bad token: answers valid=false."""
    return {"valid": auth.validate_student_session(token, student_id)}


@app.get("/students/{student_id}")
def student_get(student_id: int, token: Optional[str] = Depends(student_token)) -> Dict[str, Any]:
    return {"student": students.get_profile(token, student_id)}


@app.patch("/students/{student_id}")
def student_update(
    student_id: int,
    payload: StudentUpdateRequest,
    token: Optional[str] = Depends(student_token),
) -> Dict[str, Any]:
    updates = payload.model_dump(exclude_unset=True)
    return {"student": students.update_profile(token, student_id, updates)}


# -----------------------------
# Admin
# -----------------------------


class AdminLoginRequest(BaseModel):
    username: str = ""
    password: str = ""


class AdminUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    student_name: Optional[str] = None
    registration_number: Optional[str] = None
    roll_number: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    section: Optional[str] = None
    new_password: Optional[str] = None


class BulkDeleteRequest(BaseModel):
    student_ids: List[int] = []


@app.post("/admin/login")
def admin_login(payload: AdminLoginRequest, response: Response) -> Dict[str, Any]:
    result = auth.login_admin(payload.username, payload.password)
    _set_session_cookie(response, name=cfg.ADMIN_COOKIE_NAME, result=result)
    return {
        "session_token": result.token,
        "token_type": "bearer",
        "expires_at": to_iso(result.expires_at),
    }


@app.post("/admin/logout")
def admin_logout(response: Response, token: Optional[str] = Depends(admin_token)) -> Dict[str, Any]:
    auth.logout_admin(token)
    _clear_session_cookie(response, name=cfg.ADMIN_COOKIE_NAME)
    return {"ok": True}


@app.get("/admin/session")
def admin_session(token: Optional[str] = Depends(admin_token)) -> Dict[str, Any]:
    return {"valid": auth.validate_admin_session(token)}


@app.get("/admin/me")
def admin_me(subject: str = Depends(require_admin)) -> Dict[str, Any]:
    return {"subject": subject, "username": cfg.ADMIN_USERNAME}


@app.get("/admin/students")
def admin_list_students(
    q: Optional[str] = None,
    section: Optional[str] = None,
    limit: int = Query(200, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    token: Optional[str] = Depends(admin_token),
) -> Dict[str, Any]:
    rows, total = students.list_students(token, q=q, section=section, limit=limit, offset=offset)
    return {"students": rows, "total": total}


@app.get("/admin/students/export")
def admin_export_students(
    q: Optional[str] = None,
    section: Optional[str] = None,
    token: Optional[str] = Depends(admin_token),
) -> Response:
    filename, body = students.export_csv(token, q=q, section=section)
    return Response(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.patch("/admin/students/{student_id}")
def admin_update_student(
    student_id: int,
    payload: AdminUpdateRequest,
    token: Optional[str] = Depends(admin_token),
) -> Dict[str, Any]:
    updates = payload.model_dump(exclude_none=True)
    return {"student": students.admin_update_student(token, student_id, updates)}


@app.delete("/admin/students/{student_id}")
def admin_delete_student(student_id: int, token: Optional[str] = Depends(admin_token)) -> Dict[str, Any]:
    students.delete_student(token, student_id)
    return {"ok": True}


@app.post("/admin/students/bulk-delete")
def admin_bulk_delete(payload: BulkDeleteRequest, token: Optional[str] = Depends(admin_token)) -> Dict[str, Any]:
    deleted = students.delete_students(token, payload.student_ids)
    return {"ok": True, "deleted_count": deleted}
