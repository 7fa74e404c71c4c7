"""Authentication / session handling.

- Students log in with registration number + password.
- The admin is a single identity configured via environment variables.
- Sessions are opaque random tokens stored server-side (one table per token
  space), presented as `Authorization: Bearer <token>` or an httpOnly cookie.

Modules:
- security:  password hashing (current + legacy scheme)
- sessions:  SessionStore (issue / validate / destroy)
- migration: on-login upgrade of legacy credentials
- service:   AuthService (login / require session / logout)
- deps:      FastAPI dependencies that extract and check tokens
"""
