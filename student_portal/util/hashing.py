import hashlib


def sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def token_fingerprint(token: str) -> str:
    """Short, non-reversible tag for a session token, safe to print in logs."""
    if not token:
        return "-"
    return sha256_hex(token)[:12]
