import hashlib
import logging
import os
import secrets
import time
from typing import Optional, Tuple

from fastapi import HTTPException, Request, Response, status

logger = logging.getLogger(__name__)

CSRF_COOKIE = "csrf-token"
CSRF_HEADER = "x-csrf-token"
CSRF_TOKEN_TTL_SECONDS = 24 * 60 * 60
SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}


def _hash(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _cookie_secure() -> bool:
    return os.environ.get("APP_URL", "").strip().lower().startswith("https://")


def issue_csrf_token(now: Optional[float] = None) -> Tuple[str, str]:
    """Return ``(raw_token, cookie_value)``.

    The cookie stores ``"<expires_epoch>.<sha256(token)>"``; only the raw token
    is handed to the client for echoing in the ``X-CSRF-Token`` header.
    """
    issued_at = time.time() if now is None else now
    token = secrets.token_urlsafe(32)
    expires = int(issued_at + CSRF_TOKEN_TTL_SECONDS)
    return token, f"{expires}.{_hash(token)}"


def verify_csrf_token(token: Optional[str], cookie_value: Optional[str], now: Optional[float] = None) -> bool:
    if not token or not cookie_value:
        return False
    expires_raw, sep, stored_hash = cookie_value.partition(".")
    if not sep or not stored_hash:
        return False
    try:
        expires = int(expires_raw)
    except ValueError:
        return False
    current = time.time() if now is None else now
    if current > expires:
        return False
    return secrets.compare_digest(_hash(token), stored_hash)


def set_csrf_cookie(response: Response, cookie_value: str) -> None:
    response.set_cookie(
        key=CSRF_COOKIE,
        value=cookie_value,
        httponly=True,
        secure=_cookie_secure(),
        samesite="strict",
        max_age=CSRF_TOKEN_TTL_SECONDS,
        path="/",
    )


def require_csrf(request: Request) -> None:
    if request.method.upper() in SAFE_METHODS:
        return
    token = request.headers.get(CSRF_HEADER)
    cookie_value = request.cookies.get(CSRF_COOKIE)
    if not verify_csrf_token(token, cookie_value):
        logger.warning("CSRF verification failed for %s %s", request.method, request.url.path)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid CSRF token")
