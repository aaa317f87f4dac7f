"""
CSRF Protection Middleware for FastAPI

Implements double-submit cookie pattern for CSRF protection.
- Generates a CSRF token and sets it as a cookie
- Validates that the X-CSRF-Token header matches the cookie value
- Applies to state-changing methods (POST, PUT, PATCH, DELETE)
- Excludes login, public and cron endpoints, and bearer-token (mobile) requests

Set CSRF_ENABLED=false in environment to disable.
"""

import logging
import os
import secrets
from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .config import COOKIE_SECURE

logger = logging.getLogger(__name__)

CSRF_ENABLED = os.getenv("CSRF_ENABLED", "true").lower() == "true"

# CSRF token cookie name
CSRF_COOKIE_NAME = "csrf_token"
CSRF_HEADER_NAME = "X-CSRF-Token"

# Methods that require CSRF protection
PROTECTED_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# Paths that are exempt from CSRF protection
EXEMPT_PATHS: list[str] = [
    "/api/auth/login",  # No session exists yet
    "/api/auth/mobile-login",
    "/api/auth/signup",
    "/api/public/",  # Public form submissions (rate-limited)
    "/api/cron/",  # Bearer CRON_SECRET
    "/health",
    "/docs",
    "/openapi.json",
    "/csrf-token",
]


def generate_csrf_token() -> str:
    """Generate a cryptographically secure CSRF token"""
    return secrets.token_urlsafe(32)


def is_path_exempt(path: str) -> bool:
    """Check if a path is exempt from CSRF protection"""
    return any(path.startswith(exempt) for exempt in EXEMPT_PATHS)


def set_csrf_cookie(response: Response, token: str) -> None:
    # Readable by the frontend so it can echo the value in the header
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=token,
        httponly=False,
        secure=COOKIE_SECURE,
        samesite="strict",
        max_age=86400,
        path="/",
    )


def _reject(request: Request, detail: str) -> JSONResponse:
    logger.warning(f"🚫 CSRF: {detail} for {request.method} {request.url.path}")
    return JSONResponse(status_code=403, content={"detail": detail})


class CSRFMiddleware(BaseHTTPMiddleware):
    """
    CSRF Protection Middleware using double-submit cookie pattern.

    How it works:
    1. On any request, if no CSRF cookie exists, generate one and set it
    2. For state-changing requests (POST/PUT/PATCH/DELETE) authenticated by cookie:
       - Check that X-CSRF-Token header exists
       - Verify it matches the csrf_token cookie
       - Reject with 403 if missing or mismatched
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        csrf_cookie = request.cookies.get(CSRF_COOKIE_NAME)
        uses_bearer = request.headers.get("authorization", "").lower().startswith("bearer ")

        needs_validation = (
            request.method in PROTECTED_METHODS
            and not uses_bearer
            and not is_path_exempt(request.url.path)
        )

        if needs_validation:
            csrf_header = request.headers.get(CSRF_HEADER_NAME)

            if not csrf_cookie:
                return _reject(request, "CSRF token missing. Please refresh the page and try again.")
            if not csrf_header:
                return _reject(request, "CSRF token header missing. Please refresh the page and try again.")
            # Constant-time comparison to prevent timing attacks
            if not secrets.compare_digest(csrf_cookie, csrf_header):
                return _reject(request, "CSRF token invalid. Please refresh the page and try again.")

        response = await call_next(request)

        if not csrf_cookie:
            set_csrf_cookie(response, generate_csrf_token())

        return response
