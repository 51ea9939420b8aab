"""XSRF utilities for double-submit cookie protection."""

from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Response

from webforms.core.config import settings

XSRF_COOKIE_NAME = "_xsrf"
XSRF_FIELD = "_xsrf"
XSRF_MAX_AGE_SECONDS = 3600


def generate_xsrf_token() -> str:
    """Generate a new XSRF token."""
    return secrets.token_hex(32)


def set_xsrf_cookie(response: Response, token: Optional[str] = None) -> str:
    """Set XSRF cookie and return the token used."""
    xsrf_token = token or generate_xsrf_token()
    response.set_cookie(
        key=XSRF_COOKIE_NAME,
        value=xsrf_token,
        max_age=XSRF_MAX_AGE_SECONDS,
        httponly=True,
        samesite="strict",
        secure=settings.cookie_secure,
        path="/",  # Root path: iOS drops cookies scoped to sub-paths
    )
    return xsrf_token


def validate_xsrf(cookie_token: Optional[str], form_token: Optional[str]) -> bool:
    """Validate submitted form token against cookie."""
    if not cookie_token or not form_token:
        return False
    return secrets.compare_digest(cookie_token, form_token)
