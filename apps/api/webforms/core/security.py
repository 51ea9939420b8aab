"""Caller identity and client address extraction."""

from fastapi import Request

from webforms.schemas.forms import Credentials

USER_HEADERS = ("x-forwarded-preferred-username", "x-forwarded-user")
EMAIL_HEADER = "x-forwarded-email"
GROUPS_HEADER = "x-forwarded-groups"


def client_ip(request: Request | None, *, trust_proxy: bool = False) -> str:
    """
    Extract client IP from request.

    Only trusts X-Forwarded-For when trust_proxy is set (behind reverse proxy).
    """
    if not request:
        return ""

    if trust_proxy:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # X-Forwarded-For: client, proxy1, proxy2 - take first
            return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return ""


def credentials_from_request(request: Request, *, trust_headers: bool) -> Credentials | None:
    """
    Build caller credentials from identity headers of an authenticating proxy.

    Returns None (no identity) when headers are not trusted or absent.
    """
    if not trust_headers:
        return None

    headers = request.headers
    email = (headers.get(EMAIL_HEADER) or "").strip()
    user = ""
    for name in USER_HEADERS:
        user = (headers.get(name) or "").strip()
        if user:
            break
    user = user or email
    if not user:
        return None

    groups = [g.strip() for g in (headers.get(GROUPS_HEADER) or "").split(",") if g.strip()]
    return Credentials(user=user, email=email, groups=groups)
