"""URL helpers for outbound notification targets."""

from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit

ALLOWED_SCHEMES = {"http", "https"}


def validate_webhook_url(url: str) -> str:
    """
    Validate an operator-configured webhook URL.

    Targets are declared by operators in form definitions, so internal hosts
    are allowed. Rules:
    - Only http:// and https:// URLs.
    - A host is required.
    - No fragment.

    Returns a normalized URL (lowercased scheme, no fragment) or raises ValueError.
    """
    candidate = (url or "").strip()
    if not candidate:
        raise ValueError("Webhook URL is required")

    parts = urlsplit(candidate)
    scheme = (parts.scheme or "").lower()
    if scheme not in ALLOWED_SCHEMES:
        raise ValueError("Webhook URL must start with http:// or https://")

    host = (parts.hostname or "").strip()
    if not parts.netloc or not host:
        raise ValueError("Webhook URL must include a host")

    if parts.fragment:
        raise ValueError("Webhook URL must not include a fragment")

    return urlunsplit((scheme, parts.netloc, parts.path, parts.query, ""))


def safe_url(url: str | None) -> str:
    """Strip credentials and query string so URLs can be logged."""
    if not url:
        return ""
    parts = urlsplit(url)
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    if parts.port:
        host = f"{host}:{parts.port}"
    return f"{parts.scheme}://{host}{parts.path}"
