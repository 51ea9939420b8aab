"""Structured logging helpers (submission-safe)."""

import logging
from typing import Any

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    """Install the default console handler used by the CLI and server."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )


def build_log_context(
    *,
    form: str | None = None,
    method: str | None = None,
    path: str | None = None,
    remote_ip: str | None = None,
    user: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict. Submitted values are never included."""
    context: dict[str, Any] = {}
    if form:
        context["form"] = form
    if method:
        context["method"] = method
    if path:
        context["path"] = path
    if remote_ip:
        context["remote_ip"] = remote_ip
    if user:
        context["user"] = user
    return context
