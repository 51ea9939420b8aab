"""Rate limiting configuration for public form submissions."""

import os

from slowapi import Limiter

from webforms.core.config import settings
from webforms.core.security import client_ip

IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")
RATE_LIMITING_ENABLED = not IS_TESTING and settings.RATE_LIMIT_SUBMIT > 0
SUBMIT_LIMIT = f"{max(settings.RATE_LIMIT_SUBMIT, 1)}/minute"


def _client_key(request) -> str:
    return client_ip(request, trust_proxy=settings.TRUST_PROXY_HEADERS)


# Single-process service: in-memory counters are enough
limiter = Limiter(
    key_func=_client_key,
    storage_uri="memory://",
    default_limits=[],
    enabled=RATE_LIMITING_ENABLED,
)
