"""Captcha providers validated before a submission is stored."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

import httpx

from webforms.core.config import Settings, settings

logger = logging.getLogger(__name__)

TURNSTILE_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"
TURNSTILE_SCRIPT_URL = "https://challenges.cloudflare.com/turnstile/v0/api.js"
TURNSTILE_RESPONSE_FIELD = "cf-turnstile-response"


@dataclass(frozen=True)
class CaptchaRequest:
    """Captcha-relevant part of a submission."""

    form: Mapping[str, list[str]]
    remote_ip: str = ""

    def value(self, name: str) -> str:
        values = self.form.get(name) or []
        return values[0] if values else ""


class Captcha(Protocol):
    def embed(self) -> dict[str, Any]:
        """Widget description for clients."""

    async def validate(self, request: CaptchaRequest) -> bool:
        """Return True when the request passed the challenge."""


class TurnstileCaptcha:
    """Cloudflare Turnstile verification."""

    def __init__(
        self,
        site_key: str,
        secret_key: str,
        *,
        timeout: float = 3.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.site_key = site_key
        self.secret_key = secret_key
        self.timeout = timeout
        self._transport = transport

    def embed(self) -> dict[str, Any]:
        return {
            "provider": "turnstile",
            "site_key": self.site_key,
            "script": TURNSTILE_SCRIPT_URL,
            "field": TURNSTILE_RESPONSE_FIELD,
        }

    async def validate(self, request: CaptchaRequest) -> bool:
        data = {
            "secret": self.secret_key,
            "response": request.value(TURNSTILE_RESPONSE_FIELD),
            "remoteip": request.remote_ip,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(TURNSTILE_VERIFY_URL, data=data)
            payload = response.json()
        except httpx.HTTPError as exc:
            logger.error("Failed to verify turnstile captcha: %s", exc)
            return False
        except ValueError as exc:
            logger.error("Failed to decode turnstile response: %s", exc)
            return False

        if not isinstance(payload, dict):
            logger.error("Unexpected turnstile response type: %s", type(payload).__name__)
            return False
        return payload.get("success") is True


async def validate_all(captchas: list[Captcha], request: CaptchaRequest) -> bool:
    """Every configured provider must accept the request."""
    for captcha in captchas:
        if not await captcha.validate(request):
            return False
    return True


def captchas_from_settings(config: Settings | None = None) -> list[Captcha]:
    config = config or settings
    if not config.captcha_enabled:
        return []
    return [
        TurnstileCaptcha(
            config.TURNSTILE_SITE_KEY,
            config.TURNSTILE_SECRET_KEY,
            timeout=config.TURNSTILE_TIMEOUT,
        )
    ]
