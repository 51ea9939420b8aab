from urllib.parse import parse_qs

import httpx
import pytest

from webforms.core.config import Settings
from webforms.services.captcha_service import (
    TURNSTILE_RESPONSE_FIELD,
    TURNSTILE_VERIFY_URL,
    CaptchaRequest,
    TurnstileCaptcha,
    captchas_from_settings,
    validate_all,
)

REQUEST = CaptchaRequest(form={TURNSTILE_RESPONSE_FIELD: ["token-1"]}, remote_ip="203.0.113.10")


def _captcha(handler) -> TurnstileCaptcha:
    return TurnstileCaptcha("site", "secret", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_turnstile_posts_secret_response_and_ip():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True})

    assert await _captcha(handler).validate(REQUEST) is True

    (request,) = seen
    assert str(request.url) == TURNSTILE_VERIFY_URL
    assert parse_qs(request.content.decode()) == {
        "secret": ["secret"],
        "response": ["token-1"],
        "remoteip": ["203.0.113.10"],
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"success": False}),
        httpx.Response(200, json={"success": "true"}),
        httpx.Response(200, json=["success"]),
        httpx.Response(200, text="not json"),
    ],
)
async def test_turnstile_rejects_unsuccessful_responses(response):
    assert await _captcha(lambda request: response).validate(REQUEST) is False


@pytest.mark.asyncio
async def test_turnstile_transport_failure_rejects():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    assert await _captcha(handler).validate(REQUEST) is False


def test_turnstile_embed_describes_widget():
    embed = TurnstileCaptcha("site", "secret").embed()

    assert embed["provider"] == "turnstile"
    assert embed["site_key"] == "site"
    assert embed["field"] == TURNSTILE_RESPONSE_FIELD


@pytest.mark.asyncio
async def test_validate_all_requires_every_provider():
    accept = _captcha(lambda request: httpx.Response(200, json={"success": True}))
    reject = _captcha(lambda request: httpx.Response(200, json={"success": False}))

    assert await validate_all([], REQUEST) is True
    assert await validate_all([accept], REQUEST) is True
    assert await validate_all([accept, reject], REQUEST) is False


def test_captchas_from_settings_requires_both_keys():
    assert captchas_from_settings(Settings(TURNSTILE_SITE_KEY="site")) == []

    (captcha,) = captchas_from_settings(Settings(TURNSTILE_SITE_KEY="site", TURNSTILE_SECRET_KEY="secret"))
    assert isinstance(captcha, TurnstileCaptcha)
