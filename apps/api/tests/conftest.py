"""
Test configuration and fixtures.

Provides:
- In-memory storage recording every stored submission
- Form definitions parsed from YAML
- HTTPX AsyncClient over the app with an injected registry
"""
import os
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport

# Rate limiting is disabled for tests
os.environ["TESTING"] = "1"

from webforms.core.csrf import XSRF_COOKIE_NAME, XSRF_FIELD
from webforms.core.errors import StorageError
from webforms.main import create_app
from webforms.services.form_loader import forms_from_text
from webforms.services.form_registry import FormRegistry, build_registry
from webforms.services.submission_service import SubmissionService
from webforms.services.template_service import Renderer

XSRF_TOKEN = "demo"

FORMS_YAML = """
name: plain
title: Plain form
description: Tell us **about** you
fields:
  - name: name
    label: Your name
    required: true
  - name: year
    type: integer
    required: true
  - name: comment
    multiline: true
---
name: code-access
codes: [A1, B2]
fields:
  - name: name
    required: true
---
name: crash
fields:
  - name: name
---
name: admins
policy: '"admin" in groups'
fields:
  - name: name
"""


# =============================================================================
# Storage
# =============================================================================

class MemoryStorage:
    """Storage double recording every call. Tables listed in fail_tables raise."""

    def __init__(self, fail_tables=()):
        self.calls: list[tuple[str, dict]] = []
        self.fail_tables = set(fail_tables)
        self.closed = False

    async def store(self, table, fields):
        self.calls.append((table, dict(fields)))
        if table in self.fail_tables:
            raise StorageError(f"table {table} is broken")
        result = dict(fields)
        result["id"] = len(self.calls)
        return result

    async def close(self):
        self.closed = True


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage(fail_tables={"crash"})


# =============================================================================
# Forms
# =============================================================================

@pytest.fixture
def forms():
    return forms_from_text(FORMS_YAML)


@pytest.fixture
def renderer() -> Renderer:
    return Renderer()


@pytest.fixture
def service(storage, renderer) -> SubmissionService:
    return SubmissionService(storage, renderer)


@pytest.fixture
def registry(forms, storage, renderer) -> FormRegistry:
    return build_registry(forms, storage=storage, renderer=renderer, auth_headers=True)


# =============================================================================
# HTTP client
# =============================================================================

@pytest.fixture
async def client(registry) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(registry)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="https://test") as c:
        yield c


@pytest.fixture
def submit(client):
    """POST urlencoded data with a matching XSRF cookie and field."""

    async def _submit(name: str, data: dict, *, token: str = XSRF_TOKEN, headers=None):
        payload = {XSRF_FIELD: token, **data}
        request_headers = {"Cookie": f"{XSRF_COOKIE_NAME}={token}"}
        request_headers.update(headers or {})
        return await client.post(f"/forms/{name}", data=payload, headers=request_headers)

    return _submit
