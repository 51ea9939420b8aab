from pathlib import Path

import pytest

from webforms.core.errors import FormConfigError
from webforms.schemas.forms import DEFAULT_FAILED_MESSAGE, DEFAULT_SUCCESS_MESSAGE
from webforms.services.form_loader import forms_from_text, load_forms
from webforms.services.template_service import Renderer


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_are_applied():
    (form,) = forms_from_text(
        """
name: feedback
fields:
  - name: text
webhooks:
  - url: https://hooks.example.com/in
amqp:
  - key: forms.feedback
"""
    )

    assert form.table == "feedback"
    assert form.success == DEFAULT_SUCCESS_MESSAGE
    assert form.failed == DEFAULT_FAILED_MESSAGE
    assert form.fields[0].type == "string"

    webhook = form.webhooks[0]
    assert webhook.method == "POST"
    assert webhook.retry == 3
    assert webhook.timeout == 10.0
    assert webhook.interval == 15.0

    target = form.amqp[0]
    assert target.exchange == ""
    assert target.content_type == "application/json"


def test_explicit_notification_settings():
    (form,) = forms_from_text(
        """
name: orders
table: order_requests
webhooks:
  - url: http://internal:8080/hook
    method: put
    retry: 0
    timeout: 500ms
    interval: 2m
    headers:
      Authorization: Bearer token
      X-Count: 3
amqp:
  - exchange: events
    key: "orders.{{ result.id }}"
    type: text/plain
    message: "new order {{ result.id }}"
"""
    )

    webhook = form.webhooks[0]
    assert form.table == "order_requests"
    assert webhook.method == "PUT"
    assert webhook.retry == 0
    assert webhook.timeout == 0.5
    assert webhook.interval == 120.0
    assert webhook.headers == {"Authorization": "Bearer token", "X-Count": "3"}
    assert form.amqp[0].content_type == "text/plain"


def test_multiple_documents_in_one_file(tmp_path):
    path = _write(
        tmp_path / "forms.yaml",
        """
name: first
---
name: second
---
""",
    )

    forms = load_forms(path)

    assert [f.name for f in forms] == ["first", "second"]


def test_unnamed_form_takes_file_name(tmp_path):
    _write(tmp_path / "contact.yml", "title: Contact us\n")
    _write(tmp_path / "nested" / "survey.json", '{"title": "Survey"}')
    _write(tmp_path / "notes.txt", "ignored")

    forms = load_forms(tmp_path)

    assert sorted(f.name for f in forms) == ["contact", "nested/survey"]


def test_duplicate_form_names_fail(tmp_path):
    _write(tmp_path / "a.yaml", "name: same\n")
    _write(tmp_path / "b.yaml", "name: same\n")

    with pytest.raises(FormConfigError, match="duplicated form name"):
        load_forms(tmp_path)


def test_missing_location_fails(tmp_path):
    with pytest.raises(FormConfigError):
        load_forms(tmp_path / "nope")


@pytest.mark.parametrize(
    "text",
    [
        "name: x\nfields:\n  - name: a\n    type: number\n",
        "name: x\nfields:\n  - name: a\n  - name: a\n",
        "name: x\nfields:\n  - name: a\n    pattern: '[unclosed'\n",
        "name: x\npolicy: 'import os'\n",
        "name: x\nwebhooks:\n  - url: ftp://example.com/\n",
        "name: x\nwebhooks:\n  - url: https://example.com/\n    retry: -1\n",
        "name: x\nwebhooks:\n  - url: https://example.com/\n    interval: soon\n",
        "name: x\nfields: [unclosed\n",
        "- just\n- a list\n",
    ],
)
def test_invalid_definitions_fail(text):
    with pytest.raises(FormConfigError):
        forms_from_text(text)


def test_malformed_templates_fail_at_load(tmp_path):
    path = _write(
        tmp_path / "bad.yaml",
        """
name: bad
success: "Saved {{ result.id | nosuchfilter }}"
""",
    )

    with pytest.raises(FormConfigError, match="success"):
        load_forms(path, Renderer())


def test_templates_are_compiled_into_cache(tmp_path):
    path = _write(
        tmp_path / "ok.yaml",
        """
name: ok
fields:
  - name: owner
    hidden: true
    default: "{{ user }}"
""",
    )
    renderer = Renderer()

    load_forms(path, renderer)

    assert "{{ user }}" in renderer.cache
