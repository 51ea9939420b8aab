"""Schemas for declarative form definitions."""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator

from webforms.services.policy_service import PolicyEvaluator

FieldType = Literal["string", "integer", "float", "boolean", "date", "date-time"]

FIELD_TYPES: tuple[str, ...] = ("string", "integer", "float", "boolean", "date", "date-time")

DEFAULT_SUCCESS_MESSAGE = "Thank you for the submission!"
DEFAULT_FAILED_MESSAGE = "Something went wrong: `{{ error }}`"

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_INTERVAL_SECONDS = 15.0
DEFAULT_RETRIES = 3

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0, None: 1.0}


def parse_duration(value: object) -> float:
    """Parse durations like 10, 1.5, "500ms", "15s", "2m" into seconds."""
    if isinstance(value, bool):
        raise ValueError("Duration must be a number or a string like '15s'")
    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        match = _DURATION_RE.match(value)
        if not match:
            raise ValueError(f"Invalid duration: {value!r}")
        seconds = float(match.group(1)) * _DURATION_UNITS[match.group(2)]
    else:
        raise ValueError("Duration must be a number or a string like '15s'")
    if seconds < 0:
        raise ValueError("Duration must not be negative")
    return seconds


class Credentials(BaseModel):
    """Caller identity derived from an externally authenticated session."""

    model_config = ConfigDict(frozen=True)

    user: str = ""
    email: str = ""
    groups: tuple[str, ...] = ()


class Option(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    value: str = ""  # Label is used when empty

    @property
    def effective_value(self) -> str:
        return self.value or self.label


class FormField(BaseModel):
    """One typed input slot of a form. Name is the storage column."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(..., min_length=1)
    label: str = ""
    description: str = ""  # markdown
    required: bool = False
    disabled: bool = False  # visible, but user input is ignored
    hidden: bool = False  # not visible, user input is ignored
    default: str = ""  # template
    type: FieldType = "string"
    pattern: str = ""  # string type only
    options: tuple[Option, ...] = ()
    multiple: bool = False
    multiline: bool = False
    icon: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, value: object) -> object:
        if value is None or value == "":
            return "string"
        if isinstance(value, str) and value not in FIELD_TYPES:
            raise ValueError(f"field type {value!r} invalid")
        return value

    @field_validator("pattern")
    @classmethod
    def _check_pattern(cls, value: str) -> str:
        if value:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"invalid pattern {value!r}: {exc}") from exc
        return value

    @property
    def display_label(self) -> str:
        return self.label or self.name

    @property
    def is_computed(self) -> bool:
        """Value comes from the default expression, never from user input."""
        return self.hidden or self.disabled

    def option_values(self) -> frozenset[str]:
        return frozenset(opt.effective_value for opt in self.options)


class _NotificationTarget(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    retry: int = Field(DEFAULT_RETRIES, ge=0)  # attempts = retry + 1
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    interval: float = DEFAULT_INTERVAL_SECONDS
    headers: dict[str, str] = Field(default_factory=dict)
    message: str | None = None  # template; JSON of stored result when unset

    @field_validator("retry", mode="before")
    @classmethod
    def _default_retry(cls, value: object) -> object:
        return DEFAULT_RETRIES if value is None else value

    @field_validator("timeout", "interval", mode="before")
    @classmethod
    def _duration(cls, value: object, info) -> float:
        if value is None:
            return DEFAULT_TIMEOUT_SECONDS if info.field_name == "timeout" else DEFAULT_INTERVAL_SECONDS
        seconds = parse_duration(value)
        if info.field_name == "timeout" and seconds == 0:
            return DEFAULT_TIMEOUT_SECONDS
        return seconds

    @field_validator("headers", mode="before")
    @classmethod
    def _stringify_headers(cls, value: object) -> object:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items()}
        return value


class WebhookTarget(_NotificationTarget):
    """HTTP notification. Payload is the JSON of the stored result unless message is set."""

    url: str
    method: str = "POST"

    @field_validator("method", mode="before")
    @classmethod
    def _normalize_method(cls, value: object) -> object:
        if not value:
            return "POST"
        return str(value).upper()

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        from webforms.core.url_validation import validate_webhook_url

        return validate_webhook_url(value)


class AMQPTarget(_NotificationTarget):
    """Broker notification published to an exchange with a rendered routing key."""

    exchange: str = ""  # default exchange when empty
    key: str = ""  # routing key template
    type: str = ""  # content type; application/json when message is unset
    correlation: str = ""  # correlation ID template
    id: str = ""  # message ID template, useful for client-side deduplication

    @property
    def content_type(self) -> str:
        if self.type:
            return self.type
        return "application/json" if self.message is None else ""


class FormDefinition(BaseModel):
    """Immutable declarative description of a form."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(..., min_length=1)
    table: str = ""
    title: str = ""
    description: str = ""  # markdown
    fields: tuple[FormField, ...] = ()
    webhooks: tuple[WebhookTarget, ...] = ()
    amqp: tuple[AMQPTarget, ...] = ()
    success: str = DEFAULT_SUCCESS_MESSAGE  # template with result
    failed: str = DEFAULT_FAILED_MESSAGE  # template with error
    policy: str | None = None
    codes: frozenset[str] = frozenset()

    _policy_evaluator: PolicyEvaluator | None = PrivateAttr(default=None)

    @model_validator(mode="before")
    @classmethod
    def _fill_defaults(cls, data: object) -> object:
        if isinstance(data, dict):
            data = dict(data)
            if not data.get("table") and data.get("name"):
                data["table"] = data["name"]
            for key in ("fields", "webhooks", "amqp", "codes"):
                if data.get(key) is None:
                    data.pop(key, None)
            if not data.get("success"):
                data.pop("success", None)
            if not data.get("failed"):
                data.pop("failed", None)
        return data

    @field_validator("codes", mode="before")
    @classmethod
    def _normalize_codes(cls, value: object) -> object:
        if isinstance(value, str):
            value = [value]
        if isinstance(value, (list, tuple, set, frozenset)):
            return frozenset(str(v).strip() for v in value if str(v).strip())
        return value

    @field_validator("policy", mode="before")
    @classmethod
    def _check_policy(cls, value: object) -> object:
        if value is None:
            return None
        text = str(value).strip()
        if not text:
            return None
        PolicyEvaluator(text)  # raises ValueError subclass on malformed expressions
        return text

    @field_validator("fields")
    @classmethod
    def _unique_fields(cls, value: tuple[FormField, ...]) -> tuple[FormField, ...]:
        seen: set[str] = set()
        for field in value:
            if field.name in seen:
                raise ValueError(f"Duplicate field name: {field.name}")
            seen.add(field.name)
        return value

    def model_post_init(self, __context: object) -> None:
        if self.policy:
            self._policy_evaluator = PolicyEvaluator(self.policy)

    @property
    def policy_evaluator(self) -> PolicyEvaluator | None:
        return self._policy_evaluator

    @property
    def has_code_access(self) -> bool:
        return len(self.codes) > 0

    @property
    def display_title(self) -> str:
        return self.title or self.name

    def get_field(self, name: str) -> FormField | None:
        for field in self.fields:
            if field.name == name:
                return field
        return None
