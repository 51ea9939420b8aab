"""Response schemas for form views and listings."""

from typing import Any

from pydantic import BaseModel, Field


class OptionRead(BaseModel):
    label: str
    value: str


class FieldRead(BaseModel):
    name: str
    label: str
    description_html: str = ""
    required: bool = False
    disabled: bool = False
    hidden: bool = False
    type: str = "string"
    pattern: str = ""
    options: list[OptionRead] = Field(default_factory=list)
    multiple: bool = False
    multiline: bool = False
    icon: str = ""
    default: str = ""


class FormRead(BaseModel):
    name: str
    title: str
    description_html: str = ""
    has_code_access: bool = False
    fields: list[FieldRead] = Field(default_factory=list)


class FieldErrorRead(BaseModel):
    field: str
    message: str


class SubmissionView(BaseModel):
    """
    Every form endpoint response.

    Clients re-embed each session entry as a hidden ``__<key>`` field and the
    XSRF token as ``_xsrf`` in the next POST.
    """

    state: str
    form: FormRead | None = None
    xsrf: str | None = None
    session: dict[str, str] = Field(default_factory=dict)
    errors: list[FieldErrorRead] = Field(default_factory=list)
    values: dict[str, list[str]] = Field(default_factory=dict)
    captcha: list[dict[str, Any]] = Field(default_factory=list)
    message: str = ""
    message_html: str = ""
    result: dict[str, Any] | None = None
    reason: str = ""


class FormListItem(BaseModel):
    name: str
    title: str
    description_html: str = ""


class FormListResponse(BaseModel):
    forms: list[FormListItem]


class HealthResponse(BaseModel):
    status: str
    env: str
    version: str
    forms: int
