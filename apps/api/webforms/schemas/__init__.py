"""Pydantic schemas for form definitions and API responses."""

from webforms.schemas.forms import (
    AMQPTarget,
    Credentials,
    FormDefinition,
    FormField,
    Option,
    WebhookTarget,
)
from webforms.schemas.views import (
    FieldErrorRead,
    FieldRead,
    FormListItem,
    FormListResponse,
    FormRead,
    HealthResponse,
    OptionRead,
    SubmissionView,
)
