"""Parse raw submitted strings into typed field values."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Any, Mapping

from webforms.core.errors import TemplateError, TemplateRenderError
from webforms.schemas.forms import FormDefinition, FormField
from webforms.services.template_service import Renderer
from webforms.types import FieldMap, RawValues, ScalarValue

logger = logging.getLogger(__name__)

ERR_REQUIRED = "required field not set"
ERR_OPTION = "selected not allowed option"
ERR_EMPTY_SELECTION = "at least one option should be selected"

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")
_FLOAT_RE = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True", "on"})
_FALSE_VALUES = frozenset({"0", "f", "F", "FALSE", "false", "False", "off"})
_DATE_FORMAT = "%Y-%m-%d"
_DATETIME_FORMATS = ("%Y-%m-%dT%H:%M", "%Y-%m-%dT%H:%M:%S")


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class FieldValueError(ValueError):
    """A single value could not be parsed for its field."""


def uniq(values: list[str]) -> list[str]:
    """Deduplicate preserving first-seen order."""
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            out.append(value)
    return out


def parse_boolean(value: str) -> bool:
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise FieldValueError(f"invalid boolean {value!r}")


def parse_date(value: str) -> date:
    try:
        return datetime.strptime(value, _DATE_FORMAT).date()
    except ValueError as exc:
        raise FieldValueError(f"invalid date {value!r}, expected YYYY-MM-DD") from exc


def parse_datetime(value: str, tz: tzinfo) -> datetime:
    for fmt in _DATETIME_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=tz)
        except ValueError:
            continue
    raise FieldValueError(f"invalid date-time {value!r}, expected YYYY-MM-DDTHH:MM")


def coerce(field_type: str, value: str, tz: tzinfo) -> ScalarValue:
    """Convert trimmed text into the declared field type."""
    if field_type == "integer":
        if not _INTEGER_RE.fullmatch(value):
            raise FieldValueError(f"invalid integer {value!r}")
        number = int(value)
        if not INT64_MIN <= number <= INT64_MAX:
            raise FieldValueError(f"integer {value!r} out of range")
        return number
    if field_type == "float":
        # ASCII decimal notation only: no nan, inf or digit separators
        if not _FLOAT_RE.fullmatch(value):
            raise FieldValueError(f"invalid float {value!r}")
        number = float(value)
        if not math.isfinite(number):
            raise FieldValueError(f"float {value!r} out of range")
        return number
    if field_type == "boolean":
        return parse_boolean(value)
    if field_type == "date":
        return parse_date(value)
    if field_type == "date-time":
        return parse_datetime(value, tz)
    return value


def parse_value(field: FormField, value: str, tz: tzinfo) -> ScalarValue:
    """Check pattern (string fields) and coerce one non-empty value."""
    if field.type == "string" and field.pattern:
        if not re.search(field.pattern, value):
            raise FieldValueError(f"pattern mismatch: {field.pattern!r}")
    return coerce(field.type, value, tz)


def _render_default(
    field: FormField, renderer: Renderer, context: Mapping[str, Any]
) -> str:
    try:
        return renderer.render(field.default, context)
    except (TemplateError, TemplateRenderError) as exc:
        raise FieldValueError(f"render default value: {exc}") from exc


def parse_field(
    field: FormField,
    raw: RawValues,
    tz: tzinfo,
    renderer: Renderer,
    context: Mapping[str, Any],
) -> tuple[list[ScalarValue], FieldError | None]:
    """Parse one field. Returns parsed values or an error, never both."""
    try:
        if field.is_computed:
            values = [_render_default(field, renderer, context)]
        else:
            values = uniq(raw.get(field.name, []))

        if field.options:
            # Plain-text membership before any type coercion.
            allowed = field.option_values()
            if any(v not in allowed for v in values):
                return [], FieldError(field.name, ERR_OPTION)

        candidates = [v.strip() for v in values if v.strip()]
        if not candidates and not field.multiple and not field.is_computed and field.default:
            default = _render_default(field, renderer, context).strip()
            if default:
                candidates = [default]

        if not candidates and field.required and not field.multiple:
            return [], FieldError(field.name, ERR_REQUIRED)

        parsed = [parse_value(field, value, tz) for value in candidates]
    except FieldValueError as exc:
        return [], FieldError(field.name, str(exc))

    if field.required and not parsed:
        return [], FieldError(field.name, ERR_EMPTY_SELECTION)
    return parsed, None


def parse_fields(
    form: FormDefinition,
    raw: RawValues,
    tz: tzinfo,
    renderer: Renderer,
    context: Mapping[str, Any],
) -> tuple[FieldMap, list[FieldError]]:
    """
    Parse every field of a form independently.

    All field errors are collected; an empty error list means the submission
    is valid. Multiple fields always produce a list, optional scalar fields
    without a value are omitted.
    """
    fields: FieldMap = {}
    errors: list[FieldError] = []
    for field in form.fields:
        parsed, error = parse_field(field, raw, tz, renderer, context)
        if error is not None:
            errors.append(error)
            continue
        if field.multiple:
            fields[field.name] = parsed
        elif parsed:
            fields[field.name] = parsed[0]

    if errors:
        logger.debug("Form %s validation failed on %d field(s)", form.name, len(errors))
    return fields, errors
