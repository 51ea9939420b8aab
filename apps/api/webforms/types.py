"""Shared type aliases."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, TypeAlias, Union

JsonValue: TypeAlias = Any
JsonObject: TypeAlias = dict[str, JsonValue]

# Typed value of a parsed form field. Multiple-choice fields hold a list.
ScalarValue: TypeAlias = Union[str, int, float, bool, date, datetime]
FieldValue: TypeAlias = Union[ScalarValue, list[ScalarValue]]
FieldMap: TypeAlias = dict[str, FieldValue]

# Raw request input: each field name maps to every submitted value, in order.
RawValues: TypeAlias = dict[str, list[str]]

# Per-round-trip state re-embedded by clients as ``__<key>`` fields.
SessionState: TypeAlias = dict[str, str]
