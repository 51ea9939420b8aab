"""Template rendering for default values, messages and notification payloads.

Placeholders use ``{{ expression }}``. An expression is an operand followed by
optional filters::

    {{ user }}
    {{ result.id }}
    {{ query.ref | default("direct") | upper }}
    {{ result | tojson }}
    {{ now() | date("%Y-%m-%d") }}

Operands are dotted paths into the render context, quoted strings, numbers,
or helper calls. A leading dot and capitalised root names (``.Result``) are
accepted for compatibility with older definitions.
"""

from __future__ import annotations

import ast
import json
import logging
import re
import threading
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Mapping
from uuid import UUID

import markdown as markdown_lib
import nh3

from webforms.core.errors import TemplateError, TemplateRenderError

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_PATH_PATTERN = re.compile(r"^[A-Za-z_]\w*(?:\.[\w-]+)*$")
_CALL_PATTERN = re.compile(r"^([A-Za-z_]\w*)\s*(?:\((.*)\))?$", re.DOTALL)
_NUMBER_PATTERN = re.compile(r"^[+-]?\d+(?:\.\d+)?$")

MARKDOWN_EXTENSIONS = ["extra", "sane_lists", "nl2br"]

Filter = Callable[..., Any]
Helper = Callable[..., Any]


# =============================================================================
# JSON
# =============================================================================

def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_json(value: Any) -> str:
    """Serialize stored results (dates, decimals, UUIDs included) to JSON."""
    return json.dumps(value, default=_json_default, ensure_ascii=False)


# =============================================================================
# Built-in filters and helpers
# =============================================================================

def render_markdown(value: Any) -> str:
    """Convert markdown to sanitized HTML."""
    html = markdown_lib.markdown(_to_text(value), extensions=MARKDOWN_EXTENSIONS)
    return nh3.clean(html)


def _default(value: Any, fallback: Any = "") -> Any:
    if value is None or value == "" or value == [] or value == {}:
        return fallback
    return value


def _join(value: Any, separator: str = ",") -> str:
    if isinstance(value, (list, tuple, set, frozenset)):
        return separator.join(_to_text(v) for v in value)
    return _to_text(value)


def _first(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _format_date(value: Any, fmt: str = "%Y-%m-%d") -> str:
    if isinstance(value, str) and value:
        value = datetime.fromisoformat(value)
    if isinstance(value, (date, datetime)):
        return value.strftime(fmt)
    return _to_text(value)


def _now() -> datetime:
    return datetime.now().astimezone()


def _timezone() -> str:
    return str(datetime.now().astimezone().tzinfo)


DEFAULT_FILTERS: dict[str, Filter] = {
    "tojson": to_json,
    "markdown": render_markdown,
    "upper": lambda v: _to_text(v).upper(),
    "lower": lambda v: _to_text(v).lower(),
    "trim": lambda v: _to_text(v).strip(),
    "default": _default,
    "join": _join,
    "first": _first,
    "date": _format_date,
}

DEFAULT_HELPERS: dict[str, Helper] = {
    "now": _now,
    "timezone": _timezone,
}


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list, tuple, set, frozenset)):
        return to_json(value)
    return str(value)


# =============================================================================
# Compilation
# =============================================================================

@dataclass(frozen=True)
class _Literal:
    value: Any


@dataclass(frozen=True)
class _Path:
    parts: tuple[str, ...]


@dataclass(frozen=True)
class _Call:
    name: str
    args: tuple[Any, ...]


@dataclass(frozen=True)
class _Expression:
    source: str
    operand: _Literal | _Path | _Call
    filters: tuple[tuple[str, tuple[Any, ...]], ...]


def _split_pipes(text: str) -> list[str]:
    parts: list[str] = []
    current: list[str] = []
    quote: str | None = None
    depth = 0
    escaped = False
    for char in text:
        if quote:
            current.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue
        if char in ("'", '"'):
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif char == "|" and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    if quote or depth != 0:
        raise TemplateError(f"unbalanced expression: {text.strip()!r}")
    parts.append("".join(current))
    return parts


def _literal_args(raw: str | None, source: str) -> tuple[Any, ...]:
    if raw is None or not raw.strip():
        return ()
    try:
        value = ast.literal_eval(f"({raw},)")
    except (ValueError, SyntaxError) as exc:
        raise TemplateError(f"invalid arguments in {source!r}") from exc
    return tuple(value)


class CompiledTemplate:
    """Parsed template: literal chunks interleaved with expressions."""

    def __init__(self, source: str, nodes: list[str | _Expression]):
        self.source = source
        self._nodes = nodes

    @property
    def is_static(self) -> bool:
        return all(isinstance(node, str) for node in self._nodes)

    def render(
        self,
        context: Mapping[str, Any],
        filters: Mapping[str, Filter],
        helpers: Mapping[str, Helper],
    ) -> str:
        out: list[str] = []
        for node in self._nodes:
            if isinstance(node, str):
                out.append(node)
            else:
                out.append(_to_text(_evaluate(node, context, filters, helpers)))
        return "".join(out)


def _parse_operand(text: str, source: str, helpers: Mapping[str, Helper]) -> _Literal | _Path | _Call:
    text = text.strip()
    if not text:
        raise TemplateError(f"empty expression in {source!r}")
    if text[0] in ("'", '"'):
        try:
            return _Literal(ast.literal_eval(text))
        except (ValueError, SyntaxError) as exc:
            raise TemplateError(f"invalid string literal {text!r}") from exc
    if _NUMBER_PATTERN.match(text):
        return _Literal(ast.literal_eval(text))
    if text.startswith("."):
        text = text[1:]
        if not text:
            return _Path(())
    if "(" in text:
        match = _CALL_PATTERN.match(text)
        if not match:
            raise TemplateError(f"invalid call {text!r}")
        name = match.group(1)
        if name not in helpers:
            raise TemplateError(f"unknown function {name!r}")
        return _Call(name, _literal_args(match.group(2), source))
    if not _PATH_PATTERN.match(text):
        raise TemplateError(f"invalid expression {text!r}")
    segments = tuple(text.split("."))
    if any(segment.startswith("_") for segment in segments):
        raise TemplateError(f"private attribute in {text!r}")
    return _Path(segments)


def compile_template(
    source: str,
    filters: Mapping[str, Filter] = DEFAULT_FILTERS,
    helpers: Mapping[str, Helper] = DEFAULT_HELPERS,
) -> CompiledTemplate:
    """Parse template source. Raises TemplateError for malformed templates."""
    nodes: list[str | _Expression] = []
    position = 0
    for match in PLACEHOLDER_PATTERN.finditer(source):
        if match.start() > position:
            nodes.append(source[position:match.start()])
        position = match.end()

        body = match.group(1)
        stages = _split_pipes(body)
        operand = _parse_operand(stages[0], source, helpers)
        parsed_filters: list[tuple[str, tuple[Any, ...]]] = []
        for stage in stages[1:]:
            call = _CALL_PATTERN.match(stage.strip())
            if not call:
                raise TemplateError(f"invalid filter {stage.strip()!r}")
            name = call.group(1)
            if name not in filters:
                raise TemplateError(f"unknown filter {name!r}")
            parsed_filters.append((name, _literal_args(call.group(2), source)))
        nodes.append(_Expression(body.strip(), operand, tuple(parsed_filters)))

    tail = source[position:]
    if "{{" in tail:
        raise TemplateError(f"unclosed placeholder in {source!r}")
    if tail:
        nodes.append(tail)
    return CompiledTemplate(source, nodes)


# =============================================================================
# Evaluation
# =============================================================================

_MISSING = object()


def _lookup_root(context: Mapping[str, Any], name: str) -> Any:
    if name in context:
        return context[name]
    lowered = name[:1].lower() + name[1:]
    if lowered in context:
        return context[lowered]
    if name.lower() in context:
        return context[name.lower()]
    return _MISSING


def _lookup_child(value: Any, key: str) -> Any:
    if value is None:
        return None
    if isinstance(value, Mapping):
        if key in value:
            return value[key]
        return value.get(key.lower())
    if isinstance(value, (list, tuple)) and key.isdigit():
        index = int(key)
        return value[index] if index < len(value) else None
    if key.startswith("_"):
        return None
    return getattr(value, key, None)


def _evaluate(
    expression: _Expression,
    context: Mapping[str, Any],
    filters: Mapping[str, Filter],
    helpers: Mapping[str, Helper],
) -> Any:
    operand = expression.operand
    try:
        if isinstance(operand, _Literal):
            value = operand.value
        elif isinstance(operand, _Call):
            value = helpers[operand.name](*operand.args)
        elif not operand.parts:
            value = dict(context)
        else:
            value = _lookup_root(context, operand.parts[0])
            if value is _MISSING:
                raise TemplateRenderError(f"unknown name {operand.parts[0]!r} in {{{{ {expression.source} }}}}")
            for part in operand.parts[1:]:
                value = _lookup_child(value, part)

        for name, args in expression.filters:
            value = filters[name](value, *args)
    except TemplateRenderError:
        raise
    except Exception as exc:
        raise TemplateRenderError(f"render {{{{ {expression.source} }}}}: {exc}") from exc
    return value


# =============================================================================
# Cache and renderer
# =============================================================================

class TemplateCache:
    """Compiled templates keyed by source text. Safe for concurrent get-or-insert."""

    def __init__(self) -> None:
        self._items: dict[str, CompiledTemplate] = {}
        self._lock = threading.Lock()

    def get_or_compile(self, source: str, compile_fn: Callable[[str], CompiledTemplate]) -> CompiledTemplate:
        cached = self._items.get(source)
        if cached is not None:
            return cached
        # Compiling twice concurrently is fine; first insert wins.
        compiled = compile_fn(source)
        with self._lock:
            return self._items.setdefault(source, compiled)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, source: object) -> bool:
        return source in self._items


class Renderer:
    """Renders template sources against a context, caching compiled templates."""

    def __init__(
        self,
        cache: TemplateCache | None = None,
        filters: Mapping[str, Filter] | None = None,
        helpers: Mapping[str, Helper] | None = None,
    ):
        self.cache = cache if cache is not None else TemplateCache()
        self.filters: dict[str, Filter] = dict(DEFAULT_FILTERS)
        self.helpers: dict[str, Helper] = dict(DEFAULT_HELPERS)
        if filters:
            self.filters.update(filters)
        if helpers:
            self.helpers.update(helpers)

    def compile(self, source: str) -> CompiledTemplate:
        return self.cache.get_or_compile(
            source, lambda text: compile_template(text, self.filters, self.helpers)
        )

    def render(self, source: str | None, context: Mapping[str, Any]) -> str:
        """Render source. Raises TemplateRenderError (TemplateError for bad sources)."""
        if not source:
            return ""
        return self.compile(source).render(context, self.filters, self.helpers)

    def render_markdown(self, source: str | None, context: Mapping[str, Any]) -> str:
        return render_markdown(self.render(source, context))


# =============================================================================
# Render contexts
# =============================================================================

def request_context(
    *,
    headers: Mapping[str, str] | None = None,
    query: Mapping[str, Any] | None = None,
    form: Mapping[str, Any] | None = None,
    code: str = "",
    credentials: Any = None,
) -> dict[str, Any]:
    """Context for default values: request data plus optional identity."""
    return {
        "headers": {k.lower(): v for k, v in (headers or {}).items()},
        "query": dict(query or {}),
        "form": dict(form or {}),
        "code": code,
        "user": credentials.user if credentials else "",
        "email": credentials.email if credentials else "",
        "groups": list(credentials.groups) if credentials else [],
    }


def result_context(*, form: Any, result: Mapping[str, Any] | None, error: Any = None) -> dict[str, Any]:
    """Context for success/failure messages."""
    return {
        "form": form,
        "result": dict(result) if result is not None else {},
        "error": str(error) if error is not None else "",
    }


def notify_context(*, form: Any, result: Mapping[str, Any]) -> dict[str, Any]:
    """Context for notification payloads and broker metadata."""
    return {"form": form, "result": dict(result)}
