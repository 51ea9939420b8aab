"""Load form definitions from YAML/JSON files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import yaml
from pydantic import ValidationError

from webforms.core.errors import FormConfigError, TemplateError
from webforms.schemas.forms import FormDefinition
from webforms.services.template_service import Renderer

logger = logging.getLogger(__name__)

FORM_EXTENSIONS = (".yaml", ".yml", ".json")


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


def forms_from_text(text: str, *, default_name: str = "", source: str = "<string>") -> list[FormDefinition]:
    """Parse every YAML document in text as a form definition."""
    try:
        documents = list(yaml.safe_load_all(text))
    except yaml.YAMLError as exc:
        raise FormConfigError(f"read {source}: {exc}") from exc

    forms: list[FormDefinition] = []
    for index, document in enumerate(documents):
        if document is None:
            continue
        if not isinstance(document, dict):
            raise FormConfigError(f"read {source}: document {index} is not a mapping")
        data = dict(document)
        if not data.get("name") and default_name:
            data["name"] = default_name
        try:
            forms.append(FormDefinition.model_validate(data))
        except ValidationError as exc:
            raise FormConfigError(f"read {source}: {_format_validation_error(exc)}") from exc
    return forms


def forms_from_file(path: Path, *, root: Path | None = None) -> list[FormDefinition]:
    """Load forms from one file. Unnamed forms take the file name without extension."""
    relative = path.relative_to(root) if root is not None else Path(path.name)
    default_name = relative.with_suffix("").as_posix()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise FormConfigError(f"open {path}: {exc}") from exc
    return forms_from_text(text, default_name=default_name, source=str(path))


def _walk(root: Path) -> Iterable[Path]:
    for path in sorted(root.rglob("*")):
        if path.is_file() and path.suffix.lower() in FORM_EXTENSIONS:
            yield path


def compile_form_templates(form: FormDefinition, renderer: Renderer) -> None:
    """Compile every template of a form into the renderer cache."""
    sources: list[tuple[str, str]] = [
        ("success", form.success),
        ("failed", form.failed),
    ]
    for field in form.fields:
        sources.append((f"fields.{field.name}.default", field.default))
    for index, webhook in enumerate(form.webhooks):
        sources.append((f"webhooks.{index}.message", webhook.message or ""))
    for index, target in enumerate(form.amqp):
        sources.append((f"amqp.{index}.message", target.message or ""))
        sources.append((f"amqp.{index}.key", target.key))
        sources.append((f"amqp.{index}.correlation", target.correlation))
        sources.append((f"amqp.{index}.id", target.id))

    for location, source in sources:
        if not source:
            continue
        try:
            renderer.compile(source)
        except TemplateError as exc:
            raise FormConfigError(f"form {form.name}: {location}: {exc}") from exc


def load_forms(location: str | Path, renderer: Renderer | None = None) -> list[FormDefinition]:
    """
    Load form definitions from a file or a directory (walked recursively).

    Raises FormConfigError for unreadable files, invalid definitions,
    malformed templates and duplicated form names.
    """
    path = Path(location)
    if path.is_dir():
        forms: list[FormDefinition] = []
        for file in _walk(path):
            forms.extend(forms_from_file(file, root=path))
    elif path.is_file():
        forms = forms_from_file(path)
    else:
        raise FormConfigError(f"form definitions not found: {path}")

    seen: set[str] = set()
    for form in forms:
        if form.name in seen:
            raise FormConfigError(f"duplicated form name: {form.name}")
        seen.add(form.name)
        if renderer is not None:
            compile_form_templates(form, renderer)

    logger.info("Loaded %d form definition(s) from %s", len(forms), path)
    return forms
