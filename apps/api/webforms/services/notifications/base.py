"""Notification interface and the shared retry loop."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol

from webforms.core.errors import NotificationError, TemplateError, TemplateRenderError
from webforms.schemas.forms import FormDefinition
from webforms.services.template_service import Renderer, notify_context, to_json

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotifyEvent:
    """A stored submission to be announced to external sinks."""

    form: FormDefinition
    result: dict[str, Any] = field(default_factory=dict)


class Notification(Protocol):
    async def dispatch(self, event: NotifyEvent) -> None:
        """
        Render and enqueue a delivery for the event.

        Blocks while the dispatcher queue is full. Raises NotificationError
        when rendering fails; delivery outcome is only logged.
        """


def render_template(renderer: Renderer, source: str, event: NotifyEvent, what: str) -> str:
    if not source:
        return ""
    try:
        return renderer.render(source, notify_context(form=event.form, result=event.result))
    except (TemplateError, TemplateRenderError) as exc:
        raise NotificationError(f"render {what}: {exc}") from exc


def render_payload(renderer: Renderer, message: str | None, event: NotifyEvent) -> bytes:
    """Rendered message, or the JSON document of the stored result when unset."""
    if message is None:
        try:
            return to_json(event.result).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise NotificationError(f"serialize result: {exc}") from exc
    return render_template(renderer, message, event, "payload").encode("utf-8")


async def deliver_with_retries(
    attempt_fn: Callable[[], Awaitable[Any]],
    *,
    retry: int,
    interval: float,
    timeout: float,
    label: str,
    on_failure: Callable[[Exception], Awaitable[None]] | None = None,
) -> bool:
    """
    Run attempt_fn until it succeeds or retry + 1 attempts were made.

    Each attempt is bounded by timeout; attempts are spaced by interval.
    Cancellation (shutdown) stops the sequence immediately and propagates.
    """
    attempt = 0
    while True:
        try:
            await asyncio.wait_for(attempt_fn(), timeout)
        except asyncio.CancelledError:
            logger.info("Delivery of %s stopped due to shutdown", label)
            raise
        except Exception as exc:
            if on_failure is not None:
                await on_failure(exc)
            logger.warning(
                "Failed to deliver %s (attempt %d of %d, retry after %.1fs): %s",
                label,
                attempt + 1,
                retry + 1,
                interval,
                str(exc) or type(exc).__name__,
            )
        else:
            logger.info("Delivered %s (attempt %d of %d)", label, attempt + 1, retry + 1)
            return True

        if attempt >= retry:
            logger.error("Delivery of %s failed after %d attempt(s)", label, attempt + 1)
            return False

        try:
            await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("Retry of %s stopped due to shutdown", label)
            raise
        attempt += 1
