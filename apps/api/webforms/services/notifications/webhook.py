"""HTTP webhook notifications with unconstrained fan-out delivery."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import httpx

from webforms.core.errors import NotificationError
from webforms.core.url_validation import safe_url
from webforms.schemas.forms import WebhookTarget
from webforms.services.notifications.base import (
    Notification,
    NotifyEvent,
    deliver_with_retries,
    render_payload,
)
from webforms.services.template_service import Renderer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookTask:
    target: WebhookTarget
    payload: bytes


class _WebhookNotification:
    def __init__(self, dispatcher: "WebhookDispatcher", target: WebhookTarget):
        self._dispatcher = dispatcher
        self.target = target

    async def dispatch(self, event: NotifyEvent) -> None:
        payload = render_payload(self._dispatcher.renderer, self.target.message, event)
        await self._dispatcher.enqueue(WebhookTask(self.target, payload))


class WebhookDispatcher:
    """
    Bounded queue of webhook deliveries.

    ``run`` starts one task per dequeued delivery, so deliveries proceed in
    parallel and their order is not preserved.
    """

    def __init__(
        self,
        buffer: int = 100,
        *,
        renderer: Renderer | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.renderer = renderer or Renderer()
        self._queue: asyncio.Queue[WebhookTask] = asyncio.Queue(maxsize=max(buffer, 1))
        self._transport = transport

    def create(self, target: WebhookTarget) -> Notification:
        return _WebhookNotification(self, target)

    async def enqueue(self, task: WebhookTask) -> None:
        await self._queue.put(task)

    async def join(self) -> None:
        """Wait until every queued delivery finished (tests and graceful drains)."""
        await self._queue.join()

    async def run(self) -> None:
        """Drain the queue until cancelled; in-flight deliveries are cancelled too."""
        pending: set[asyncio.Task] = set()
        try:
            while True:
                task = await self._queue.get()
                delivery = asyncio.create_task(self._deliver(task))
                pending.add(delivery)
                delivery.add_done_callback(pending.discard)
        finally:
            for delivery in pending:
                delivery.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def _deliver(self, task: WebhookTask) -> bool:
        target = task.target
        label = f"webhook {target.method} {safe_url(target.url)}"
        try:
            async with httpx.AsyncClient(timeout=target.timeout, transport=self._transport) as client:

                async def attempt() -> None:
                    response = await client.request(
                        target.method,
                        target.url,
                        content=task.payload,
                        headers=target.headers,
                    )
                    if not response.is_success:
                        raise NotificationError(f"non-2xx response code: {response.status_code}")

                return await deliver_with_retries(
                    attempt,
                    retry=target.retry,
                    interval=target.interval,
                    timeout=target.timeout,
                    label=label,
                )
        finally:
            self._queue.task_done()
