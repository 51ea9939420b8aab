"""AMQP broker notifications serialized through one connection."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import aio_pika

from webforms.schemas.forms import AMQPTarget
from webforms.services.notifications.base import (
    Notification,
    NotifyEvent,
    deliver_with_retries,
    render_payload,
    render_template,
)
from webforms.services.template_service import Renderer

logger = logging.getLogger(__name__)

Connect = Callable[[str], Awaitable[Any]]


@dataclass(frozen=True)
class AMQPTask:
    target: AMQPTarget
    key: str
    correlation_id: str
    message_id: str
    payload: bytes


class _Connection:
    """
    Broker connection and channel owned by the single worker.

    Opened lazily; any failure closes both so the next attempt reconnects.
    """

    def __init__(self, url: str, connect: Connect):
        self.url = url
        self._connect = connect
        self.connection: Any = None
        self.channel: Any = None

    @property
    def is_open(self) -> bool:
        return self.channel is not None

    async def get_channel(self) -> Any:
        if self.channel is not None:
            return self.channel
        if self.connection is None:
            self.connection = await self._connect(self.url)
        try:
            self.channel = await self.connection.channel()
        except Exception:
            await self.close()
            raise
        return self.channel

    async def close(self) -> None:
        channel, self.channel = self.channel, None
        connection, self.connection = self.connection, None
        for resource in (channel, connection):
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as exc:
                logger.debug("Failed to close broker resource: %s", exc)


class _AMQPNotification:
    def __init__(self, dispatcher: "AMQPDispatcher", target: AMQPTarget):
        self._dispatcher = dispatcher
        self.target = target

    async def dispatch(self, event: NotifyEvent) -> None:
        renderer = self._dispatcher.renderer
        task = AMQPTask(
            target=self.target,
            payload=render_payload(renderer, self.target.message, event),
            key=render_template(renderer, self.target.key, event, "routing key"),
            correlation_id=render_template(renderer, self.target.correlation, event, "correlation ID"),
            message_id=render_template(renderer, self.target.id, event, "message ID"),
        )
        await self._dispatcher.enqueue(task)


class AMQPDispatcher:
    """
    Bounded queue of broker publishes drained by one worker.

    Publishes happen in enqueue order over a shared channel. A failed
    publish drops the connection for every following task until reopened.
    """

    def __init__(
        self,
        url: str,
        buffer: int = 100,
        *,
        renderer: Renderer | None = None,
        connect: Connect | None = None,
    ):
        self.url = url
        self.renderer = renderer or Renderer()
        self._queue: asyncio.Queue[AMQPTask] = asyncio.Queue(maxsize=max(buffer, 1))
        self._connect = connect or aio_pika.connect

    def create(self, target: AMQPTarget) -> Notification:
        return _AMQPNotification(self, target)

    async def enqueue(self, task: AMQPTask) -> None:
        await self._queue.put(task)

    async def join(self) -> None:
        await self._queue.join()

    async def run(self) -> None:
        connection = _Connection(self.url, self._connect)
        try:
            while True:
                task = await self._queue.get()
                try:
                    await self._send(connection, task)
                finally:
                    self._queue.task_done()
        finally:
            await connection.close()

    async def _send(self, connection: _Connection, task: AMQPTask) -> bool:
        target = task.target
        label = f"AMQP message (exchange={target.exchange!r}, key={task.key!r}, id={task.message_id!r})"

        async def publish() -> None:
            channel = await connection.get_channel()
            if target.exchange:
                exchange = await channel.get_exchange(target.exchange, ensure=False)
            else:
                exchange = channel.default_exchange
            message = aio_pika.Message(
                body=task.payload,
                headers=dict(target.headers) or None,
                content_type=target.content_type or None,
                correlation_id=task.correlation_id or None,
                message_id=task.message_id or None,
                timestamp=datetime.now(timezone.utc),
            )
            await exchange.publish(message, routing_key=task.key)

        async def reset(exc: Exception) -> None:
            await connection.close()

        return await deliver_with_retries(
            publish,
            retry=target.retry,
            interval=target.interval,
            timeout=target.timeout,
            label=label,
            on_failure=reset,
        )
