"""Async event bus carrying accepted webhooks to background processing."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Coroutine
from uuid import uuid4

from formula_trigger.utils.logging import get_logger
from formula_trigger.webhooks.models import WebhookEvent

log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

class EventType(str, Enum):
    FORMULA_CHANGED = "formula.changed"


@dataclass
class Event:
    type: EventType
    id: str = field(default_factory=lambda: uuid4().hex[:12])
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class FormulaChanged(Event):
    type: EventType = field(default=EventType.FORMULA_CHANGED, init=False)

    # Populated by the webhook endpoint, consumed by the status processor
    webhook: WebhookEvent | None = field(default=None)


# ---------------------------------------------------------------------------
# Bus
# ---------------------------------------------------------------------------

Handler = Callable[[Event], Coroutine[Any, Any, None]]


class EventBus:
    """Queue per subscriber; every event is handled in its own task.

    Handler failures are logged and never reach the publisher.
    """

    def __init__(self, max_queue_size: int = 256, drain_timeout: float = 5.0) -> None:
        self._subscribers: dict[EventType, list[tuple[Handler, asyncio.Queue[Event]]]] = {}
        self._max_queue_size = max_queue_size
        self._drain_timeout = drain_timeout
        self._running = False
        self._tasks: list[asyncio.Task[None]] = []
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        queued = sum(q.qsize() for subs in self._subscribers.values() for _, q in subs)
        return queued + len(self._inflight)

    def subscribe(self, event_type: EventType, handler: Handler) -> None:
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.setdefault(event_type, []).append((handler, queue))

    def publish(self, event: Event) -> bool:
        """Enqueue without waiting. Returns False if any subscriber dropped it."""
        delivered = True
        for handler, queue in self._subscribers.get(event.type, []):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                delivered = False
                log.warning(
                    "event_queue_full",
                    event_type=event.type.value,
                    event_id=event.id,
                    handler=handler.__qualname__,
                )
        return delivered

    async def start(self) -> None:
        self._running = True
        for event_type, handler_list in self._subscribers.items():
            for handler, queue in handler_list:
                task = asyncio.create_task(
                    self._consumer(handler, queue, event_type.value),
                    name=f"bus-{event_type.value}-{handler.__qualname__}",
                )
                self._tasks.append(task)

    async def _consumer(
        self, handler: Handler, queue: asyncio.Queue[Event], event_type: str
    ) -> None:
        while self._running:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            task = asyncio.create_task(
                self._dispatch(handler, event, event_type),
                name=f"handle-{event_type}-{event.id}",
            )
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def _dispatch(self, handler: Handler, event: Event, event_type: str) -> None:
        try:
            await handler(event)
        except Exception:
            log.exception("handler_error", event_type=event_type, event_id=event.id)

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        if self._inflight:
            inflight = list(self._inflight)
            _, still_running = await asyncio.wait(inflight, timeout=self._drain_timeout)
            for task in still_running:
                task.cancel()
            if still_running:
                log.warning("handlers_cancelled_on_stop", count=len(still_running))
                await asyncio.gather(*still_running, return_exceptions=True)
