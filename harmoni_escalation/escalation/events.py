"""
Event Bus — fire-and-forget domain event publication.

Publishers put events on a bounded outbound queue and never wait for
subscribers. A background dispatcher task drains the queue and hands each
event to the handlers subscribed to its type (or to "*").

Usage:
    bus = EventBus()
    bus.subscribe("emergency_alert_triggered", handler)
    await bus.start()
    bus.publish(event)
    await bus.stop()
"""

import asyncio
from collections import defaultdict
from typing import Awaitable, Callable, Optional

import structlog

from harmoni_escalation.escalation.schemas import DomainEvent

logger = structlog.get_logger(__name__)

EventHandler = Callable[[DomainEvent], Awaitable[None]]

ALL_EVENTS = "*"


class EventBus:
    """
    In-process pub/sub over an asyncio queue.

    Each handler runs in isolation: a failing handler is logged and the
    remaining handlers still receive the event.
    """

    def __init__(self, max_queue_size: int = 1000):
        self._queue: asyncio.Queue[DomainEvent] = asyncio.Queue(maxsize=max_queue_size)
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)
        logger.debug("event_handler_subscribed", event_type=event_type)

    def publish(self, event: DomainEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "event_queue_full",
                event_type=event.event_type,
                incident_id=event.incident_id,
            )
            return

        logger.info(
            "domain_event_published",
            event_type=event.event_type,
            event_id=event.event_id,
            incident_id=event.incident_id,
        )

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="escalation-event-bus")
        logger.info("event_bus_started")

    async def stop(self, drain: bool = True) -> None:
        """Stop the dispatcher, delivering queued events first unless ``drain`` is False."""
        if self._task is None:
            return
        if drain:
            await self._queue.join()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("event_bus_stopped", undelivered=self._queue.qsize())

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.deliver(event)
            finally:
                self._queue.task_done()

    async def deliver(self, event: DomainEvent) -> None:
        handlers = self._handlers.get(event.event_type, []) + self._handlers.get(ALL_EVENTS, [])
        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "event_handler_failed",
                    event_type=event.event_type,
                    event_id=event.event_id,
                    handler=getattr(handler, "__name__", repr(handler)),
                    error=str(e),
                )
