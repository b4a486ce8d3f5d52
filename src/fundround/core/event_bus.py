"""In-memory async event bus for proposal and round notifications.

The engine publishes ``proposal.status_changed`` and
``round.allocation_finalized``; notification and UI layers subscribe.
Delivery is best effort: with no subscribers an event goes nowhere, and a
subscriber whose queue is full misses events rather than blocking the engine.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import defaultdict
from typing import Any

logger = logging.getLogger(__name__)

Envelope = dict[str, Any]


class EventBus:
    """Async pub/sub.

    Usage:
        bus = EventBus()

        async with bus.subscribe("proposal.status_changed") as sub:
            event = await sub.get(timeout=1.0)

        await bus.publish("proposal.status_changed", {"proposal_id": "p-1"})
    """

    def __init__(self) -> None:
        self._queues: dict[str | None, list[asyncio.Queue[Envelope]]] = defaultdict(list)

    async def publish(self, event_type: str, data: dict[str, Any]) -> int:
        """Deliver to subscribers of ``event_type`` and to wildcard subscribers.

        Returns how many queues accepted the event.
        """
        envelope: Envelope = {"type": event_type, "data": data}
        delivered = 0
        for queue in [*self._queues.get(event_type, []), *self._queues.get(None, [])]:
            try:
                queue.put_nowait(envelope)
            except asyncio.QueueFull:
                logger.warning("event_dropped type=%s reason=slow_subscriber", event_type)
                continue
            delivered += 1
        return delivered

    def subscribe(self, event_type: str | None = None, max_size: int = 100) -> Subscription:
        """Subscribe to one event type, or to everything when ``event_type`` is None."""
        return Subscription(self, asyncio.Queue(maxsize=max_size), event_type)

    @property
    def subscriber_count(self) -> int:
        return sum(len(queues) for queues in self._queues.values())

    def _attach(self, queue: asyncio.Queue[Envelope], event_type: str | None) -> None:
        self._queues[event_type].append(queue)

    def _detach(self, queue: asyncio.Queue[Envelope], event_type: str | None) -> None:
        with contextlib.suppress(ValueError):
            self._queues[event_type].remove(queue)


class Subscription:
    """Async context manager; events are read with ``get``."""

    def __init__(
        self,
        bus: EventBus,
        queue: asyncio.Queue[Envelope],
        event_type: str | None,
    ) -> None:
        self._bus = bus
        self._queue = queue
        self._event_type = event_type

    async def __aenter__(self) -> Subscription:
        self._bus._attach(self._queue, self._event_type)
        return self

    async def __aexit__(self, *args: object) -> None:
        self._bus._detach(self._queue, self._event_type)

    async def get(self, timeout: float | None = None) -> Envelope | None:
        """Next event, or None if nothing arrives within ``timeout`` seconds."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except TimeoutError:
            return None
