"""
In-process inspection update broker

The state machine publishes status/progress updates; the stream endpoint
subscribes per inspection. Slow subscribers lose intermediate updates rather
than blocking processing; terminal updates are always kept.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any

from inspection_engine.core.logging import get_logger

logger = get_logger(__name__)

TERMINAL_EVENTS = frozenset({"complete", "failed"})


class InspectionUpdateBroker:
    def __init__(self, *, queue_size: int = 100) -> None:
        self.queue_size = queue_size
        self._subscribers: dict[str, set[asyncio.Queue[dict[str, Any]]]] = defaultdict(set)

    def subscribe(self, inspection_id: str) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[inspection_id].add(queue)
        return queue

    def unsubscribe(self, inspection_id: str, queue: asyncio.Queue[dict[str, Any]]) -> None:
        subscribers = self._subscribers.get(inspection_id)
        if subscribers is None:
            return
        subscribers.discard(queue)
        if not subscribers:
            del self._subscribers[inspection_id]

    def subscriber_count(self, inspection_id: str) -> int:
        return len(self._subscribers.get(inspection_id, ()))

    def publish(self, inspection_id: str, event: str, data: dict[str, Any]) -> None:
        message = {"event": event, "inspectionId": inspection_id, "data": data}
        for queue in list(self._subscribers.get(inspection_id, ())):
            if queue.full():
                if event not in TERMINAL_EVENTS:
                    logger.debug("progress_update_dropped", inspection_id=inspection_id, update=event)
                    continue
                # make room for the terminal event
                queue.get_nowait()
            queue.put_nowait(message)
