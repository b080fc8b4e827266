"""
In-process outbound queue

Bounded asyncio queue drained by a single worker task that POSTs each message
with httpx. Delivery errors are logged and dropped; nothing is re-raised.
"""

from __future__ import annotations

import asyncio

import httpx

from inspection_engine.core.config import settings
from inspection_engine.core.logging import get_logger
from inspection_engine.queue.schemas import DeliveryResult, OutboundMessage

logger = get_logger(__name__)


class InMemoryOutboundQueue:
    """Fire-and-forget delivery worker for alerts and webhooks."""

    def __init__(
        self,
        *,
        maxsize: int | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._queue: asyncio.Queue[OutboundMessage] = asyncio.Queue(
            maxsize=maxsize or settings.outbound_queue_size
        )
        self._timeout = timeout or settings.outbound_timeout_seconds
        self._client = client
        self._owns_client = client is None
        self._worker: asyncio.Task | None = None
        self.delivered: int = 0
        self.dropped: int = 0
        self.failed: int = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def publish(self, message: OutboundMessage) -> bool:
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "outbound_message_dropped",
                reason="queue_full",
                kind=message.kind.value,
                message_id=message.message_id,
            )
            return False
        return True

    async def start(self) -> None:
        if self.running:
            return
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        self._worker = asyncio.create_task(self._run(), name="outbound-queue-worker")
        logger.info("outbound_queue_started", maxsize=self._queue.maxsize)

    async def stop(self, *, drain_timeout: float = 5.0) -> None:
        """Flush pending messages (bounded wait) and stop the worker."""
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
        except asyncio.TimeoutError:
            logger.warning("outbound_queue_drain_timeout", pending=self._queue.qsize())
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info(
            "outbound_queue_stopped",
            delivered=self.delivered,
            failed=self.failed,
            dropped=self.dropped,
        )

    async def deliver(self, message: OutboundMessage) -> DeliveryResult:
        """POST one message. Never raises."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        try:
            resp = await self._client.post(
                message.url,
                json=message.payload,
                headers=message.headers,
            )
        except httpx.HTTPError as exc:
            self.failed += 1
            logger.warning(
                "outbound_delivery_failed",
                kind=message.kind.value,
                url=message.url,
                error=str(exc),
            )
            return DeliveryResult(
                message_id=message.message_id,
                kind=message.kind,
                delivered=False,
                error=str(exc),
            )

        if resp.status_code >= 400:
            self.failed += 1
            logger.warning(
                "outbound_delivery_rejected",
                kind=message.kind.value,
                url=message.url,
                status_code=resp.status_code,
            )
            return DeliveryResult(
                message_id=message.message_id,
                kind=message.kind,
                delivered=False,
                status_code=resp.status_code,
            )

        self.delivered += 1
        logger.debug(
            "outbound_delivered",
            kind=message.kind.value,
            message_id=message.message_id,
            status_code=resp.status_code,
        )
        return DeliveryResult(
            message_id=message.message_id,
            kind=message.kind,
            delivered=True,
            status_code=resp.status_code,
        )

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self.deliver(message)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "outbound_worker_error",
                    message_id=message.message_id,
                    error=str(exc),
                )
            finally:
                self._queue.task_done()
