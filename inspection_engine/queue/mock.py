"""
Mock Outbound Queue
Records messages instead of delivering them (development/testing)
"""

from inspection_engine.core.logging import get_logger
from inspection_engine.queue.schemas import MessageKind, OutboundMessage

logger = get_logger(__name__)


class RecordingOutboundQueue:
    """Keeps every published message in memory."""

    def __init__(self, *, maxsize: int | None = None) -> None:
        self.maxsize = maxsize
        self.messages: list[OutboundMessage] = []
        self.dropped: int = 0

    def publish(self, message: OutboundMessage) -> bool:
        if self.maxsize is not None and len(self.messages) >= self.maxsize:
            self.dropped += 1
            return False
        self.messages.append(message)
        logger.debug("outbound_message_recorded", kind=message.kind.value)
        return True

    def of_kind(self, kind: MessageKind) -> list[OutboundMessage]:
        return [m for m in self.messages if m.kind == kind]
