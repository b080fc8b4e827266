"""
Outbound Queue Protocol (Interface)
Defines contract for fire-and-forget delivery of alerts and webhooks
"""

from typing import Protocol, runtime_checkable

from inspection_engine.queue.schemas import OutboundMessage


@runtime_checkable
class OutboundQueueProtocol(Protocol):
    """
    Protocol for outbound delivery queues

    ``publish`` must never block or raise into the caller: a slow or failing
    sink can only lose messages, never delay the operation being measured.
    """

    def publish(self, message: OutboundMessage) -> bool:
        """
        Hand a message off for background delivery

        Returns:
            True if accepted, False if dropped (queue full or stopped)
        """
        ...
