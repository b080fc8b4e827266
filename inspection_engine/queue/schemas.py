"""
Outbound message DTOs

Alerts and inspection webhooks share one delivery path: a JSON POST to a URL.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import Field

from inspection_engine.schemas.base import BaseSchema


class MessageKind(str, Enum):
    ALERT = "alert"
    WEBHOOK = "webhook"


class OutboundMessage(BaseSchema):
    """Single fire-and-forget POST."""

    message_id: str = Field(default_factory=lambda: str(uuid4()))
    kind: MessageKind
    url: str
    payload: dict[str, Any]
    headers: dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DeliveryResult(BaseSchema):
    message_id: str
    kind: MessageKind
    delivered: bool
    status_code: int | None = None
    error: str | None = None
