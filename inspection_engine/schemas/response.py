"""
Response envelope schemas

Every JSON response leaves the API as
``{success, data, error, meta{requestId, timestamp}, feedback}``. Successful
payloads are wrapped by SuccessEnvelopeMiddleware; errors are built by the
exception handlers with ``details.category`` and ``details.retryable``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field


T = TypeVar("T")


class ResponseMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    request_id: str = Field(alias="requestId")
    timestamp: datetime


class ResponseFeedback(BaseModel):
    """Non-fatal notice attached to a successful response."""

    code: str
    level: str
    message: str


class ResponseError(BaseModel):
    code: str
    message: str
    details: Optional[dict[str, Any]] = None
    hint: Optional[str] = None


class ResponseEnvelope(BaseModel, Generic[T]):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    data: Optional[T] = None
    error: Optional[ResponseError] = None
    meta: ResponseMeta
    feedback: list[ResponseFeedback] = Field(default_factory=list)
