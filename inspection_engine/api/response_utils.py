"""Shared helpers for building API response envelopes."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from fastapi import Request

from inspection_engine.schemas.response import ResponseMeta

REQUEST_ID_HEADER = "X-Request-ID"


def request_id_for(request: Request) -> str:
    """Incoming X-Request-ID, or one generated once per request."""
    cached = getattr(request.state, "request_id", None)
    if cached:
        return cached
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
    request.state.request_id = request_id
    return request_id


def build_meta(request: Request) -> ResponseMeta:
    return ResponseMeta(requestId=request_id_for(request), timestamp=datetime.now(timezone.utc))
