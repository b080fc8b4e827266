"""Middleware for the shared response envelope and API response timing."""

from __future__ import annotations

import json
import time
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware

from inspection_engine.api.response_utils import REQUEST_ID_HEADER, build_meta, request_id_for
from inspection_engine.core.logging import get_logger
from inspection_engine.schemas.response import ResponseEnvelope

logger = get_logger(__name__)


_NO_BODY_STATUSES = frozenset({204, 304})
_DROPPED_HEADERS = frozenset({"content-length", "content-type"})


def _is_wrappable(response: Response) -> bool:
    if response.status_code >= 400 or response.status_code in _NO_BODY_STATUSES:
        return False
    return "application/json" in response.headers.get("content-type", "")


async def _read_body(response: Response) -> bytes:
    """Buffered responses expose ``body``; streamed ones are drained."""
    if getattr(response, "body", None):
        return response.body
    iterator = getattr(response, "body_iterator", None)
    if iterator is None:
        return b""
    return b"".join([chunk async for chunk in iterator])


class SuccessEnvelopeMiddleware(BaseHTTPMiddleware):
    """
    Put 2xx JSON payloads under ``data`` of a success envelope.

    Payloads that already carry a ``success`` key (error handlers, pre-built
    envelopes) pass through untouched, as do SSE and file responses.
    """

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        response = await call_next(request)
        if not _is_wrappable(response):
            return response

        raw = await _read_body(response)
        passthrough_headers = {
            k: v for k, v in response.headers.items() if k.lower() not in _DROPPED_HEADERS
        }
        try:
            payload = json.loads(raw) if raw else None
        except ValueError:
            payload = None
        if payload is None or (isinstance(payload, dict) and "success" in payload):
            # body iterator is consumed; rebuild the response from the bytes
            return Response(
                content=raw,
                status_code=response.status_code,
                headers=passthrough_headers,
                media_type=response.headers.get("content-type"),
            )

        envelope = ResponseEnvelope(success=True, data=payload, error=None, meta=build_meta(request))
        return JSONResponse(
            status_code=response.status_code,
            content=jsonable_encoder(envelope, by_alias=True),
            headers=passthrough_headers,
        )


class ResponseTimeMiddleware(BaseHTTPMiddleware):
    """
    Record ``api.response_time`` per request and alert on slow responses.

    Streaming endpoints are timed up to the first byte.
    """

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        request_id = request_id_for(request)
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        route = request.scope.get("route")
        endpoint = f"{request.method} {getattr(route, 'path', request.url.path)}"
        container = getattr(request.app.state, "container", None)
        if container is not None:
            container.metrics.track_metric(
                "api.response_time",
                duration_ms,
                endpoint=endpoint,
                status_code=response.status_code,
            )
            container.alerts.check_api_response_time(duration_ms, endpoint=endpoint)

        logger.info(
            "http_request",
            endpoint=endpoint,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
            request_id=request_id,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time-Ms"] = f"{duration_ms:.1f}"
        return response
