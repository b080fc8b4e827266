"""
Inspection API Routes

v1: multipart upload (VIN + at least three images), always asynchronous.
v2: JSON submission, synchronous by default or streaming with
``options.enableStreaming``; projection, SSE stream, retry and schema.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from fastapi.responses import JSONResponse, StreamingResponse

from inspection_engine.api.response_utils import build_meta
from inspection_engine.api.swagger_responses import combined_responses
from inspection_engine.core.config import settings
from inspection_engine.core.dependencies import (
    AppContainer,
    get_container,
    get_inspection_service,
    get_search_engine,
)
from inspection_engine.core.exceptions import InspectionEngineError, ValidationError
from inspection_engine.core.logging import get_logger
from inspection_engine.schemas.inspection import (
    InspectionAccepted,
    InspectionAcceptedV1,
    InspectionRequestV2,
    InspectionResultV2,
    InspectionView,
)
from inspection_engine.schemas.response import ResponseEnvelope
from inspection_engine.schemas.search import SearchHitView
from inspection_engine.services.inspection_service import InspectionService
from inspection_engine.services.progress import TERMINAL_EVENTS
from inspection_engine.services.search_service import SimilaritySearchEngine
from inspection_engine.services.validation import validate_media_count, validate_vin

logger = get_logger(__name__)

STREAM_KEEPALIVE_SECONDS = 15.0

v1_router = APIRouter(prefix="/inspect", tags=["inspections-v1"])
router = APIRouter(prefix="/inspect", tags=["inspections"])


def _sse(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


# ---------------------------------------------------------------------------
# v1
# ---------------------------------------------------------------------------


@v1_router.post(
    "",
    response_model=InspectionAcceptedV1,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit an inspection with uploaded images",
    responses=combined_responses(
        status_code=202,
        data_example={"inspectionId": "4b8e...", "status": "pending", "mediaCount": 3},
        include_errors=[400, 503],
    ),
)
async def submit_inspection_v1(
    vin: str = Form(...),
    files: list[UploadFile] = File(..., description="At least three vehicle images"),
    shop_id: str | None = Form(None),
    container: AppContainer = Depends(get_container),
) -> InspectionAcceptedV1:
    """
    Upload images, store a pending inspection and process it in the background.
    """
    if len(files) < settings.min_v1_images:
        container.metrics.track_metric("upload.error", 1, reason="too_few_images", error=True)
        raise ValidationError(
            f"At least {settings.min_v1_images} images required",
            details={"field": "files", "count": len(files), "minimum": settings.min_v1_images},
        )

    # reject before anything is written
    try:
        validate_vin(vin)
        validate_media_count(files, maximum=settings.max_media_items)
    except ValidationError as exc:
        container.metrics.track_metric("upload.error", 1, reason=exc.category, error=True)
        raise

    prefix = shop_id or settings.default_shop_id
    media: list[dict[str, Any]] = []
    service = container.inspections
    try:
        for upload in files:
            url = await container.storage.save(
                prefix=prefix,
                filename=upload.filename or "upload",
                content_type=upload.content_type or "",
                data=await upload.read(),
            )
            media.append({"type": "image", "url": url})
        inspection = await service.submit(
            vin=vin,
            media=media,
            shop_id=shop_id,
            api_version="1",
            min_media=settings.min_v1_images,
        )
    except InspectionEngineError as exc:
        container.metrics.track_metric("upload.error", 1, reason=exc.category, error=True)
        for item in media:
            await container.storage.delete(item["url"])
        logger.info("upload_rolled_back", removed=len(media), reason=exc.category)
        raise
    container.metrics.track_metric("upload.success", 1, count=len(media))
    service.start_background(inspection.id)
    return InspectionAcceptedV1(
        inspection_id=inspection.id,
        status=inspection.status,
        media_count=len(media),
    )


# ---------------------------------------------------------------------------
# v2
# ---------------------------------------------------------------------------


@router.get("/schema", summary="JSON schema of the v2 inspection request")
async def get_request_schema() -> dict[str, Any]:
    return InspectionRequestV2.model_json_schema(by_alias=True)


@router.post(
    "",
    response_model=None,
    summary="Submit an inspection",
    responses=combined_responses(
        status_code=200,
        data_example={
            "inspectionId": "4b8e...",
            "status": "complete",
            "processingTime": 1834,
            "result": {"damages": [{"type": "dent", "severity": "medium"}]},
        },
        include_errors=[400, 500, 503],
    ),
)
async def submit_inspection_v2(
    payload: InspectionRequestV2,
    request: Request,
    service: InspectionService = Depends(get_inspection_service),
) -> JSONResponse:
    """
    Synchronous unless ``options.enableStreaming`` is true.

    Streaming returns 202 with a stream URL immediately. Synchronous waits up
    to the processing deadline and returns the completed inspection; timeout
    and processing failures come back as 500 with ``details.category``.
    """
    options = payload.options
    inspection = await service.submit(
        vin=payload.vin,
        media=[m.model_dump(mode="json", by_alias=True, exclude_none=True) for m in payload.media],
        options=options.model_dump(mode="json", by_alias=True),
        metadata=(
            payload.metadata.model_dump(mode="json", by_alias=True, exclude_none=True)
            if payload.metadata
            else None
        ),
        shop_id=payload.shop_id,
    )

    if options.enable_streaming:
        service.start_background(inspection.id, priority=options.priority)
        accepted = InspectionAccepted.model_validate(service.acknowledge(inspection))
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content=accepted.model_dump(mode="json", by_alias=True),
        )

    completed = await service.run_synchronous(inspection.id)
    result = InspectionResultV2(
        inspection_id=completed.id,
        status=completed.status,
        processing_time=completed.processing_time_ms,
        result=InspectionView.from_model(completed),
    )
    # the body carries its own ``success`` key, so the envelope middleware
    # would pass it through bare; wrap it here
    envelope = ResponseEnvelope[InspectionResultV2](
        success=True, data=result, error=None, meta=build_meta(request)
    )
    return JSONResponse(content=envelope.model_dump(mode="json", by_alias=True))


@router.get(
    "",
    response_model=InspectionView,
    summary="Get an inspection by query id",
    responses=combined_responses(include_errors=[400, 404]),
)
async def get_inspection_by_query(
    inspection_id: UUID = Query(..., alias="id"),
    service: InspectionService = Depends(get_inspection_service),
) -> InspectionView:
    return InspectionView.from_model(await service.get_inspection(inspection_id))


@router.get(
    "/{inspection_id}",
    response_model=InspectionView,
    summary="Get an inspection",
    responses=combined_responses(include_errors=[400, 404]),
)
async def get_inspection(
    inspection_id: UUID,
    service: InspectionService = Depends(get_inspection_service),
) -> InspectionView:
    return InspectionView.from_model(await service.get_inspection(inspection_id))


@router.get("/{inspection_id}/stream", summary="Server-sent status and progress events")
async def stream_inspection(
    inspection_id: UUID,
    request: Request,
    service: InspectionService = Depends(get_inspection_service),
) -> StreamingResponse:
    """
    Emits ``status`` first, then ``progress``/``partial`` updates, and ends
    after ``complete`` or ``failed``.
    """
    key = str(inspection_id)
    # subscribe before reading so no transition is missed in between
    queue = service.broker.subscribe(key)
    try:
        inspection = await service.get_inspection(inspection_id)
    except Exception:
        service.broker.unsubscribe(key, queue)
        raise

    async def events() -> AsyncIterator[str]:
        try:
            view = InspectionView.from_model(inspection).model_dump(mode="json", by_alias=True)
            yield _sse("status", {"event": "status", "inspectionId": key, "data": view})
            if inspection.status.is_terminal:
                return
            while True:
                if await request.is_disconnected():
                    logger.debug("stream_client_disconnected", inspection_id=key)
                    return
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=STREAM_KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield _sse(message["event"], message)
                if message["event"] in TERMINAL_EVENTS:
                    return
        finally:
            service.broker.unsubscribe(key, queue)

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post(
    "/{inspection_id}/retry",
    response_model=InspectionView,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Retry a failed inspection",
    responses=combined_responses(status_code=202, include_errors=[404, 409]),
)
async def retry_inspection(
    inspection_id: UUID,
    priority: str = Query("normal", pattern="^(low|normal|high)$"),
    service: InspectionService = Depends(get_inspection_service),
) -> InspectionView:
    inspection = await service.retry_inspection(inspection_id, priority=priority)
    return InspectionView.from_model(inspection)


@router.get(
    "/{inspection_id}/similar",
    response_model=list[SearchHitView],
    summary="Inspections of the same shop with similar damage",
    responses=combined_responses(
        data_example=[{"referenceId": "9c1d...", "score": 0.91}],
        include_errors=[400, 404],
    ),
)
async def similar_inspections(
    inspection_id: UUID,
    shop_id: str = Query(..., alias="shopId", min_length=1),
    limit: int = Query(5, ge=1, le=50),
    engine: SimilaritySearchEngine = Depends(get_search_engine),
) -> list[SearchHitView]:
    hits = await engine.find_similar_inspections(shop_id, inspection_id, limit)
    return [SearchHitView(reference_id=h.reference_id, score=h.score) for h in hits]
