"""Common exception handlers for API responses."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from inspection_engine.api.response_utils import build_meta
from inspection_engine.core.exceptions import (
    ErrorCategory,
    InspectionEngineError,
    InspectionFailedError,
    InvalidStatusTransitionError,
    PersistenceError,
    ProcessingTimeoutError,
    RecordNotFoundError,
    StorageError,
    UpstreamAIError,
    ValidationError,
    VectorStoreError,
)
from inspection_engine.core.logging import get_logger
from inspection_engine.schemas.response import ResponseEnvelope, ResponseError

logger = get_logger(__name__)

# most specific class first; lookup walks the MRO
EXCEPTION_RESPONSE_MAP: dict[type[Exception], tuple[int, str]] = {
    ValidationError: (status.HTTP_400_BAD_REQUEST, "VALIDATION.INVALID_INPUT"),
    RecordNotFoundError: (status.HTTP_404_NOT_FOUND, "RESOURCE.NOT_FOUND"),
    InvalidStatusTransitionError: (status.HTTP_409_CONFLICT, "INSPECTION.INVALID_STATUS"),
    ProcessingTimeoutError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "INSPECTION.TIMEOUT"),
    InspectionFailedError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "INSPECTION.FAILED"),
    UpstreamAIError: (status.HTTP_502_BAD_GATEWAY, "AI.UPSTREAM_FAILURE"),
    VectorStoreError: (status.HTTP_503_SERVICE_UNAVAILABLE, "VECTOR.UNAVAILABLE"),
    PersistenceError: (status.HTTP_503_SERVICE_UNAVAILABLE, "STORAGE.DATABASE"),
    StorageError: (status.HTTP_503_SERVICE_UNAVAILABLE, "STORAGE.FILES"),
}
DEFAULT_ERROR_CODE = "INTERNAL.UNEXPECTED"


def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers that wrap exceptions in the common envelope."""

    app.add_exception_handler(InspectionEngineError, _engine_exception_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_error_handler)
    app.add_exception_handler(HTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)


def resolve_error(exc: Exception) -> tuple[int, str]:
    for klass in type(exc).__mro__:
        if klass in EXCEPTION_RESPONSE_MAP:
            return EXCEPTION_RESPONSE_MAP[klass]
    return status.HTTP_500_INTERNAL_SERVER_ERROR, DEFAULT_ERROR_CODE


def _error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    hint: str | None = None,
) -> JSONResponse:
    envelope = ResponseEnvelope[None](
        success=False,
        data=None,
        error=ResponseError(code=code, message=message, details=details, hint=hint),
        meta=build_meta(request),
    )
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(envelope, by_alias=True),
    )


def _compress_detail(detail: Any) -> tuple[str, Any | None]:
    if isinstance(detail, dict):
        message = detail.get("message", str(detail))
        return message, detail.get("details") or detail

    return str(detail), None


def _field_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Flatten pydantic errors to ``{field, message, type}`` with the body prefix dropped."""
    fields: list[dict[str, Any]] = []
    for error in errors:
        loc = [str(item) for item in error.get("loc", ()) if item != "body"]
        fields.append(
            {
                "field": ".".join(loc) or None,
                "message": error.get("msg", "Validation error"),
                "type": error.get("type"),
            }
        )
    return fields


async def _engine_exception_handler(request: Request, exc: InspectionEngineError) -> JSONResponse:
    status_code, code = resolve_error(exc)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "request_failed",
        path=request.url.path,
        code=code,
        category=exc.category,
        error=exc.message,
    )
    details = {**(exc.details or {}), "category": exc.category, "retryable": exc.retryable}
    return _error_response(
        request,
        status_code=status_code,
        code=code,
        message=exc.message,
        details=details,
        hint=exc.hint,
    )


async def _request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    fields = _field_errors(list(exc.errors() or []))
    message = "; ".join(
        f"{item['field']}: {item['message']}" if item["field"] else item["message"] for item in fields
    ) or "Validation error"
    return _error_response(
        request,
        status_code=status.HTTP_400_BAD_REQUEST,
        code="VALIDATION.INVALID_INPUT",
        message=message,
        details={"category": ErrorCategory.VALIDATION, "errors": fields},
    )


async def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    message, details = _compress_detail(exc.detail)
    return _error_response(
        request,
        status_code=exc.status_code,
        code=f"HTTP.{exc.status_code}",
        message=message,
        details=details,
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=request.url.path, error=str(exc))
    return _error_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code=DEFAULT_ERROR_CODE,
        message="Unexpected server error.",
        details={"category": ErrorCategory.INTERNAL},
    )
