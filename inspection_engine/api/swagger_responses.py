"""
OpenAPI response examples

Used in ``@router`` decorators so the docs show the shared envelope for both
success and error responses.
"""

from typing import Any, Dict

_META_EXAMPLE = {"requestId": "req-uuid-xxx", "timestamp": "2026-01-15T10:35:00Z"}

_ERROR_EXAMPLES: Dict[int, tuple[str, Dict[str, Any]]] = {
    400: (
        "Bad Request - invalid input",
        {
            "code": "VALIDATION.INVALID_INPUT",
            "message": "vin: Value error, VIN must be 17 characters (A-Z, 0-9, excluding I, O, Q)",
            "details": {
                "category": "validation",
                "errors": [{"field": "vin", "message": "VIN must be 17 characters", "type": "value_error"}],
            },
            "hint": None,
        },
    ),
    404: (
        "Not Found",
        {
            "code": "RESOURCE.NOT_FOUND",
            "message": "Inspection 4b8e... not found",
            "details": {"category": "not_found", "retryable": False},
            "hint": None,
        },
    ),
    409: (
        "Conflict - status does not allow the operation",
        {
            "code": "INSPECTION.INVALID_STATUS",
            "message": "Only failed inspections can be retried (current: complete)",
            "details": {"category": "conflict", "retryable": False},
            "hint": None,
        },
    ),
    500: (
        "Processing failed or timed out",
        {
            "code": "INSPECTION.TIMEOUT",
            "message": "Inspection did not finish within 30s",
            "details": {"category": "timeout", "retryable": False, "inspectionId": "4b8e..."},
            "hint": "Poll /api/v2/inspect/4b8e... for the result",
        },
    ),
    503: (
        "Service Unavailable - storage backend failure",
        {
            "code": "STORAGE.DATABASE",
            "message": "Failed to create inspection",
            "details": {"category": "persistence", "retryable": True},
            "hint": None,
        },
    ),
}

_SUCCESS_DESCRIPTIONS = {200: "OK", 201: "Created", 202: "Accepted - processing"}


def success_response_example(
    status_code: int = 200,
    data_example: Any = None,
) -> Dict[int, Dict[str, Any]]:
    if status_code == 204:
        return {}

    return {
        status_code: {
            "description": _SUCCESS_DESCRIPTIONS.get(status_code, "OK"),
            "content": {
                "application/json": {
                    "example": {
                        "success": True,
                        "data": data_example or {},
                        "error": None,
                        "meta": _META_EXAMPLE,
                        "feedback": [],
                    }
                }
            },
        }
    }


def error_response_example(status_code: int) -> Dict[str, Any]:
    description, error = _ERROR_EXAMPLES[status_code]
    return {
        "description": description,
        "content": {
            "application/json": {
                "example": {
                    "success": False,
                    "data": None,
                    "error": error,
                    "meta": _META_EXAMPLE,
                    "feedback": [],
                }
            }
        },
    }


def combined_responses(
    status_code: int = 200,
    data_example: Any = None,
    include_errors: list[int] | None = None,
) -> Dict[int, Dict[str, Any]]:
    """
    Success example plus error examples

    Args:
        status_code: success HTTP status
        data_example: example ``data`` payload
        include_errors: error statuses to document (default: 400, 404, 500)
    """
    if include_errors is None:
        include_errors = [400, 404, 500]

    responses = success_response_example(status_code, data_example)
    for error_code in include_errors:
        if error_code in _ERROR_EXAMPLES:
            responses[error_code] = error_response_example(error_code)
    return responses
