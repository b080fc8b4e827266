"""
Structured Logging

structlog is configured once at startup. Pipeline code logs snake_case events
with keyword fields; the inspection id is bound through contextvars while an
inspection is being processed so every line emitted on its behalf carries it.
"""

import inspect
import logging
import sys
import time
from functools import wraps
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from inspection_engine.core.config import settings


def add_service_fields(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp service name, version and environment on each entry."""
    event_dict.setdefault("service", settings.app_name)
    event_dict.setdefault("version", settings.app_version)
    event_dict.setdefault("environment", settings.environment)
    return event_dict


def _renderer_chain(json_output: bool) -> list[Processor]:
    if json_output:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]


def configure_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: overrides ``settings.log_level``
        json_output: overrides ``settings.log_json`` (JSON in production,
            console renderer during development)
    """
    level_name = (level or settings.log_level).upper()
    use_json = settings.log_json if json_output is None else json_output
    numeric_level = logging.getLevelName(level_name)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_service_fields,
        *_renderer_chain(use_json),
    ]
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_inspection_context(inspection_id: str, **extra: Any) -> None:
    structlog.contextvars.bind_contextvars(inspection_id=inspection_id, **extra)


def clear_inspection_context() -> None:
    structlog.contextvars.clear_contextvars()


def _log_elapsed(module: str, operation: str, started: float) -> None:
    get_logger(module).debug(
        "operation_latency",
        operation=operation,
        latency_ms=round((time.perf_counter() - started) * 1000, 2),
    )


def measure_latency(operation: str):
    """
    Decorator logging how long the wrapped callable took, success or not.

    Works on both coroutine functions and plain functions.
    """

    def decorator(func):
        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def timed_async(*args, **kwargs):
                started = time.perf_counter()
                try:
                    return await func(*args, **kwargs)
                finally:
                    _log_elapsed(func.__module__, operation, started)

            return timed_async

        @wraps(func)
        def timed(*args, **kwargs):
            started = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                _log_elapsed(func.__module__, operation, started)

        return timed

    return decorator


def log_model_call(
    *,
    operation: str,
    model: str | None,
    latency_ms: float,
    attempt: int = 1,
    error: str | None = None,
) -> None:
    """One line per vision/embedding request; failed attempts log at warning."""
    logger = get_logger("inspection_engine.models")
    fields = {
        "operation": operation,
        "model": model,
        "latency_ms": round(latency_ms, 2),
        "attempt": attempt,
    }
    if error:
        logger.warning("model_call_failed", error=error, **fields)
    else:
        logger.info("model_call", **fields)
