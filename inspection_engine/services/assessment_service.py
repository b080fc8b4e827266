"""
Vision Assessment Client

Calls the vision model with the fixed damage rubric, validates the JSON answer
strictly, and retries transport or schema failures with exponential backoff.
Every call is monitored: latency, errors and confidence feed the metrics
window and the threshold alerts.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Sequence

from pydantic import ValidationError as PydanticValidationError

from inspection_engine.core.exceptions import (
    AssessmentValidationError,
    ModelCallError,
    UpstreamAIError,
)
from inspection_engine.core.logging import get_logger, log_model_call
from inspection_engine.core.retry import RetryPolicy, retry_async
from inspection_engine.llm.prompts import ASSESSMENT_PROMPT_VERSION, build_assessment_prompt
from inspection_engine.llm.protocol import VisionModelProtocol
from inspection_engine.llm.schemas import AssessmentResult
from inspection_engine.monitoring.alerts import AlertDispatcher
from inspection_engine.monitoring.metrics import MetricsRecorder
from inspection_engine.services.normalization import compute_confidence

logger = get_logger(__name__)


@dataclass(frozen=True)
class AssessmentOutcome:
    result: AssessmentResult
    confidence: float
    confidence_source: str
    latency_ms: float
    attempts: int
    model: str


class VisionAssessmentClient:
    """Vision model wrapper: prompt, strict validation, retry, monitoring."""

    def __init__(
        self,
        *,
        model: VisionModelProtocol,
        metrics: MetricsRecorder,
        alerts: AlertDispatcher,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.model = model
        self.metrics = metrics
        self.alerts = alerts
        self.retry_policy = retry_policy or RetryPolicy.from_settings()

    async def assess(
        self,
        *,
        vin: str,
        media_urls: Sequence[str],
        inspection_id: str | None = None,
    ) -> AssessmentOutcome:
        """
        Assess vehicle damage from ordered image URLs.

        Raises:
            UpstreamAIError: every attempt failed (transport or schema)
        """
        prompt = build_assessment_prompt(vin, len(media_urls))
        urls = list(media_urls)
        attempts = 0
        start = time.perf_counter()

        async def attempt_once(attempt: int) -> AssessmentResult:
            nonlocal attempts
            attempts = attempt
            return await self._call_once(prompt, urls, attempt)

        try:
            result = await retry_async(
                attempt_once,
                policy=self.retry_policy,
                retry_on=(UpstreamAIError,),
                name="vision_assessment",
            )
        except UpstreamAIError as exc:
            raise UpstreamAIError(
                f"Vision assessment failed after {attempts} attempt(s): {exc.message}",
                details={"attempts": attempts, "model": self.model.model_name},
            ) from exc

        total_ms = (time.perf_counter() - start) * 1000
        confidence, source = compute_confidence(result)

        self.metrics.track_metric(
            "ai.assessment_success",
            confidence,
            model=self.model.model_name,
            damage_count=len(result.damages),
            confidence_source=source,
        )
        self.alerts.check_vision_accuracy(
            confidence, damage_count=len(result.damages), image_count=len(urls)
        )
        self.alerts.check_assessment_confidence(confidence, inspection_id=inspection_id)

        logger.info(
            "vision_assessment_complete",
            model=self.model.model_name,
            prompt_version=ASSESSMENT_PROMPT_VERSION,
            damages=len(result.damages),
            confidence=confidence,
            confidence_source=source,
            attempts=attempts,
            latency_ms=round(total_ms, 2),
        )
        return AssessmentOutcome(
            result=result,
            confidence=confidence,
            confidence_source=source,
            latency_ms=total_ms,
            attempts=attempts,
            model=self.model.model_name,
        )

    async def health(self) -> dict[str, Any]:
        """Probe the vision backend. Never raises."""
        start = time.perf_counter()
        try:
            healthy = await self.model.health_check()
            error = None if healthy else "health check returned unhealthy"
        except Exception as exc:  # noqa: BLE001
            healthy = False
            error = str(exc)
        latency_ms = (time.perf_counter() - start) * 1000

        if not healthy:
            self.alerts.model_health_failed(operation="health_check", error=error or "")
        return {
            "healthy": healthy,
            "model": self.model.model_name,
            "latencyMs": round(latency_ms, 2),
            "error": error,
        }

    async def _call_once(self, prompt: str, urls: list[str], attempt: int) -> AssessmentResult:
        start = time.perf_counter()
        error: str | None = None
        try:
            raw = await self.model.generate_assessment(prompt=prompt, image_urls=urls)
            return self._validate(raw)
        except UpstreamAIError as exc:
            error = exc.message
            raise
        except Exception as exc:  # noqa: BLE001
            error = str(exc)
            raise ModelCallError(f"Vision backend error: {exc}") from exc
        finally:
            latency_ms = (time.perf_counter() - start) * 1000
            log_model_call(
                operation="vision_assessment",
                model=self.model.model_name,
                latency_ms=latency_ms,
                attempt=attempt,
                error=error,
            )
            self.metrics.track_metric(
                "ai.vision_latency", latency_ms, model=self.model.model_name, attempt=attempt
            )
            self.alerts.check_model_latency(
                latency_ms, model=self.model.model_name, operation="vision_assessment"
            )
            if error is not None:
                self.metrics.track_metric(
                    "ai.vision_error", 1, model=self.model.model_name, error=True
                )
                self.alerts.model_health_failed(operation="vision_assessment", error=error)

    @staticmethod
    def _validate(raw: Any) -> AssessmentResult:
        if not isinstance(raw, dict):
            raise AssessmentValidationError(
                "Model response is not a JSON object",
                details={"type": type(raw).__name__},
            )
        try:
            return AssessmentResult.model_validate(raw)
        except PydanticValidationError as exc:
            raise AssessmentValidationError(
                "Model response does not match the assessment schema",
                details={"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc
