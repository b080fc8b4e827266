"""
Inspection Service (state machine)

pending -> processing -> complete | failed

Submission stores a pending inspection. Processing claims it with an atomic
compare-and-set, runs assess -> normalize -> embed -> persist, and ends in
exactly one terminal state. A caller that loses the claim gets a
ProcessingOutcome with ``claimed=False`` and causes no side effects.

Processing runs as a background task in both modes; the synchronous API path
waits on it (shielded) up to the configured deadline.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from inspection_engine.core.config import settings
from inspection_engine.core.exceptions import (
    ErrorCategory,
    InspectionEngineError,
    InspectionFailedError,
    InvalidStatusTransitionError,
    ProcessingTimeoutError,
    RecordNotFoundError,
)
from inspection_engine.core.logging import (
    bind_inspection_context,
    clear_inspection_context,
    get_logger,
)
from inspection_engine.llm.embedder import EmbeddingService
from inspection_engine.models.inspection import Inspection, InspectionStatus
from inspection_engine.monitoring.metrics import MetricsRecorder
from inspection_engine.queue.protocol import OutboundQueueProtocol
from inspection_engine.queue.schemas import MessageKind, OutboundMessage
from inspection_engine.repositories.inspection_repository import InspectionRepository
from inspection_engine.schemas.normalized import NormalizedAssessment
from inspection_engine.services.assessment_service import VisionAssessmentClient
from inspection_engine.services.normalization import normalize_assessment, to_assessment_severity
from inspection_engine.services.progress import InspectionUpdateBroker
from inspection_engine.services.validation import validate_media_count, validate_vin
from inspection_engine.vectorstore.protocol import VectorRecord, VectorStoreProtocol

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProcessingOutcome:
    claimed: bool
    status: InspectionStatus
    inspection_id: UUID
    error_category: str | None = None
    error_message: str | None = None
    damage_count: int = 0
    warnings: list[str] = field(default_factory=list)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _progress(step: str, processed: int, total: int) -> dict[str, Any]:
    return {"mediaProcessed": processed, "totalMedia": total, "currentStep": step}


class InspectionService:
    """Owns the inspection lifecycle. No FastAPI dependency."""

    def __init__(
        self,
        *,
        repository: InspectionRepository,
        assessor: VisionAssessmentClient,
        embeddings: EmbeddingService,
        vectorstore: VectorStoreProtocol,
        metrics: MetricsRecorder,
        outbound: OutboundQueueProtocol | None = None,
        broker: InspectionUpdateBroker | None = None,
        sync_timeout_seconds: float | None = None,
        priority_delays: dict[str, float] | None = None,
    ) -> None:
        self.repository = repository
        self.assessor = assessor
        self.embeddings = embeddings
        self.vectorstore = vectorstore
        self.metrics = metrics
        self.outbound = outbound
        self.broker = broker if broker is not None else InspectionUpdateBroker()
        self.sync_timeout_seconds = (
            sync_timeout_seconds
            if sync_timeout_seconds is not None
            else settings.sync_processing_timeout_seconds
        )
        self.priority_delays = (
            priority_delays if priority_delays is not None else dict(settings.priority_delay_seconds)
        )
        self._tasks: dict[UUID, asyncio.Task[ProcessingOutcome]] = {}

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        *,
        vin: str,
        media: list[dict[str, Any]],
        options: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        shop_id: str | None = None,
        api_version: str = "2",
        min_media: int = 1,
    ) -> Inspection:
        """
        Validate and store a new inspection in ``pending``.

        Raises:
            ValidationError: bad VIN or media count
        """
        normalized_vin = validate_vin(vin)
        validate_media_count(media, minimum=min_media, maximum=settings.max_media_items)

        inspection = await self.repository.create(
            shop_id=shop_id or settings.default_shop_id,
            vin=normalized_vin,
            media=media,
            options=options or {},
            metadata=metadata,
            api_version=api_version,
        )
        logger.info(
            "inspection_submitted",
            inspection_id=str(inspection.id),
            shop_id=inspection.shop_id,
            vin=normalized_vin,
            media_count=len(media),
            api_version=api_version,
        )
        return inspection

    async def get_inspection(self, inspection_id: UUID) -> Inspection:
        """
        Raises:
            RecordNotFoundError: unknown inspection id
        """
        return await self.repository.get_or_raise(inspection_id)

    def acknowledge(self, inspection: Inspection) -> dict[str, Any]:
        """Immediate response for the streaming path."""
        created_at = inspection.created_at or _now()
        estimated = created_at + timedelta(seconds=settings.estimated_completion_seconds)
        return {
            "inspectionId": str(inspection.id),
            "status": InspectionStatus.PROCESSING.value,
            "streamUrl": f"{settings.api_v2_prefix}/inspect/{inspection.id}/stream",
            "estimatedCompletion": estimated.isoformat(),
        }

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def start_background(self, inspection_id: UUID, *, priority: str = "normal") -> asyncio.Task[ProcessingOutcome]:
        """Schedule processing; the task is kept until it finishes."""
        existing = self._tasks.get(inspection_id)
        if existing is not None and not existing.done():
            return existing

        delay = float(self.priority_delays.get(priority, 0.0))
        task = asyncio.create_task(
            self._delayed_process(inspection_id, delay), name=f"inspection-{inspection_id}"
        )
        self._tasks[inspection_id] = task
        task.add_done_callback(lambda t: self._on_task_done(inspection_id, t))
        return task

    async def run_synchronous(self, inspection_id: UUID) -> Inspection:
        """
        Process in the background and wait for the terminal state.

        Raises:
            ProcessingTimeoutError: deadline passed; processing keeps running
            InspectionFailedError: the inspection ended in ``failed``
        """
        task = self.start_background(inspection_id)
        try:
            outcome = await asyncio.wait_for(asyncio.shield(task), timeout=self.sync_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "inspection_sync_timeout",
                inspection_id=str(inspection_id),
                timeout_seconds=self.sync_timeout_seconds,
            )
            raise ProcessingTimeoutError(
                f"Inspection did not finish within {self.sync_timeout_seconds:g}s",
                inspection_id=str(inspection_id),
                hint=f"Poll {settings.api_v2_prefix}/inspect/{inspection_id} for the result",
            ) from None

        if outcome.status is InspectionStatus.FAILED:
            raise InspectionFailedError(
                outcome.error_message or "Inspection processing failed",
                category=outcome.error_category or ErrorCategory.INTERNAL,
                details={"inspectionId": str(inspection_id)},
            )
        return await self.repository.get_or_raise(inspection_id)

    async def retry_inspection(self, inspection_id: UUID, *, priority: str = "normal") -> Inspection:
        """failed -> pending, then schedule processing again."""
        inspection = await self.repository.get_or_raise(inspection_id)
        reset = await self.repository.reset_for_retry(inspection_id, total_media=len(inspection.media))
        if not reset:
            status = await self.repository.get_status(inspection_id)
            raise InvalidStatusTransitionError(
                f"Only failed inspections can be retried (current: {status.value if status else 'unknown'})",
                details={"inspectionId": str(inspection_id), "status": status.value if status else None},
            )
        logger.info(
            "inspection_retry_scheduled",
            inspection_id=str(inspection_id),
            attempt=inspection.attempt_count + 1,
        )
        self._publish(inspection_id, "pending", {"status": InspectionStatus.PENDING.value})
        self.start_background(inspection_id, priority=priority)
        return await self.repository.get_or_raise(inspection_id)

    async def shutdown(self, *, timeout: float = 10.0) -> None:
        pending = [t for t in self._tasks.values() if not t.done()]
        if not pending:
            return
        logger.info("inspection_tasks_draining", count=len(pending))
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning("inspection_tasks_cancelled", count=len(still_running))

    async def _delayed_process(self, inspection_id: UUID, delay: float) -> ProcessingOutcome:
        if delay > 0:
            await asyncio.sleep(delay)
        return await self.process(inspection_id)

    def _on_task_done(self, inspection_id: UUID, task: asyncio.Task[ProcessingOutcome]) -> None:
        if self._tasks.get(inspection_id) is task:
            del self._tasks[inspection_id]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "inspection_task_crashed",
                inspection_id=str(inspection_id),
                error=str(exc),
                error_type=type(exc).__name__,
            )

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process(self, inspection_id: UUID) -> ProcessingOutcome:
        """
        Claim and process one inspection.

        Returns:
            ProcessingOutcome; ``claimed=False`` carries the observed status

        Raises:
            RecordNotFoundError: unknown inspection id
            PersistenceError: the terminal state itself could not be stored
        """
        claimed = await self.repository.transition(
            inspection_id,
            expected=InspectionStatus.PENDING,
            new=InspectionStatus.PROCESSING,
            started_at=_now(),
        )
        if not claimed:
            status = await self.repository.get_status(inspection_id)
            if status is None:
                raise RecordNotFoundError(f"Inspection {inspection_id} not found")
            logger.info(
                "inspection_not_claimed",
                inspection_id=str(inspection_id),
                observed_status=status.value,
            )
            return ProcessingOutcome(claimed=False, status=status, inspection_id=inspection_id)

        bind_inspection_context(str(inspection_id))
        try:
            inspection = await self.repository.get_or_raise(inspection_id)
            self._publish(inspection_id, "processing", {"status": InspectionStatus.PROCESSING.value})
            return await self._run(inspection)
        finally:
            clear_inspection_context()

    async def _run(self, inspection: Inspection) -> ProcessingOutcome:
        started = time.perf_counter()
        options = inspection.options or {}
        media_urls = [item["url"] for item in inspection.media]
        total = len(media_urls)
        threshold = float(options.get("confidenceThreshold", settings.default_confidence_threshold))
        embedding_id: str | None = None

        try:
            await self._set_progress(inspection.id, _progress("validating", 0, total))
            validate_vin(inspection.vin)
            validate_media_count(inspection.media, minimum=1, maximum=settings.max_media_items)

            await self._set_progress(inspection.id, _progress("assessing", 0, total))
            assessment = await self.assessor.assess(
                vin=inspection.vin, media_urls=media_urls, inspection_id=str(inspection.id)
            )

            await self._set_progress(inspection.id, _progress("normalizing", total, total))
            normalized = normalize_assessment(
                assessment.result,
                media_urls=media_urls,
                confidence=assessment.confidence,
                confidence_threshold=threshold,
                labor_rate=settings.labor_rate,
                labor_share=settings.labor_share,
            )
            if options.get("partialResults"):
                self._publish(inspection.id, "partial", {"damages": _damages_payload(normalized)})

            await self._set_progress(inspection.id, _progress("embedding", total, total))
            vector = await self.embeddings.embed_one(normalized.summary_text)
            embedding_id = await self.vectorstore.insert(
                VectorRecord(
                    shop_id=inspection.shop_id,
                    reference_type="inspection",
                    reference_id=str(inspection.id),
                    embedding=vector,
                    metadata={
                        "vin": inspection.vin,
                        "damageCount": len(normalized.damages),
                        "overallCondition": normalized.overall_condition,
                    },
                )
            )

            completed = await self.repository.complete(
                inspection.id,
                assessment=normalized,
                embedding_id=embedding_id,
                progress=_progress("complete", total, total),
            )
        except InspectionEngineError as exc:
            await self._discard_vector(inspection, embedding_id)
            return await self._fail(inspection, exc.category, exc.message, started)
        except Exception as exc:  # noqa: BLE001
            logger.exception("inspection_processing_error", error=str(exc))
            await self._discard_vector(inspection, embedding_id)
            return await self._fail(inspection, ErrorCategory.INTERNAL, str(exc), started)

        if not completed:
            await self._discard_vector(inspection, embedding_id)
            status = await self.repository.get_status(inspection.id) or InspectionStatus.FAILED
            logger.warning("inspection_completion_lost", observed_status=status.value)
            return ProcessingOutcome(claimed=True, status=status, inspection_id=inspection.id)

        elapsed_ms = (time.perf_counter() - started) * 1000
        total_cost = float(normalized.total_estimated_cost)
        self.metrics.track_metric(
            "workflow.complete",
            elapsed_ms,
            inspection_id=str(inspection.id),
            damage_count=len(normalized.damages),
        )
        logger.info(
            "inspection_complete",
            damage_count=len(normalized.damages),
            filtered_out=normalized.filtered_out,
            total_cost=total_cost,
            confidence=normalized.confidence,
            processing_ms=round(elapsed_ms, 2),
        )
        self._publish(
            inspection.id,
            InspectionStatus.COMPLETE.value,
            {
                "status": InspectionStatus.COMPLETE.value,
                "damageCount": len(normalized.damages),
                "totalCost": total_cost,
                "confidence": normalized.confidence,
            },
        )
        self._send_webhook(
            inspection,
            event="inspection.completed",
            status=InspectionStatus.COMPLETE,
            damage_count=len(normalized.damages),
            total_cost=total_cost,
            processing_time_ms=int(elapsed_ms),
        )
        return ProcessingOutcome(
            claimed=True,
            status=InspectionStatus.COMPLETE,
            inspection_id=inspection.id,
            damage_count=len(normalized.damages),
            warnings=list(normalized.warnings),
        )

    async def _fail(
        self, inspection: Inspection, category: str, message: str, started: float
    ) -> ProcessingOutcome:
        total = len(inspection.media)
        recorded = await self.repository.fail(
            inspection.id,
            category=category,
            message=message,
            progress=_progress("failed", 0, total),
        )
        elapsed_ms = (time.perf_counter() - started) * 1000
        self.metrics.track_metric(
            "workflow.error",
            elapsed_ms,
            inspection_id=str(inspection.id),
            category=category,
            error=True,
        )
        logger.error("inspection_failed", category=category, error=message, recorded=recorded)

        if not recorded:
            status = await self.repository.get_status(inspection.id) or InspectionStatus.FAILED
            return ProcessingOutcome(
                claimed=True,
                status=status,
                inspection_id=inspection.id,
                error_category=category,
                error_message=message,
            )

        self._publish(
            inspection.id,
            InspectionStatus.FAILED.value,
            {"status": InspectionStatus.FAILED.value, "category": category, "message": message},
        )
        self._send_webhook(
            inspection,
            event="inspection.failed",
            status=InspectionStatus.FAILED,
            damage_count=0,
            total_cost=0.0,
            processing_time_ms=int(elapsed_ms),
        )
        return ProcessingOutcome(
            claimed=True,
            status=InspectionStatus.FAILED,
            inspection_id=inspection.id,
            error_category=category,
            error_message=message,
        )

    async def _set_progress(self, inspection_id: UUID, progress: dict[str, Any]) -> None:
        await self.repository.update_progress(inspection_id, progress)
        self._publish(inspection_id, "progress", progress)

    async def _discard_vector(self, inspection: Inspection, embedding_id: str | None) -> None:
        if embedding_id is None:
            return
        try:
            await self.vectorstore.delete_by_reference(
                shop_id=inspection.shop_id,
                reference_type="inspection",
                reference_id=str(inspection.id),
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("orphan_vector_cleanup_failed", embedding_id=embedding_id, error=str(exc))

    def _publish(self, inspection_id: UUID, event: str, data: dict[str, Any]) -> None:
        self.broker.publish(str(inspection_id), event, data)

    def _send_webhook(
        self,
        inspection: Inspection,
        *,
        event: str,
        status: InspectionStatus,
        damage_count: int,
        total_cost: float,
        processing_time_ms: int,
    ) -> None:
        url = (inspection.options or {}).get("webhookUrl")
        if not url or self.outbound is None:
            return
        accepted = self.outbound.publish(
            OutboundMessage(
                kind=MessageKind.WEBHOOK,
                url=url,
                headers={"User-Agent": settings.webhook_user_agent},
                payload={
                    "event": event,
                    "inspectionId": str(inspection.id),
                    "timestamp": _now().isoformat(),
                    "data": {
                        "vin": inspection.vin,
                        "status": status.value,
                        "damageCount": damage_count,
                        "totalCost": total_cost,
                        "processingTime": processing_time_ms,
                    },
                },
            )
        )
        if not accepted:
            logger.warning("webhook_dropped", inspection_id=str(inspection.id), webhook_event=event)


def _damages_payload(normalized: NormalizedAssessment) -> list[dict[str, Any]]:
    return [
        {
            "type": d.type,
            "location": d.location,
            "severity": to_assessment_severity(d.severity),
            "description": d.description,
            "confidence": d.confidence,
            "estimatedCost": float(d.estimated_cost),
        }
        for d in normalized.damages
    ]
