"""
Inspection repository

Status changes are single conditional UPDATEs (``WHERE id = :id AND status =
:expected``); a rowcount of 0 means another caller got there first. There is
no read-then-write window.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.attributes import set_committed_value

from inspection_engine.core.exceptions import PersistenceError, RecordNotFoundError
from inspection_engine.core.logging import get_logger
from inspection_engine.models.inspection import (
    Damage,
    EstimateItem,
    Inspection,
    InspectionStatus,
)
from inspection_engine.schemas.normalized import NormalizedAssessment

logger = get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InspectionRepository:
    """Each method runs in its own short transaction."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def create(
        self,
        *,
        shop_id: str,
        vin: str,
        media: list[dict[str, Any]],
        options: dict[str, Any],
        metadata: dict[str, Any] | None,
        api_version: str,
    ) -> Inspection:
        inspection = Inspection(
            id=uuid4(),
            shop_id=shop_id,
            vin=vin,
            media=media,
            options=options,
            metadata_json=metadata,
            api_version=api_version,
            status=InspectionStatus.PENDING,
            progress={"mediaProcessed": 0, "totalMedia": len(media), "currentStep": "queued"},
            attempt_count=0,
            created_at=_now(),
            updated_at=_now(),
        )
        try:
            async with self.session_maker() as session:
                session.add(inspection)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("inspection_create_failed", vin=vin, error=str(exc))
            raise PersistenceError(f"Failed to create inspection: {exc}") from exc

        # relationships are empty at creation; mark them loaded so the detached row never lazy-loads
        set_committed_value(inspection, "damages", [])
        set_committed_value(inspection, "estimate_items", [])
        return inspection

    async def get(self, inspection_id: UUID) -> Inspection | None:
        try:
            async with self.session_maker() as session:
                stmt = select(Inspection).where(Inspection.id == inspection_id)
                result = await session.execute(stmt)
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load inspection: {exc}") from exc

    async def get_or_raise(self, inspection_id: UUID) -> Inspection:
        inspection = await self.get(inspection_id)
        if inspection is None:
            raise RecordNotFoundError(f"Inspection {inspection_id} not found")
        return inspection

    async def get_status(self, inspection_id: UUID) -> InspectionStatus | None:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(Inspection.status).where(Inspection.id == inspection_id)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load inspection status: {exc}") from exc

    async def transition(
        self,
        inspection_id: UUID,
        *,
        expected: InspectionStatus,
        new: InspectionStatus,
        **values: Any,
    ) -> bool:
        """Atomic compare-and-set of ``status``. True if this caller won."""
        stmt = (
            update(Inspection)
            .where(Inspection.id == inspection_id, Inspection.status == expected)
            .values(status=new, updated_at=_now(), **values)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self.session_maker() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error(
                "inspection_transition_failed",
                inspection_id=str(inspection_id),
                expected=expected.value,
                new=new.value,
                error=str(exc),
            )
            raise PersistenceError(f"Failed to update inspection status: {exc}") from exc

        won = result.rowcount == 1
        logger.debug(
            "inspection_transition",
            inspection_id=str(inspection_id),
            expected=expected.value,
            new=new.value,
            won=won,
        )
        return won

    async def update_progress(self, inspection_id: UUID, progress: dict[str, Any]) -> bool:
        """Progress is only written while the inspection is processing."""
        stmt = (
            update(Inspection)
            .where(
                Inspection.id == inspection_id,
                Inspection.status == InspectionStatus.PROCESSING,
            )
            .values(progress=progress, updated_at=_now())
            .execution_options(synchronize_session=False)
        )
        try:
            async with self.session_maker() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to update progress: {exc}") from exc
        return result.rowcount == 1

    async def complete(
        self,
        inspection_id: UUID,
        *,
        assessment: NormalizedAssessment,
        embedding_id: str | None,
        progress: dict[str, Any],
    ) -> bool:
        """
        processing -> complete, writing damages and estimate items in the same
        transaction. Nothing is written if the status was no longer processing.
        """
        completed_at = _now()
        damage_rows: list[Damage] = []
        item_rows: list[EstimateItem] = []
        for position, damage in enumerate(assessment.damages):
            damage_id = uuid4()
            damage_rows.append(
                Damage(
                    id=damage_id,
                    inspection_id=inspection_id,
                    position=position,
                    type=damage.type,
                    location=damage.location,
                    severity=damage.severity,
                    description=damage.description,
                    confidence=damage.confidence,
                    estimated_cost=damage.estimated_cost,
                    image_url=damage.image_url,
                    bounding_box=damage.bounding_box,
                    created_at=completed_at,
                )
            )
            line = damage.estimate
            item_rows.append(
                EstimateItem(
                    id=uuid4(),
                    inspection_id=inspection_id,
                    damage_id=damage_id,
                    position=position,
                    category=line.category,
                    description=line.description,
                    priority=line.priority,
                    labor_hours=line.labor_hours,
                    labor_rate=line.labor_rate,
                    parts_cost=line.parts_cost,
                    total_cost=line.total_cost,
                    created_at=completed_at,
                )
            )

        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    update(Inspection)
                    .where(
                        Inspection.id == inspection_id,
                        Inspection.status == InspectionStatus.PROCESSING,
                    )
                    .values(
                        status=InspectionStatus.COMPLETE,
                        overall_condition=assessment.overall_condition,
                        recommendations=assessment.recommendations,
                        confidence=assessment.confidence,
                        total_estimated_cost=assessment.total_estimated_cost,
                        summary_text=assessment.summary_text,
                        embedding_id=embedding_id,
                        progress=progress,
                        error_category=None,
                        error_message=None,
                        completed_at=completed_at,
                        updated_at=completed_at,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    await session.rollback()
                    return False

                session.add_all(damage_rows)
                await session.flush()
                session.add_all(item_rows)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error(
                "inspection_complete_failed", inspection_id=str(inspection_id), error=str(exc)
            )
            raise PersistenceError(f"Failed to persist inspection result: {exc}") from exc
        return True

    async def fail(
        self,
        inspection_id: UUID,
        *,
        category: str,
        message: str,
        progress: dict[str, Any] | None = None,
    ) -> bool:
        values: dict[str, Any] = {
            "error_category": category,
            "error_message": message[:2000],
            "completed_at": _now(),
        }
        if progress is not None:
            values["progress"] = progress
        return await self.transition(
            inspection_id,
            expected=InspectionStatus.PROCESSING,
            new=InspectionStatus.FAILED,
            **values,
        )

    async def reset_for_retry(self, inspection_id: UUID, *, total_media: int) -> bool:
        """failed -> pending, keeping the original media."""
        return await self.transition(
            inspection_id,
            expected=InspectionStatus.FAILED,
            new=InspectionStatus.PENDING,
            attempt_count=Inspection.attempt_count + 1,
            error_category=None,
            error_message=None,
            started_at=None,
            completed_at=None,
            progress={"mediaProcessed": 0, "totalMedia": total_media, "currentStep": "queued"},
        )
