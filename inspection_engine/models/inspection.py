"""
Inspection aggregate

Inspection 1 - N Damage
Inspection 1 - N EstimateItem (one per Damage)

Status is mutated only through InspectionRepository's conditional updates.
Damage and EstimateItem rows are written once, when the inspection completes.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inspection_engine.core.sqlalchemy_types import JSONB, PGArray, UTCDateTime
from inspection_engine.models.base import Base, BaseModel, CreatedAtMixin, UUIDMixin


class InspectionStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (InspectionStatus.COMPLETE, InspectionStatus.FAILED)


class PersistedSeverity(str, enum.Enum):
    """Stored severity vocabulary (assessment uses low/medium/high)."""

    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Inspection(BaseModel):
    __tablename__ = "inspections"

    shop_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    vin: Mapped[str] = mapped_column(String(17), nullable=False, index=True)
    api_version: Mapped[str] = mapped_column(String(4), nullable=False, default="2")
    status: Mapped[InspectionStatus] = mapped_column(
        SQLEnum(
            InspectionStatus,
            name="inspection_status",
            native_enum=False,
            values_callable=_enum_values,
            length=16,
        ),
        nullable=False,
        default=InspectionStatus.PENDING,
        index=True,
    )
    media: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, nullable=False)
    options: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSONB,
        nullable=True,
        comment="location / inspector / customer info supplied by the client",
    )
    progress: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)

    overall_condition: Mapped[str | None] = mapped_column(String(16), nullable=True)
    recommendations: Mapped[list[str] | None] = mapped_column(PGArray(Text), nullable=True)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_estimated_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    summary_text: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="concatenated damage descriptions used for the inspection embedding",
    )
    embedding_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    error_category: Mapped[str | None] = mapped_column(String(32), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    damages: Mapped[list["Damage"]] = relationship(
        "Damage",
        back_populates="inspection",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Damage.position",
    )
    estimate_items: Mapped[list["EstimateItem"]] = relationship(
        "EstimateItem",
        back_populates="inspection",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="EstimateItem.position",
    )

    @property
    def processing_time_ms(self) -> int | None:
        if self.completed_at is None or self.started_at is None:
            return None
        return int((self.completed_at - self.started_at).total_seconds() * 1000)

    def __repr__(self) -> str:
        return f"<Inspection(id={self.id}, vin={self.vin}, status={self.status})>"


class Damage(Base, UUIDMixin, CreatedAtMixin):
    __tablename__ = "damages"

    inspection_id: Mapped[UUID] = mapped_column(
        ForeignKey("inspections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    location: Mapped[str] = mapped_column(String(200), nullable=False)
    severity: Mapped[PersistedSeverity] = mapped_column(
        SQLEnum(
            PersistedSeverity,
            name="damage_severity",
            native_enum=False,
            values_callable=_enum_values,
            length=16,
        ),
        nullable=False,
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    estimated_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    bounding_box: Mapped[dict[str, float] | None] = mapped_column(JSONB, nullable=True)

    inspection: Mapped[Inspection] = relationship("Inspection", back_populates="damages")

    def __repr__(self) -> str:
        return f"<Damage(type={self.type}, location={self.location}, severity={self.severity})>"


class EstimateItem(Base, UUIDMixin, CreatedAtMixin):
    __tablename__ = "estimate_items"

    inspection_id: Mapped[UUID] = mapped_column(
        ForeignKey("inspections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    damage_id: Mapped[UUID] = mapped_column(
        ForeignKey("damages.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(String(8), nullable=False)
    labor_hours: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    labor_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    parts_cost: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    inspection: Mapped[Inspection] = relationship("Inspection", back_populates="estimate_items")

    def __repr__(self) -> str:
        return f"<EstimateItem(category={self.category}, total_cost={self.total_cost})>"
