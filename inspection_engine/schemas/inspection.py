"""
Inspection API schemas

Request/response DTOs for the v1 and v2 inspection endpoints. Wire format is
camelCase; closed enumerations are enforced here so malformed requests fail
with field-level 400s before anything is stored.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import Field, PlainSerializer, field_validator

from inspection_engine.models.inspection import Inspection, InspectionStatus
from inspection_engine.schemas.base import CamelSchema
from inspection_engine.services.normalization import to_assessment_severity
from inspection_engine.services.validation import is_valid_vin, normalize_vin

MediaType = Literal["image", "video"]
Priority = Literal["low", "normal", "high"]
# numbers on the wire, Decimal in Python
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class MediaMetadata(CamelSchema):
    width: int | None = Field(default=None, ge=0)
    height: int | None = Field(default=None, ge=0)
    duration: float | None = Field(default=None, ge=0)
    format: str | None = None


class MediaItem(CamelSchema):
    type: MediaType
    url: str = Field(min_length=1)
    timestamp: datetime | None = None
    metadata: MediaMetadata | None = None


class ProcessingOptions(CamelSchema):
    enable_streaming: bool = False
    partial_results: bool = False
    confidence_threshold: float = Field(default=0.7, ge=0, le=1)
    priority: Priority = "normal"
    webhook_url: str | None = None


class CustomerInfo(CamelSchema):
    name: str | None = None
    email: str | None = None
    phone: str | None = None


class InspectionMetadata(CamelSchema):
    location: str | None = None
    inspector: str | None = None
    customer_info: CustomerInfo | None = None


class InspectionRequestV2(CamelSchema):
    """POST /api/v2/inspect body."""

    vin: str
    media: list[MediaItem] = Field(min_length=1, max_length=50)
    options: ProcessingOptions = Field(default_factory=ProcessingOptions)
    metadata: InspectionMetadata | None = None
    shop_id: str | None = Field(default=None, max_length=64)

    @field_validator("vin")
    @classmethod
    def check_vin(cls, value: str) -> str:
        if not is_valid_vin(value):
            raise ValueError("VIN must be 17 characters (A-Z, 0-9, excluding I, O, Q)")
        return normalize_vin(value)


class InspectionAccepted(CamelSchema):
    inspection_id: str
    status: str
    stream_url: str | None = None
    estimated_completion: datetime | None = None


class DamageView(CamelSchema):
    id: UUID
    type: str
    location: str
    severity: str
    description: str
    confidence: float
    estimated_cost: Money
    image_url: str | None = None
    bounding_box: dict[str, float] | None = None


class EstimateItemView(CamelSchema):
    id: UUID
    damage_id: UUID
    category: str
    description: str
    priority: str
    labor_hours: Money
    labor_rate: Money
    parts_cost: Money
    total_cost: Money


class EstimateView(CamelSchema):
    items: list[EstimateItemView]
    total_cost: Money


class InspectionView(CamelSchema):
    """Current projection of an inspection."""

    inspection_id: UUID
    shop_id: str
    vin: str
    status: InspectionStatus
    api_version: str
    media: list[dict[str, Any]]
    options: dict[str, Any]
    metadata: dict[str, Any] | None = None
    progress: dict[str, Any] | None = None
    overall_condition: str | None = None
    recommendations: list[str] = Field(default_factory=list)
    confidence: float | None = None
    damages: list[DamageView] = Field(default_factory=list)
    estimate: EstimateView | None = None
    error_category: str | None = None
    error_message: str | None = None
    attempt_count: int = 0
    processing_time: int | None = Field(default=None, description="milliseconds")
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_model(cls, inspection: Inspection) -> "InspectionView":
        damages = [
            DamageView(
                id=d.id,
                type=d.type,
                location=d.location,
                severity=to_assessment_severity(d.severity),
                description=d.description,
                confidence=d.confidence,
                estimated_cost=d.estimated_cost,
                image_url=d.image_url,
                bounding_box=d.bounding_box,
            )
            for d in inspection.damages
        ]
        estimate = None
        if inspection.status is InspectionStatus.COMPLETE:
            estimate = EstimateView(
                items=[
                    EstimateItemView(
                        id=item.id,
                        damage_id=item.damage_id,
                        category=item.category,
                        description=item.description,
                        priority=item.priority,
                        labor_hours=item.labor_hours,
                        labor_rate=item.labor_rate,
                        parts_cost=item.parts_cost,
                        total_cost=item.total_cost,
                    )
                    for item in inspection.estimate_items
                ],
                total_cost=inspection.total_estimated_cost or Decimal("0.00"),
            )
        return cls(
            inspection_id=inspection.id,
            shop_id=inspection.shop_id,
            vin=inspection.vin,
            status=inspection.status,
            api_version=inspection.api_version,
            media=inspection.media,
            options=inspection.options or {},
            metadata=inspection.metadata_json,
            progress=inspection.progress,
            overall_condition=inspection.overall_condition,
            recommendations=list(inspection.recommendations or []),
            confidence=inspection.confidence,
            damages=damages,
            estimate=estimate,
            error_category=inspection.error_category,
            error_message=inspection.error_message,
            attempt_count=inspection.attempt_count,
            processing_time=inspection.processing_time_ms,
            created_at=inspection.created_at,
            started_at=inspection.started_at,
            completed_at=inspection.completed_at,
        )


class InspectionResultV2(CamelSchema):
    """Synchronous v2 result."""

    success: bool = True
    inspection_id: UUID
    status: InspectionStatus
    processing_time: int | None = None
    result: InspectionView


class InspectionAcceptedV1(CamelSchema):
    inspection_id: UUID
    status: InspectionStatus
    media_count: int
