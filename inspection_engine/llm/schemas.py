"""
Vision assessment DTOs

The model's JSON answer is validated strictly against these schemas: closed
enumerations, finite non-negative numbers, no type coercion. Keys are accepted
in camelCase (as requested by the prompt) or snake_case.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

AssessmentSeverity = Literal["low", "medium", "high"]
OverallCondition = Literal["excellent", "good", "fair", "poor"]


class StrictModelOutput(BaseModel):
    model_config = ConfigDict(
        strict=True,
        allow_inf_nan=False,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )


class BoundingBox(StrictModelOutput):
    """Image-relative box."""

    x: float = Field(ge=0)
    y: float = Field(ge=0)
    width: float = Field(ge=0)
    height: float = Field(ge=0)


class AssessedDamage(StrictModelOutput):
    type: str = Field(min_length=1, max_length=100)
    location: str = Field(min_length=1, max_length=200)
    severity: AssessmentSeverity
    description: str = Field(min_length=1)
    estimated_cost: float = Field(ge=0)
    confidence: float | None = Field(default=None, ge=0, le=1)
    image_index: int | None = Field(default=None, ge=0)
    bounding_box: BoundingBox | None = None


class AssessmentResult(StrictModelOutput):
    damages: list[AssessedDamage] = Field(default_factory=list)
    overall_condition: OverallCondition
    recommendations: list[str] = Field(default_factory=list)
    total_estimated_cost: float = Field(ge=0)
    confidence: float | None = Field(default=None, ge=0, le=1)
