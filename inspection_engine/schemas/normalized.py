"""
Normalized assessment records

Output of the normalization step and input to the completion transaction.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from inspection_engine.models.inspection import PersistedSeverity


@dataclass(frozen=True)
class EstimateLine:
    category: str
    description: str
    priority: str
    labor_hours: Decimal
    labor_rate: Decimal
    parts_cost: Decimal
    total_cost: Decimal


@dataclass(frozen=True)
class NormalizedDamage:
    type: str
    location: str
    severity: PersistedSeverity
    description: str
    confidence: float
    estimated_cost: Decimal
    image_url: str | None
    bounding_box: dict[str, float] | None
    estimate: EstimateLine


@dataclass(frozen=True)
class NormalizedAssessment:
    damages: list[NormalizedDamage]
    overall_condition: str
    recommendations: list[str]
    confidence: float
    total_estimated_cost: Decimal
    summary_text: str
    filtered_out: int = 0
    model_total_cost: float | None = None
    warnings: list[str] = field(default_factory=list)
