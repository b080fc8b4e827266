"""
Assessment normalization

Turns a validated AssessmentResult into persisted-vocabulary damage records and
estimate lines. Money is Decimal throughout; rounding to the cent happens once,
when a total is computed.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Sequence

from inspection_engine.core.logging import get_logger
from inspection_engine.llm.schemas import AssessedDamage, AssessmentResult
from inspection_engine.models.inspection import PersistedSeverity
from inspection_engine.schemas.normalized import (
    EstimateLine,
    NormalizedAssessment,
    NormalizedDamage,
)

logger = get_logger(__name__)

CENT = Decimal("0.01")

SEVERITY_TO_PERSISTED: dict[str, PersistedSeverity] = {
    "low": PersistedSeverity.MINOR,
    "medium": PersistedSeverity.MODERATE,
    "high": PersistedSeverity.SEVERE,
}
PERSISTED_TO_SEVERITY: dict[PersistedSeverity, str] = {v: k for k, v in SEVERITY_TO_PERSISTED.items()}

SEVERITY_PRIORITY: dict[PersistedSeverity, str] = {
    PersistedSeverity.MINOR: "low",
    PersistedSeverity.MODERATE: "medium",
    PersistedSeverity.SEVERE: "high",
}

# first matching keyword wins
CATEGORY_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("dent",), "body_work"),
    (("scratch", "paint", "scuff", "chip"), "paint_work"),
    (("glass", "windshield", "window", "mirror"), "glass_repair"),
    (("crack", "structural", "frame"), "structural"),
)
DEFAULT_CATEGORY = "general"

HEURISTIC_BASELINE = 0.5
HEURISTIC_MAX_PENALTY = 0.05


def to_persisted_severity(severity: str) -> PersistedSeverity:
    """low/medium/high -> minor/moderate/severe. Unknown values raise."""
    try:
        return SEVERITY_TO_PERSISTED[severity]
    except KeyError:
        raise ValueError(f"Unknown assessment severity: {severity!r}") from None


def to_assessment_severity(severity: PersistedSeverity | str) -> str:
    """minor/moderate/severe -> low/medium/high. Unknown values raise."""
    try:
        return PERSISTED_TO_SEVERITY[PersistedSeverity(severity)]
    except (KeyError, ValueError):
        raise ValueError(f"Unknown persisted severity: {severity!r}") from None


def round_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: float | int | Decimal) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def categorize(damage_type: str) -> str:
    lowered = damage_type.lower()
    for keywords, category in CATEGORY_RULES:
        if any(keyword in lowered for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


def build_estimate_line(
    *,
    damage_type: str,
    location: str,
    severity: PersistedSeverity,
    cost: Decimal,
    labor_rate: float,
    labor_share: float,
) -> EstimateLine:
    """
    Split a damage cost into labor (``labor_share`` at ``labor_rate``) and parts.

    total = labor_hours * labor_rate + parts_cost, rounded once to the cent.
    Hours are truncated to 0.01 and parts absorb the remainder, so the total
    equals the damage cost.
    """
    rate = to_decimal(labor_rate)
    share = to_decimal(labor_share)
    if rate > 0:
        labor_hours = (cost * share / rate).quantize(CENT, rounding=ROUND_DOWN)
    else:
        labor_hours = Decimal("0.00")
    parts_cost = cost - labor_hours * rate
    total = round_cents(labor_hours * rate + parts_cost)
    return EstimateLine(
        category=categorize(damage_type),
        description=f"{damage_type.capitalize()} repair - {location}",
        priority=SEVERITY_PRIORITY[severity],
        labor_hours=labor_hours,
        labor_rate=round_cents(rate),
        parts_cost=parts_cost,
        total_cost=total,
    )


def compute_confidence(result: AssessmentResult) -> tuple[float, str]:
    """
    Aggregate confidence and where it came from.

    model -> mean of per-damage confidences -> heuristic baseline. The
    heuristic always stays below the vision-accuracy alert threshold, so an
    unscored assessment is always flagged for review.
    """
    if result.confidence is not None:
        return result.confidence, "model"

    scored = [d.confidence for d in result.damages if d.confidence is not None]
    if scored:
        return sum(scored) / len(scored), "damages"

    distinct = len({d.severity for d in result.damages})
    penalty = HEURISTIC_MAX_PENALTY * max(distinct - 1, 0) / 2
    return round(HEURISTIC_BASELINE - penalty, 4), "heuristic"


def _image_for(damage: AssessedDamage, media_urls: Sequence[str]) -> str | None:
    if damage.image_index is not None:
        if damage.image_index < len(media_urls):
            return media_urls[damage.image_index]
        return None
    if len(media_urls) == 1:
        return media_urls[0]
    return None


def summarize(damages: Sequence[NormalizedDamage], overall_condition: str) -> str:
    """Text embedded for the inspection's similarity vector."""
    if not damages:
        return f"No visible damage detected. Overall condition: {overall_condition}."
    parts = [
        f"{d.type} on {d.location} ({d.severity.value}): {d.description}" for d in damages
    ]
    return ". ".join(parts)


def normalize_assessment(
    result: AssessmentResult,
    *,
    media_urls: Sequence[str],
    confidence: float,
    confidence_threshold: float,
    labor_rate: float,
    labor_share: float,
) -> NormalizedAssessment:
    """
    Map an assessment onto persisted records.

    Damages carrying their own confidence below ``confidence_threshold`` are
    dropped; damages without one inherit the aggregate confidence.
    """
    damages: list[NormalizedDamage] = []
    filtered = 0
    warnings: list[str] = []

    for damage in result.damages:
        if damage.confidence is not None and damage.confidence < confidence_threshold:
            filtered += 1
            continue

        severity = to_persisted_severity(damage.severity)
        cost = round_cents(to_decimal(damage.estimated_cost))
        image_url = _image_for(damage, media_urls)
        if damage.image_index is not None and image_url is None:
            warnings.append(f"imageIndex {damage.image_index} out of range")

        damages.append(
            NormalizedDamage(
                type=damage.type,
                location=damage.location,
                severity=severity,
                description=damage.description,
                confidence=damage.confidence if damage.confidence is not None else confidence,
                estimated_cost=cost,
                image_url=image_url,
                bounding_box=damage.bounding_box.model_dump() if damage.bounding_box else None,
                estimate=build_estimate_line(
                    damage_type=damage.type,
                    location=damage.location,
                    severity=severity,
                    cost=cost,
                    labor_rate=labor_rate,
                    labor_share=labor_share,
                ),
            )
        )

    total = round_cents(sum((d.estimate.total_cost for d in damages), Decimal("0")))

    if filtered == 0 and abs(total - to_decimal(result.total_estimated_cost)) > CENT:
        warnings.append("model totalEstimatedCost differs from the sum of damage costs")
        logger.warning(
            "assessment_total_mismatch",
            model_total=result.total_estimated_cost,
            computed_total=str(total),
        )

    return NormalizedAssessment(
        damages=damages,
        overall_condition=result.overall_condition,
        recommendations=list(result.recommendations),
        confidence=confidence,
        total_estimated_cost=total,
        summary_text=summarize(damages, result.overall_condition),
        filtered_out=filtered,
        model_total_cost=result.total_estimated_cost,
        warnings=warnings,
    )
