"""
Vision assessment client: strict schema, retries, monitoring
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from inspection_engine.core.exceptions import ModelCallError, UpstreamAIError
from inspection_engine.core.retry import RetryPolicy, retry_async
from inspection_engine.llm.mock import MockVisionModel, default_assessment
from inspection_engine.llm.schemas import AssessmentResult
from inspection_engine.monitoring.alerts import AlertDispatcher
from inspection_engine.monitoring.metrics import MetricsRecorder
from inspection_engine.monitoring.window import MetricWindowStore
from inspection_engine.services.assessment_service import VisionAssessmentClient

VIN = "1HGBH41JXMN109186"
URLS = ["https://cdn.example.test/1.jpg"]


@pytest.fixture
def window() -> MetricWindowStore:
    return MetricWindowStore(window_seconds=300, min_events=10)


@pytest.fixture
def alerts() -> AlertDispatcher:
    return AlertDispatcher(webhook_url="")


@pytest.fixture
def metrics(window: MetricWindowStore, alerts: AlertDispatcher) -> MetricsRecorder:
    return MetricsRecorder(window=window, alerts=alerts)


def _client(model: MockVisionModel, metrics: MetricsRecorder, alerts: AlertDispatcher) -> VisionAssessmentClient:
    return VisionAssessmentClient(
        model=model,
        metrics=metrics,
        alerts=alerts,
        retry_policy=RetryPolicy(max_attempts=3, base_delay_seconds=0.0),
    )


# ============================================================
# Strict schema
# ============================================================


def test_schema_accepts_canned_answer() -> None:
    result = AssessmentResult.model_validate(default_assessment(2))

    assert [d.severity for d in result.damages] == ["medium", "low"]
    assert result.damages[0].bounding_box is not None
    assert result.total_estimated_cost == 450


@pytest.mark.parametrize(
    "damage_patch",
    [
        {"severity": "severe"},
        {"severity": "moderate"},
        {"estimatedCost": -1},
        {"estimatedCost": "300"},
        {"confidence": 1.5},
        {"type": ""},
    ],
)
def test_schema_rejects_invalid_damage(damage_patch: dict) -> None:
    raw = default_assessment(1)
    raw["damages"][0].update(damage_patch)

    with pytest.raises(PydanticValidationError):
        AssessmentResult.model_validate(raw)


def test_schema_rejects_unknown_condition() -> None:
    raw = default_assessment(1)
    raw["overallCondition"] = "terrible"

    with pytest.raises(PydanticValidationError):
        AssessmentResult.model_validate(raw)


def test_schema_rejects_non_finite_total() -> None:
    raw = default_assessment(1)
    raw["totalEstimatedCost"] = float("nan")

    with pytest.raises(PydanticValidationError):
        AssessmentResult.model_validate(raw)


def test_schema_accepts_snake_case_keys() -> None:
    result = AssessmentResult.model_validate(
        {"damages": [], "overall_condition": "fair", "total_estimated_cost": 0}
    )

    assert result.overall_condition == "fair"


# ============================================================
# Retry helper
# ============================================================


@pytest.mark.asyncio
async def test_retry_backoff_schedule() -> None:
    delays: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    async def always_fails(attempt: int) -> None:
        raise ModelCallError(f"attempt {attempt}")

    with pytest.raises(ModelCallError, match="attempt 3"):
        await retry_async(
            always_fails,
            policy=RetryPolicy(max_attempts=3, base_delay_seconds=1.0, backoff_factor=2.0),
            retry_on=(UpstreamAIError,),
            name="test",
            sleep=fake_sleep,
        )

    assert delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_retry_does_not_retry_other_errors() -> None:
    calls: list[int] = []

    async def broken(attempt: int) -> None:
        calls.append(attempt)
        raise KeyError("not retryable")

    with pytest.raises(KeyError):
        await retry_async(
            broken, policy=RetryPolicy(base_delay_seconds=0.0), retry_on=(UpstreamAIError,), name="test"
        )

    assert calls == [1]


# ============================================================
# VisionAssessmentClient
# ============================================================


@pytest.mark.asyncio
async def test_assess_success_records_metrics(metrics, alerts, window) -> None:
    model = MockVisionModel()
    client = _client(model, metrics, alerts)

    outcome = await client.assess(vin=VIN, media_urls=URLS, inspection_id="insp-1")

    assert outcome.attempts == 1
    assert outcome.confidence == pytest.approx(0.85)
    assert outcome.confidence_source == "damages"
    assert len(outcome.result.damages) == 1
    assert VIN in model.calls[0]["prompt"]
    assert model.calls[0]["image_urls"] == URLS
    assert window.snapshot("ai").successes == 1


@pytest.mark.asyncio
async def test_assess_retries_malformed_answer(metrics, alerts, window) -> None:
    malformed = default_assessment(1)
    malformed["damages"][0]["severity"] = "severe"
    model = MockVisionModel(responses=[malformed, ModelCallError("timeout")])
    client = _client(model, metrics, alerts)

    outcome = await client.assess(vin=VIN, media_urls=URLS)

    assert outcome.attempts == 3
    assert len(model.calls) == 3
    snapshot = window.snapshot("ai")
    assert snapshot.failures == 2
    assert snapshot.successes == 1


@pytest.mark.asyncio
async def test_assess_gives_up_after_three_attempts(metrics, alerts) -> None:
    model = MockVisionModel(responses=[RuntimeError("connection reset")] * 3)
    client = _client(model, metrics, alerts)

    with pytest.raises(UpstreamAIError) as exc_info:
        await client.assess(vin=VIN, media_urls=URLS)

    assert "after 3 attempt(s)" in exc_info.value.message
    assert exc_info.value.details == {"attempts": 3, "model": "mock-vision"}
    assert exc_info.value.category == "upstream_ai"
    assert len(model.calls) == 3
    assert [a.name for a in alerts.sent].count("model_health") == 3


@pytest.mark.asyncio
async def test_low_confidence_answer_raises_review_alerts(metrics, alerts) -> None:
    raw = default_assessment(1)
    del raw["damages"][0]["confidence"]
    client = _client(MockVisionModel(responses=[raw]), metrics, alerts)

    outcome = await client.assess(vin=VIN, media_urls=URLS)

    assert outcome.confidence_source == "heuristic"
    names = {a.name for a in alerts.sent}
    assert {"vision_accuracy", "assessment_confidence"} <= names


@pytest.mark.asyncio
async def test_non_object_answer_is_rejected(metrics, alerts) -> None:
    client = _client(MockVisionModel(responses=[["not", "an", "object"]] * 3), metrics, alerts)

    with pytest.raises(UpstreamAIError, match="not a JSON object"):
        await client.assess(vin=VIN, media_urls=URLS)


@pytest.mark.asyncio
async def test_health_never_raises(metrics, alerts) -> None:
    class DownModel(MockVisionModel):
        async def health_check(self) -> bool:
            raise ConnectionError("refused")

    report = await _client(DownModel(), metrics, alerts).health()

    assert report["healthy"] is False
    assert report["model"] == "mock-vision"
    assert "refused" in report["error"]
    assert alerts.sent[-1].name == "model_health"
