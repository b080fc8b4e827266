"""
Embedding service: order, dimension checks, whole-batch failure
"""

import pytest

from inspection_engine.core.exceptions import EmbeddingDimensionError, UpstreamAIError
from inspection_engine.core.retry import RetryPolicy
from inspection_engine.llm.embedder import EmbeddingService
from inspection_engine.llm.mock import MockEmbeddingModel
from inspection_engine.monitoring.alerts import AlertDispatcher
from inspection_engine.monitoring.metrics import MetricsRecorder
from inspection_engine.monitoring.window import MetricWindowStore

DIMENSION = 1024


class ShortVectorModel:
    """Returns one vector fewer than asked for."""

    model_name = "short-model"

    def __init__(self) -> None:
        self.calls = 0

    async def embed(self, texts):
        self.calls += 1
        return [[0.1] * DIMENSION for _ in list(texts)[:-1]]


class WrongDimensionModel:
    model_name = "wrong-dim"

    async def embed(self, texts):
        return [[0.1] * 768 for _ in texts]


class FlakyModel(MockEmbeddingModel):
    """Fails the first ``failures`` calls."""

    def __init__(self, failures: int) -> None:
        super().__init__(dimension=DIMENSION)
        self.failures = failures

    async def embed(self, texts):
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("embedding backend unavailable")
        return await super().embed(texts)


@pytest.fixture
def window() -> MetricWindowStore:
    return MetricWindowStore(window_seconds=300, min_events=10)


def _service(model, window: MetricWindowStore) -> EmbeddingService:
    alerts = AlertDispatcher(webhook_url="")
    return EmbeddingService(
        model=model,
        metrics=MetricsRecorder(window=window, alerts=alerts),
        alerts=alerts,
        dimension=DIMENSION,
        retry_policy=RetryPolicy(max_attempts=3, base_delay_seconds=0.0),
    )


@pytest.mark.asyncio
async def test_batch_keeps_input_order(window: MetricWindowStore) -> None:
    model = MockEmbeddingModel(dimension=DIMENSION)
    service = _service(model, window)
    texts = ["front bumper dent", "rear door scratch", "cracked windshield"]

    vectors = await service.embed_batch(texts)

    assert len(vectors) == 3
    assert all(len(v) == DIMENSION for v in vectors)
    assert vectors == [model.embed_text(t) for t in texts]
    assert window.snapshot("ai").successes == 1


@pytest.mark.asyncio
async def test_empty_batch_skips_the_model(window: MetricWindowStore) -> None:
    model = MockEmbeddingModel(dimension=DIMENSION)

    assert await _service(model, window).embed_batch([]) == []
    assert model.calls == []


@pytest.mark.asyncio
async def test_embed_one(window: MetricWindowStore) -> None:
    model = MockEmbeddingModel(dimension=DIMENSION)

    vector = await _service(model, window).embed_one("dent")

    assert vector == model.embed_text("dent")


@pytest.mark.asyncio
async def test_count_mismatch_fails_whole_batch(window: MetricWindowStore) -> None:
    model = ShortVectorModel()

    with pytest.raises(EmbeddingDimensionError, match="count"):
        await _service(model, window).embed_batch(["a", "b", "c"])

    assert model.calls == 3
    assert window.snapshot("ai").failures == 3


@pytest.mark.asyncio
async def test_wrong_dimension_fails(window: MetricWindowStore) -> None:
    with pytest.raises(EmbeddingDimensionError, match="dimension 768"):
        await _service(WrongDimensionModel(), window).embed_batch(["a"])


@pytest.mark.asyncio
async def test_transient_failure_is_retried(window: MetricWindowStore) -> None:
    model = FlakyModel(failures=2)

    vectors = await _service(model, window).embed_batch(["a", "b"])

    assert len(vectors) == 2
    snapshot = window.snapshot("ai")
    assert snapshot.failures == 2
    assert snapshot.successes == 1


@pytest.mark.asyncio
async def test_exhausted_retries_raise_upstream_error(window: MetricWindowStore) -> None:
    model = MockEmbeddingModel(dimension=DIMENSION, fail_with=RuntimeError("model crashed"))

    with pytest.raises(UpstreamAIError, match="model crashed"):
        await _service(model, window).embed_batch(["a"])

    assert len(model.calls) == 3
