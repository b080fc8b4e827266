"""
Sliding window and metric classification
"""

import pytest

from inspection_engine.monitoring.alerts import AlertDispatcher
from inspection_engine.monitoring.metrics import MetricsRecorder, classify_metric, metric_family
from inspection_engine.monitoring.window import MetricEvent, MetricWindowStore


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def window(clock: FakeClock) -> MetricWindowStore:
    return MetricWindowStore(window_seconds=300, min_events=10, clock=clock)


def test_rate_counts_failures_over_total(window: MetricWindowStore) -> None:
    for _ in range(9):
        window.record(MetricEvent(key="workflow", success=False))
    for _ in range(2):
        window.record(MetricEvent(key="workflow", success=True))

    snapshot = window.snapshot("workflow")
    assert snapshot.total == 11
    assert snapshot.failures == 9
    assert snapshot.successes == 2
    assert snapshot.rate == pytest.approx(9 / 11)


def test_rate_is_none_below_minimum_events(window: MetricWindowStore) -> None:
    for _ in range(9):
        window.record(MetricEvent(key="workflow", success=False))

    assert window.current_rate("workflow") is None
    assert window.snapshot("workflow").total == 9


def test_events_older_than_window_are_ignored(window: MetricWindowStore, clock: FakeClock) -> None:
    for _ in range(10):
        window.record(MetricEvent(key="search", success=False))

    clock.now += 301
    for _ in range(10):
        window.record(MetricEvent(key="search", success=True))

    snapshot = window.snapshot("search")
    assert snapshot.total == 10
    assert snapshot.failures == 0
    assert snapshot.rate == 0.0


def test_families_are_independent(window: MetricWindowStore) -> None:
    window.record(MetricEvent(key="ai", success=False))

    assert window.snapshot("upload").total == 0
    assert window.keys() == ["ai"]


def test_max_events_caps_memory(clock: FakeClock) -> None:
    store = MetricWindowStore(window_seconds=300, min_events=1, max_events=5, clock=clock)
    for _ in range(20):
        store.record(MetricEvent(key="ai", success=True))

    assert store.snapshot("ai").total == 5


def test_reset_single_key(window: MetricWindowStore) -> None:
    window.record(MetricEvent(key="ai", success=True))
    window.record(MetricEvent(key="search", success=True))

    window.reset("ai")

    assert window.snapshot("ai").total == 0
    assert window.snapshot("search").total == 1


@pytest.mark.parametrize(
    ("name", "tags", "expected"),
    [
        ("workflow.complete", {}, True),
        ("workflow.error", {}, False),
        ("ai.embedding_success", {}, True),
        ("upload.failure", {}, False),
        ("ai.vision_latency", {}, None),
        ("api.response_time", {"status_code": 200}, None),
        # explicit tags take precedence over the name
        ("workflow.complete", {"error": True}, False),
        ("search.error", {"success": True}, True),
        ("ai.vision_latency", {"success": False}, False),
    ],
)
def test_classify_metric(name: str, tags: dict, expected: bool | None) -> None:
    assert classify_metric(name, tags) is expected


def test_metric_family_is_prefix() -> None:
    assert metric_family("workflow.complete") == "workflow"
    assert metric_family("standalone") == "standalone"


def test_unclassified_metric_is_not_recorded(window: MetricWindowStore) -> None:
    recorder = MetricsRecorder(window=window, alerts=AlertDispatcher(webhook_url=""))

    recorder.track_metric("ai.vision_latency", 1234.0, model="mock")

    assert window.keys() == []


def test_track_metric_never_raises(window: MetricWindowStore) -> None:
    class ExplodingAlerts(AlertDispatcher):
        def failure_rate_exceeded(self, snapshot, *, threshold):
            raise RuntimeError("boom")

    recorder = MetricsRecorder(
        window=window, alerts=ExplodingAlerts(webhook_url=""), thresholds={"workflow": 0.1}
    )

    for _ in range(10):
        recorder.track_metric("workflow.error", 1, error=True)

    assert window.snapshot("workflow").failures == 10
