"""
Metrics recorder

``track_metric`` is the single entry point for pipeline telemetry. Each
emission is logged, classified as failure/success/neither, appended to the
window for its family (the name prefix before the first "."), and the family's
failure rate is checked against the configured threshold.

Rate alerts are edge-triggered: one alert when the rate goes above the
threshold, re-armed once it falls back to or below it.
"""

from __future__ import annotations

from typing import Any

from inspection_engine.core.config import settings
from inspection_engine.core.logging import get_logger
from inspection_engine.monitoring.alerts import AlertDispatcher
from inspection_engine.monitoring.window import MetricEvent, MetricWindowStore

logger = get_logger(__name__)

FAILURE_MARKERS = ("error", "failure")
SUCCESS_MARKERS = ("success", "complete")


def metric_family(name: str) -> str:
    return name.split(".", 1)[0]


def classify_metric(name: str, tags: dict[str, Any]) -> bool | None:
    """
    True for success, False for failure, None when the metric is neither.

    Explicit ``error``/``success`` tags take precedence over the name.
    """
    if tags.get("error") is True or tags.get("success") is False:
        return False
    if tags.get("success") is True:
        return True

    lowered = name.lower()
    if any(marker in lowered for marker in FAILURE_MARKERS):
        return False
    if any(marker in lowered for marker in SUCCESS_MARKERS):
        return True
    return None


class MetricsRecorder:
    def __init__(
        self,
        *,
        window: MetricWindowStore,
        alerts: AlertDispatcher,
        thresholds: dict[str, float] | None = None,
    ) -> None:
        self.window = window
        self.alerts = alerts
        self.thresholds = thresholds if thresholds is not None else dict(settings.failure_rate_thresholds)
        self._alerting: set[str] = set()

    def track_metric(self, name: str, value: float = 1.0, **tags: Any) -> None:
        """Record one metric emission. Never raises into the caller."""
        try:
            logger.debug("metric", name=name, value=value, **tags)
            outcome = classify_metric(name, tags)
            if outcome is None:
                return

            family = metric_family(name)
            self.window.record(MetricEvent(key=family, success=outcome))
            self._check_rate(family)
        except Exception as exc:  # noqa: BLE001
            logger.error("metric_tracking_failed", name=name, error=str(exc))

    def _check_rate(self, family: str) -> None:
        threshold = self.thresholds.get(family)
        if threshold is None:
            return

        snapshot = self.window.snapshot(family)
        if snapshot.rate is None:
            return

        if snapshot.rate > threshold:
            if family not in self._alerting:
                self._alerting.add(family)
                self.alerts.failure_rate_exceeded(snapshot, threshold=threshold)
        else:
            self._alerting.discard(family)
