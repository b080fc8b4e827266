"""
Alert Dispatcher

Threshold checks for model latency/health, assessment confidence, API latency
and failure rates. Each alert is logged and, when an alert webhook is
configured, published as a Slack-compatible message on the outbound queue.
Publishing never blocks or raises into the caller.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from inspection_engine.core.config import settings
from inspection_engine.core.logging import get_logger
from inspection_engine.monitoring.window import WindowSnapshot
from inspection_engine.queue.protocol import OutboundQueueProtocol
from inspection_engine.queue.schemas import MessageKind, OutboundMessage

logger = get_logger(__name__)

ALERT_FOOTER = "Vehicle Inspection Engine"


class AlertSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def color(self) -> str:
        return "danger" if self is AlertSeverity.CRITICAL else "warning"


@dataclass(frozen=True)
class AlertField:
    title: str
    value: str
    short: bool = True


@dataclass
class Alert:
    name: str
    title: str
    severity: AlertSeverity
    fields: list[AlertField] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)

    def to_webhook_payload(self) -> dict[str, Any]:
        return {
            "text": self.title,
            "attachments": [
                {
                    "color": self.severity.color,
                    "fields": [
                        {"title": f.title, "value": f.value, "short": f.short}
                        for f in self.fields
                    ],
                    "footer": ALERT_FOOTER,
                    "ts": int(time.time()),
                }
            ],
        }


def _pct(value: float) -> str:
    return f"{value * 100:.1f} %"


class AlertDispatcher:
    """Evaluates thresholds and emits alerts (log + optional webhook)."""

    def __init__(
        self,
        *,
        outbound: OutboundQueueProtocol | None = None,
        webhook_url: str | None = None,
    ) -> None:
        self.outbound = outbound
        self.webhook_url = webhook_url if webhook_url is not None else settings.alert_webhook_url
        self.sent: list[Alert] = []

    # Threshold checks -------------------------------------------------

    def check_model_latency(
        self, latency_ms: float, *, model: str | None, operation: str
    ) -> Alert | None:
        threshold = settings.alert_model_latency_ms
        if latency_ms <= threshold:
            return None
        return self.dispatch(
            Alert(
                name="model_latency",
                title=f"Model latency alert: {latency_ms:.0f}ms (threshold: {threshold:.0f}ms)",
                severity=AlertSeverity.CRITICAL,
                fields=[
                    AlertField("Latency", f"{latency_ms:.0f}ms"),
                    AlertField("Threshold", f"{threshold:.0f}ms"),
                    AlertField("Model", model or "unknown"),
                    AlertField("Operation", operation),
                ],
                context={"latency_ms": latency_ms, "model": model, "operation": operation},
            )
        )

    def check_embedding_latency(self, latency_ms: float, *, model: str | None) -> Alert | None:
        threshold = settings.alert_embedding_latency_ms
        if latency_ms <= threshold:
            return None
        return self.dispatch(
            Alert(
                name="embedding_latency",
                title=f"Embedding latency {latency_ms:.0f} ms (>{threshold:.0f} ms)",
                severity=AlertSeverity.CRITICAL,
                fields=[
                    AlertField("Latency", f"{latency_ms:.0f} ms"),
                    AlertField("Threshold", f"{threshold:.0f} ms"),
                    AlertField("Model", model or "unknown"),
                ],
                context={"latency_ms": latency_ms, "model": model},
            )
        )

    def model_health_failed(
        self, *, operation: str, error: str, url: str | None = None
    ) -> Alert:
        return self.dispatch(
            Alert(
                name="model_health",
                title="Model health check failed",
                severity=AlertSeverity.CRITICAL,
                fields=[
                    AlertField("Operation", operation),
                    AlertField("Status", "Unhealthy"),
                    AlertField("URL", url or "unknown"),
                    AlertField("Error", error or "Connection failed", short=False),
                ],
                context={"operation": operation, "error": error},
            )
        )

    def check_vision_accuracy(
        self, confidence: float, *, damage_count: int, image_count: int
    ) -> Alert | None:
        threshold = settings.alert_vision_accuracy
        if confidence >= threshold:
            return None
        return self.dispatch(
            Alert(
                name="vision_accuracy",
                title=(
                    f"Low vision model confidence: {round(confidence * 100)}% "
                    f"(threshold: {round(threshold * 100)}%)"
                ),
                severity=AlertSeverity.WARNING,
                fields=[
                    AlertField("Confidence", f"{round(confidence * 100)}%"),
                    AlertField("Threshold", f"{round(threshold * 100)}%"),
                    AlertField("Damages Found", str(damage_count)),
                    AlertField("Images", str(image_count)),
                ],
                context={
                    "confidence": confidence,
                    "damage_count": damage_count,
                    "image_count": image_count,
                },
            )
        )

    def check_assessment_confidence(
        self, confidence: float, *, inspection_id: str | None = None
    ) -> Alert | None:
        threshold = settings.alert_assessment_confidence
        if confidence >= threshold:
            return None
        return self.dispatch(
            Alert(
                name="assessment_confidence",
                title=f"Low assessment confidence {_pct(confidence)}",
                severity=AlertSeverity.WARNING,
                fields=[
                    AlertField("Confidence", _pct(confidence)),
                    AlertField("Threshold", f"{threshold * 100:.0f} %"),
                    AlertField("Inspection", inspection_id or "unknown"),
                ],
                context={"confidence": confidence, "inspection_id": inspection_id},
            )
        )

    def check_api_response_time(self, duration_ms: float, *, endpoint: str) -> Alert | None:
        threshold = settings.alert_api_response_ms
        if duration_ms <= threshold:
            return None
        return self.dispatch(
            Alert(
                name="api_response_time",
                title=f"Slow API response {duration_ms:.0f} ms (>{threshold:.0f} ms)",
                severity=AlertSeverity.WARNING,
                fields=[
                    AlertField("Duration", f"{duration_ms:.0f} ms"),
                    AlertField("Endpoint", endpoint, short=False),
                ],
                context={"duration_ms": duration_ms, "endpoint": endpoint},
            )
        )

    def failure_rate_exceeded(self, snapshot: WindowSnapshot, *, threshold: float) -> Alert:
        rate = snapshot.rate or 0.0
        return self.dispatch(
            Alert(
                name=f"{snapshot.key}_failure_rate",
                title=(
                    f"{snapshot.key.capitalize()} failure-rate {_pct(rate)} "
                    f"(>{threshold * 100:.0f} %)"
                ),
                severity=AlertSeverity.CRITICAL,
                fields=[
                    AlertField("Failure-rate", _pct(rate)),
                    AlertField("Window", f"{snapshot.window_seconds / 60:g} minutes"),
                    AlertField("Failures", str(snapshot.failures)),
                    AlertField("Total", str(snapshot.total)),
                ],
                context={
                    "family": snapshot.key,
                    "rate": rate,
                    "failures": snapshot.failures,
                    "total": snapshot.total,
                    "window_seconds": snapshot.window_seconds,
                },
            )
        )

    # Delivery ---------------------------------------------------------

    def dispatch(self, alert: Alert) -> Alert:
        log = logger.error if alert.severity is AlertSeverity.CRITICAL else logger.warning
        log("alert_raised", alert=alert.name, title=alert.title, **alert.context)
        self.sent.append(alert)
        if len(self.sent) > 100:
            del self.sent[:-100]

        if self.outbound is None or not self.webhook_url:
            return alert

        accepted = self.outbound.publish(
            OutboundMessage(
                kind=MessageKind.ALERT,
                url=self.webhook_url,
                payload=alert.to_webhook_payload(),
            )
        )
        if not accepted:
            logger.warning("alert_delivery_dropped", alert=alert.name)
        return alert
