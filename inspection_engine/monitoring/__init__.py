"""
Monitoring: sliding-window failure rates, threshold alerts, metric fan-out
"""

from inspection_engine.monitoring.alerts import Alert, AlertDispatcher, AlertSeverity
from inspection_engine.monitoring.metrics import MetricsRecorder, classify_metric
from inspection_engine.monitoring.window import MetricEvent, MetricWindowStore

__all__ = [
    "Alert",
    "AlertDispatcher",
    "AlertSeverity",
    "MetricEvent",
    "MetricWindowStore",
    "MetricsRecorder",
    "classify_metric",
]
