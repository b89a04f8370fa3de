"""
Prometheus metrics.
"""

from trainingjob.monitoring.metrics import MetricsRecorder, init_metrics

__all__ = ["MetricsRecorder", "init_metrics"]
