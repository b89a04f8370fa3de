"""
Prometheus metrics for the TrainingJob controller.

Provides metrics for:
- TrainingJob events observed by the watcher
- Translation and workload creation outcomes
- Autoscaler view of the cluster
"""

from prometheus_client import Counter, Gauge, Info, start_http_server
import structlog

logger = structlog.get_logger()


# =============================================================================
# Metric Definitions
# =============================================================================

# Watcher Metrics
EVENTS_TOTAL = Counter(
    "trainingjob_events_total",
    "TrainingJob events delivered to the dispatcher",
    ["type"]  # added, updated, deleted
)

SHAPE_VIOLATIONS_TOTAL = Counter(
    "trainingjob_shape_violations_total",
    "Delivered objects rejected because they are not TrainingJobs"
)

WATCH_RESTARTS_TOTAL = Counter(
    "trainingjob_watch_restarts_total",
    "Times the watcher relisted",
    ["reason"]  # expired, error
)

# Dispatcher Metrics
TRANSLATIONS_TOTAL = Counter(
    "trainingjob_translations_total",
    "TrainingJob translations",
    ["result"]  # ok, invalid
)

WORKLOAD_CREATES_TOTAL = Counter(
    "trainingjob_workload_creates_total",
    "Derived workload create attempts",
    ["kind", "outcome"]  # outcome: created, conflict, failed
)

# Autoscaler Metrics
TRACKED_JOBS = Gauge(
    "trainingjob_autoscaler_tracked_jobs",
    "TrainingJobs tracked by the autoscaler"
)

CLUSTER_LOAD = Gauge(
    "trainingjob_cluster_load",
    "Requested CPU over allocatable CPU"
)

CONTROLLER_INFO = Info(
    "trainingjob_controller",
    "Controller information"
)


# =============================================================================
# Metric Recording Helpers
# =============================================================================

class MetricsRecorder:
    """Helper class for recording metrics."""

    @staticmethod
    def record_event(event_type: str):
        EVENTS_TOTAL.labels(type=event_type).inc()

    @staticmethod
    def record_shape_violation():
        SHAPE_VIOLATIONS_TOTAL.inc()

    @staticmethod
    def record_watch_restart(reason: str):
        WATCH_RESTARTS_TOTAL.labels(reason=reason).inc()

    @staticmethod
    def record_translation(ok: bool):
        TRANSLATIONS_TOTAL.labels(result="ok" if ok else "invalid").inc()

    @staticmethod
    def record_create(kind: str, outcome: str):
        WORKLOAD_CREATES_TOTAL.labels(kind=kind, outcome=outcome).inc()

    @staticmethod
    def record_autoscaler(tracked_jobs: int, load: float = None):
        TRACKED_JOBS.set(tracked_jobs)
        if load is not None:
            CLUSTER_LOAD.set(load)


# =============================================================================
# Initialization
# =============================================================================

def init_metrics(port: int, version: str, namespace: str = ""):
    """Start the metrics exporter and publish controller info."""
    CONTROLLER_INFO.info({"version": version, "namespace": namespace or "all"})

    if port:
        start_http_server(port)
        logger.info("Metrics exporter started", port=port)
