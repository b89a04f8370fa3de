"""
Autoscaler - tracks TrainingJobs and watches cluster load.

The controller reaches the autoscaler only through its hooks. Hooks never
block: they queue the event and return, and the autoscaler's own loop applies
queued events to its state. The loop and the hooks can therefore run
concurrently without sharing anything but the queue.

Choosing replica counts is left to a scaling policy outside this package;
this loop maintains the tracked job set and reports when the cluster runs
above ``max_load_desired``.
"""

import asyncio
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Tuple

import httpx
import structlog

from trainingjob.autoscaler.cluster import Cluster, ClusterResource
from trainingjob.core.errors import KubeApiError
from trainingjob.core.models import TrainingJob
from trainingjob.monitoring.metrics import MetricsRecorder

logger = structlog.get_logger()


class AutoscalerHooks(Protocol):
    """What the controller needs from an autoscaler."""

    def on_add(self, job: TrainingJob) -> None:
        ...

    def on_update(self, job: TrainingJob) -> None:
        ...

    def on_delete(self, job: TrainingJob) -> None:
        ...

    async def run(self, stop: asyncio.Event) -> None:
        ...


class JobEvent(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


class Autoscaler:
    """
    Tracks TrainingJobs for scaling and samples cluster capacity.

    Args:
        cluster: Capacity source (``Cluster`` or anything with ``sync_resource``).
        max_load_desired: Highest acceptable requested/allocatable CPU ratio, in (0, 1].
        loop_interval: Seconds between cluster samples.
    """

    def __init__(
        self,
        cluster: Cluster,
        max_load_desired: float = 0.97,
        loop_interval: float = 5.0,
    ):
        if not 0 < max_load_desired <= 1:
            raise ValueError(f"max_load_desired must be in (0, 1], got {max_load_desired}")

        self.cluster = cluster
        self.max_load_desired = max_load_desired
        self.loop_interval = loop_interval

        self.jobs: Dict[str, TrainingJob] = {}
        self.last_resource: Optional[ClusterResource] = None
        self.last_sync: Optional[datetime] = None

        self._events: "asyncio.Queue[Tuple[JobEvent, TrainingJob]]" = asyncio.Queue()

        logger.info(
            "Autoscaler initialized",
            max_load_desired=max_load_desired,
            loop_interval=loop_interval
        )

    # =========================================================================
    # Hooks
    # =========================================================================

    def on_add(self, job: TrainingJob):
        self._events.put_nowait((JobEvent.ADD, job))

    def on_update(self, job: TrainingJob):
        self._events.put_nowait((JobEvent.UPDATE, job))

    def on_delete(self, job: TrainingJob):
        self._events.put_nowait((JobEvent.DELETE, job))

    # =========================================================================
    # Loop
    # =========================================================================

    async def run(self, stop: asyncio.Event):
        """Apply queued job events and sample the cluster until ``stop`` is set."""
        logger.info("Autoscaler loop started")

        while not stop.is_set():
            self.apply_pending()
            await self.monitor()
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.loop_interval)
            except asyncio.TimeoutError:
                pass

        self.apply_pending()
        logger.info("Autoscaler loop stopped", tracked_jobs=len(self.jobs))

    def apply_pending(self) -> int:
        """Apply every queued hook event. Returns how many were applied."""
        applied = 0
        while True:
            try:
                event, job = self._events.get_nowait()
            except asyncio.QueueEmpty:
                break

            if event == JobEvent.DELETE:
                self.jobs.pop(job.key, None)
            else:
                self.jobs[job.key] = job
            applied += 1

            logger.debug("Autoscaler job event", job_event=event.value, job=job.key)

        if applied:
            MetricsRecorder.record_autoscaler(len(self.jobs))
        return applied

    async def monitor(self) -> Optional[ClusterResource]:
        """Sample the cluster and report its load."""
        try:
            resource = await self.cluster.sync_resource()
        except (httpx.HTTPError, KubeApiError, ValueError) as e:
            logger.warning("Cluster sync failed", error=str(e))
            return None

        self.last_resource = resource
        self.last_sync = datetime.utcnow()
        MetricsRecorder.record_autoscaler(len(self.jobs), resource.load)

        if resource.load > self.max_load_desired:
            logger.warning(
                "Cluster load above desired maximum",
                load=round(resource.load, 4),
                max_load_desired=self.max_load_desired,
                tracked_jobs=len(self.jobs)
            )
        return resource

    # =========================================================================
    # Status
    # =========================================================================

    def get_status(self) -> Dict[str, Any]:
        """Get autoscaler status."""
        return {
            "tracked_jobs": sorted(self.jobs),
            "pending_events": self._events.qsize(),
            "max_load_desired": self.max_load_desired,
            "cluster_load": self.last_resource.load if self.last_resource else None,
            "last_sync": self.last_sync.isoformat() if self.last_sync else None,
        }
