"""
TrainingJob Controller
======================

Runs the TrainingJob watcher and the autoscaler loop side by side for the
lifetime of the process.

The watcher turns TrainingJob events into coordinator, aggregator and worker
workloads; the autoscaler tracks jobs and cluster load. Both share one stop
event. ``run()`` returns once both loops have returned; if either loop
fails, the other is stopped and the failure is reported in the returned
``Termination``. Nothing is restarted.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

import structlog

from trainingjob.autoscaler.autoscaler import Autoscaler
from trainingjob.autoscaler.cluster import Cluster
from trainingjob.client.kube import KubeClient
from trainingjob.config import Settings
from trainingjob.controller.dispatcher import ReconciliationDispatcher
from trainingjob.controller.watcher import EventWatcher

logger = structlog.get_logger()


class TerminationReason(str, Enum):
    """Why ``Controller.run`` returned."""
    STOPPED = "stopped"  # stop() was called
    EXITED = "exited"  # both loops returned on their own
    FAILED = "failed"  # a loop raised


@dataclass
class Termination:
    """Outcome of ``Controller.run``."""
    reason: TerminationReason
    task: Optional[str] = None
    error: Optional[BaseException] = None


class Controller:
    """
    Supervises the watcher loop and the autoscaler loop.

    Args:
        watcher: Anything with ``async run(stop)``; normally an ``EventWatcher``.
        autoscaler: Anything with ``async run(stop)``; normally an ``Autoscaler``.
        shutdown_grace: Seconds a loop gets to return after the stop event
            is set because its sibling failed, before it is cancelled.
    """

    def __init__(self, watcher, autoscaler, shutdown_grace: float = 10.0):
        self.watcher = watcher
        self.autoscaler = autoscaler
        self.shutdown_grace = shutdown_grace

        self._stop = asyncio.Event()
        self._client: Optional[KubeClient] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Controller":
        """Wire the client, cluster, autoscaler, dispatcher and watcher."""
        client = KubeClient.from_settings(settings)
        autoscaler = Autoscaler(
            Cluster(client),
            max_load_desired=settings.max_load_desired,
            loop_interval=settings.autoscaler_interval_seconds,
        )
        dispatcher = ReconciliationDispatcher(client, autoscaler)
        watcher = EventWatcher(
            client,
            dispatcher,
            namespace=settings.namespace,
            resync_period=settings.resync_period,
            watch_timeout=settings.watch_timeout_seconds,
            relist_delay=settings.relist_delay_seconds,
        )
        controller = cls(watcher, autoscaler, shutdown_grace=settings.shutdown_grace_seconds)
        controller._client = client
        return controller

    def stop(self):
        """Ask both loops to finish; ``run()`` returns once they have."""
        if not self._stop.is_set():
            logger.info("Controller stopping")
            self._stop.set()

    async def run(self) -> Termination:
        """Run both loops and wait for both to return."""
        tasks: Dict[str, asyncio.Task] = {
            "watcher": asyncio.create_task(self.watcher.run(self._stop), name="watcher"),
            "autoscaler": asyncio.create_task(self.autoscaler.run(self._stop), name="autoscaler"),
        }
        logger.info("Controller started", tasks=list(tasks))

        termination: Optional[Termination] = None
        pending = set(tasks.values())
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for name, task in tasks.items():
                    if task not in done or task.cancelled() or task.exception() is None:
                        continue
                    if termination is None:
                        termination = Termination(TerminationReason.FAILED, name, task.exception())
                        logger.error(
                            "Controller task failed",
                            task=name,
                            error=repr(task.exception())
                        )
                        self._stop.set()
                        pending = await self._drain(pending)
        finally:
            for task in tasks.values():
                task.cancel()
            await asyncio.gather(*tasks.values(), return_exceptions=True)
            if self._client is not None:
                await self._client.aclose()

        if termination is None:
            reason = TerminationReason.STOPPED if self._stop.is_set() else TerminationReason.EXITED
            termination = Termination(reason)

        logger.info("Controller terminated", reason=termination.reason.value, task=termination.task)
        return termination

    async def _drain(self, pending):
        """Give the remaining loops ``shutdown_grace`` seconds, then cancel them."""
        if not pending:
            return pending
        _, still_running = await asyncio.wait(pending, timeout=self.shutdown_grace)
        for task in still_running:
            logger.warning("Cancelling task after shutdown grace", task=task.get_name())
            task.cancel()
        await asyncio.gather(*still_running, return_exceptions=True)
        return set()
