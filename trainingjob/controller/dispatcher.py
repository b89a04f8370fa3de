"""
Reconciliation dispatcher - reacts to TrainingJob events.

- Added: translate the job and create its coordinator, aggregator and
  worker workloads, then hand the job to the autoscaler.
- Updated / Deleted: forward the job to the autoscaler only. Derived
  workloads are not patched on update; on delete they are removed by the
  platform's garbage collector through their owner references.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional

import structlog

from trainingjob.autoscaler.autoscaler import AutoscalerHooks
from trainingjob.core.errors import CreateConflict, CreateFailure, InvalidSpec
from trainingjob.core.models import DerivedWorkload, TrainingJob
from trainingjob.monitoring.metrics import MetricsRecorder
from trainingjob.resource.translator import Translation, translate

logger = structlog.get_logger()


class CreateOutcome(str, Enum):
    """Result of one create call."""
    CREATED = "created"
    CONFLICT = "conflict"  # already exists, expected on redelivery
    FAILED = "failed"


@dataclass
class AddResult:
    """What handling one Added event did."""
    job: str
    error: Optional[InvalidSpec] = None
    outcomes: Dict[str, CreateOutcome] = field(default_factory=dict)

    @property
    def materialized(self) -> bool:
        """Every derived workload exists (created now or earlier)."""
        return self.error is None and bool(self.outcomes) and all(
            outcome != CreateOutcome.FAILED for outcome in self.outcomes.values()
        )


class ReconciliationDispatcher:
    """
    Event callbacks bound to the watcher.

    The watcher awaits one callback at a time, so the dispatcher is never
    re-entered. Autoscaler hooks are fire-and-continue.
    """

    def __init__(
        self,
        client,
        autoscaler: AutoscalerHooks,
        translator: Callable[[TrainingJob], Translation] = translate,
    ):
        self.client = client
        self.autoscaler = autoscaler
        self.translator = translator

    async def on_add(self, job: TrainingJob) -> AddResult:
        logger.debug("TrainingJob added", job=job.key)
        self.autoscaler.on_add(job)

        result = AddResult(job=job.key)
        try:
            workloads = self.translator(job)
        except InvalidSpec as e:
            logger.error("TrainingJob not translated", job=job.key, reason=e.reason)
            MetricsRecorder.record_translation(ok=False)
            result.error = e
            return result
        MetricsRecorder.record_translation(ok=True)

        # Each create is attempted regardless of how the previous one went.
        for workload in workloads:
            result.outcomes[workload.name] = await self._create(job, workload)

        logger.info(
            "TrainingJob workloads submitted",
            job=job.key,
            outcomes={name: outcome.value for name, outcome in result.outcomes.items()}
        )
        return result

    async def on_update(self, old: TrainingJob, new: TrainingJob):
        logger.debug(
            "TrainingJob updated",
            job=new.key,
            old_version=old.metadata.resource_version,
            new_version=new.metadata.resource_version
        )
        self.autoscaler.on_update(new)

    async def on_delete(self, job: TrainingJob):
        logger.debug("TrainingJob deleted", job=job.key)
        self.autoscaler.on_delete(job)

    async def _create(self, job: TrainingJob, workload: DerivedWorkload) -> CreateOutcome:
        logger.debug(
            "Create " + workload.role.value,
            job=job.key,
            manifest=json.dumps(workload.to_manifest(), indent=3)
        )
        kind = workload.kind.value
        try:
            await self.client.create_workload(workload)
        except CreateConflict:
            logger.info("Workload already exists", job=job.key, workload=workload.name, kind=kind)
            MetricsRecorder.record_create(kind, CreateOutcome.CONFLICT.value)
            return CreateOutcome.CONFLICT
        except CreateFailure as e:
            logger.error(
                "Create " + workload.role.value + " failed",
                job=job.key,
                workload=workload.name,
                kind=kind,
                error=str(e)
            )
            MetricsRecorder.record_create(kind, CreateOutcome.FAILED.value)
            return CreateOutcome.FAILED

        MetricsRecorder.record_create(kind, CreateOutcome.CREATED.value)
        return CreateOutcome.CREATED
