"""
TrainingJob translation.

Expands one TrainingJob into the three workloads the platform runs:

- ``<name>-coordinator``: ReplicaSet running the job coordinator
- ``<name>-aggregator``: ReplicaSet holding and combining model state
- ``<name>-worker``: Job whose pods run training to completion

Translation is pure. The same TrainingJob always yields equal workloads, so
submitting the creates twice is rejected by name on the platform side instead
of producing duplicates.
"""

from typing import Dict, List, Optional, Tuple

from trainingjob.core.errors import InvalidSpec
from trainingjob.core.models import (
    LABEL_JOB_NAME,
    LABEL_JOB_ROLE,
    DerivedWorkload,
    OwnerReference,
    PodTemplate,
    ResourceRequirements,
    Role,
    TrainingJob,
    WorkloadKind,
)


Translation = Tuple[DerivedWorkload, DerivedWorkload, DerivedWorkload]


def derived_name(job_name: str, role: Role) -> str:
    """Name of the workload that runs ``role`` for ``job_name``."""
    return f"{job_name}-{role.value}"


def translate(job: TrainingJob) -> Translation:
    """
    Translate a TrainingJob into (coordinator, aggregator, worker) workloads.

    Raises:
        InvalidSpec: a role block is missing, a count is missing or
            negative, or a role has no image to run.
    """
    spec = job.spec
    if spec.coordinator is None:
        raise InvalidSpec(job.key, "missing coordinator spec")
    if spec.aggregator is None:
        raise InvalidSpec(job.key, "missing aggregator spec")
    if spec.worker is None:
        raise InvalidSpec(job.key, "missing worker spec")

    coordinators = _require_count(job, "coordinator.replicas", spec.coordinator.replicas)
    aggregators = _require_count(job, "aggregator.replicas", spec.aggregator.replicas)
    workers = _require_count(job, "worker.parallelism", spec.worker.parallelism)

    completions = spec.worker.completions
    if completions is None:
        completions = workers
    elif completions < 0:
        raise InvalidSpec(job.key, f"worker.completions must be >= 0, got {completions}")

    shared_env = [
        ("JOB_NAME", job.name),
        ("JOB_NAMESPACE", job.namespace),
        ("PORT", str(spec.port)),
        ("PORTS_NUM", str(spec.ports_num)),
        ("NUM_AGGREGATORS", str(aggregators)),
        ("NUM_WORKERS", str(workers)),
        ("PASSES", str(spec.passes)),
        ("FAULT_TOLERANT", "true" if spec.fault_tolerant else "false"),
    ]
    owner = _owner_reference(job)

    coordinator = DerivedWorkload(
        kind=WorkloadKind.REPLICA_SET,
        role=Role.COORDINATOR,
        name=derived_name(job.name, Role.COORDINATOR),
        namespace=job.namespace,
        labels=_labels(job, Role.COORDINATOR),
        template=_pod_template(
            image=_require_image(job, Role.COORDINATOR, spec.coordinator.image),
            env=_role_env(shared_env, Role.COORDINATOR),
            ports=(spec.port,),
            resources=spec.coordinator.resources,
            restart_policy="Always",
        ),
        count=coordinators,
        owner=owner,
    )

    aggregator = DerivedWorkload(
        kind=WorkloadKind.REPLICA_SET,
        role=Role.AGGREGATOR,
        name=derived_name(job.name, Role.AGGREGATOR),
        namespace=job.namespace,
        labels=_labels(job, Role.AGGREGATOR),
        template=_pod_template(
            image=_require_image(job, Role.AGGREGATOR, spec.aggregator.image),
            env=_role_env(shared_env, Role.AGGREGATOR),
            ports=tuple(spec.port + i for i in range(max(1, spec.ports_num))),
            resources=spec.aggregator.resources,
            restart_policy="Always",
        ),
        count=aggregators,
        owner=owner,
    )

    worker_env = _role_env(shared_env, Role.WORKER)
    command: Tuple[str, ...] = ()
    if spec.worker.entrypoint:
        worker_env.append(("ENTRYPOINT", spec.worker.entrypoint))
        command = ("sh", "-c", spec.worker.entrypoint)
    if spec.worker.workspace:
        worker_env.append(("WORKSPACE", spec.worker.workspace))

    worker = DerivedWorkload(
        kind=WorkloadKind.JOB,
        role=Role.WORKER,
        name=derived_name(job.name, Role.WORKER),
        namespace=job.namespace,
        labels=_labels(job, Role.WORKER),
        template=_pod_template(
            image=_require_image(job, Role.WORKER, spec.worker.image),
            env=worker_env,
            command=command,
            resources=spec.worker.resources,
            restart_policy="Never",
        ),
        count=workers,
        completions=completions,
        owner=owner,
    )

    return coordinator, aggregator, worker


# =============================================================================
# Helpers
# =============================================================================

def _require_count(job: TrainingJob, field: str, value: Optional[int]) -> int:
    if value is None:
        raise InvalidSpec(job.key, f"{field} is required")
    if value < 0:
        raise InvalidSpec(job.key, f"{field} must be >= 0, got {value}")
    return value


def _require_image(job: TrainingJob, role: Role, image: Optional[str]) -> str:
    image = image or job.spec.image
    if not image:
        raise InvalidSpec(job.key, f"no image for {role.value} and no default image")
    return image


def _labels(job: TrainingJob, role: Role) -> Tuple[Tuple[str, str], ...]:
    return ((LABEL_JOB_NAME, job.name), (LABEL_JOB_ROLE, role.value))


def _role_env(shared: List[Tuple[str, str]], role: Role) -> List[Tuple[str, str]]:
    env = list(shared)
    env.insert(2, ("JOB_ROLE", role.value))
    return env


def _owner_reference(job: TrainingJob) -> Optional[OwnerReference]:
    # Without a uid the garbage collector cannot resolve the owner.
    if not job.metadata.uid:
        return None
    return OwnerReference(
        api_version=job.api_version,
        kind=job.kind,
        name=job.name,
        uid=job.metadata.uid,
    )


def _sorted_items(values: Dict[str, str]) -> Tuple[Tuple[str, str], ...]:
    return tuple(sorted(values.items()))


def _pod_template(
    image: str,
    env: List[Tuple[str, str]],
    resources: ResourceRequirements,
    restart_policy: str,
    ports: Tuple[int, ...] = (),
    command: Tuple[str, ...] = (),
) -> PodTemplate:
    return PodTemplate(
        image=image,
        command=command,
        env=tuple(env),
        ports=ports,
        requests=_sorted_items(resources.requests),
        limits=_sorted_items(resources.limits),
        restart_policy=restart_policy,
    )
