"""
Core data models for the TrainingJob controller.

A ``TrainingJob`` is the user-facing declaration of a distributed training
workload. The translator expands it into three ``DerivedWorkload`` objects
that the orchestration platform runs natively.
"""

from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


API_GROUP = "paddlepaddle.org"
API_VERSION = "v1"
KIND = "TrainingJob"

LABEL_JOB_NAME = "trainingjob.paddlepaddle.org/name"
LABEL_JOB_ROLE = "trainingjob.paddlepaddle.org/role"


# =============================================================================
# Enums
# =============================================================================

class Role(str, Enum):
    """Role a derived workload plays in a training job."""
    COORDINATOR = "coordinator"
    AGGREGATOR = "aggregator"
    WORKER = "worker"


class WorkloadKind(str, Enum):
    """Orchestration-platform kind of a derived workload."""
    REPLICA_SET = "ReplicaSet"  # long-running, replicated
    JOB = "Job"  # bounded completion


class EventType(str, Enum):
    """Change observed on a TrainingJob."""
    ADDED = "ADDED"
    UPDATED = "MODIFIED"
    DELETED = "DELETED"


# =============================================================================
# TrainingJob (the declaration)
# =============================================================================

class _KubeModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ObjectMeta(_KubeModel):
    """Identity of an orchestration-platform object."""
    name: str
    namespace: str = "default"
    uid: Optional[str] = None
    resource_version: Optional[str] = Field(default=None, alias="resourceVersion")
    labels: Dict[str, str] = Field(default_factory=dict)


class ResourceRequirements(_KubeModel):
    """Container resource requests and limits."""
    requests: Dict[str, str] = Field(default_factory=dict)
    limits: Dict[str, str] = Field(default_factory=dict)

    @field_validator("requests", "limits", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        # Quantities may arrive as bare numbers ("cpu: 1").
        if isinstance(value, dict):
            return {k: str(v) for k, v in value.items()}
        return value


class CoordinatorSpec(_KubeModel):
    """The process that orchestrates the whole training job."""
    replicas: Optional[int] = None
    image: Optional[str] = None
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)


class AggregatorSpec(_KubeModel):
    """Processes holding and combining model state."""
    replicas: Optional[int] = None
    image: Optional[str] = None
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)


class WorkerSpec(_KubeModel):
    """Processes that run training steps to completion."""
    parallelism: Optional[int] = None
    completions: Optional[int] = None
    image: Optional[str] = None
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)
    entrypoint: Optional[str] = None
    workspace: Optional[str] = None


class TrainingJobSpec(_KubeModel):
    """Desired state of a TrainingJob."""
    image: Optional[str] = None
    port: int = 7164
    ports_num: int = Field(default=1, alias="portsNum")
    fault_tolerant: bool = Field(default=False, alias="faultTolerant")
    passes: int = 1

    coordinator: Optional[CoordinatorSpec] = None
    aggregator: Optional[AggregatorSpec] = None
    worker: Optional[WorkerSpec] = None


class TrainingJob(_KubeModel):
    """A distributed training job declaration."""
    api_version: str = Field(default=f"{API_GROUP}/{API_VERSION}", alias="apiVersion")
    kind: str = KIND
    metadata: ObjectMeta
    spec: TrainingJobSpec = Field(default_factory=TrainingJobSpec)

    @field_validator("kind")
    @classmethod
    def _check_kind(cls, value: str) -> str:
        if value != KIND:
            raise ValueError(f"expected kind {KIND}, got {value}")
        return value

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def key(self) -> str:
        """Cache key, ``namespace/name``."""
        return f"{self.metadata.namespace}/{self.metadata.name}"


# =============================================================================
# Derived workloads (the translation output)
# =============================================================================

class OwnerReference(BaseModel):
    """Back-reference from a derived workload to its TrainingJob."""
    model_config = ConfigDict(frozen=True)

    api_version: str
    kind: str
    name: str
    uid: str

    def to_manifest(self) -> Dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
            "controller": True,
            "blockOwnerDeletion": True,
        }


class PodTemplate(BaseModel):
    """What each pod of a derived workload runs."""
    model_config = ConfigDict(frozen=True)

    image: str
    command: Tuple[str, ...] = ()
    env: Tuple[Tuple[str, str], ...] = ()
    ports: Tuple[int, ...] = ()
    requests: Tuple[Tuple[str, str], ...] = ()
    limits: Tuple[Tuple[str, str], ...] = ()
    restart_policy: str = "Always"


class DerivedWorkload(BaseModel):
    """A concrete workload produced from one role of a TrainingJob."""
    model_config = ConfigDict(frozen=True)

    kind: WorkloadKind
    role: Role
    name: str
    namespace: str
    labels: Tuple[Tuple[str, str], ...]
    template: PodTemplate
    count: int
    completions: Optional[int] = None
    owner: Optional[OwnerReference] = None

    @property
    def api_version(self) -> str:
        return "apps/v1" if self.kind == WorkloadKind.REPLICA_SET else "batch/v1"

    def to_manifest(self) -> Dict[str, Any]:
        """Render the orchestration-platform JSON for this workload."""
        labels = dict(self.labels)
        metadata: Dict[str, Any] = {
            "name": self.name,
            "namespace": self.namespace,
            "labels": dict(labels),
        }
        if self.owner is not None:
            metadata["ownerReferences"] = [self.owner.to_manifest()]

        container: Dict[str, Any] = {
            "name": self.role.value,
            "image": self.template.image,
        }
        if self.template.command:
            container["command"] = list(self.template.command)
        if self.template.env:
            container["env"] = [{"name": k, "value": v} for k, v in self.template.env]
        if self.template.ports:
            container["ports"] = [{"containerPort": p} for p in self.template.ports]
        resources = {}
        if self.template.requests:
            resources["requests"] = dict(self.template.requests)
        if self.template.limits:
            resources["limits"] = dict(self.template.limits)
        if resources:
            container["resources"] = resources

        pod_template = {
            "metadata": {"labels": dict(labels)},
            "spec": {
                "containers": [container],
                "restartPolicy": self.template.restart_policy,
            },
        }

        if self.kind == WorkloadKind.REPLICA_SET:
            spec: Dict[str, Any] = {
                "replicas": self.count,
                "selector": {"matchLabels": dict(labels)},
                "template": pod_template,
            }
        else:
            spec = {
                "parallelism": self.count,
                "completions": self.completions,
                "template": pod_template,
            }

        return {
            "apiVersion": self.api_version,
            "kind": self.kind.value,
            "metadata": metadata,
            "spec": spec,
        }


__all__ = [
    "API_GROUP",
    "API_VERSION",
    "KIND",
    "LABEL_JOB_NAME",
    "LABEL_JOB_ROLE",
    "Role",
    "WorkloadKind",
    "EventType",
    "ObjectMeta",
    "ResourceRequirements",
    "CoordinatorSpec",
    "AggregatorSpec",
    "WorkerSpec",
    "TrainingJobSpec",
    "TrainingJob",
    "OwnerReference",
    "PodTemplate",
    "DerivedWorkload",
]
