"""
Core data model and error taxonomy.
"""

from trainingjob.core.errors import (
    ControllerError,
    InvalidSpec,
    ShapeViolation,
    KubeApiError,
    CreateFailure,
    CreateConflict,
    WatchExpired,
)
from trainingjob.core.models import (
    Role,
    WorkloadKind,
    EventType,
    ObjectMeta,
    ResourceRequirements,
    CoordinatorSpec,
    AggregatorSpec,
    WorkerSpec,
    TrainingJobSpec,
    TrainingJob,
    OwnerReference,
    PodTemplate,
    DerivedWorkload,
)

__all__ = [
    # Errors
    "ControllerError",
    "InvalidSpec",
    "ShapeViolation",
    "KubeApiError",
    "CreateFailure",
    "CreateConflict",
    "WatchExpired",
    # Models
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
