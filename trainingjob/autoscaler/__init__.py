"""
Autoscaler collaborator, reached by the controller through its hooks.
"""

from trainingjob.autoscaler.autoscaler import Autoscaler, AutoscalerHooks, JobEvent
from trainingjob.autoscaler.cluster import Cluster, ClusterResource

__all__ = [
    "Autoscaler",
    "AutoscalerHooks",
    "JobEvent",
    "Cluster",
    "ClusterResource",
]
