"""
TrainingJob controller.

Watches TrainingJob resources and turns each one into the coordinator,
aggregator and worker workloads that run it, alongside an autoscaler that
tracks jobs against cluster load.
"""

__version__ = "0.1.0"

from trainingjob.core.models import TrainingJob, DerivedWorkload
from trainingjob.resource.translator import translate
from trainingjob.controller.controller import Controller

__all__ = [
    "__version__",
    "TrainingJob",
    "DerivedWorkload",
    "translate",
    "Controller",
]
