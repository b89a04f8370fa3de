"""
Controller - watches TrainingJobs and materializes their workloads.

Includes:
- EventWatcher: list-then-watch over TrainingJobs
- ReconciliationDispatcher: per-event callbacks
- Controller: runs the watcher and the autoscaler loop together
"""

from trainingjob.controller.watcher import EventWatcher, EventHandler, decode_training_job
from trainingjob.controller.dispatcher import (
    ReconciliationDispatcher,
    AddResult,
    CreateOutcome,
)
from trainingjob.controller.controller import Controller, Termination, TerminationReason

__all__ = [
    "EventWatcher",
    "EventHandler",
    "decode_training_job",
    "ReconciliationDispatcher",
    "AddResult",
    "CreateOutcome",
    "Controller",
    "Termination",
    "TerminationReason",
]
