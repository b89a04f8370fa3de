"""
Error taxonomy for the TrainingJob controller.
"""

from typing import Optional


class ControllerError(Exception):
    """Base class for all controller errors."""


class InvalidSpec(ControllerError):
    """A TrainingJob cannot be translated into workloads."""

    def __init__(self, job: str, reason: str):
        self.job = job
        self.reason = reason
        super().__init__(f"invalid TrainingJob {job}: {reason}")


class ShapeViolation(ControllerError):
    """A delivered object does not have the TrainingJob shape."""

    def __init__(self, message: str, obj: Optional[dict] = None):
        self.obj = obj
        super().__init__(message)


class KubeApiError(ControllerError):
    """The orchestration API answered with an error."""

    def __init__(self, status_code: int, reason: str = "", message: str = ""):
        self.status_code = status_code
        self.reason = reason
        self.message = message
        super().__init__(f"{status_code} {reason}: {message}".strip(": "))


class CreateFailure(KubeApiError):
    """Creating a derived workload failed."""


class CreateConflict(CreateFailure):
    """A derived workload with the same name already exists."""

    def __init__(self, reason: str = "AlreadyExists", message: str = ""):
        super().__init__(409, reason, message)


class WatchExpired(KubeApiError):
    """The watch resourceVersion is too old; a relist is required."""

    def __init__(self, reason: str = "Expired", message: str = ""):
        super().__init__(410, reason, message)
