"""
Shared fixtures and fakes for the TrainingJob controller tests.
"""

import asyncio
import copy
from typing import Any, Dict, List, Optional, Tuple

import pytest

from trainingjob.core.errors import CreateConflict, CreateFailure
from trainingjob.core.models import DerivedWorkload, TrainingJob


# =============================================================================
# Job payloads
# =============================================================================

def build_job(
    name: str = "bert",
    namespace: str = "ml",
    coordinator: Optional[int] = 1,
    aggregator: Optional[int] = 3,
    worker: Optional[int] = 8,
    uid: Optional[str] = "6f1c1e2a-0000-4000-8000-000000000001",
    resource_version: str = "100",
    image: Optional[str] = "paddlepaddle/paddle:latest",
) -> Dict[str, Any]:
    """A raw TrainingJob as the orchestration API returns it."""
    metadata: Dict[str, Any] = {
        "name": name,
        "namespace": namespace,
        "resourceVersion": resource_version,
    }
    if uid:
        metadata["uid"] = uid
    return {
        "apiVersion": "paddlepaddle.org/v1",
        "kind": "TrainingJob",
        "metadata": metadata,
        "spec": {
            "image": image,
            "port": 7164,
            "portsNum": 2,
            "passes": 10,
            "coordinator": {
                "replicas": coordinator,
                "resources": {"requests": {"cpu": 1, "memory": "1Gi"}},
            },
            "aggregator": {
                "replicas": aggregator,
                "resources": {"requests": {"cpu": "2", "memory": "4Gi"}},
            },
            "worker": {
                "parallelism": worker,
                "entrypoint": "python train.py",
                "workspace": "/workspace",
                "resources": {
                    "requests": {"cpu": "4", "memory": "8Gi"},
                    "limits": {"nvidia.com/gpu": 1},
                },
            },
        },
    }


@pytest.fixture
def make_job():
    """Factory for raw TrainingJob payloads."""
    return build_job


@pytest.fixture
def job() -> TrainingJob:
    """The ``bert`` TrainingJob in namespace ``ml``."""
    return TrainingJob.model_validate(build_job())


# =============================================================================
# Fakes
# =============================================================================

class FakeKubeClient:
    """
    In-memory stand-in for ``KubeClient``.

    ``lists`` is consumed one entry per list call (the last one repeats);
    ``streams`` one entry per watch call. Once every stream has been served,
    ``exhausted`` is set and the watch blocks until cancelled.
    """

    def __init__(
        self,
        lists: Optional[List[Tuple[List[Dict[str, Any]], str]]] = None,
        streams: Optional[List[List[Any]]] = None,
        fail: Optional[set] = None,
    ):
        self.lists = list(lists or [([], "1")])
        self.streams = list(streams or [])
        self.fail = set(fail or ())

        self.attempts: List[DerivedWorkload] = []
        self.existing: set = set()
        self.list_calls = 0
        self.watch_calls: List[str] = []
        self.exhausted = asyncio.Event()

        self.nodes: List[Dict[str, Any]] = []
        self.pods: List[Dict[str, Any]] = []

    async def list_training_jobs(self, namespace=None):
        self.list_calls += 1
        entry = self.lists.pop(0) if len(self.lists) > 1 else self.lists[0]
        items, resource_version = entry
        if isinstance(items, Exception):
            raise items
        return copy.deepcopy(items), resource_version

    async def watch_training_jobs(self, namespace=None, resource_version="", timeout_seconds=300):
        self.watch_calls.append(resource_version)
        if self.streams:
            for event in self.streams.pop(0):
                if isinstance(event, Exception):
                    raise event
                yield copy.deepcopy(event)
            return
        self.exhausted.set()
        await asyncio.sleep(3600)

    async def create_workload(self, workload: DerivedWorkload):
        self.attempts.append(workload)
        if workload.name in self.fail:
            raise CreateFailure(500, "InternalError", f"cannot create {workload.name}")
        key = (workload.namespace, workload.name)
        if key in self.existing:
            raise CreateConflict(message=f"{workload.name} already exists")
        self.existing.add(key)
        return workload.to_manifest()

    async def list_nodes(self):
        return copy.deepcopy(self.nodes)

    async def list_pods(self, namespace=None):
        return copy.deepcopy(self.pods)


class RecordingAutoscaler:
    """Autoscaler hooks that only record what they were given."""

    def __init__(self):
        self.calls: List[Tuple[str, TrainingJob]] = []

    def on_add(self, job):
        self.calls.append(("add", job))

    def on_update(self, job):
        self.calls.append(("update", job))

    def on_delete(self, job):
        self.calls.append(("delete", job))

    async def run(self, stop):
        await stop.wait()


class RecordingHandler:
    """Watcher handler that records the callbacks it receives."""

    def __init__(self):
        self.calls: List[Tuple] = []

    async def on_add(self, job):
        self.calls.append(("add", job.key, job.metadata.resource_version))

    async def on_update(self, old, new):
        self.calls.append(
            ("update", new.key, old.metadata.resource_version, new.metadata.resource_version)
        )

    async def on_delete(self, job):
        self.calls.append(("delete", job.key, job.metadata.resource_version))


@pytest.fixture
def fake_client() -> FakeKubeClient:
    return FakeKubeClient()


@pytest.fixture
def hooks() -> RecordingAutoscaler:
    return RecordingAutoscaler()


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()
