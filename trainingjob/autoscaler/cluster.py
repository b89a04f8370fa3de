"""
Cluster capacity accounting.

Sums what the nodes can allocate against what scheduled pods request.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable

import structlog

from trainingjob.resource.quantity import parse_quantity

logger = structlog.get_logger()

GPU_RESOURCE = "nvidia.com/gpu"


@dataclass
class ClusterResource:
    """Snapshot of cluster capacity at a point in time."""
    timestamp: datetime = field(default_factory=datetime.utcnow)

    node_count: int = 0

    # Allocatable
    cpu_total: Decimal = Decimal(0)  # cores
    memory_total: Decimal = Decimal(0)  # bytes
    gpu_total: Decimal = Decimal(0)

    # Requested by scheduled pods
    cpu_request: Decimal = Decimal(0)
    memory_request: Decimal = Decimal(0)
    gpu_request: Decimal = Decimal(0)

    @property
    def load(self) -> float:
        """Requested CPU over allocatable CPU; 0 for an empty cluster."""
        if self.cpu_total <= 0:
            return 0.0
        return float(self.cpu_request / self.cpu_total)


class Cluster:
    """Reads nodes and pods through the orchestration API client."""

    def __init__(self, client):
        self.client = client

    async def sync_resource(self) -> ClusterResource:
        """Take a snapshot of allocatable and requested resources."""
        nodes = await self.client.list_nodes()
        pods = await self.client.list_pods()

        resource = ClusterResource()
        for node in nodes:
            if (node.get("spec") or {}).get("unschedulable"):
                continue
            allocatable = (node.get("status") or {}).get("allocatable") or {}
            resource.node_count += 1
            resource.cpu_total += _quantity(allocatable, "cpu")
            resource.memory_total += _quantity(allocatable, "memory")
            resource.gpu_total += _quantity(allocatable, GPU_RESOURCE)

        for pod in pods:
            spec = pod.get("spec") or {}
            # Pending pods do not hold node capacity yet.
            if not spec.get("nodeName"):
                continue
            for requests in _container_requests(spec.get("containers") or []):
                resource.cpu_request += _quantity(requests, "cpu")
                resource.memory_request += _quantity(requests, "memory")
                resource.gpu_request += _quantity(requests, GPU_RESOURCE)

        logger.debug(
            "Cluster resource synced",
            nodes=resource.node_count,
            cpu_total=str(resource.cpu_total),
            cpu_request=str(resource.cpu_request),
            load=round(resource.load, 4)
        )
        return resource


def _container_requests(containers: Iterable[Dict[str, Any]]) -> Iterable[Dict[str, Any]]:
    for container in containers:
        yield (container.get("resources") or {}).get("requests") or {}


def _quantity(values: Dict[str, Any], name: str) -> Decimal:
    value = values.get(name)
    if value is None:
        return Decimal(0)
    return parse_quantity(value)
