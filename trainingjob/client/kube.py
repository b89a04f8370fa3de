"""
Orchestration API client.

A small asynchronous REST client for the parts of the Kubernetes API the
controller uses: list and watch TrainingJobs, create ReplicaSets and Jobs,
and list nodes and pods for capacity accounting.
"""

import json
import os
import ssl
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple, Union

import httpx
import structlog

from trainingjob.config import Settings
from trainingjob.core.errors import CreateConflict, CreateFailure, KubeApiError, WatchExpired
from trainingjob.core.models import DerivedWorkload, WorkloadKind

logger = structlog.get_logger()


_COLLECTIONS = {
    WorkloadKind.REPLICA_SET: "/apis/apps/v1/namespaces/{namespace}/replicasets",
    WorkloadKind.JOB: "/apis/batch/v1/namespaces/{namespace}/jobs",
}


class KubeClient:
    """
    REST client for the orchestration API.

    Args:
        base_url: API server URL.
        token: Bearer token, if any.
        verify: SSL context trusting the cluster CA, or a bool to enable/disable TLS verification.
        timeout: Per-request timeout in seconds. None disables timeouts.
        group / version / plural: Where the TrainingJob resource is served.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        verify: Union[ssl.SSLContext, bool] = True,
        timeout: Optional[float] = None,
        group: str = "paddlepaddle.org",
        version: str = "v1",
        plural: str = "trainingjobs",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self.base_url = base_url.rstrip("/")
        self.group = group
        self.version = version
        self.plural = plural
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            verify=verify,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "KubeClient":
        """Build a client from settings, reading the token and CA from disk if present."""
        token = settings.kube_token
        if not token and settings.kube_token_file and os.path.exists(settings.kube_token_file):
            with open(settings.kube_token_file) as f:
                token = f.read().strip()

        verify: Union[ssl.SSLContext, bool] = settings.kube_verify_ssl
        if verify and settings.kube_ca_file and os.path.exists(settings.kube_ca_file):
            verify = ssl.create_default_context(cafile=settings.kube_ca_file)

        return cls(
            base_url=settings.kube_api_server,
            token=token,
            verify=verify,
            timeout=settings.kube_request_timeout,
            group=settings.trainingjob_group,
            version=settings.trainingjob_version,
            plural=settings.trainingjob_plural,
        )

    async def aclose(self):
        await self._http.aclose()

    async def __aenter__(self) -> "KubeClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    # =========================================================================
    # TrainingJobs
    # =========================================================================

    def _trainingjobs_path(self, namespace: Optional[str]) -> str:
        if namespace:
            return f"/apis/{self.group}/{self.version}/namespaces/{namespace}/{self.plural}"
        return f"/apis/{self.group}/{self.version}/{self.plural}"

    async def list_training_jobs(
        self, namespace: Optional[str] = None
    ) -> Tuple[List[Dict[str, Any]], str]:
        """List TrainingJobs. Returns the raw items and the list resourceVersion."""
        body = await self._get(self._trainingjobs_path(namespace))
        items = body.get("items") or []
        resource_version = (body.get("metadata") or {}).get("resourceVersion", "")
        return items, resource_version

    async def watch_training_jobs(
        self,
        namespace: Optional[str] = None,
        resource_version: str = "",
        timeout_seconds: int = 300,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Stream raw watch events (``{"type": ..., "object": ...}``).

        The iterator ends when the server closes the stream.

        Raises:
            WatchExpired: resource_version is too old.
            KubeApiError: any other error status.
        """
        params = {
            "watch": "true",
            "allowWatchBookmarks": "true",
            "timeoutSeconds": str(timeout_seconds),
        }
        if resource_version:
            params["resourceVersion"] = resource_version

        async with self._http.stream(
            "GET", self._trainingjobs_path(namespace), params=params
        ) as response:
            if response.status_code != 200:
                await response.aread()
                raise self._error(response)

            async for line in response.aiter_lines():
                line = line.strip()
                if not line:
                    continue
                yield json.loads(line)

    # =========================================================================
    # Derived workloads
    # =========================================================================

    async def create_workload(self, workload: DerivedWorkload) -> Dict[str, Any]:
        """
        Create a derived workload. Returns the created object as the server sent it.

        Raises:
            CreateConflict: a workload with that name already exists.
            CreateFailure: any other failure.
        """
        path = _COLLECTIONS[workload.kind].format(namespace=workload.namespace)
        logger.debug(
            "Creating workload",
            kind=workload.kind.value,
            name=workload.name,
            namespace=workload.namespace
        )
        try:
            response = await self._http.post(path, json=workload.to_manifest())
        except httpx.RequestError as e:
            raise CreateFailure(0, type(e).__name__, str(e)) from e

        if response.status_code == 409:
            status = _json_body(response)
            raise CreateConflict(status.get("reason", "AlreadyExists"), status.get("message", ""))
        if response.is_error:
            error = self._error(response)
            raise CreateFailure(error.status_code, error.reason, error.message)
        return _json_body(response)

    # =========================================================================
    # Cluster state
    # =========================================================================

    async def list_nodes(self) -> List[Dict[str, Any]]:
        body = await self._get("/api/v1/nodes")
        return body.get("items") or []

    async def list_pods(self, namespace: Optional[str] = None) -> List[Dict[str, Any]]:
        path = f"/api/v1/namespaces/{namespace}/pods" if namespace else "/api/v1/pods"
        body = await self._get(
            path, params={"fieldSelector": "status.phase!=Succeeded,status.phase!=Failed"}
        )
        return body.get("items") or []

    # =========================================================================
    # Internals
    # =========================================================================

    async def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        response = await self._http.get(path, params=params)
        if response.is_error:
            raise self._error(response)
        return response.json()

    @staticmethod
    def _error(response: httpx.Response) -> KubeApiError:
        status = _json_body(response)
        reason = status.get("reason") or response.reason_phrase
        message = status.get("message", "")
        if response.status_code == 410:
            return WatchExpired(reason, message)
        return KubeApiError(response.status_code, reason, message)


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    """The response body as an object, or {} when it is not a JSON object."""
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
