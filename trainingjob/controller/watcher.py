"""
TrainingJob watcher.

Keeps a live view of TrainingJobs with list-then-watch and delivers Added,
Updated and Deleted callbacks to a handler, one at a time. Every delivered
object is decoded before dispatch; objects that are not TrainingJobs are
logged and skipped.

There is no periodic resync: callbacks fire only for observed changes.
"""

import asyncio
from contextlib import suppress
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

import httpx
import structlog
from pydantic import ValidationError

from trainingjob.core.errors import KubeApiError, ShapeViolation, WatchExpired
from trainingjob.core.models import EventType, TrainingJob
from trainingjob.monitoring.metrics import MetricsRecorder

logger = structlog.get_logger()


class EventHandler(Protocol):
    async def on_add(self, job: TrainingJob) -> Any:
        ...

    async def on_update(self, old: TrainingJob, new: TrainingJob) -> Any:
        ...

    async def on_delete(self, job: TrainingJob) -> Any:
        ...


def decode_training_job(obj: Any) -> TrainingJob:
    """
    Decode a raw API object into a TrainingJob.

    Raises:
        ShapeViolation: the object does not have the TrainingJob shape.
    """
    if not isinstance(obj, dict):
        raise ShapeViolation(f"expected an object, got {type(obj).__name__}", obj)
    try:
        return TrainingJob.model_validate(obj)
    except ValidationError as e:
        raise ShapeViolation(str(e), obj) from e


class EventWatcher:
    """
    List-then-watch loop over TrainingJobs.

    Args:
        client: Orchestration API client.
        handler: Receives ``on_add``, ``on_update`` and ``on_delete``.
        namespace: Namespace to watch; None watches all namespaces.
        resync_period: Must be 0. Periodic resync is not supported.
        watch_timeout: Server-side timeout of one watch request, in seconds.
        relist_delay: Pause before relisting after an error, in seconds.
    """

    def __init__(
        self,
        client,
        handler: EventHandler,
        namespace: Optional[str] = None,
        resync_period: float = 0,
        watch_timeout: int = 300,
        relist_delay: float = 1.0,
    ):
        if resync_period:
            raise ValueError("periodic resync is not supported; resync_period must be 0")

        self.client = client
        self.handler = handler
        self.namespace = namespace
        self.watch_timeout = watch_timeout
        self.relist_delay = relist_delay

        self.resource_version = ""
        self._cache: Dict[str, TrainingJob] = {}

    # =========================================================================
    # Cache
    # =========================================================================

    def get(self, namespace: str, name: str) -> Optional[TrainingJob]:
        return self._cache.get(f"{namespace}/{name}")

    def keys(self) -> List[str]:
        return sorted(self._cache)

    # =========================================================================
    # Loop
    # =========================================================================

    async def run(self, stop: asyncio.Event):
        """Watch until ``stop`` is set. An in-flight callback always completes."""
        logger.info("Watching TrainingJobs", namespace=self.namespace or "all")

        while not stop.is_set():
            try:
                await self._list(stop)
                while not stop.is_set():
                    await self._watch(stop)
            except WatchExpired:
                logger.info("Watch expired, relisting", resource_version=self.resource_version)
                MetricsRecorder.record_watch_restart("expired")
            except (httpx.HTTPError, KubeApiError, ValueError) as e:
                logger.warning("Watch failed, relisting", error=str(e))
                MetricsRecorder.record_watch_restart("error")
                with suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(stop.wait(), timeout=self.relist_delay)

        logger.info("Stopped watching TrainingJobs", cached=len(self._cache))

    async def _list(self, stop: asyncio.Event):
        items, resource_version = await self.client.list_training_jobs(self.namespace)

        # Replay the list against the cache: new, changed and vanished jobs.
        listed = set()
        for obj in items:
            if stop.is_set():
                return
            job = self._decode(obj)
            if job is None:
                # Still listed, so not vanished; the cached version stays.
                key = _object_key(obj)
                if key:
                    listed.add(key)
                continue
            listed.add(job.key)
            await self._upsert(job)

        for key in [k for k in self._cache if k not in listed]:
            if stop.is_set():
                return
            await self._dispatch(EventType.DELETED, self._cache.pop(key))

        self.resource_version = resource_version
        logger.debug("TrainingJobs listed", count=len(listed), resource_version=resource_version)

    async def _watch(self, stop: asyncio.Event):
        events = self.client.watch_training_jobs(
            self.namespace, self.resource_version, self.watch_timeout
        )
        delivered = 0
        try:
            while not stop.is_set():
                raw = await self._next(events, stop)
                if raw is None:
                    break
                delivered += 1
                await self._handle(raw)
        finally:
            await events.aclose()

        # An empty stream is re-watched only after a pause.
        if not delivered and not stop.is_set():
            logger.debug("Watch ended without events", resource_version=self.resource_version)
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop.wait(), timeout=self.relist_delay)

    async def _next(
        self, events: AsyncIterator[Dict[str, Any]], stop: asyncio.Event
    ) -> Optional[Dict[str, Any]]:
        """Next raw event, or None when the stream ends or ``stop`` is set."""
        next_event = asyncio.create_task(_anext(events))
        stopped = asyncio.create_task(stop.wait())
        try:
            await asyncio.wait({next_event, stopped}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopped.cancel()
            if not next_event.done():
                next_event.cancel()
                with suppress(asyncio.CancelledError):
                    await next_event

        if next_event.cancelled():
            return None
        return next_event.result()

    async def _handle(self, raw: Dict[str, Any]):
        event_type = raw.get("type")
        obj = raw.get("object")

        if event_type == "BOOKMARK":
            metadata = (obj or {}).get("metadata") or {}
            self.resource_version = metadata.get("resourceVersion", self.resource_version)
            return

        if event_type == "ERROR":
            status = obj or {}
            if status.get("code") == 410:
                raise WatchExpired(status.get("reason", "Expired"), status.get("message", ""))
            raise KubeApiError(
                status.get("code") or 500, status.get("reason", ""), status.get("message", "")
            )

        job = self._decode(obj)
        if job is None:
            return
        if job.metadata.resource_version:
            self.resource_version = job.metadata.resource_version

        if event_type in (EventType.ADDED.value, EventType.UPDATED.value):
            await self._upsert(job)
        elif event_type == EventType.DELETED.value:
            self._cache.pop(job.key, None)
            await self._dispatch(EventType.DELETED, job)
        else:
            self._reject(ShapeViolation(f"unknown watch event type {event_type!r}", raw))

    async def _upsert(self, job: TrainingJob):
        old = self._cache.get(job.key)
        self._cache[job.key] = job
        if old is None:
            await self._dispatch(EventType.ADDED, job)
        elif old.metadata.resource_version != job.metadata.resource_version:
            await self._dispatch(EventType.UPDATED, job, old)

    async def _dispatch(
        self, event_type: EventType, job: TrainingJob, old: Optional[TrainingJob] = None
    ):
        MetricsRecorder.record_event(event_type.name.lower())
        if event_type == EventType.ADDED:
            await self.handler.on_add(job)
        elif event_type == EventType.UPDATED:
            await self.handler.on_update(old, job)
        else:
            await self.handler.on_delete(job)

    def _decode(self, obj: Any) -> Optional[TrainingJob]:
        try:
            return decode_training_job(obj)
        except ShapeViolation as e:
            self._reject(e)
            return None

    @staticmethod
    def _reject(error: ShapeViolation):
        logger.error("Rejected object that is not a TrainingJob", error=str(error))
        MetricsRecorder.record_shape_violation()


def _object_key(obj: Any) -> Optional[str]:
    """``namespace/name`` of a raw object, if its metadata can be read."""
    metadata = obj.get("metadata") if isinstance(obj, dict) else None
    if not isinstance(metadata, dict) or not metadata.get("name"):
        return None
    return f"{metadata.get('namespace') or 'default'}/{metadata['name']}"


async def _anext(events: AsyncIterator[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    try:
        return await events.__anext__()
    except StopAsyncIteration:
        return None
