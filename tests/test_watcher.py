"""
Tests for the TrainingJob watcher.
"""

import asyncio

import httpx
import pytest

from trainingjob.core.errors import KubeApiError, ShapeViolation
from trainingjob.controller.watcher import EventWatcher, decode_training_job


def event(event_type, obj):
    return {"type": event_type, "object": obj}


async def run_until_exhausted(watcher, client):
    """Run the watcher until the fake client has served every stream, then stop it."""
    stop = asyncio.Event()
    task = asyncio.create_task(watcher.run(stop))
    await asyncio.wait_for(client.exhausted.wait(), timeout=2)
    stop.set()
    await asyncio.wait_for(task, timeout=2)


class TestList:
    """Tests for the initial list and relists."""

    async def test_list_replays_as_adds(self, fake_client, handler, make_job):
        fake_client.lists = [([make_job(name="bert"), make_job(name="gpt")], "5")]
        watcher = EventWatcher(fake_client, handler)

        await run_until_exhausted(watcher, fake_client)

        assert handler.calls == [
            ("add", "ml/bert", "100"),
            ("add", "ml/gpt", "100"),
        ]
        assert watcher.keys() == ["ml/bert", "ml/gpt"]
        assert watcher.get("ml", "bert").name == "bert"
        assert fake_client.watch_calls == ["5"]

    async def test_relist_after_expired_watch(self, fake_client, handler, make_job):
        """A 410 relists; jobs gone from the new list are delivered as deletes."""
        fake_client.lists = [
            ([make_job(resource_version="1")], "1"),
            ([], "9"),
        ]
        fake_client.streams = [[event("ERROR", {"code": 410, "reason": "Expired"})]]
        watcher = EventWatcher(fake_client, handler)

        await run_until_exhausted(watcher, fake_client)

        assert handler.calls == [
            ("add", "ml/bert", "1"),
            ("delete", "ml/bert", "1"),
        ]
        assert fake_client.list_calls == 2
        assert fake_client.watch_calls == ["1", "9"]

    async def test_relist_keeps_job_whose_new_version_is_rejected(
        self, fake_client, handler, make_job
    ):
        """A listed job that fails to decode still exists and is not delivered as deleted."""
        broken = make_job(resource_version="2")
        broken["spec"]["worker"]["parallelism"] = "eight"
        fake_client.lists = [
            ([make_job(resource_version="1")], "1"),
            ([broken], "2"),
        ]
        fake_client.streams = [[event("ERROR", {"code": 410, "reason": "Expired"})]]
        watcher = EventWatcher(fake_client, handler)

        await run_until_exhausted(watcher, fake_client)

        assert handler.calls == [("add", "ml/bert", "1")]
        assert watcher.get("ml", "bert").metadata.resource_version == "1"
        assert fake_client.list_calls == 2

    async def test_relist_after_list_error(self, fake_client, handler, make_job):
        fake_client.lists = [
            (KubeApiError(500, "InternalError"), ""),
            ([make_job()], "2"),
        ]
        watcher = EventWatcher(fake_client, handler, relist_delay=0)

        await run_until_exhausted(watcher, fake_client)

        assert handler.calls == [("add", "ml/bert", "100")]
        assert fake_client.list_calls == 2

    async def test_relist_after_transport_error(self, fake_client, handler):
        fake_client.streams = [[httpx.ConnectError("connection reset")]]
        watcher = EventWatcher(fake_client, handler, relist_delay=0)

        await run_until_exhausted(watcher, fake_client)

        assert fake_client.list_calls == 2
        assert handler.calls == []


class TestWatch:
    """Tests for watch event handling."""

    async def test_add_update_delete(self, fake_client, handler, make_job):
        fake_client.streams = [[
            event("ADDED", make_job(resource_version="2")),
            event("MODIFIED", make_job(resource_version="3", worker=16)),
            event("DELETED", make_job(resource_version="4")),
        ]]
        watcher = EventWatcher(fake_client, handler)

        await run_until_exhausted(watcher, fake_client)

        assert handler.calls == [
            ("add", "ml/bert", "2"),
            ("update", "ml/bert", "2", "3"),
            ("delete", "ml/bert", "4"),
        ]
        assert watcher.keys() == []
        # The stream ended, so the watcher resumed from the last version seen.
        assert fake_client.watch_calls == ["1", "4"]

    async def test_repeated_add_is_delivered_once(self, fake_client, handler, make_job):
        fake_client.streams = [[
            event("ADDED", make_job(resource_version="2")),
            event("ADDED", make_job(resource_version="2")),
        ]]
        watcher = EventWatcher(fake_client, handler)

        await run_until_exhausted(watcher, fake_client)

        assert handler.calls == [("add", "ml/bert", "2")]

    async def test_bookmark_advances_resource_version(self, fake_client, handler):
        fake_client.streams = [[event("BOOKMARK", {"metadata": {"resourceVersion": "7"}})]]
        watcher = EventWatcher(fake_client, handler)

        await run_until_exhausted(watcher, fake_client)

        assert handler.calls == []
        assert fake_client.watch_calls == ["1", "7"]

    async def test_objects_of_wrong_shape_are_skipped(self, fake_client, handler, make_job):
        """Objects that are not TrainingJobs are rejected without stopping the watch."""
        fake_client.streams = [[
            event("ADDED", {"kind": "Pod", "metadata": {"name": "not-a-job"}}),
            event("ADDED", "garbage"),
            event("ADDED", {"metadata": {}}),
            event("ADDED", {"metadata": {"name": "x"}, "spec": {"worker": "eight"}}),
            event("WHATEVER", make_job(name="gpt")),
            event("ADDED", make_job()),
        ]]
        watcher = EventWatcher(fake_client, handler)

        await run_until_exhausted(watcher, fake_client)

        assert handler.calls == [("add", "ml/bert", "100")]

    async def test_empty_stream_is_rewatched_after_delay(self, fake_client, handler):
        fake_client.streams = [[], []]
        watcher = EventWatcher(fake_client, handler, relist_delay=30)
        stop = asyncio.Event()
        task = asyncio.create_task(watcher.run(stop))

        await asyncio.sleep(0.05)
        assert fake_client.watch_calls == ["1"]
        assert not fake_client.exhausted.is_set()

        stop.set()
        await asyncio.wait_for(task, timeout=2)
        assert fake_client.watch_calls == ["1"]

    async def test_stop_while_waiting(self, fake_client, handler):
        """Setting stop while the watch is idle returns promptly."""
        watcher = EventWatcher(fake_client, handler)
        stop = asyncio.Event()
        task = asyncio.create_task(watcher.run(stop))

        await asyncio.wait_for(fake_client.exhausted.wait(), timeout=2)
        stop.set()

        await asyncio.wait_for(task, timeout=2)
        assert task.done() and task.exception() is None

    async def test_already_stopped(self, fake_client, handler):
        stop = asyncio.Event()
        stop.set()

        await EventWatcher(fake_client, handler).run(stop)

        assert fake_client.list_calls == 0


class TestWatcherSetup:

    def test_resync_is_rejected(self, fake_client, handler):
        with pytest.raises(ValueError, match="resync"):
            EventWatcher(fake_client, handler, resync_period=30)

    def test_decode_rejects_non_objects(self):
        with pytest.raises(ShapeViolation):
            decode_training_job(["not", "a", "job"])

    def test_decode_accepts_list_items_without_kind(self, make_job):
        raw = make_job()
        del raw["kind"], raw["apiVersion"]

        assert decode_training_job(raw).key == "ml/bert"
