# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Event bus tests.

Tests cover:
- Pattern matching
- Handler ordering, unsubscribe and asynchronous handlers
- Legacy payload normalization and wire shape
- History filtering, replay and bounds
- Handler errors
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import timedelta

import pytest

from graphcascade import DBEvent, Entity, EventBus, matches_pattern
from graphcascade.cascade_events import emit_lifecycle, object_ref


class TestPatterns:
    """Glob-like event matching."""

    @pytest.mark.parametrize(
        "pattern, name, expected",
        [
            ("Post.created", "Post.created", True),
            ("Post.*", "Post.created", True),
            ("*.created", "Post.created", True),
            ("*", "anything:at.all", True),
            ("cascade:*", "cascade:progress", True),
            ("Post.*", "Author.created", False),
            ("*.created", "Post.deleted", False),
            ("Post.*", "Post.created.extra", False),
            ("cascade:*", "resolve:complete", False),
        ],
    )
    def test_matches(self, pattern, name, expected):
        assert matches_pattern(pattern, name) is expected


class TestEmit:
    """Emission and subscriptions."""

    def test_handlers_run_in_subscription_order(self, events):
        seen = []
        events.on("Post.*", lambda event: seen.append(("first", event.event)))
        events.on("*.created", lambda event: seen.append(("second", event.event)))
        events.on("Author.*", lambda event: seen.append(("never", event.event)))

        events.emit("Post.created", {"title": "Hello"})

        assert seen == [("first", "Post.created"), ("second", "Post.created")]

    def test_unsubscribe(self, events):
        seen = []
        unsubscribe = events.on("*", seen.append)
        events.emit("a.b")
        unsubscribe()
        events.emit("a.b")
        assert len(seen) == 1
        assert events.subscriber_count() == 0

    def test_future_returning_handler_is_awaited(self, events):
        order = []
        release = threading.Event()

        def slow(event):
            future: Future = Future()

            def finish():
                release.wait(timeout=5)
                order.append("slow")
                future.set_result(None)

            threading.Thread(target=finish).start()
            release.set()
            return future

        events.on("job.done", slow)
        events.on("job.done", lambda event: order.append("fast"))
        events.emit("job.done")

        assert order == ["slow", "fast"]

    def test_legacy_payload(self, events):
        record = events.emit("Post.created", {"title": "Hello"})
        assert record.event == "Post.created"
        assert record.type == "Post.created"
        assert record.object_data == {"title": "Hello"}
        assert record.data == {"title": "Hello"}

    def test_legacy_mapping_shape(self):
        record = DBEvent.model_validate({"type": "Post.created", "data": 5, "url": "Post/1"})
        assert record.event == "Post.created"
        assert record.object_data == {"value": 5}
        assert record.object == "Post/1"

    def test_options_form_and_wire(self, events):
        record = events.emit(
            {"event": "Post.published", "actor": "user/1", "object": "Post/1", "objectData": {"title": "Hi"}}
        )
        wire = record.to_wire()
        assert wire["event"] == "Post.published"
        assert wire["actor"] == "user/1"
        assert wire["objectData"] == {"title": "Hi"}
        assert "result" not in wire
        assert "timestamp" in wire

    def test_handler_error_propagates(self, events, caplog):
        def broken(event):
            raise RuntimeError("boom")

        events.on("*", broken)
        with pytest.raises(RuntimeError, match="boom"):
            events.emit("x.y")
        assert "Event handler" in caplog.text
        assert len(events) == 1


class TestHistory:
    """History listing and replay."""

    def test_list_filters(self, events):
        events.emit("Post.created", actor="alice", object="Post/1")
        events.emit("Post.updated", actor="bob", object="Post/1")
        events.emit("Author.created", actor="alice", object="Author/1")

        assert [e.event for e in events.list(event="*.created")] == ["Post.created", "Author.created"]
        assert [e.event for e in events.list(actor="bob")] == ["Post.updated"]
        assert [e.event for e in events.list(object="Post/1")] == ["Post.created", "Post.updated"]
        assert len(events.list(limit=2)) == 2

    def test_time_window(self, events):
        first = events.emit("a.b")
        events.emit("a.c")
        assert events.list(until=first.timestamp)[0].event == "a.b"
        assert events.list(since=first.timestamp + timedelta(days=1)) == []

    def test_replay(self, events):
        events.emit("Post.created", actor="alice")
        events.emit("Post.deleted", actor="alice")
        events.emit("Post.created", actor="bob")

        replayed = []
        count = events.replay(replayed.append, event="Post.created")
        assert count == 2
        assert [e.actor for e in replayed] == ["alice", "bob"]

    def test_history_bound_and_clear(self):
        bus = EventBus(max_history=3)
        for index in range(5):
            bus.emit(f"tick.{index}")
        assert [e.event for e in bus.list()] == ["tick.2", "tick.3", "tick.4"]
        bus.clear()
        assert len(bus) == 0

    def test_concurrent_emit(self, events):
        barrier = threading.Barrier(8)
        counter = []
        lock = threading.Lock()

        def handler(event):
            with lock:
                counter.append(event.event)

        events.on("load.*", handler)

        def emit(index: int) -> None:
            barrier.wait()
            for step in range(25):
                events.emit(f"load.{index}-{step}")

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(emit, range(8)))

        assert len(events) == 200
        assert len(counter) == 200


class TestLifecycle:
    """Lifecycle helper emits the generic and typed events."""

    def test_emit_lifecycle(self, events):
        entity = Entity(id="p1", type="Post", data={"title": "Hi"})
        emit_lifecycle(events, "created", entity, actor="user/1")

        generic, typed = events.list()
        assert generic.event == "entity:created"
        assert typed.event == "Post.created"
        assert typed.object == object_ref("Post", "p1") == "Post/p1"
        assert typed.object_data == {"$id": "p1", "$type": "Post", "title": "Hi"}
        assert typed.actor == "user/1"

    def test_no_bus_is_a_no_op(self):
        emit_lifecycle(None, "created", Entity(id="p1", type="Post"))
