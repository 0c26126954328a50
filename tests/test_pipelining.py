# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Pipelined value tests.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, List, Sequence

import pytest

from graphcascade import (
    Entity,
    InMemoryStorageProvider,
    PipelinedValue,
    PipelineTransport,
    pipelined,
    resolve_value,
)
from graphcascade.pipelining import LocalPipelineTransport, PipelineStep
from graphcascade.providers import PipelinedStorageProvider


class RecordingTransport(PipelineTransport):
    """Counts executions and the chains it receives."""

    def __init__(self) -> None:
        self.chains: List[Sequence[PipelineStep]] = []
        self._local = LocalPipelineTransport()

    def execute(self, source: Any, steps: Sequence[PipelineStep]) -> Any:
        self.chains.append(tuple(steps))
        return self._local.execute(source, steps)


class TestPipelinedValue:
    """Chaining without resolution."""

    def test_steps_are_recorded_lazily(self):
        calls = []

        def load():
            calls.append(1)
            return {"author": {"name": "Ada"}}

        handle = PipelinedValue.defer(load)
        chained = handle.author["name"].pipe(str.upper)

        assert calls == []
        assert [step.kind for step in chained.steps] == ["attr", "item", "call"]
        assert chained.result() == "ADA"
        assert calls == [1]

    def test_transport_receives_whole_chain_once(self):
        transport = RecordingTransport()
        handle = pipelined({"a": {"b": {"c": 3}}}, transport=transport)
        assert handle.a.b.c.result() == 3
        assert len(transport.chains) == 1
        assert [step.argument for step in transport.chains[0]] == ["a", "b", "c"]

    def test_result_is_memoised(self):
        transport = RecordingTransport()
        handle = PipelinedValue.defer(lambda: 5, transport=transport)
        assert handle.result() == 5
        assert handle.result() == 5
        assert len(transport.chains) == 1

    def test_errors_are_memoised(self):
        calls = []

        def fail():
            calls.append(1)
            raise KeyError("missing")

        handle = PipelinedValue.defer(fail)
        with pytest.raises(KeyError):
            handle.result()
        with pytest.raises(KeyError):
            handle.result()
        assert calls == [1]

    def test_callable_values_are_not_invoked(self):
        class Handler:
            def __call__(self):
                raise AssertionError("handler invoked during resolution")

        handler = Handler()
        assert PipelinedValue(handler).result() is handler
        assert PipelinedValue(len).result() is len
        assert pipelined({"on_save": handler}).on_save.result() is handler

    def test_deferred_call_runs_per_chain(self):
        calls = []

        def load():
            calls.append(1)
            return {"name": "Ada"}

        handle = PipelinedValue.defer(load)
        assert handle.name.result() == "Ada"
        assert handle.result() == {"name": "Ada"}
        assert calls == [1, 1]

    def test_future_source(self):
        with ThreadPoolExecutor(max_workers=1) as pool:
            handle = PipelinedValue(pool.submit(lambda: [10, 20, 30]))
            assert handle[1].result(timeout=5) == 20

    def test_entity_fields_by_attribute(self):
        entity = Entity(id="s1", type="Startup", data={"name": "Acme"})
        assert pipelined(entity).name.result() == "Acme"
        assert pipelined(entity).id.result() == "s1"

    def test_immutable(self):
        handle = PipelinedValue(1)
        with pytest.raises(AttributeError):
            handle.value = 2

    def test_dunder_lookup_is_not_pipelined(self):
        handle = PipelinedValue(1)
        with pytest.raises(AttributeError):
            handle.__wrapped__

    def test_to_future_and_callbacks(self):
        source: Future = Future()
        handle = PipelinedValue(source).pipe(lambda value: value * 2)
        seen = []
        handle.add_done_callback(lambda future: seen.append(future.result()))
        assert seen == []
        source.set_result(21)
        assert seen == [42]

    def test_repr(self):
        assert repr(PipelinedValue(None).a["b"].pipe(len)) == "<PipelinedValue.a['b'].pipe(...)>"

    def test_pipelined_is_idempotent(self):
        handle = PipelinedValue(1)
        assert pipelined(handle) is handle


class TestResolveValue:
    """resolve_value unwraps nested deferred values."""

    def test_plain_value(self):
        assert resolve_value(3) == 3

    def test_nested(self):
        inner: Future = Future()
        inner.set_result(PipelinedValue.defer(lambda: "done"))
        assert resolve_value(PipelinedValue(inner)) == "done"


class TestPipelinedStorage:
    """Storage calls deferred behind handles."""

    def test_calls_are_deferred(self):
        inner = InMemoryStorageProvider()
        storage = PipelinedStorageProvider(inner)

        handle = storage.create("Post", {"title": "Hello"}, "p1")
        assert inner.count() == 0
        created = handle.result()
        assert created.id == "p1"
        assert inner.count() == 1

        assert storage.get("Post", "p1").title.result() == "Hello"
        assert storage.find("Post", {"title": "Hello"}).pipe(len).result() == 1
        assert storage.update("Post", "p1", {"title": "Bye"}).title.result() == "Bye"
        assert storage.delete("Post", "p1").result() is True
