# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Pipelined values.

A :class:`PipelinedValue` stands for a result that may not exist yet. Attribute
access, indexing and :meth:`PipelinedValue.pipe` record steps without resolving
anything; :meth:`PipelinedValue.result` hands the root and the whole step chain
to a transport in one call, so a remote transport can collapse a dependent
chain into a single round trip. Work that should only start on resolution is
wrapped with :meth:`PipelinedValue.defer`; any other callable is a plain value.

:module: pipelining
:synopsis: Deferred value handles with chained access
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------------
# Steps
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class PipelineStep:
    """One recorded operation: ``attr`` (name), ``item`` (key) or ``call`` (transform)."""

    kind: str
    argument: Any

    ATTR = "attr"
    ITEM = "item"
    CALL = "call"

    def apply(self, value: Any) -> Any:
        if self.kind == self.CALL:
            return self.argument(value)
        if self.kind == self.ITEM:
            return value[self.argument]
        return _get_attribute(value, self.argument)


@dataclass(frozen=True)
class Deferred:
    """Zero-argument callable run when its handle resolves."""

    call: Callable[[], Any]


def _get_attribute(value: Any, name: str) -> Any:
    # || Entity field values and plain mappings are addressed by attribute too
    data = getattr(value, "data", None)
    if isinstance(data, Mapping) and name in data:
        return data[name]
    if isinstance(value, Mapping):
        return value[name]
    return getattr(value, name)


# ----------------------------------------------------------------------------
# Transports
# ----------------------------------------------------------------------------

class PipelineTransport(ABC):
    """Resolves a root source and applies a chain of steps to it."""

    @abstractmethod
    def execute(self, source: Any, steps: Sequence[PipelineStep]) -> Any:
        """Return the value at the end of ``steps`` starting from ``source``."""


class LocalPipelineTransport(PipelineTransport):
    """Resolves the root in-process, then applies each step in order."""

    def execute(self, source: Any, steps: Sequence[PipelineStep]) -> Any:
        value = resolve_value(resolve_source(source))
        for step in steps:
            value = resolve_value(step.apply(value))
        return value


_LOCAL_TRANSPORT = LocalPipelineTransport()


# ----------------------------------------------------------------------------
# Handle
# ----------------------------------------------------------------------------

class PipelinedValue:
    """
    Deferred handle over a ``Future``, a :class:`Deferred` call or a plain value.

    :class: PipelinedValue
    :synopsis: Chainable, lazily resolved value
    """

    __slots__ = ("_source", "_steps", "_transport", "_lock", "_resolved", "_value", "_error")

    def __init__(
        self,
        source: Any,
        *,
        transport: Optional[PipelineTransport] = None,
        steps: Tuple[PipelineStep, ...] = (),
    ):
        object.__setattr__(self, "_source", source)
        object.__setattr__(self, "_steps", steps)
        object.__setattr__(self, "_transport", transport or _LOCAL_TRANSPORT)
        object.__setattr__(self, "_lock", threading.Lock())
        object.__setattr__(self, "_resolved", False)
        object.__setattr__(self, "_value", None)
        object.__setattr__(self, "_error", None)

    @classmethod
    def defer(cls, call: Callable[[], Any], *, transport: Optional[PipelineTransport] = None) -> "PipelinedValue":
        """Handle whose root is ``call()``, run when the handle resolves."""
        return cls(Deferred(call), transport=transport)

    def _extend(self, step: PipelineStep) -> "PipelinedValue":
        return PipelinedValue(self._source, transport=self._transport, steps=self._steps + (step,))

    @property
    def steps(self) -> Tuple[PipelineStep, ...]:
        return self._steps

    def pipe(self, transform: Callable[[Any], Any]) -> "PipelinedValue":
        """Record a transform applied to the eventual value."""
        return self._extend(PipelineStep(PipelineStep.CALL, transform))

    def __getattr__(self, name: str) -> "PipelinedValue":
        if name.startswith("__") and name.endswith("__"):
            raise AttributeError(name)
        return self._extend(PipelineStep(PipelineStep.ATTR, name))

    def __getitem__(self, key: Any) -> "PipelinedValue":
        return self._extend(PipelineStep(PipelineStep.ITEM, key))

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("PipelinedValue is immutable")

    def result(self, timeout: Optional[float] = None) -> Any:
        """
        Resolve the handle.

        The transport receives the root and the full step chain at once. The
        outcome (value or exception) is memoised per handle.
        """
        with self._lock:
            if not self._resolved:
                source = self._source
                if timeout is not None and isinstance(source, Future):
                    source.result(timeout=timeout)
                try:
                    object.__setattr__(self, "_value", self._transport.execute(source, self._steps))
                except Exception as exc:
                    object.__setattr__(self, "_error", exc)
                object.__setattr__(self, "_resolved", True)
        if self._error is not None:
            raise self._error
        return self._value

    def to_future(self) -> Future:
        """A completed-on-resolution ``Future`` for continuation-style callers."""
        future: Future = Future()
        source = self._source

        def settle(_: Any = None) -> None:
            try:
                future.set_result(self.result())
            except Exception as exc:
                future.set_exception(exc)

        if isinstance(source, Future) and not source.done():
            source.add_done_callback(settle)
        else:
            settle()
        return future

    def add_done_callback(self, callback: Callable[[Future], Any]) -> None:
        self.to_future().add_done_callback(callback)

    def __repr__(self) -> str:
        path = "".join(
            f".{step.argument}" if step.kind == PipelineStep.ATTR
            else f"[{step.argument!r}]" if step.kind == PipelineStep.ITEM
            else ".pipe(...)"
            for step in self._steps
        )
        return f"<PipelinedValue{path}>"


# ----------------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------------

def resolve_value(value: Any, timeout: Optional[float] = None) -> Any:
    """Unwrap ``PipelinedValue`` and ``Future`` results; other values pass through."""
    while True:
        if isinstance(value, PipelinedValue):
            value = value.result(timeout=timeout)
        elif isinstance(value, Future):
            value = value.result(timeout=timeout)
        else:
            return value


def pipelined(source: Any, transport: Optional[PipelineTransport] = None) -> PipelinedValue:
    if isinstance(source, PipelinedValue):
        return source
    return PipelinedValue(source, transport=transport)


def resolve_source(source: Any) -> Any:
    """Run a :class:`Deferred` root; anything else, callables included, is returned as is."""
    if isinstance(source, Deferred):
        return source.call()
    return source
