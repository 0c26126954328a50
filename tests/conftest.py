# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and shared fixtures for GraphCascade tests.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Generator, List, Optional

import pytest

from graphcascade import (
    CascadeSession,
    EventBus,
    GenerationContext,
    InMemoryStorageProvider,
    PlaceholderGenerationProvider,
    SchemaRegistry,
)


class CountingGenerationProvider(PlaceholderGenerationProvider):
    """Placeholder generator that records every call it receives."""

    name = "counting"

    def __init__(self, default_count: int = 3, fail_times: int = 0, delay: Optional[threading.Event] = None):
        super().__init__(default_count=default_count)
        self.calls: List[Dict[str, Any]] = []
        self.fail_times = fail_times
        self.delay = delay
        self._lock = threading.Lock()

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.calls)

    def generate(self, target_type: str, context: GenerationContext, count=None):
        with self._lock:
            self.calls.append({"target_type": target_type, "context": context, "count": count})
            should_fail = self.fail_times > 0
            if should_fail:
                self.fail_times -= 1
        if self.delay is not None:
            self.delay.wait(timeout=5)
        if should_fail:
            raise RuntimeError("provider unavailable")
        return super().generate(target_type, context, count)


@pytest.fixture(autouse=True)
def global_registry_cleanup():
    """
    Clean up the default schema registry before and after EVERY test.

    Tests that register through the module-level helpers would otherwise leak
    schemas into each other.
    """
    from graphcascade import clear_registry
    clear_registry()

    yield

    from graphcascade import clear_registry
    clear_registry()


@pytest.fixture
def storage() -> InMemoryStorageProvider:
    return InMemoryStorageProvider()


@pytest.fixture
def generator() -> CountingGenerationProvider:
    return CountingGenerationProvider()


@pytest.fixture
def registry() -> SchemaRegistry:
    return SchemaRegistry()


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def session(
    storage: InMemoryStorageProvider,
    generator: CountingGenerationProvider,
    registry: SchemaRegistry,
    events: EventBus,
) -> Generator[CascadeSession, None, None]:
    """Session wired to the shared storage, generator, registry and bus fixtures."""
    cascade_session = CascadeSession(storage=storage, generator=generator, registry=registry, events=events)
    yield cascade_session
    cascade_session.close()
