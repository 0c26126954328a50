# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Storage and generation provider interfaces with bundled implementations.

:module: providers
:synopsis: StorageProvider / GenerationProvider ABCs, in-memory storage, placeholder generation
"""

from __future__ import annotations

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .cascade_models import Entity, utc_now
from .cascade_parser import FieldDescriptor
from .constants import CascadeConstants, ErrorMessages, FieldKind, PrimitiveType
from .errors import CascadeGraphError, NotFoundError, StorageError
from .generation_context import GenerationContext
from .pipelining import PipelinedValue, PipelineTransport, resolve_value

logger = logging.getLogger(__name__)

GeneratedData = Union[Mapping[str, Any], List[Mapping[str, Any]]]


# =============================================================================
# Storage
# =============================================================================

class StorageProvider(ABC):
    """
    Persistence boundary.

    ``get`` returns None for a missing entity; implementations raise
    :class:`~graphcascade.errors.StorageError` (or let their own errors
    propagate) only for genuine failures. Any method may return a plain value,
    a ``Future`` or a :class:`PipelinedValue`.
    """

    @abstractmethod
    def create(
        self,
        entity_type: str,
        data: Mapping[str, Any],
        entity_id: Optional[str] = None,
        meta: Optional[Mapping[str, Any]] = None,
    ) -> Entity:
        """Persist a new entity and return it."""

    @abstractmethod
    def get(self, entity_type: str, entity_id: str) -> Optional[Entity]:
        """Return the entity or None."""

    @abstractmethod
    def find(self, entity_type: str, where: Optional[Mapping[str, Any]] = None) -> List[Entity]:
        """Return entities of a type whose data matches ``where``."""

    @abstractmethod
    def update(self, entity_type: str, entity_id: str, data: Mapping[str, Any]) -> Entity:
        """Merge ``data`` into an entity. Raises NotFoundError when it does not exist."""

    @abstractmethod
    def delete(self, entity_type: str, entity_id: str) -> bool:
        """Remove an entity. Returns False when it did not exist."""


def call_storage(operation: str, entity_type: str, method: Callable[..., Any], *args: Any) -> Any:
    """
    Invoke a storage method and unwrap its (possibly deferred) result.

    Errors that are not already package errors are wrapped in
    :class:`~graphcascade.errors.StorageError`; NotFoundError passes through.
    """
    try:
        return resolve_value(method(*args))
    except CascadeGraphError:
        raise
    except Exception as exc:
        raise StorageError(
            ErrorMessages.STORAGE_FAILED.format(operation=operation, entity_type=entity_type, error=exc),
            entity_type=entity_type,
            cause=exc,
        ) from exc


def matches_where(entity: Entity, where: Optional[Mapping[str, Any]]) -> bool:
    """
    Equality match of ``where`` against entity data.

    A list-valued entity field matches when it contains the expected value; a
    list-valued expectation matches when the field equals any member.
    """
    if not where:
        return True
    for key, expected in where.items():
        actual = entity.id if key == "$id" else entity.data.get(key)
        if isinstance(actual, (list, tuple)) and not isinstance(expected, (list, tuple)):
            if expected not in actual:
                return False
        elif isinstance(expected, (list, tuple)) and not isinstance(actual, (list, tuple)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


class InMemoryStorageProvider(StorageProvider):
    """
    Thread-safe dictionary-backed storage.

    Entities are copied on the way in and out so callers never share mutable
    state with the store.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entities: Dict[str, Dict[str, Entity]] = {}

    def create(self, entity_type, data, entity_id=None, meta=None) -> Entity:
        entity = Entity(
            id=entity_id or uuid.uuid4().hex,
            type=entity_type,
            data=dict(data),
            meta=dict(meta or {}),
        )
        with self._lock:
            self._entities.setdefault(entity_type, {})[entity.id] = entity
        return entity.model_copy(deep=True)

    def get(self, entity_type, entity_id) -> Optional[Entity]:
        with self._lock:
            entity = self._entities.get(entity_type, {}).get(entity_id)
            return entity.model_copy(deep=True) if entity is not None else None

    def find(self, entity_type, where=None) -> List[Entity]:
        with self._lock:
            candidates = list(self._entities.get(entity_type, {}).values())
            return [entity.model_copy(deep=True) for entity in candidates if matches_where(entity, where)]

    def update(self, entity_type, entity_id, data) -> Entity:
        with self._lock:
            current = self._entities.get(entity_type, {}).get(entity_id)
            if current is None:
                raise NotFoundError(entity_type, entity_id)
            updated = current.model_copy(update={"data": {**current.data, **dict(data)}, "updated_at": utc_now()})
            self._entities[entity_type][entity_id] = updated
            return updated.model_copy(deep=True)

    def delete(self, entity_type, entity_id) -> bool:
        with self._lock:
            return self._entities.get(entity_type, {}).pop(entity_id, None) is not None

    def count(self, entity_type: Optional[str] = None) -> int:
        with self._lock:
            if entity_type is not None:
                return len(self._entities.get(entity_type, {}))
            return sum(len(bucket) for bucket in self._entities.values())


class PipelinedStorageProvider(StorageProvider):
    """
    Wraps a storage provider so every call returns a :class:`PipelinedValue`.

    Calls are deferred until the handle is resolved, which lets a transport
    batch dependent reads.
    """

    def __init__(self, inner: StorageProvider, transport: Optional[PipelineTransport] = None):
        self._inner = inner
        self._transport = transport

    def _defer(self, method: Callable[..., Any], *args: Any) -> PipelinedValue:
        return PipelinedValue.defer(lambda: method(*args), transport=self._transport)

    def create(self, entity_type, data, entity_id=None, meta=None):
        return self._defer(self._inner.create, entity_type, data, entity_id, meta)

    def get(self, entity_type, entity_id):
        return self._defer(self._inner.get, entity_type, entity_id)

    def find(self, entity_type, where=None):
        return self._defer(self._inner.find, entity_type, where)

    def update(self, entity_type, entity_id, data):
        return self._defer(self._inner.update, entity_type, entity_id, data)

    def delete(self, entity_type, entity_id):
        return self._defer(self._inner.delete, entity_type, entity_id)


# =============================================================================
# Generation
# =============================================================================

class GenerationProvider(ABC):
    """
    Abstract base class for generation backends.

    Implementations return field data for new entities of ``target_type``: one
    mapping, or a list of mappings when ``context.is_array`` is set. When
    ``count`` is None for an array the provider chooses how many to produce.
    """

    name: str = "unknown"

    @abstractmethod
    def generate(
        self,
        target_type: str,
        context: GenerationContext,
        count: Optional[int] = None,
    ) -> GeneratedData:
        """Produce data for one or more new ``target_type`` entities."""


class CallableGenerationProvider(GenerationProvider):
    """Adapts ``fn(target_type, context, count)`` to the provider interface."""

    name = "callable"

    def __init__(self, fn: Callable[[str, GenerationContext, Optional[int]], GeneratedData]):
        self._fn = fn

    def generate(self, target_type, context, count=None):
        return self._fn(target_type, context, count)


class PlaceholderGenerationProvider(GenerationProvider):
    """
    Deterministic, offline generator.

    Fills every plain field of the target schema from the context: strings get
    a readable description naming the parent, enums their first value and
    generative templates their placeholders substituted from parent data.
    """

    name = "placeholder"

    def __init__(self, default_count: int = CascadeConstants.DEFAULT_ARRAY_COUNT):
        self.default_count = default_count

    def generate(self, target_type, context, count=None):
        if not context.is_array:
            return self._one(target_type, context, 0)
        total = self.default_count if count is None else count
        return [self._one(target_type, context, index) for index in range(total)]

    def _one(self, target_type: str, context: GenerationContext, index: int) -> Dict[str, Any]:
        schema = context.target_schema
        label = self._label(context, index)
        if schema is None:
            return {"name": label, "description": context.prompt or label}
        data: Dict[str, Any] = {}
        for name, desc in schema.fields.items():
            value = self._value(desc, context, label)
            if value is not None:
                data[name] = value
        return data

    @staticmethod
    def _label(context: GenerationContext, index: int) -> str:
        parent = next(iter(context.owner_fields.values()), context.owner_id)
        suffix = f" #{index + 1}" if context.is_array else ""
        return f"{context.target_type}{suffix} for {context.owner_type} {parent}"

    def _value(self, desc: FieldDescriptor, context: GenerationContext, label: str) -> Any:
        if desc.default is not None:
            return desc.default
        if desc.kind == FieldKind.ENUM:
            return desc.enum_values[0] if desc.enum_values else None
        if desc.kind == FieldKind.GENERATIVE:
            text = desc.template or ""
            for var in desc.template_vars:
                text = text.replace("{" + var + "}", str(context.owner_fields.get(var, var)))
            return text
        if desc.kind != FieldKind.FIELD:
            return None
        if desc.primitive == PrimitiveType.OBJECT:
            return {child.name: self._value(child, context, label) for child in desc.nested}
        if desc.primitive == PrimitiveType.BOOLEAN:
            return False
        if desc.primitive in (PrimitiveType.NUMBER, PrimitiveType.INTEGER):
            return 0
        if desc.primitive in (PrimitiveType.DATE, PrimitiveType.DATETIME):
            return None
        value = f"{desc.description or desc.name}: {label}"
        return [value] if desc.is_array else value
