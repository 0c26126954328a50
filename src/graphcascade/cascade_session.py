# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Session facade over schemas, storage, generation and events.

A :class:`CascadeSession` owns one schema registry, one storage provider, one
generation provider and one event bus. CRUD calls validate data against the
registered schema and emit lifecycle events; relationship reads go through the
:class:`~graphcascade.cascade_resolver.CascadeResolver`.

:module: cascade_session
:synopsis: Session for defining schemas and working with cascading entities
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .cascade_events import EventBus, emit_lifecycle, object_ref
from .cascade_models import EdgeRecord, Entity
from .cascade_resolver import CascadeResolver
from .cascade_schema import EntitySchema, SchemaRegistry, create_edge_records, validate_entity_data
from .constants import CascadeConstants, ErrorMessages, EventConstants, SchemaConstants, SimilarityConstants
from .dependency_graph import DependencyGraph, build_dependency_graph
from .errors import NotFoundError, SessionClosedError, ValidationError
from .providers import (
    GenerationProvider,
    InMemoryStorageProvider,
    PlaceholderGenerationProvider,
    StorageProvider,
    call_storage,
)

logger = logging.getLogger(__name__)


class CascadeSession:
    """
    Entry point for applications.

    Args:
        storage: Storage provider; in-memory when omitted
        generator: Generation provider; placeholder generator when omitted
        registry: Schema registry; a fresh, isolated registry when omitted
        events: Event bus; a new bus when omitted
        max_depth: Deepest allowed nested generation
        max_workers: Worker threads for background resolution
        fuzzy_threshold: Default similarity threshold for fuzzy relationships
        store_edges: Persist edge records as ``Edge`` entities on :meth:`define`

    Example:
        >>> with CascadeSession() as session:
        ...     session.define({"Startup": {"idea": "What is the idea? ->Idea"},
        ...                     "Idea": {"description": "string"}})
        ...     startup = session.create("Startup", {"name": "Acme"})
        ...     idea = session.resolve(startup, "idea").result()
    """

    def __init__(
        self,
        storage: Optional[StorageProvider] = None,
        generator: Optional[GenerationProvider] = None,
        registry: Optional[SchemaRegistry] = None,
        events: Optional[EventBus] = None,
        *,
        max_depth: int = CascadeConstants.DEFAULT_MAX_DEPTH,
        max_workers: int = CascadeConstants.DEFAULT_MAX_WORKERS,
        fuzzy_threshold: float = SimilarityConstants.DEFAULT_THRESHOLD,
        store_edges: bool = True,
    ):
        self.storage = storage if storage is not None else InMemoryStorageProvider()
        self.generator = generator if generator is not None else PlaceholderGenerationProvider()
        self.registry = registry if registry is not None else SchemaRegistry()
        self.events = events if events is not None else EventBus()
        self.store_edges = store_edges
        self.resolver = CascadeResolver(
            self.registry,
            self.storage,
            self.generator,
            self.events,
            max_depth=max_depth,
            max_workers=max_workers,
            fuzzy_threshold=fuzzy_threshold,
        )
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Shut down background resolution. Further calls raise SessionClosedError."""
        if self._closed:
            return
        self._closed = True
        self.resolver.close()

    def __enter__(self) -> "CascadeSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _check_open(self) -> None:
        if self._closed:
            raise SessionClosedError()

    def _require_verb(self, schema: EntitySchema, action: str) -> None:
        if not schema.has_verb(action):
            raise ValidationError(
                ErrorMessages.VERB_NOT_AVAILABLE.format(entity_type=schema.name, action=action),
                entity_type=schema.name,
            )

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def define(self, definitions: Mapping[str, Mapping[str, Any]], *, replace: bool = True) -> Dict[str, EntitySchema]:
        """
        Register entity definitions and persist their edge records.

        Returns:
            The registered schemas keyed by type name
        """
        self._check_open()
        schemas = self.registry.register_many(definitions, replace=replace)
        if self.store_edges:
            for schema in self.registry.all():
                for record in create_edge_records(schema):
                    self._store_edge(record)
        logger.debug("Defined %d entity types: %s", len(schemas), ", ".join(sorted(schemas)))
        return schemas

    def _store_edge(self, record: EdgeRecord) -> None:
        edge_type = SchemaConstants.EDGE_TYPE
        data = record.to_data()
        existing = call_storage("get", edge_type, self.storage.get, edge_type, record.edge_id)
        if existing is None:
            call_storage("create", edge_type, self.storage.create, edge_type, data, record.edge_id, None)
        elif existing.data != data:
            call_storage("update", edge_type, self.storage.update, edge_type, record.edge_id, data)

    def schema(self, entity_type: str) -> EntitySchema:
        return self.registry.require(entity_type)

    def edges(self) -> List[EdgeRecord]:
        """Edge records for every registered relationship."""
        return self.registry.edge_records()

    def dependency_graph(self) -> DependencyGraph:
        return build_dependency_graph(self.registry)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(
        self,
        entity_type: str,
        data: Optional[Mapping[str, Any]] = None,
        *,
        entity_id: Optional[str] = None,
        actor: Optional[str] = None,
        cascade: bool = False,
    ) -> Entity:
        """
        Validate and store a new entity.

        Args:
            entity_type: Registered type name
            data: Field values; relationship values may be ids or entities
            entity_id: Explicit id; generated by storage when omitted
            actor: Actor recorded on the lifecycle events
            cascade: Eagerly resolve every non-optional forward relationship

        Raises:
            NotFoundError: If the type is not registered
            ValidationError: If the data does not satisfy the schema
        """
        self._check_open()
        schema = self.registry.require(entity_type)
        self._require_verb(schema, SchemaConstants.VERB_CREATE)
        values = validate_entity_data(schema, dict(data or {}))
        entity = call_storage("create", entity_type, self.storage.create, entity_type, values, entity_id, None)
        emit_lifecycle(self.events, EventConstants.ACTION_CREATED, entity, actor=actor)
        if cascade:
            self.resolver.materialize(entity)
            entity = self.require(entity_type, entity.id)
        return entity

    def get(self, entity_type: str, entity_id: str) -> Optional[Entity]:
        self._check_open()
        return call_storage("get", entity_type, self.storage.get, entity_type, entity_id)

    def require(self, entity_type: str, entity_id: str) -> Entity:
        """Like :meth:`get`, raising NotFoundError when the entity is missing."""
        entity = self.get(entity_type, entity_id)
        if entity is None:
            raise NotFoundError(entity_type, entity_id)
        return entity

    def find(self, entity_type: str, where: Optional[Mapping[str, Any]] = None) -> List[Entity]:
        self._check_open()
        return list(call_storage("find", entity_type, self.storage.find, entity_type, where) or [])

    def update(
        self,
        entity_type: str,
        entity_id: str,
        data: Mapping[str, Any],
        *,
        actor: Optional[str] = None,
    ) -> Entity:
        self._check_open()
        schema = self.registry.require(entity_type)
        self._require_verb(schema, SchemaConstants.VERB_UPDATE)
        values = validate_entity_data(schema, data, partial=True)
        entity = call_storage("update", entity_type, self.storage.update, entity_type, entity_id, values)
        emit_lifecycle(self.events, EventConstants.ACTION_UPDATED, entity, actor=actor)
        return entity

    def delete(self, entity_type: str, entity_id: str, *, actor: Optional[str] = None) -> bool:
        """
        Remove an entity.

        Returns:
            False when the entity did not exist; no event is emitted in that case
        """
        self._check_open()
        schema = self.registry.require(entity_type)
        self._require_verb(schema, SchemaConstants.VERB_DELETE)
        entity = self.get(entity_type, entity_id)
        if entity is None:
            return False
        deleted = call_storage("delete", entity_type, self.storage.delete, entity_type, entity_id)
        if deleted:
            emit_lifecycle(self.events, EventConstants.ACTION_DELETED, entity, actor=actor)
        return bool(deleted)

    def perform(
        self,
        entity: Entity,
        action: str,
        data: Optional[Mapping[str, Any]] = None,
        *,
        actor: Optional[str] = None,
    ) -> Entity:
        """
        Apply a declared custom verb (``publish``, ``approve``, ...) to an entity.

        Optional ``data`` is merged into the entity first; the conjugated event
        (``Post.published``) is then emitted with the entity as its object.
        """
        self._check_open()
        schema = self.registry.require(entity.type)
        self._require_verb(schema, action)
        current = entity
        if data:
            values = validate_entity_data(schema, data, partial=True)
            current = call_storage("update", entity.type, self.storage.update, entity.type, entity.id, values)
        conjugation = schema.verbs[action]
        self.events.emit(
            {
                "event": conjugation.event_name(entity.type),
                "actor": actor or EventConstants.SYSTEM_ACTOR,
                "object": object_ref(entity.type, entity.id),
                "objectData": current.to_dict(),
            }
        )
        return current

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def resolve(
        self,
        entity: Entity,
        field_name: str,
        *,
        count: Optional[int] = None,
        generate_optional: bool = False,
        cascade: bool = False,
        context: Optional[Sequence[Any]] = None,
    ) -> Future:
        """Resolve a relationship in the background. See :meth:`CascadeResolver.resolve`."""
        self._check_open()
        return self.resolver.resolve(
            entity,
            field_name,
            count=count,
            generate_optional=generate_optional,
            cascade=cascade,
            context=context,
        )

    def materialize(self, entity: Entity, fields: Optional[Sequence[str]] = None, *, cascade: bool = True) -> Dict[str, Any]:
        self._check_open()
        return self.resolver.materialize(entity, fields, cascade=cascade)
