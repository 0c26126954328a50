# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Cascade resolution engine.

Resolves one relationship field of one entity on demand:

1. Values already stored on the field are fetched (``SUPPLIED``).
2. Backward and fuzzy relationships look for existing targets (``LINKED``).
3. Forward relationships without a target are generated (``GENERATING``),
   unless optional. Concurrent requests for the same generation share one
   in-flight request, keyed by a fingerprint of owner, field and context.
   The request leaves the registry once it settles; the next holder of the
   slot re-reads the owner first and reuses whatever target is now linked.

Nested generation carries a depth counter so accidentally cyclic schemas fail
with :class:`~graphcascade.errors.DepthExceededError` instead of looping.

:module: cascade_resolver
:synopsis: On-demand relationship resolution with deduplicated generation
"""

from __future__ import annotations

import logging
import re
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from .cascade_events import EventBus, emit_lifecycle, object_ref
from .cascade_models import Entity
from .cascade_parser import RelationshipDescriptor
from .cascade_schema import EntitySchema, SchemaRegistry, get_default_registry, validate_entity_data
from .constants import (
    CascadeConstants,
    ErrorMessages,
    EventConstants,
    RelationshipDirection,
    ResolutionState,
    SimilarityConstants,
    WarningMessages,
)
from .errors import (
    CascadeGraphError,
    DepthExceededError,
    GenerationError,
    ValidationError,
)
from .generation_context import GenerationContext, owner_text_fields
from .pipelining import resolve_value
from .providers import GenerationProvider, StorageProvider, call_storage

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(SimilarityConstants.TOKEN_PATTERN)


# ----------------------------------------------------------------------------
# Similarity
# ----------------------------------------------------------------------------

def tokenize(text: str) -> Set[str]:
    return set(_TOKEN_RE.findall(text.lower()))


def token_similarity(query: str, candidate: str) -> float:
    """
    Overlap coefficient of the two token sets, in ``[0, 1]``.

    A candidate whose every token appears in the query scores 1.0.
    """
    left, right = tokenize(query), tokenize(candidate)
    if not left or not right:
        return 0.0
    return len(left & right) / min(len(left), len(right))


def entity_text(entity: Entity) -> str:
    return " ".join(str(value) for value in entity.data.values() if isinstance(value, str))


# ----------------------------------------------------------------------------
# In-flight generation registry
# ----------------------------------------------------------------------------

@dataclass
class GenerationRequest:
    """
    One generation shared by every concurrent caller with the same fingerprint.

    :class: GenerationRequest
    :synopsis: Fingerprint, owner coordinates, state and the shared Future
    """

    fingerprint: str
    entity_type: str
    entity_id: str
    field_name: str
    target_type: str
    future: Future = field(default_factory=Future)
    state: ResolutionState = ResolutionState.GENERATING
    created_at: float = field(default_factory=time.monotonic)


class InFlightRegistry:
    """Fingerprint -> request map with atomic insert-if-absent."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._requests: Dict[str, GenerationRequest] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)

    def __contains__(self, fingerprint: object) -> bool:
        with self._lock:
            return fingerprint in self._requests

    def get(self, fingerprint: str) -> Optional[GenerationRequest]:
        with self._lock:
            return self._requests.get(fingerprint)

    def get_or_create(
        self,
        fingerprint: str,
        factory: Callable[[], GenerationRequest],
    ) -> Tuple[GenerationRequest, bool]:
        """
        Return the existing request for ``fingerprint`` or register a new one.

        Returns:
            ``(request, created)``; exactly one concurrent caller sees ``created``
        """
        with self._lock:
            existing = self._requests.get(fingerprint)
            if existing is not None:
                return existing, False
            request = factory()
            self._requests[fingerprint] = request
            return request, True

    def discard(self, fingerprint: str, request: Optional[GenerationRequest] = None) -> None:
        with self._lock:
            current = self._requests.get(fingerprint)
            if current is not None and (request is None or current is request):
                del self._requests[fingerprint]

    def clear(self) -> None:
        with self._lock:
            self._requests.clear()


# ----------------------------------------------------------------------------
# Resolver
# ----------------------------------------------------------------------------

class CascadeResolver:
    """
    Resolves relationship fields, generating missing targets.

    Args:
        registry: Schema registry; the module default when None
        storage: Storage provider (plain, ``Future`` or pipelined results)
        generator: Generation provider
        events: Event bus for progress and lifecycle events
        max_depth: Deepest allowed nested generation
        max_workers: Worker threads for :meth:`resolve`
        fuzzy_threshold: Default similarity threshold for fuzzy matches
        executor: Externally owned executor to use instead of a private pool
    """

    def __init__(
        self,
        registry: Optional[SchemaRegistry],
        storage: StorageProvider,
        generator: GenerationProvider,
        events: Optional[EventBus] = None,
        *,
        max_depth: int = CascadeConstants.DEFAULT_MAX_DEPTH,
        max_workers: int = CascadeConstants.DEFAULT_MAX_WORKERS,
        fuzzy_threshold: float = SimilarityConstants.DEFAULT_THRESHOLD,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.storage = storage
        self.generator = generator
        self.registry = registry if registry is not None else get_default_registry()
        self.events = events
        self.max_depth = max_depth
        self.fuzzy_threshold = fuzzy_threshold
        self.in_flight = InFlightRegistry()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=CascadeConstants.THREAD_NAME_PREFIX
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def __enter__(self) -> "CascadeResolver":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Public API
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
        """
        Resolve ``entity.<field_name>`` in the background.

        Args:
            entity: Owning entity
            field_name: Relationship (or plain) field to resolve
            count: Number of targets to generate for an array relationship
            generate_optional: Generate even when the relationship is optional
            cascade: Also materialize the generated targets' own relationships
            context: Extra context items for the generation provider

        Returns:
            Future resolving to an Entity, a list of Entities, None, or the plain
            field value. Failures surface as GenerationError, DepthExceededError,
            ValidationError or StorageError.
        """
        return self._executor.submit(
            self.resolve_now,
            entity,
            field_name,
            count=count,
            generate_optional=generate_optional,
            cascade=cascade,
            context=context,
        )

    def resolve_now(
        self,
        entity: Entity,
        field_name: str,
        *,
        count: Optional[int] = None,
        generate_optional: bool = False,
        cascade: bool = False,
        context: Optional[Sequence[Any]] = None,
    ) -> Any:
        """Synchronous form of :meth:`resolve`, run on the calling thread."""
        schema = self.registry.require(entity.type)
        descriptor = schema.get_field(field_name)
        if descriptor is None:
            raise ValidationError(
                ErrorMessages.UNKNOWN_FIELD.format(entity_type=entity.type, field_name=field_name),
                entity_type=entity.type,
                field_name=field_name,
            )
        if not isinstance(descriptor, RelationshipDescriptor):
            return entity.get(field_name)

        state, value = self._resolve_relationship(
            entity, schema, descriptor, count, generate_optional, cascade, list(context or ())
        )
        self._emit(
            EventConstants.RESOLVE_COMPLETE,
            entity,
            {"type": entity.type, "field": field_name, "state": state.value},
        )
        return value

    def materialize(
        self,
        entity: Entity,
        fields: Optional[Sequence[str]] = None,
        *,
        cascade: bool = True,
    ) -> Dict[str, Any]:
        """
        Eagerly resolve every non-optional forward relationship of ``entity``.

        Args:
            entity: Entity to fill in
            fields: Restrict to these relationship names
            cascade: Recurse into generated targets, bounded by ``max_depth``

        Returns:
            Mapping of field name to resolved value
        """
        schema = self.registry.require(entity.type)
        resolved: Dict[str, Any] = {}
        for name, rel in schema.relationships.items():
            if fields is not None and name not in fields:
                continue
            if fields is None and (rel.optional or rel.direction == RelationshipDirection.BACKWARD):
                continue
            resolved[name] = self.resolve_now(entity, name, cascade=cascade)
        return resolved

    # ------------------------------------------------------------------
    # Storage access
    # ------------------------------------------------------------------

    def _call(self, operation: str, entity_type: str, method: Callable[..., Any], *args: Any) -> Any:
        return call_storage(operation, entity_type, method, *args)

    def _load(self, entity_type: str, entity_id: str) -> Optional[Entity]:
        return self._call("get", entity_type, self.storage.get, entity_type, entity_id)

    def _find(self, entity_type: str, where: Optional[Mapping[str, Any]] = None) -> List[Entity]:
        return list(self._call("find", entity_type, self.storage.find, entity_type, where) or [])

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _resolve_relationship(
        self,
        entity: Entity,
        schema: EntitySchema,
        rel: RelationshipDescriptor,
        count: Optional[int],
        generate_optional: bool,
        cascade: bool,
        context: List[Any],
    ) -> Tuple[ResolutionState, Any]:
        current = self._load(entity.type, entity.id) or entity

        # @@ STEP 1: Supplied references win
        refs = current.references(rel.name)
        if refs:
            self._progress(current, rel, ResolutionState.SUPPLIED)
            return ResolutionState.SUPPLIED, self._fetch_supplied(rel, refs)

        # @@ STEP 2: Backward relationships only ever link
        if rel.direction == RelationshipDirection.BACKWARD:
            if rel.is_fuzzy:
                matches = self._fuzzy_candidates(current, schema, rel, count)
            else:
                matches = self._backward_candidates(current, rel)
            self._progress(current, rel, ResolutionState.LINKED)
            return ResolutionState.LINKED, self._shape(rel, matches)

        # @@ STEP 3: Fuzzy forward/bidirectional lookup before generating
        if rel.is_fuzzy:
            matches = self._fuzzy_candidates(current, schema, rel, count)
            if matches:
                self._link(current, rel, matches)
                self._progress(current, rel, ResolutionState.LINKED)
                return ResolutionState.LINKED, self._shape(rel, matches)
            if not rel.optional or generate_optional:
                logger.warning(
                    WarningMessages.FUZZY_MISS,
                    rel.target_type,
                    current.type,
                    rel.name,
                    self._threshold_for(schema, rel),
                )

        # @@ STEP 4: Optional relationships stay empty unless requested
        if rel.optional and not generate_optional:
            self._progress(current, rel, ResolutionState.RESOLVED)
            return ResolutionState.RESOLVED, self._shape(rel, [])

        return ResolutionState.RESOLVED, self._generate(current, schema, rel, count, cascade, context)

    def _fetch_supplied(self, rel: RelationshipDescriptor, refs: List[str]) -> Any:
        found: List[Entity] = []
        for ref in refs:
            target = None
            for target_type in rel.target_types:
                target = self._load(target_type, ref)
                if target is not None:
                    break
            if target is not None:
                found.append(target)
        return self._shape(rel, found)

    @staticmethod
    def _shape(rel: RelationshipDescriptor, entities: List[Entity]) -> Any:
        if rel.is_array:
            return list(entities)
        return entities[0] if entities else None

    def _apply_filters(self, rel: RelationshipDescriptor, candidates: List[Entity]) -> List[Entity]:
        if not rel.filters:
            return candidates
        return [
            candidate
            for candidate in candidates
            if all(condition.matches(candidate.get(condition.field)) for condition in rel.filters)
        ]

    def _backward_candidates(self, owner: Entity, rel: RelationshipDescriptor) -> List[Entity]:
        # @@ STEP 1: Fields on the target type that point back at the owner type
        target_schema = self.registry.get(rel.target_type)
        if rel.backref:
            pointer_fields = [rel.backref]
        elif target_schema is not None:
            pointer_fields = [
                candidate.name
                for candidate in target_schema.relationships_to(owner.type)
                if candidate.direction != RelationshipDirection.BACKWARD
            ]
        else:
            pointer_fields = []

        # @@ STEP 2: Collect targets referencing the owner id, preserving first-seen order
        seen: Dict[str, Entity] = {}
        for pointer in pointer_fields:
            for candidate in self._find(rel.target_type, {pointer: owner.id}):
                seen.setdefault(candidate.id, candidate)
        return self._apply_filters(rel, list(seen.values()))

    def _threshold_for(self, schema: EntitySchema, rel: RelationshipDescriptor) -> float:
        if rel.threshold is not None:
            return rel.threshold
        if schema.fuzzy_threshold is not None:
            return schema.fuzzy_threshold
        return self.fuzzy_threshold

    def _fuzzy_candidates(
        self,
        owner: Entity,
        schema: EntitySchema,
        rel: RelationshipDescriptor,
        count: Optional[int],
    ) -> List[Entity]:
        threshold = self._threshold_for(schema, rel)
        query = " ".join(filter(None, [rel.prompt, *owner_text_fields(owner, schema).values()]))
        scored: List[Tuple[float, str, Entity]] = []
        for target_type in rel.target_types:
            for candidate in self._apply_filters(rel, self._find(target_type)):
                score = token_similarity(query, entity_text(candidate))
                if score >= threshold:
                    scored.append((score, candidate.id, candidate))
        scored.sort(key=lambda item: (-item[0], item[1]))
        matches = [candidate for _, _, candidate in scored]
        if not rel.is_array:
            return matches[:1]
        return matches[:count] if count is not None else matches

    def _link(self, owner: Entity, rel: RelationshipDescriptor, targets: List[Entity]) -> None:
        ids = [target.id for target in targets]
        value: Any = ids if rel.is_array else ids[0]
        self._call("update", owner.type, self.storage.update, owner.type, owner.id, {rel.name: value})
        if rel.is_bidirectional and rel.backref:
            for target in targets:
                self._add_backlink(target, rel.backref, owner.id)

    def _add_backlink(self, target: Entity, field_name: str, owner_id: str) -> None:
        current = self._load(target.type, target.id) or target
        refs = current.references(field_name)
        if owner_id in refs:
            return
        value = self._backlink_value(self.registry.get(target.type), field_name, owner_id, refs)
        self._call("update", target.type, self.storage.update, target.type, target.id, {field_name: value})

    @staticmethod
    def _backlink_value(
        target_schema: Optional[EntitySchema],
        field_name: str,
        owner_id: str,
        existing: Optional[List[str]] = None,
    ) -> Any:
        target_rel = target_schema.relationships.get(field_name) if target_schema is not None else None
        if target_rel is not None and not target_rel.is_array:
            return owner_id
        return list(existing or []) + [owner_id]

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _build_context(
        self,
        owner: Entity,
        schema: EntitySchema,
        rel: RelationshipDescriptor,
        count: Optional[int],
        depth: int,
        extra: List[Any],
    ) -> GenerationContext:
        target_schema = self.registry.get(rel.target_type)
        instructions = owner.instructions
        if schema.instructions:
            instructions.append(schema.instructions)
        context_items: List[Any] = []
        if schema.context is not None:
            context_items.append(schema.context)
        context_items.extend(extra)
        if count is None and rel.is_array:
            count = schema.count
        return GenerationContext(
            target_type=rel.target_type,
            field_name=rel.name,
            owner_type=owner.type,
            owner_id=owner.id,
            depth=depth,
            is_array=rel.is_array,
            count=count,
            prompt=rel.prompt,
            owner_fields=owner_text_fields(owner, schema),
            instructions=instructions,
            target_instructions=target_schema.instructions if target_schema else None,
            context=context_items,
            chain=list(owner.meta.get(CascadeConstants.META_CHAIN, [])) + [f"{owner.type}.{rel.name}"],
            target_schema=target_schema,
            relationship=rel,
        )

    def _generate(
        self,
        owner: Entity,
        schema: EntitySchema,
        rel: RelationshipDescriptor,
        count: Optional[int],
        cascade: bool,
        extra: List[Any],
    ) -> Any:
        # @@ STEP 1: Depth bound
        depth = owner.depth + 1
        if depth > self.max_depth:
            chain = list(owner.meta.get(CascadeConstants.META_CHAIN, [])) + [f"{owner.type}.{rel.name}"]
            self._progress(owner, rel, ResolutionState.FAILED)
            raise DepthExceededError(owner.type, rel.name, depth, self.max_depth, chain)

        # @@ STEP 2: Deduplicate concurrent requests
        ctx = self._build_context(owner, schema, rel, count, depth, extra)
        fingerprint = ctx.fingerprint()
        request, created = self.in_flight.get_or_create(
            fingerprint,
            lambda: GenerationRequest(
                fingerprint=fingerprint,
                entity_type=owner.type,
                entity_id=owner.id,
                field_name=rel.name,
                target_type=rel.target_type,
            ),
        )
        if not created:
            logger.debug("Joining in-flight generation %s for %s.%s", fingerprint, owner.type, rel.name)
            return request.future.result()

        # @@ STEP 3: Targets linked by an earlier holder of this slot win
        # @@ STEP 4: Otherwise generate; the slot is released either way
        try:
            refs = (self._load(owner.type, owner.id) or owner).references(rel.name)
            if refs:
                self._progress(owner, rel, ResolutionState.SUPPLIED)
                result = self._fetch_supplied(rel, refs)
            else:
                self._progress(owner, rel, ResolutionState.GENERATING)
                result = self._run_generation(owner, rel, ctx, cascade)
        except Exception as exc:
            request.state = ResolutionState.FAILED
            self.in_flight.discard(fingerprint, request)
            error = exc if isinstance(exc, CascadeGraphError) else GenerationError(
                ErrorMessages.GENERATION_FAILED.format(entity_type=rel.target_type, field_name=rel.name, error=exc),
                entity_type=rel.target_type,
                field_name=rel.name,
                cause=exc,
            )
            self._progress(owner, rel, ResolutionState.FAILED)
            logger.error("Generation of %s for %s.%s failed: %s", rel.target_type, owner.type, rel.name, exc)
            request.future.set_exception(error)
            if error is exc:
                raise
            raise error from exc
        request.state = ResolutionState.RESOLVED
        request.future.set_result(result)
        self.in_flight.discard(fingerprint, request)
        return result

    def _run_generation(
        self,
        owner: Entity,
        rel: RelationshipDescriptor,
        ctx: GenerationContext,
        cascade: bool,
    ) -> Any:
        raw = resolve_value(self.generator.generate(rel.target_type, ctx, ctx.count))
        items = list(raw) if isinstance(raw, (list, tuple)) else ([raw] if raw is not None else [])
        if not items:
            raise GenerationError(
                ErrorMessages.EMPTY_GENERATION.format(entity_type=rel.target_type),
                entity_type=rel.target_type,
                field_name=rel.name,
            )
        if not rel.is_array:
            items = items[:1]
        elif ctx.count is not None:
            items = items[: ctx.count]

        meta = {
            CascadeConstants.META_DEPTH: ctx.depth,
            CascadeConstants.META_GENERATED_BY: {"type": owner.type, "id": owner.id, "field": rel.name},
            CascadeConstants.META_INSTRUCTIONS: list(ctx.instructions),
            CascadeConstants.META_CHAIN: list(ctx.chain),
        }
        actor = object_ref(owner.type, owner.id)
        created: List[Entity] = []
        for index, item in enumerate(items, start=1):
            data = dict(item.data if isinstance(item, Entity) else item)
            if ctx.target_schema is not None:
                data = validate_entity_data(ctx.target_schema, data)
            if rel.is_bidirectional and rel.backref:
                data.setdefault(rel.backref, self._backlink_value(ctx.target_schema, rel.backref, owner.id))
            child = self._call(
                "create", rel.target_type, self.storage.create, rel.target_type, data, None, meta
            )
            emit_lifecycle(self.events, EventConstants.ACTION_CREATED, child, actor=actor)
            created.append(child)

            # || S.1: Link each target as soon as it exists
            ids = [entity.id for entity in created]
            value: Any = ids if rel.is_array else ids[0]
            self._call("update", owner.type, self.storage.update, owner.type, owner.id, {rel.name: value})
            self._progress(owner, rel, ResolutionState.GENERATING, current=index, total=len(items))

        if cascade:
            for child in created:
                self.materialize(child, cascade=True)
        return created if rel.is_array else created[0]

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _emit(self, name: str, entity: Entity, meta: Dict[str, Any]) -> None:
        if self.events is None:
            return
        self.events.emit({"event": name, "object": object_ref(entity.type, entity.id), "meta": meta})

    def _progress(
        self,
        entity: Entity,
        rel: RelationshipDescriptor,
        state: ResolutionState,
        current: int = 0,
        total: int = 0,
    ) -> None:
        self._emit(
            EventConstants.CASCADE_PROGRESS,
            entity,
            {
                "type": entity.type,
                "field": rel.name,
                "target": rel.target_type,
                "state": state.value,
                "current": current,
                "total": total,
            },
        )
