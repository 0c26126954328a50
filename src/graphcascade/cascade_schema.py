# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Schema builder and registry.

``build_schema`` turns one raw definition into an immutable :class:`EntitySchema`.
:class:`SchemaRegistry` holds the current schema per entity type name and swaps
whole schemas atomically, so readers always see either the old or the new
version of a type.

:module: cascade_schema
:synopsis: Entity schemas, verb maps, edge records and the schema registry
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from .cascade_models import EdgeRecord, Entity
from .cascade_parser import Descriptor, FieldDescriptor, RelationshipDescriptor, parse_field
from .constants import (
    Cardinality,
    ErrorMessages,
    FieldKind,
    ParserConstants,
    PrimitiveType,
    RelationshipDirection,
    RelationshipOperator,
    SchemaConstants,
    SimilarityConstants,
)
from .errors import DuplicateDefinitionError, NotFoundError, ValidationError
from .linguistic import VerbConjugation, conjugate, type_meta

logger = logging.getLogger(__name__)

_VERB_NAME_RE = re.compile(SchemaConstants.VERB_NAME_PATTERN)


# ----------------------------------------------------------------------------
# Entity schema
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class EntitySchema:
    """
    Parsed, immutable schema of one entity type.

    :class: EntitySchema
    :synopsis: Fields, relationships, verbs and directives of an entity type
    """

    name: str
    singular: str
    plural: str
    slug: str
    fields: Dict[str, FieldDescriptor] = field(default_factory=dict)
    relationships: Dict[str, RelationshipDescriptor] = field(default_factory=dict)
    verbs: Dict[str, VerbConjugation] = field(default_factory=dict)
    disabled_verbs: FrozenSet[str] = frozenset()
    directives: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)
    warnings: Tuple[str, ...] = ()

    def __hash__(self) -> int:
        return hash(self.name)

    def get_field(self, name: str) -> Optional[Descriptor]:
        """Look up a plain field or relationship by name."""
        relationship = self.relationships.get(name)
        if relationship is not None:
            return relationship
        return self.fields.get(name)

    def has_verb(self, action: str) -> bool:
        return action in self.verbs

    def relationships_to(self, target_type: str) -> List[RelationshipDescriptor]:
        """Relationships of this schema that can point at ``target_type``."""
        return [rel for rel in self.relationships.values() if target_type in rel.target_types]

    def with_relationship(self, descriptor: RelationshipDescriptor) -> "EntitySchema":
        relationships = dict(self.relationships)
        relationships[descriptor.name] = descriptor
        return replace(self, relationships=relationships)

    @property
    def instructions(self) -> Optional[str]:
        value = self.directives.get(SchemaConstants.DIRECTIVE_INSTRUCTIONS)
        return str(value) if value is not None else None

    @property
    def context(self) -> Any:
        return self.directives.get(SchemaConstants.DIRECTIVE_CONTEXT)

    @property
    def fuzzy_threshold(self) -> Optional[float]:
        value = self.directives.get(SchemaConstants.DIRECTIVE_FUZZY_THRESHOLD)
        if value is None:
            return None
        threshold = float(value)
        if not SimilarityConstants.MIN_THRESHOLD <= threshold <= SimilarityConstants.MAX_THRESHOLD:
            return None
        return threshold

    @property
    def count(self) -> Optional[int]:
        value = self.directives.get(SchemaConstants.DIRECTIVE_COUNT)
        return int(value) if value is not None else None


def _is_verb_declaration(key: str, value: Any) -> bool:
    # || A verb is declared by repeating its bare lowercase name: publish: 'publish'
    if not isinstance(value, str):
        return False
    token = value.strip()
    return (
        token == key
        and _VERB_NAME_RE.match(token) is not None
        and token not in ParserConstants.PRIMITIVE_ALIASES
    )


def build_schema(name: str, definition: Mapping[str, Any]) -> EntitySchema:
    """
    Build the schema of one entity type.

    Args:
        name: Entity type name (``'Startup'``)
        definition: Mapping of field name to description

    Returns:
        EntitySchema with fields/relationships partitioned and verbs derived

    Raises:
        ValidationError: If ``definition`` is not a mapping
    """
    if not isinstance(definition, Mapping):
        raise ValidationError(
            ErrorMessages.INVALID_DEFINITION.format(entity_type=name, actual=type(definition).__name__),
            entity_type=name,
            value=definition,
        )

    fields: Dict[str, FieldDescriptor] = {}
    relationships: Dict[str, RelationshipDescriptor] = {}
    custom_verbs: Dict[str, VerbConjugation] = {}
    disabled: set = set()
    directives: Dict[str, Any] = {}
    warnings: List[str] = []

    for key, value in definition.items():
        # @@ STEP 1: Directives
        if key.startswith(ParserConstants.DIRECTIVE_PREFIX):
            directives[key] = value
            continue

        # @@ STEP 2: Verb opt-out and verb declarations
        if value is None and key in SchemaConstants.DEFAULT_VERBS:
            disabled.add(key)
            continue
        if _is_verb_declaration(key, value):
            custom_verbs[key] = conjugate(value)
            continue

        # @@ STEP 3: Fields and relationships
        descriptor = parse_field(key, value)
        for conflict in descriptor.conflicts:
            warnings.append(f"{key}: {conflict}")
        if isinstance(descriptor, RelationshipDescriptor):
            relationships[key] = descriptor
        else:
            fields[key] = descriptor

    verbs = {verb: conjugate(verb) for verb in SchemaConstants.DEFAULT_VERBS if verb not in disabled}
    verbs.update(custom_verbs)

    meta = type_meta(name)
    return EntitySchema(
        name=name,
        singular=meta.singular,
        plural=meta.plural,
        slug=meta.slug,
        fields=fields,
        relationships=relationships,
        verbs=verbs,
        disabled_verbs=frozenset(disabled),
        directives=directives,
        raw=dict(definition),
        warnings=tuple(warnings),
    )


# ----------------------------------------------------------------------------
# Edge records
# ----------------------------------------------------------------------------

def create_edge_records(schema: EntitySchema) -> List[EdgeRecord]:
    """One :class:`EdgeRecord` per relationship, oriented by traversal direction."""
    records: List[EdgeRecord] = []
    for field_name, rel in schema.relationships.items():
        backward = rel.direction == RelationshipDirection.BACKWARD
        if rel.is_array:
            cardinality = Cardinality.MANY_TO_MANY if rel.backref else Cardinality.ONE_TO_MANY
        else:
            cardinality = Cardinality.MANY_TO_ONE
        records.append(
            EdgeRecord(
                from_=rel.target_type if backward else schema.name,
                name=field_name,
                to=schema.name if backward else rel.target_type,
                backref=rel.backref,
                cardinality=cardinality,
                direction=rel.direction,
                match_mode=rel.match_mode,
                operator=rel.operator,
            )
        )
    return records


# ----------------------------------------------------------------------------
# Data validation
# ----------------------------------------------------------------------------

def _coerce_primitive(schema: EntitySchema, desc: FieldDescriptor, value: Any) -> Any:
    def mismatch() -> ValidationError:
        return ValidationError(
            ErrorMessages.TYPE_MISMATCH.format(
                value=value, entity_type=schema.name, field_name=desc.name, expected=desc.primitive.value
            ),
            entity_type=schema.name,
            field_name=desc.name,
            value=value,
        )

    primitive = desc.primitive
    if primitive == PrimitiveType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in (ParserConstants.BOOL_TRUE, ParserConstants.BOOL_FALSE):
            return value.strip().lower() == ParserConstants.BOOL_TRUE
        raise mismatch()
    if primitive in (PrimitiveType.NUMBER, PrimitiveType.INTEGER):
        if isinstance(value, bool):
            raise mismatch()
        if primitive == PrimitiveType.INTEGER:
            if isinstance(value, int):
                return value
            if isinstance(value, float) and value.is_integer():
                return int(value)
            if isinstance(value, str):
                try:
                    return int(value.strip())
                except ValueError:
                    raise mismatch() from None
            raise mismatch()
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                raise mismatch() from None
        raise mismatch()
    if primitive in (PrimitiveType.DATE, PrimitiveType.DATETIME):
        if isinstance(value, (date, datetime)):
            return value
        if isinstance(value, str):
            try:
                datetime.fromisoformat(value.strip())
            except ValueError:
                raise mismatch() from None
            return value
        raise mismatch()
    return value


def _check_enum(schema: EntitySchema, desc: FieldDescriptor, value: Any) -> None:
    if value not in desc.enum_values:
        raise ValidationError(
            ErrorMessages.ENUM_VALUE_NOT_ALLOWED.format(
                value=value, entity_type=schema.name, field_name=desc.name, allowed=list(desc.enum_values)
            ),
            entity_type=schema.name,
            field_name=desc.name,
            value=value,
        )


def normalize_reference(value: Any) -> Any:
    """Reduce entity objects (or lists of them) to their ids."""
    if isinstance(value, Entity):
        return value.id
    if isinstance(value, (list, tuple)):
        return [normalize_reference(item) for item in value]
    return value


def validate_entity_data(schema: EntitySchema, data: Mapping[str, Any], *, partial: bool = False) -> Dict[str, Any]:
    """
    Validate and normalize entity data against its schema.

    Args:
        schema: Schema of the entity type
        data: Caller-supplied values
        partial: Skip required-field and default handling (updates)

    Returns:
        A new dict with coerced primitives, defaults applied and relationship
        values reduced to ids

    Raises:
        ValidationError: On a disallowed enum value, a non-coercible primitive
            or a missing required field
    """
    result: Dict[str, Any] = {}
    for key, value in data.items():
        desc = schema.get_field(key)
        if desc is None or value is None:
            result[key] = value
            continue
        if isinstance(desc, RelationshipDescriptor):
            result[key] = normalize_reference(value)
            continue
        if desc.kind == FieldKind.ENUM:
            for item in value if desc.is_array and isinstance(value, (list, tuple)) else [value]:
                _check_enum(schema, desc, item)
            result[key] = value
            continue
        if desc.kind == FieldKind.FIELD:
            if desc.is_array and isinstance(value, (list, tuple)):
                result[key] = [_coerce_primitive(schema, desc, item) for item in value]
            else:
                result[key] = _coerce_primitive(schema, desc, value)
            continue
        result[key] = value

    if partial:
        return result

    for name, desc in schema.fields.items():
        if result.get(name) is not None:
            continue
        if desc.default is not None:
            result[name] = desc.default
        elif desc.required:
            raise ValidationError(
                ErrorMessages.MISSING_REQUIRED_FIELD.format(entity_type=schema.name, field_name=name),
                entity_type=schema.name,
                field_name=name,
            )
    return result


# ----------------------------------------------------------------------------
# Registry
# ----------------------------------------------------------------------------

def _link_backrefs(schemas: Dict[str, EntitySchema]) -> Dict[str, EntitySchema]:
    """
    Add the inverse array relationship named by each backref when its target lacks it.

    Expects schemas as defined, without earlier inverses. A target that
    declares the backref itself keeps its own field.
    """
    linked = dict(schemas)
    for owner in schemas.values():
        for rel in owner.relationships.values():
            if rel.backref is None or rel.direction == RelationshipDirection.BACKWARD:
                continue
            target = linked.get(rel.target_type)
            if target is None or target.get_field(rel.backref) is not None:
                continue
            inverse = RelationshipDescriptor(
                name=rel.backref,
                description=f"{owner.name}{ParserConstants.BACKREF_SEPARATOR}{rel.name}",
                operator=RelationshipOperator.BACKWARD.value,
                target_type=owner.name,
                direction=RelationshipDirection.BACKWARD,
                backref=rel.name,
                is_array=True,
            )
            linked[target.name] = target.with_relationship(inverse)
            logger.debug("Added backref %s.%s -> %s.%s", target.name, rel.backref, owner.name, rel.name)
    return linked


class SchemaRegistry:
    """
    Thread-safe holder of the current schema per entity type.

    Writers build new schemas outside the lock and publish them by swapping the
    whole mapping, so readers never observe a half-registered type. Schemas are
    kept as defined in ``_base``; every change relinks backrefs from there.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._base: Dict[str, EntitySchema] = {}
        self._schemas: Dict[str, EntitySchema] = {}

    def _publish(self, base: Dict[str, EntitySchema]) -> None:
        self._base = base
        self._schemas = _link_backrefs(base)

    def __contains__(self, name: object) -> bool:
        return name in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)

    def register(
        self,
        name: str,
        definition: Mapping[str, Any],
        *,
        replace: bool = True,
    ) -> EntitySchema:
        """Build and publish one schema."""
        return self.register_many({name: definition}, replace=replace)[name]

    def register_many(
        self,
        definitions: Mapping[str, Mapping[str, Any]],
        *,
        replace: bool = True,
    ) -> Dict[str, EntitySchema]:
        """
        Build and publish several schemas at once.

        Backrefs are linked across the whole batch and the already registered
        types before the new mapping becomes visible.

        Raises:
            DuplicateDefinitionError: If ``replace`` is False and a name exists
            ValidationError: If a definition is not a mapping
        """
        built = {name: build_schema(name, definition) for name, definition in definitions.items()}
        with self._lock:
            if not replace:
                for name in built:
                    if name in self._schemas:
                        raise DuplicateDefinitionError(name)
            for name in built:
                if name in self._schemas:
                    logger.debug("Replacing schema %s", name)
            base = dict(self._base)
            base.update(built)
            self._publish(base)
            return {name: self._schemas[name] for name in built}

    def get(self, name: str) -> Optional[EntitySchema]:
        return self._schemas.get(name)

    def require(self, name: str) -> EntitySchema:
        schema = self._schemas.get(name)
        if schema is None:
            raise NotFoundError(name, message=ErrorMessages.SCHEMA_NOT_FOUND.format(entity_type=name))
        return schema

    def unregister(self, name: str) -> bool:
        with self._lock:
            if name not in self._base:
                return False
            base = dict(self._base)
            del base[name]
            self._publish(base)
            logger.debug("Unregistered schema %s", name)
            return True

    def names(self) -> List[str]:
        return sorted(self._schemas)

    def all(self) -> List[EntitySchema]:
        schemas = self._schemas
        return [schemas[name] for name in sorted(schemas)]

    def snapshot(self) -> Dict[str, EntitySchema]:
        return dict(self._schemas)

    def edge_records(self) -> List[EdgeRecord]:
        records: List[EdgeRecord] = []
        for schema in self.all():
            records.extend(create_edge_records(schema))
        return records

    def clear(self) -> None:
        with self._lock:
            self._publish({})


# ----------------------------------------------------------------------------
# Default registry
# ----------------------------------------------------------------------------

_default_registry = SchemaRegistry()


def get_default_registry() -> SchemaRegistry:
    return _default_registry


def register_schema(name: str, definition: Mapping[str, Any], *, replace: bool = True) -> EntitySchema:
    return _default_registry.register(name, definition, replace=replace)


def register_schemas(definitions: Mapping[str, Mapping[str, Any]], *, replace: bool = True) -> Dict[str, EntitySchema]:
    return _default_registry.register_many(definitions, replace=replace)


def get_schema(name: str) -> Optional[EntitySchema]:
    return _default_registry.get(name)


def get_registered_schemas() -> List[EntitySchema]:
    return _default_registry.all()


def clear_registry() -> None:
    """Drop every schema from the default registry."""
    _default_registry.clear()
