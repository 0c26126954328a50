# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
GraphCascade: schema-driven entity graphs whose relationships resolve on demand.

Entity types are declared with compact field descriptions
(``"What is the core idea? ->Idea"``). Reading a relationship that has no
target yet links an existing entity or generates a new one through a
pluggable generation provider, cascading through the schema up to a bounded
depth.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .constants import (
    Cardinality,
    FieldKind,
    FilterOperator,
    MatchMode,
    PrimitiveType,
    RelationshipDirection,
    RelationshipOperator,
    ResolutionState,
)
from .errors import (
    CascadeGraphError,
    CycleError,
    DepthExceededError,
    DuplicateDefinitionError,
    GenerationError,
    NotFoundError,
    ParseError,
    SchemaError,
    SessionClosedError,
    StorageError,
    ValidationError,
)
from .cascade_parser import (
    FieldDescriptor,
    FilterCondition,
    RelationshipDescriptor,
    parse_field,
    parse_filters,
    parse_operator,
)
from .linguistic import (
    VerbConjugation,
    conjugate,
    derive_reverse_verb,
    pluralize,
    reverse_field_name,
    singularize,
    type_meta,
)
from .cascade_models import EdgeRecord, Entity
from .cascade_schema import (
    EntitySchema,
    SchemaRegistry,
    build_schema,
    clear_registry,
    create_edge_records,
    get_default_registry,
    get_registered_schemas,
    get_schema,
    register_schema,
    register_schemas,
    validate_entity_data,
)
from .dependency_graph import (
    DependencyGraph,
    TopologicalSortResult,
    build_dependency_graph,
    detect_cycles,
    get_parallel_groups,
    topological_sort,
)
from .pipelining import Deferred, LocalPipelineTransport, PipelinedValue, PipelineTransport, pipelined, resolve_value
from .cascade_events import DBEvent, EventBus, matches_pattern
from .generation_context import GenerationContext
from .providers import (
    CallableGenerationProvider,
    GenerationProvider,
    InMemoryStorageProvider,
    PipelinedStorageProvider,
    PlaceholderGenerationProvider,
    StorageProvider,
)
from .cascade_resolver import CascadeResolver, InFlightRegistry
from .cascade_session import CascadeSession

__all__ = [
    "__version__",
    # Enums
    "Cardinality",
    "FieldKind",
    "FilterOperator",
    "MatchMode",
    "PrimitiveType",
    "RelationshipDirection",
    "RelationshipOperator",
    "ResolutionState",
    # Errors
    "CascadeGraphError",
    "CycleError",
    "DepthExceededError",
    "DuplicateDefinitionError",
    "GenerationError",
    "NotFoundError",
    "ParseError",
    "SchemaError",
    "SessionClosedError",
    "StorageError",
    "ValidationError",
    # Parsing
    "FieldDescriptor",
    "FilterCondition",
    "RelationshipDescriptor",
    "parse_field",
    "parse_filters",
    "parse_operator",
    # Linguistics
    "VerbConjugation",
    "conjugate",
    "derive_reverse_verb",
    "pluralize",
    "reverse_field_name",
    "singularize",
    "type_meta",
    # Schema
    "EdgeRecord",
    "Entity",
    "EntitySchema",
    "SchemaRegistry",
    "build_schema",
    "clear_registry",
    "create_edge_records",
    "get_default_registry",
    "get_registered_schemas",
    "get_schema",
    "register_schema",
    "register_schemas",
    "validate_entity_data",
    # Dependency graph
    "DependencyGraph",
    "TopologicalSortResult",
    "build_dependency_graph",
    "detect_cycles",
    "get_parallel_groups",
    "topological_sort",
    # Pipelining
    "Deferred",
    "LocalPipelineTransport",
    "PipelinedValue",
    "PipelineTransport",
    "pipelined",
    "resolve_value",
    # Events
    "DBEvent",
    "EventBus",
    "matches_pattern",
    # Providers
    "CallableGenerationProvider",
    "GenerationContext",
    "GenerationProvider",
    "InMemoryStorageProvider",
    "PipelinedStorageProvider",
    "PlaceholderGenerationProvider",
    "StorageProvider",
    # Resolution
    "CascadeResolver",
    "CascadeSession",
    "InFlightRegistry",
]
