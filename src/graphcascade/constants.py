# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Constants module for GraphCascade.

This module centralizes all constants, configuration values, and literal strings
used throughout the GraphCascade codebase. No magic values are allowed elsewhere.

:module: constants
:synopsis: Centralized constants and configuration for GraphCascade
:author: GraphCascade Contributors
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final, FrozenSet, Tuple


# ============================================================================
# RELATIONSHIP OPERATORS
# ============================================================================

class RelationshipOperator(StrEnum):
    """
    The six relationship operator literals.

    :class: RelationshipOperator
    :synopsis: Bit-exact operator tokens accepted in schema definitions
    """

    FORWARD = "->"
    FORWARD_FUZZY = "~>"
    BACKWARD = "<-"
    BACKWARD_FUZZY = "<~"
    BIDIRECTIONAL = "<->"
    BIDIRECTIONAL_FUZZY = "<~>"


class RelationshipDirection(StrEnum):
    """Resolved traversal direction of a relationship."""

    FORWARD = "forward"
    BACKWARD = "backward"
    BIDIRECTIONAL = "bidirectional"


class MatchMode(StrEnum):
    """How a relationship finds its target."""

    EXACT = "exact"
    FUZZY = "fuzzy"


class OperatorConstants:
    """Operator lookup tables."""

    # @@ STEP 1: Longest tokens first so '<~>' is never read as '<~'
    OPERATORS_BY_LENGTH: Final[Tuple[str, ...]] = (
        RelationshipOperator.BIDIRECTIONAL_FUZZY.value,
        RelationshipOperator.BIDIRECTIONAL.value,
        RelationshipOperator.BACKWARD_FUZZY.value,
        RelationshipOperator.FORWARD_FUZZY.value,
        RelationshipOperator.BACKWARD.value,
        RelationshipOperator.FORWARD.value,
    )

    # @@ STEP 2: Operator semantics
    FUZZY_MARKER: Final[str] = "~"
    FORWARD_OPERATORS: Final[FrozenSet[str]] = frozenset({"->", "~>"})
    BACKWARD_OPERATORS: Final[FrozenSet[str]] = frozenset({"<-", "<~"})
    BIDIRECTIONAL_OPERATORS: Final[FrozenSet[str]] = frozenset({"<->", "<~>"})


# ============================================================================
# FIELD KINDS AND PRIMITIVES
# ============================================================================

class FieldKind(StrEnum):
    """
    Closed set of parsed field kinds.

    :class: FieldKind
    :synopsis: Discriminator for parsed schema entries
    """

    FIELD = "field"
    RELATIONSHIP = "relationship"
    ENUM = "enum"
    GENERATIVE = "generative"
    DISABLED = "disabled"


class PrimitiveType(StrEnum):
    """Primitive value types a plain field may hold."""

    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    JSON = "json"
    MARKDOWN = "markdown"
    URL = "url"
    OBJECT = "object"


class FilterOperator(StrEnum):
    """Comparison operators allowed inside a filter clause."""

    EQ = "="
    NE = "!="
    GT = ">"
    GE = ">="
    LT = "<"
    LE = "<="


# ============================================================================
# PARSER CONSTANTS
# ============================================================================

class ParserConstants:
    """Regular expressions and tokens used by the pattern parser."""

    # @@ STEP 1: Relationship detection
    OPERATOR_PATTERN: Final[str] = r"^(.*?)\s*(<~>|<->|<~|~>|<-|->)\s*(.+)$"
    ROUTE_PARAM_PATTERN: Final[str] = r"^:(\w+)\s+(.+)$"
    FILTER_BLOCK_PATTERN: Final[str] = r"\[([^\]]+)\]"
    FILTER_CONDITION_PATTERN: Final[str] = r"^\s*(\w+)\s*(!=|>=|<=|=|>|<)\s*(.+?)\s*$"
    THRESHOLD_PATTERN: Final[str] = r"^(.*?)\(\s*([0-9]*\.?[0-9]+)\s*\)$"
    MALFORMED_THRESHOLD_PATTERN: Final[str] = r"\([^)]*\)$"
    TARGET_BACKREF_PATTERN: Final[str] = r"^([A-Za-z_]\w*)\.(\w+)$"
    TARGET_TYPE_PATTERN: Final[str] = r"^[A-Za-z_]\w*$"
    IMPLICIT_REFERENCE_PATTERN: Final[str] = r"^([A-Z]\w*)(?:\.(\w+))?$"

    # @@ STEP 2: Plain field detection
    TYPE_HINT_PATTERN: Final[str] = r"\s*\((number|date|boolean|integer)\)\s*$"
    ENUM_TOKEN_PATTERN: Final[str] = r"^[\w\s\-]+$"
    TEMPLATE_VAR_PATTERN: Final[str] = r"\{(\w+)\}"
    DEFAULT_VALUE_PATTERN: Final[str] = r"^(.+?)\s+=\s+(\S.*)$"
    NUMBER_PATTERN: Final[str] = r"^-?\d+(\.\d+)?$"
    INTEGER_PATTERN: Final[str] = r"^-?\d+$"

    # @@ STEP 3: Tokens
    ENUM_SEPARATOR: Final[str] = "|"
    UNION_SEPARATOR: Final[str] = "|"
    FILTER_SEPARATOR: Final[str] = ","
    BACKREF_SEPARATOR: Final[str] = "."
    DIRECTIVE_PREFIX: Final[str] = "$"
    PRIVATE_PREFIX: Final[str] = "_"
    GENERATIVE_OBJECT_KEY: Final[str] = "mdx"
    OPEN_BRACKETS: Final[str] = "([{"
    CLOSE_BRACKETS: Final[str] = ")]}"

    # @@ STEP 4: Modifiers (parsed from the end of a type token, any order)
    MODIFIER_REQUIRED: Final[str] = "!"
    MODIFIER_OPTIONAL: Final[str] = "?"
    MODIFIER_INDEXED: Final[str] = "#"
    MODIFIER_ARRAY: Final[str] = "[]"

    # @@ STEP 5: Literal coercion
    BOOL_TRUE: Final[str] = "true"
    BOOL_FALSE: Final[str] = "false"

    # @@ STEP 6: Bare primitive aliases
    PRIMITIVE_ALIASES: Final[dict] = {
        "string": PrimitiveType.STRING,
        "text": PrimitiveType.STRING,
        "number": PrimitiveType.NUMBER,
        "float": PrimitiveType.NUMBER,
        "integer": PrimitiveType.INTEGER,
        "int": PrimitiveType.INTEGER,
        "boolean": PrimitiveType.BOOLEAN,
        "bool": PrimitiveType.BOOLEAN,
        "date": PrimitiveType.DATE,
        "datetime": PrimitiveType.DATETIME,
        "json": PrimitiveType.JSON,
        "markdown": PrimitiveType.MARKDOWN,
        "url": PrimitiveType.URL,
    }


# ============================================================================
# SCHEMA CONSTANTS
# ============================================================================

class SchemaConstants:
    """Constants for schema building and registration."""

    # @@ STEP 1: Default verbs every entity type starts with
    VERB_CREATE: Final[str] = "create"
    VERB_UPDATE: Final[str] = "update"
    VERB_DELETE: Final[str] = "delete"
    DEFAULT_VERBS: Final[Tuple[str, ...]] = (VERB_CREATE, VERB_UPDATE, VERB_DELETE)

    # @@ STEP 2: Directive keys
    DIRECTIVE_INSTRUCTIONS: Final[str] = "$instructions"
    DIRECTIVE_CONTEXT: Final[str] = "$context"
    DIRECTIVE_FUZZY_THRESHOLD: Final[str] = "$fuzzyThreshold"
    DIRECTIVE_COUNT: Final[str] = "$count"

    # @@ STEP 3: Verb declarations
    VERB_NAME_PATTERN: Final[str] = r"^[a-z][a-z]*$"

    # @@ STEP 4: System entity type holding edge records
    EDGE_TYPE: Final[str] = "Edge"


class Cardinality(StrEnum):
    """Cardinality of an edge record."""

    MANY_TO_ONE = "many-to-one"
    ONE_TO_MANY = "one-to-many"
    MANY_TO_MANY = "many-to-many"


# ============================================================================
# CASCADE CONSTANTS
# ============================================================================

class ResolutionState(StrEnum):
    """
    Lifecycle of a single field resolution.

    :class: ResolutionState
    :synopsis: Unresolved -> Supplied | Linked | Generating -> Resolved | Failed
    """

    UNRESOLVED = "unresolved"
    SUPPLIED = "supplied"
    LINKED = "linked"
    GENERATING = "generating"
    RESOLVED = "resolved"
    FAILED = "failed"


class CascadeConstants:
    """Tunables for cascade resolution."""

    # @@ STEP 1: Recursion bound for nested generation
    DEFAULT_MAX_DEPTH: Final[int] = 10

    # @@ STEP 2: Worker pool for generation work
    DEFAULT_MAX_WORKERS: Final[int] = 8
    THREAD_NAME_PREFIX: Final[str] = "graphcascade-resolve"

    # @@ STEP 3: Array generation
    DEFAULT_ARRAY_COUNT: Final[int] = 3

    # @@ STEP 4: Entity metadata keys
    META_DEPTH: Final[str] = "depth"
    META_GENERATED_BY: Final[str] = "generatedBy"
    META_INSTRUCTIONS: Final[str] = "instructions"
    META_FIELD: Final[str] = "field"
    META_CHAIN: Final[str] = "chain"

    # @@ STEP 5: Fingerprinting
    FINGERPRINT_LENGTH: Final[int] = 32

    # @@ STEP 6: Rough token estimate for context budgeting
    CHARS_PER_TOKEN: Final[int] = 4


class SimilarityConstants:
    """Tunables for fuzzy matching."""

    DEFAULT_THRESHOLD: Final[float] = 0.75
    MIN_THRESHOLD: Final[float] = 0.0
    MAX_THRESHOLD: Final[float] = 1.0
    TOKEN_PATTERN: Final[str] = r"[a-z0-9]+"


# ============================================================================
# EVENT CONSTANTS
# ============================================================================

class EventConstants:
    """Event names and pattern tokens."""

    # @@ STEP 1: Pattern tokens
    WILDCARD: Final[str] = "*"
    DOT_SEPARATOR: Final[str] = "."
    COLON_SEPARATOR: Final[str] = ":"

    # @@ STEP 2: Cascade events
    CASCADE_PROGRESS: Final[str] = "cascade:progress"
    RESOLVE_COMPLETE: Final[str] = "resolve:complete"

    # @@ STEP 3: Entity lifecycle events
    ENTITY_CREATED: Final[str] = "entity:created"
    ENTITY_UPDATED: Final[str] = "entity:updated"
    ENTITY_DELETED: Final[str] = "entity:deleted"
    TYPED_EVENT_FORMAT: Final[str] = "{type}.{action}"
    ENTITY_EVENT_FORMAT: Final[str] = "entity:{action}"
    OBJECT_REF_FORMAT: Final[str] = "{type}/{id}"
    ACTION_CREATED: Final[str] = "created"
    ACTION_UPDATED: Final[str] = "updated"
    ACTION_DELETED: Final[str] = "deleted"

    # @@ STEP 4: History bound
    MAX_HISTORY: Final[int] = 10000

    # @@ STEP 5: Actor used when none is supplied
    SYSTEM_ACTOR: Final[str] = "system"


# ============================================================================
# ERROR MESSAGE CONSTANTS
# ============================================================================

class ErrorMessages:
    """Error message constants."""

    # @@ STEP 1: Parse errors
    INVALID_OPERATOR: Final[str] = "Unknown relationship operator: {operator!r}"
    INCONSISTENT_OPERATOR: Final[str] = (
        "Relationship {field_name!r} has operator {operator!r} inconsistent with "
        "direction={direction} match_mode={match_mode}"
    )
    INVALID_FILTER: Final[str] = "Invalid filter condition: {condition!r}"
    INVALID_TARGET: Final[str] = "Invalid relationship target: {target!r}"

    # @@ STEP 2: Schema and validation errors
    SCHEMA_NOT_FOUND: Final[str] = "Entity type {entity_type!r} is not registered"
    DUPLICATE_SCHEMA: Final[str] = "Entity type {entity_type!r} is already registered"
    ENUM_VALUE_NOT_ALLOWED: Final[str] = (
        "Value {value!r} for {entity_type}.{field_name} is not one of {allowed}"
    )
    TYPE_MISMATCH: Final[str] = (
        "Value {value!r} for {entity_type}.{field_name} is not a valid {expected}"
    )
    MISSING_REQUIRED_FIELD: Final[str] = "Required field {entity_type}.{field_name} is missing"
    UNKNOWN_FIELD: Final[str] = "Entity type {entity_type!r} has no field {field_name!r}"
    INVALID_DEFINITION: Final[str] = "Definition for {entity_type!r} must be a mapping, got {actual}"

    # @@ STEP 3: Cycle errors
    CYCLE_DETECTED: Final[str] = "Circular dependency detected: {cycles}"

    # @@ STEP 4: Generation errors
    GENERATION_FAILED: Final[str] = "Generation of {entity_type} for field {field_name!r} failed: {error}"
    DEPTH_EXCEEDED: Final[str] = (
        "Cascade depth {depth} exceeds maximum {max_depth} while resolving "
        "{entity_type}.{field_name} (chain: {chain})"
    )
    EMPTY_GENERATION: Final[str] = "Generation provider returned nothing for {entity_type}"

    # @@ STEP 5: Storage errors
    ENTITY_NOT_FOUND: Final[str] = "{entity_type} {entity_id!r} not found"
    STORAGE_FAILED: Final[str] = "Storage operation {operation} failed for {entity_type}: {error}"

    # @@ STEP 6: Session errors
    SESSION_CLOSED: Final[str] = "Session is closed"
    VERB_NOT_AVAILABLE: Final[str] = "Entity type {entity_type!r} does not support {action!r}"


class WarningMessages:
    """Templates for logged warnings."""

    PARSE_FALLBACK: Final[str] = "Could not parse field %r (%s); treating it as a plain string"
    REQUIRED_OPTIONAL_CONFLICT: Final[str] = (
        "Field %r is marked both required and optional; treating it as optional"
    )
    CYCLE_IN_ORDERING: Final[str] = "Circular dependency detected involving %s"
    FUZZY_MISS: Final[str] = "No %s matched %s.%s above threshold %.2f; generating"
    MALFORMED_THRESHOLD: Final[str] = "Ignoring malformed fuzzy threshold in %r"
    CONFLICT_REQUIRED_OPTIONAL: Final[str] = "required+optional"
