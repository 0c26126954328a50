# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Pattern parser for entity field descriptions.

Turns the compact definition language (``'What is the idea? ->Idea'``,
``'draft | published'``, ``'Score (number)'``, ``['->Post']``) into typed
descriptors. Parsing never fails: malformed input falls back to a plain string
field and a warning is logged.

:module: cascade_parser
:synopsis: Field and relationship descriptor parsing
"""

from __future__ import annotations

import logging
import operator as _operator
import re
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .constants import (
    FieldKind,
    FilterOperator,
    MatchMode,
    OperatorConstants,
    ParserConstants,
    PrimitiveType,
    RelationshipDirection,
    RelationshipOperator,
    ErrorMessages,
    WarningMessages,
)
from .errors import ParseError

logger = logging.getLogger(__name__)

_OPERATOR_RE = re.compile(ParserConstants.OPERATOR_PATTERN, re.DOTALL)
_ROUTE_PARAM_RE = re.compile(ParserConstants.ROUTE_PARAM_PATTERN, re.DOTALL)
_FILTER_BLOCK_RE = re.compile(ParserConstants.FILTER_BLOCK_PATTERN)
_FILTER_CONDITION_RE = re.compile(ParserConstants.FILTER_CONDITION_PATTERN)
_THRESHOLD_RE = re.compile(ParserConstants.THRESHOLD_PATTERN)
_MALFORMED_THRESHOLD_RE = re.compile(ParserConstants.MALFORMED_THRESHOLD_PATTERN)
_BACKREF_RE = re.compile(ParserConstants.TARGET_BACKREF_PATTERN)
_TARGET_TYPE_RE = re.compile(ParserConstants.TARGET_TYPE_PATTERN)
_IMPLICIT_REFERENCE_RE = re.compile(ParserConstants.IMPLICIT_REFERENCE_PATTERN)
_TYPE_HINT_RE = re.compile(ParserConstants.TYPE_HINT_PATTERN, re.IGNORECASE)
_ENUM_TOKEN_RE = re.compile(ParserConstants.ENUM_TOKEN_PATTERN)
_TEMPLATE_VAR_RE = re.compile(ParserConstants.TEMPLATE_VAR_PATTERN)
_DEFAULT_VALUE_RE = re.compile(ParserConstants.DEFAULT_VALUE_PATTERN)
_NUMBER_RE = re.compile(ParserConstants.NUMBER_PATTERN)
_INTEGER_RE = re.compile(ParserConstants.INTEGER_PATTERN)

_FILTER_COMPARATORS: Dict[FilterOperator, Callable[[Any, Any], bool]] = {
    FilterOperator.EQ: _operator.eq,
    FilterOperator.NE: _operator.ne,
    FilterOperator.GT: _operator.gt,
    FilterOperator.GE: _operator.ge,
    FilterOperator.LT: _operator.lt,
    FilterOperator.LE: _operator.le,
}


# ----------------------------------------------------------------------------
# Descriptors
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class FilterCondition:
    """A single ``field op value`` condition from a ``[...]`` filter block."""

    field: str
    operator: FilterOperator
    value: Any

    def matches(self, candidate: Any) -> bool:
        """Return True when ``candidate`` satisfies this condition."""
        comparator = _FILTER_COMPARATORS[self.operator]
        try:
            return bool(comparator(candidate, self.value))
        except TypeError:
            # || Ordering comparisons between unrelated types never match
            return False


@dataclass(frozen=True)
class FieldDescriptor:
    """
    Parsed description of one schema entry.

    :class: FieldDescriptor
    :synopsis: Immutable record produced by :func:`parse_field`
    """

    name: str
    kind: FieldKind = FieldKind.FIELD
    primitive: PrimitiveType = PrimitiveType.STRING
    description: str = ""
    required: bool = False
    optional: bool = False
    indexed: bool = False
    unique: bool = False
    is_array: bool = False
    default: Any = None
    enum_values: Tuple[str, ...] = ()
    template: Optional[str] = None
    template_vars: Tuple[str, ...] = ()
    nested: Tuple["FieldDescriptor", ...] = ()
    conflicts: Tuple[str, ...] = ()

    @property
    def is_relationship(self) -> bool:
        return False

    @property
    def nested_fields(self) -> Dict[str, "FieldDescriptor"]:
        return {child.name: child for child in self.nested}


@dataclass(frozen=True)
class RelationshipDescriptor(FieldDescriptor):
    """
    A field that points at another entity type.

    The operator, direction and match mode always agree; construction with an
    inconsistent combination raises :class:`ParseError`.
    """

    kind: FieldKind = FieldKind.RELATIONSHIP
    operator: str = RelationshipOperator.FORWARD.value
    target_type: str = ""
    direction: RelationshipDirection = RelationshipDirection.FORWARD
    match_mode: MatchMode = MatchMode.EXACT
    backref: Optional[str] = None
    route_param: Optional[str] = None
    filters: Tuple[FilterCondition, ...] = ()
    prompt: Optional[str] = None
    union_types: Tuple[str, ...] = ()
    threshold: Optional[float] = None
    implicit: bool = False

    def __post_init__(self) -> None:
        expected_direction, expected_mode = operator_semantics(self.operator)
        if self.direction != expected_direction or self.match_mode != expected_mode:
            raise ParseError(
                ErrorMessages.INCONSISTENT_OPERATOR.format(
                    field_name=self.name,
                    operator=self.operator,
                    direction=self.direction,
                    match_mode=self.match_mode,
                ),
                field_name=self.name,
            )

    @property
    def is_relationship(self) -> bool:
        return True

    @property
    def is_fuzzy(self) -> bool:
        return self.match_mode == MatchMode.FUZZY

    @property
    def is_bidirectional(self) -> bool:
        return self.direction == RelationshipDirection.BIDIRECTIONAL

    @property
    def is_forward(self) -> bool:
        return self.direction == RelationshipDirection.FORWARD

    @property
    def is_backward(self) -> bool:
        return self.direction == RelationshipDirection.BACKWARD

    @property
    def target_types(self) -> Tuple[str, ...]:
        """All candidate target types, primary first."""
        return self.union_types or (self.target_type,)


Descriptor = Union[FieldDescriptor, RelationshipDescriptor]


# ----------------------------------------------------------------------------
# Operator helpers
# ----------------------------------------------------------------------------

def operator_semantics(op: str) -> Tuple[RelationshipDirection, MatchMode]:
    """Map an operator literal to its (direction, match mode) pair."""
    if op not in OperatorConstants.OPERATORS_BY_LENGTH:
        raise ParseError(ErrorMessages.INVALID_OPERATOR.format(operator=op))
    if op in OperatorConstants.BIDIRECTIONAL_OPERATORS:
        direction = RelationshipDirection.BIDIRECTIONAL
    elif op in OperatorConstants.BACKWARD_OPERATORS:
        direction = RelationshipDirection.BACKWARD
    else:
        direction = RelationshipDirection.FORWARD
    mode = MatchMode.FUZZY if OperatorConstants.FUZZY_MARKER in op else MatchMode.EXACT
    return direction, mode


def has_operator(description: str) -> bool:
    return isinstance(description, str) and _OPERATOR_RE.match(description.strip()) is not None


def is_forward_operator(op: str) -> bool:
    return op in OperatorConstants.FORWARD_OPERATORS


def is_backward_operator(op: str) -> bool:
    return op in OperatorConstants.BACKWARD_OPERATORS


def is_fuzzy_operator(op: str) -> bool:
    return OperatorConstants.FUZZY_MARKER in op


def parse_operator(description: str) -> Optional[Tuple[str, str, str]]:
    """
    Split a description around its first relationship operator.

    Args:
        description: Raw field description

    Returns:
        ``(prompt, operator, target_text)`` or None when no operator is present
    """
    match = _OPERATOR_RE.match(description.strip())
    if match is None:
        return None
    prompt, op, target = match.groups()
    return prompt.strip(), op, target.strip()


# ----------------------------------------------------------------------------
# Literal helpers
# ----------------------------------------------------------------------------

def coerce_literal(text: str) -> Any:
    """Coerce a textual literal to bool, int, float or a stripped string."""
    value = text.strip()
    lowered = value.lower()
    if lowered == ParserConstants.BOOL_TRUE:
        return True
    if lowered == ParserConstants.BOOL_FALSE:
        return False
    if _INTEGER_RE.match(value):
        return int(value)
    if _NUMBER_RE.match(value):
        return float(value)
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def parse_filters(text: str) -> List[FilterCondition]:
    """
    Parse the inside of a filter block.

    ``parse_filters("mrr>1000")`` yields one condition on ``mrr`` with the
    numeric value ``1000``.
    """
    conditions: List[FilterCondition] = []
    for chunk in text.split(ParserConstants.FILTER_SEPARATOR):
        if not chunk.strip():
            continue
        match = _FILTER_CONDITION_RE.match(chunk)
        if match is None:
            raise ParseError(ErrorMessages.INVALID_FILTER.format(condition=chunk.strip()))
        name, op, raw_value = match.groups()
        conditions.append(FilterCondition(name, FilterOperator(op), coerce_literal(raw_value)))
    return conditions


def split_top_level(text: str, separator: str) -> List[str]:
    """Split on ``separator`` only where it is not nested inside brackets."""
    parts: List[str] = []
    depth = 0
    current: List[str] = []
    for char in text:
        if char in ParserConstants.OPEN_BRACKETS:
            depth += 1
        elif char in ParserConstants.CLOSE_BRACKETS and depth > 0:
            depth -= 1
        if char == separator and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return parts


def split_modifiers(token: str) -> Tuple[str, Dict[str, bool]]:
    """
    Strip trailing modifiers (``!``, ``?``, ``#``, ``[]``) in any order.

    Returns:
        The bare token and a flag mapping with keys required/optional/indexed/array
    """
    flags = {"required": False, "optional": False, "indexed": False, "array": False}
    base = token.strip()
    while base:
        if base.endswith(ParserConstants.MODIFIER_ARRAY):
            flags["array"] = True
            base = base[: -len(ParserConstants.MODIFIER_ARRAY)].rstrip()
        elif base.endswith(ParserConstants.MODIFIER_REQUIRED):
            flags["required"] = True
            base = base[:-1].rstrip()
        elif base.endswith(ParserConstants.MODIFIER_OPTIONAL):
            flags["optional"] = True
            base = base[:-1].rstrip()
        elif base.endswith(ParserConstants.MODIFIER_INDEXED):
            flags["indexed"] = True
            base = base[:-1].rstrip()
        else:
            break
    return base, flags


def _modifier_kwargs(name: str, flags: Mapping[str, bool]) -> Dict[str, Any]:
    # @@ STEP: Optional wins over required; the conflict is kept on the descriptor
    required = flags["required"]
    optional = flags["optional"]
    conflicts: Tuple[str, ...] = ()
    if required and optional:
        logger.warning(WarningMessages.REQUIRED_OPTIONAL_CONFLICT, name)
        required = False
        conflicts = (WarningMessages.CONFLICT_REQUIRED_OPTIONAL,)
    return {
        "required": required,
        "unique": required,
        "optional": optional,
        "indexed": flags["indexed"],
        "is_array": flags["array"],
        "conflicts": conflicts,
    }


# ----------------------------------------------------------------------------
# Plain field helpers
# ----------------------------------------------------------------------------

def is_generative_string(description: str) -> bool:
    """True when the text contains at least one ``{identifier}`` placeholder."""
    return isinstance(description, str) and _TEMPLATE_VAR_RE.search(description) is not None


def parse_field_type(description: str) -> Tuple[PrimitiveType, str]:
    """
    Read a trailing ``(number)``/``(boolean)``/``(integer)``/``(date)`` hint.

    Returns:
        The primitive type (string when no hint) and the description without the hint
    """
    match = _TYPE_HINT_RE.search(description)
    if match is None:
        return PrimitiveType.STRING, description.strip()
    return PrimitiveType(match.group(1).lower()), description[: match.start()].strip()


def parse_enum_values(description: str) -> Optional[List[str]]:
    """Return the trimmed enum members, or None when the text is not an enum."""
    if ParserConstants.ENUM_SEPARATOR not in description:
        return None
    parts = [part.strip() for part in split_top_level(description, ParserConstants.ENUM_SEPARATOR)]
    if len(parts) < 2 or not all(part and _ENUM_TOKEN_RE.match(part) for part in parts):
        return None
    return parts


def _primitive_token(token: str) -> Optional[Tuple[PrimitiveType, Dict[str, bool]]]:
    base, flags = split_modifiers(token)
    primitive = ParserConstants.PRIMITIVE_ALIASES.get(base)
    if primitive is None:
        return None
    return primitive, flags


# ----------------------------------------------------------------------------
# Relationship parsing
# ----------------------------------------------------------------------------

def _parse_relationship(name: str, description: str) -> Optional[RelationshipDescriptor]:
    route_param: Optional[str] = None
    text = description.strip()

    # @@ STEP 1: Leading route parameter ':id ->Type'
    route_match = _ROUTE_PARAM_RE.match(text)
    if route_match is not None and has_operator(route_match.group(2)):
        route_param, text = route_match.group(1), route_match.group(2).strip()

    parts = parse_operator(text)
    if parts is None:
        return None
    prompt, op, target_text = parts

    # @@ STEP 2: Filter block anywhere in the target text
    filters: Tuple[FilterCondition, ...] = ()
    filter_match = _FILTER_BLOCK_RE.search(target_text)
    if filter_match is not None:
        filters = tuple(parse_filters(filter_match.group(1)))
        target_text = (target_text[: filter_match.start()] + target_text[filter_match.end():]).strip()

    # @@ STEP 3: Trailing modifiers
    target_text, flags = split_modifiers(target_text)

    # @@ STEP 4: Fuzzy threshold 'Type(0.8)'
    threshold: Optional[float] = None
    threshold_match = _THRESHOLD_RE.match(target_text)
    if threshold_match is not None:
        value = float(threshold_match.group(2))
        target_text = threshold_match.group(1).strip()
        if 0.0 <= value <= 1.0:
            threshold = value
        else:
            logger.warning(WarningMessages.MALFORMED_THRESHOLD, description)
    elif _MALFORMED_THRESHOLD_RE.search(target_text):
        logger.warning(WarningMessages.MALFORMED_THRESHOLD, description)
        target_text = _MALFORMED_THRESHOLD_RE.sub("", target_text).strip()

    # @@ STEP 5: Union targets and backref on the primary target
    candidates = [part.strip() for part in target_text.split(ParserConstants.UNION_SEPARATOR)]
    backref: Optional[str] = None
    primary = candidates[0]
    backref_match = _BACKREF_RE.match(primary)
    if backref_match is not None:
        primary, backref = backref_match.group(1), backref_match.group(2)
        candidates[0] = primary
    for candidate in candidates:
        if not _TARGET_TYPE_RE.match(candidate):
            raise ParseError(ErrorMessages.INVALID_TARGET.format(target=candidate), field_name=name)

    direction, match_mode = operator_semantics(op)
    default_description = f"{primary}{ParserConstants.BACKREF_SEPARATOR}{backref}" if backref else primary
    return RelationshipDescriptor(
        name=name,
        description=prompt or default_description,
        operator=op,
        target_type=primary,
        direction=direction,
        match_mode=match_mode,
        backref=backref,
        route_param=route_param,
        filters=filters,
        prompt=prompt or None,
        union_types=tuple(candidates) if len(candidates) > 1 else (),
        threshold=threshold,
        **_modifier_kwargs(name, flags),
    )


def _parse_implicit_reference(name: str, description: str) -> Optional[RelationshipDescriptor]:
    # || Only the dotted 'Author.posts' form; a bare capitalised word stays text
    base, flags = split_modifiers(description)
    match = _IMPLICIT_REFERENCE_RE.match(base)
    if match is None or match.group(2) is None:
        return None
    return RelationshipDescriptor(
        name=name,
        description=base,
        target_type=match.group(1),
        backref=match.group(2),
        implicit=True,
        **_modifier_kwargs(name, flags),
    )


# ----------------------------------------------------------------------------
# String parsing
# ----------------------------------------------------------------------------

def _parse_string(name: str, description: str) -> FieldDescriptor:
    text = description.strip()
    if not text:
        return FieldDescriptor(name=name)

    # @@ STEP 1: Relationships take precedence over every other form
    relationship = _parse_relationship(name, text)
    if relationship is not None:
        return relationship

    # @@ STEP 2: Generative templates
    if is_generative_string(text):
        return FieldDescriptor(
            name=name,
            kind=FieldKind.GENERATIVE,
            description=text,
            template=text,
            template_vars=tuple(dict.fromkeys(_TEMPLATE_VAR_RE.findall(text))),
        )

    # @@ STEP 3: Parenthesised type hint
    hint_match = _TYPE_HINT_RE.search(text)
    if hint_match is not None:
        primitive, remaining = parse_field_type(text)
        return FieldDescriptor(name=name, primitive=primitive, description=remaining)

    # @@ STEP 4: Optional default value after a bare type or enum
    default: Any = None
    default_match = _DEFAULT_VALUE_RE.match(text)
    if default_match is not None:
        left = default_match.group(1).strip()
        if _primitive_token(left) is not None or parse_enum_values(left) is not None:
            text, default = left, coerce_literal(default_match.group(2))

    # @@ STEP 5: Bare primitive with modifiers ('string!', 'number?')
    primitive_token = _primitive_token(text)
    if primitive_token is not None:
        primitive, flags = primitive_token
        return FieldDescriptor(
            name=name,
            primitive=primitive,
            description=name,
            default=default,
            **_modifier_kwargs(name, flags),
        )

    # @@ STEP 6: Enumerations
    enum_values = parse_enum_values(text)
    if enum_values is not None:
        return FieldDescriptor(
            name=name,
            kind=FieldKind.ENUM,
            description=text,
            enum_values=tuple(enum_values),
            default=default,
        )

    # @@ STEP 7: Dotted implicit reference
    implicit = _parse_implicit_reference(name, text)
    if implicit is not None:
        return implicit

    return FieldDescriptor(name=name, description=text)


def _parse_sequence(name: str, items: Sequence[Any]) -> FieldDescriptor:
    if len(items) == 1:
        inner = parse_field(name, items[0])
        return replace(inner, is_array=True)
    if not items:
        return FieldDescriptor(name=name, is_array=True)
    if all(isinstance(item, str) for item in items):
        return FieldDescriptor(
            name=name,
            kind=FieldKind.ENUM,
            description=" | ".join(items),
            enum_values=tuple(item.strip() for item in items),
        )
    raise ParseError(f"Unsupported list description for field {name!r}", field_name=name, description=items)


def _parse_mapping(name: str, description: Mapping[str, Any]) -> FieldDescriptor:
    template = description.get(ParserConstants.GENERATIVE_OBJECT_KEY)
    if template is not None:
        text = str(template)
        return FieldDescriptor(
            name=name,
            kind=FieldKind.GENERATIVE,
            primitive=PrimitiveType.MARKDOWN,
            description=text,
            template=text,
            template_vars=tuple(dict.fromkeys(_TEMPLATE_VAR_RE.findall(text))),
        )
    nested = tuple(
        parse_field(key, value)
        for key, value in description.items()
        if not str(key).startswith(ParserConstants.DIRECTIVE_PREFIX)
    )
    return FieldDescriptor(name=name, primitive=PrimitiveType.OBJECT, description=name, nested=nested)


def _parse_literal(name: str, value: Any) -> FieldDescriptor:
    if isinstance(value, bool):
        primitive = PrimitiveType.BOOLEAN
    elif isinstance(value, int):
        primitive = PrimitiveType.INTEGER
    elif isinstance(value, float):
        primitive = PrimitiveType.NUMBER
    else:
        raise ParseError(f"Unsupported description type {type(value).__name__}", field_name=name, description=value)
    return FieldDescriptor(name=name, primitive=primitive, description=name, default=value)


def parse_field(name: str, description: Any) -> Descriptor:
    """
    Parse one schema entry into a descriptor.

    Args:
        name: Field name
        description: String, single-element list, mapping, literal or None

    Returns:
        A :class:`FieldDescriptor` or :class:`RelationshipDescriptor`. Never raises;
        unparseable input becomes a plain string field.
    """
    try:
        if description is None:
            return FieldDescriptor(name=name, kind=FieldKind.DISABLED)
        if isinstance(description, str):
            return _parse_string(name, description)
        if isinstance(description, Mapping):
            return _parse_mapping(name, description)
        if isinstance(description, (list, tuple)):
            return _parse_sequence(name, description)
        return _parse_literal(name, description)
    except ParseError as exc:
        logger.warning(WarningMessages.PARSE_FALLBACK, name, exc)
        return FieldDescriptor(name=name, description=str(description))
