# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Exception hierarchy for GraphCascade.

Every error raised by the package derives from :class:`CascadeGraphError`.
Validation failures raise :class:`ValidationError` from this module only.

:module: errors
:synopsis: Canonical exceptions for parsing, validation, cycles, generation and storage
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

from .constants import ErrorMessages


class CascadeGraphError(Exception):
    """Base class for all GraphCascade errors."""


# ----------------------------------------------------------------------------
# Schema errors
# ----------------------------------------------------------------------------

class SchemaError(CascadeGraphError):
    """Raised when a schema definition cannot be used."""


class ParseError(SchemaError):
    """Raised internally when a field description is malformed."""

    def __init__(self, message: str, field_name: Optional[str] = None, description: Any = None):
        super().__init__(message)
        self.field_name = field_name
        self.description = description


class ValidationError(SchemaError):
    """
    Raised when entity data or a definition violates its schema.

    :class: ValidationError
    :synopsis: Carries the entity type, field name and offending value
    """

    def __init__(
        self,
        message: str,
        entity_type: Optional[str] = None,
        field_name: Optional[str] = None,
        value: Any = None,
    ):
        super().__init__(message)
        self.entity_type = entity_type
        self.field_name = field_name
        self.value = value


class DuplicateDefinitionError(ValidationError):
    """Raised when a schema name is registered twice without replacement."""

    def __init__(self, entity_type: str):
        super().__init__(
            ErrorMessages.DUPLICATE_SCHEMA.format(entity_type=entity_type),
            entity_type=entity_type,
        )


# ----------------------------------------------------------------------------
# Graph errors
# ----------------------------------------------------------------------------

class CycleError(CascadeGraphError):
    """
    Describes circular dependencies between entity types.

    Graph queries return this as a value. Callers that prefer an exception use
    :meth:`raise_for`.
    """

    def __init__(self, cycles: Sequence[Sequence[str]]):
        self.cycles: List[List[str]] = [list(cycle) for cycle in cycles]
        rendered = "; ".join(" -> ".join(cycle) for cycle in self.cycles)
        super().__init__(ErrorMessages.CYCLE_DETECTED.format(cycles=rendered))

    @property
    def cycle_path(self) -> List[str]:
        """First detected cycle, closed (first element equals last)."""
        return self.cycles[0] if self.cycles else []

    @staticmethod
    def raise_for(result: Any) -> None:
        """Raise the cycle error carried by a sort result, if any."""
        error = getattr(result, "cycle_error", None)
        if error is not None:
            raise error


# ----------------------------------------------------------------------------
# Generation errors
# ----------------------------------------------------------------------------

class GenerationError(CascadeGraphError):
    """Raised when a generation provider fails to produce a target."""

    def __init__(
        self,
        message: str,
        entity_type: Optional[str] = None,
        field_name: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.entity_type = entity_type
        self.field_name = field_name
        self.cause = cause


class DepthExceededError(GenerationError):
    """Raised when nested generation goes deeper than the configured bound."""

    def __init__(
        self,
        entity_type: str,
        field_name: str,
        depth: int,
        max_depth: int,
        chain: Sequence[str] = (),
    ):
        self.depth = depth
        self.max_depth = max_depth
        self.chain = list(chain)
        super().__init__(
            ErrorMessages.DEPTH_EXCEEDED.format(
                depth=depth,
                max_depth=max_depth,
                entity_type=entity_type,
                field_name=field_name,
                chain=" > ".join(self.chain) or entity_type,
            ),
            entity_type=entity_type,
            field_name=field_name,
        )


# ----------------------------------------------------------------------------
# Storage errors
# ----------------------------------------------------------------------------

class NotFoundError(CascadeGraphError, LookupError):
    """Raised when an entity or entity type does not exist."""

    def __init__(self, entity_type: str, entity_id: Optional[str] = None, message: Optional[str] = None):
        if message is None:
            message = ErrorMessages.ENTITY_NOT_FOUND.format(entity_type=entity_type, entity_id=entity_id)
        super().__init__(message)
        self.entity_type = entity_type
        self.entity_id = entity_id


class StorageError(CascadeGraphError):
    """Raised when a storage provider fails for a reason other than absence."""

    def __init__(self, message: str, entity_type: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.entity_type = entity_type
        self.cause = cause


class SessionClosedError(CascadeGraphError):
    """Raised when a closed session is used."""

    def __init__(self) -> None:
        super().__init__(ErrorMessages.SESSION_CLOSED)
