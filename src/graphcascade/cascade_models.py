# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Runtime records exchanged with storage providers.

:module: cascade_models
:synopsis: Pydantic models for entities and edge records
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import Cardinality, CascadeConstants, MatchMode, RelationshipDirection


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# -----------------------------------------------------------------------------
# Entities
# -----------------------------------------------------------------------------

class Entity(BaseModel):
    """
    A stored instance of an entity type.

    Field values live in ``data``; relationship fields hold target ids (a string
    or a list of strings). Identity is ``(type, id)``.
    """

    model_config = ConfigDict(validate_assignment=True, populate_by_name=True)

    id: str = Field(alias="$id")
    type: str = Field(alias="$type")
    data: Dict[str, Any] = Field(default_factory=dict)
    meta: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt")

    def __hash__(self) -> int:
        return hash((self.type, self.id))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return False
        return self.type == other.type and self.id == other.id

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __contains__(self, key: object) -> bool:
        return key in self.data

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    @property
    def depth(self) -> int:
        """Generation depth: 0 for entities created directly by callers."""
        return int(self.meta.get(CascadeConstants.META_DEPTH, 0))

    @property
    def instructions(self) -> List[str]:
        """``$instructions`` inherited from the ancestors that generated this entity."""
        return list(self.meta.get(CascadeConstants.META_INSTRUCTIONS, []))

    def references(self, field_name: str) -> List[str]:
        """Target ids currently stored on a relationship field."""
        value = self.data.get(field_name)
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value if item is not None]
        return [str(value)]

    def to_dict(self) -> Dict[str, Any]:
        """Flat representation: ``{'$id': ..., '$type': ..., **data}``."""
        return {"$id": self.id, "$type": self.type, **self.data}


# -----------------------------------------------------------------------------
# Edges
# -----------------------------------------------------------------------------

class EdgeRecord(BaseModel):
    """
    Schema-level description of one relationship, stored as an ``Edge`` entity.

    ``from``/``to`` follow the traversal direction: backward relationships are
    recorded from the target type to the owning type.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, use_enum_values=True)

    from_: str = Field(alias="from")
    name: str
    to: str
    backref: Optional[str] = None
    cardinality: Cardinality
    direction: RelationshipDirection
    match_mode: MatchMode = Field(alias="matchMode")
    operator: str

    @property
    def edge_id(self) -> str:
        return f"{self.from_}.{self.name}"

    def to_data(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
