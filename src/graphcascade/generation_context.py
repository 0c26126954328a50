# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Context handed to generation providers.

:module: generation_context
:synopsis: GenerationContext record, prompt rendering and request fingerprints
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .cascade_models import Entity
from .cascade_parser import RelationshipDescriptor
from .cascade_schema import EntitySchema
from .constants import CascadeConstants, ParserConstants


def owner_text_fields(entity: Entity, schema: Optional[EntitySchema] = None) -> Dict[str, str]:
    """
    String-valued fields of an entity, skipping ``$``/``_`` keys and relationships.

    These are the parent values that flow into a child's generation context.
    """
    relationships = schema.relationships if schema is not None else {}
    values: Dict[str, str] = {}
    for key, value in entity.data.items():
        if key.startswith((ParserConstants.DIRECTIVE_PREFIX, ParserConstants.PRIVATE_PREFIX)):
            continue
        if key in relationships or not isinstance(value, str) or not value:
            continue
        values[key] = value
    return values


@dataclass(frozen=True)
class GenerationContext:
    """
    Everything a provider needs to generate a target entity.

    :class: GenerationContext
    :synopsis: Prompt, owner data, inherited instructions and depth for one generation
    """

    target_type: str
    field_name: str
    owner_type: str
    owner_id: str
    depth: int
    is_array: bool = False
    count: Optional[int] = None
    prompt: Optional[str] = None
    owner_fields: Dict[str, str] = field(default_factory=dict)
    instructions: List[str] = field(default_factory=list)
    target_instructions: Optional[str] = None
    context: List[Any] = field(default_factory=list)
    chain: List[str] = field(default_factory=list)
    target_schema: Optional[EntitySchema] = None
    relationship: Optional[RelationshipDescriptor] = None

    def fingerprint_payload(self) -> Dict[str, Any]:
        return {
            "owner_type": self.owner_type,
            "owner_id": self.owner_id,
            "field": self.field_name,
            "target": self.target_type,
            "prompt": self.prompt,
            "owner_fields": self.owner_fields,
            "instructions": self.instructions,
            "context": self.context,
            "count": self.count,
        }

    def fingerprint(self) -> str:
        """Stable hash identifying this generation request."""
        canonical = json.dumps(self.fingerprint_payload(), sort_keys=True, default=str)
        digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        return digest[: CascadeConstants.FINGERPRINT_LENGTH]

    def to_prompt(self) -> str:
        """Render the context as prompt text for text-generation backends."""
        lines: List[str] = [self.prompt or f"Generate a {self.target_type} for {self.owner_type}.{self.field_name}"]
        if self.target_instructions:
            lines.append(f"Instructions: {self.target_instructions}")
        for instruction in self.instructions:
            lines.append(f"Context instructions: {instruction}")
        for item in self.context:
            lines.append(f"Context: {item}")
        if self.owner_fields:
            lines.append(f"Parent {self.owner_type}:")
            lines.extend(f"{key}: {value}" for key, value in self.owner_fields.items())
        return "\n".join(lines)

    def estimate_tokens(self) -> int:
        return len(self.to_prompt()) // CascadeConstants.CHARS_PER_TOKEN
