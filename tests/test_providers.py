# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Provider and generation context tests.
"""

from __future__ import annotations

import pytest

from graphcascade import (
    CallableGenerationProvider,
    Entity,
    GenerationContext,
    InMemoryStorageProvider,
    NotFoundError,
    PlaceholderGenerationProvider,
    build_schema,
)
from graphcascade.generation_context import owner_text_fields
from graphcascade.providers import matches_where


def make_context(**overrides) -> GenerationContext:
    values = {
        "target_type": "Idea",
        "field_name": "idea",
        "owner_type": "Startup",
        "owner_id": "s1",
        "depth": 1,
    }
    values.update(overrides)
    return GenerationContext(**values)


class TestInMemoryStorage:
    """Dictionary-backed storage provider."""

    def test_create_and_get(self, storage):
        created = storage.create("Post", {"title": "Hello"}, "p1", {"depth": 2})
        assert created.id == "p1"
        assert created.depth == 2
        assert storage.get("Post", "p1") == created
        assert storage.get("Post", "missing") is None
        assert storage.get("Author", "p1") is None

    def test_returned_entities_are_copies(self, storage):
        created = storage.create("Post", {"tags": ["a"]})
        created.data["tags"].append("b")
        assert storage.get("Post", created.id).data["tags"] == ["a"]

    def test_generated_ids_are_unique(self, storage):
        ids = {storage.create("Post", {}).id for _ in range(20)}
        assert len(ids) == 20

    def test_update_merges(self, storage):
        storage.create("Post", {"title": "Hello", "views": 1}, "p1")
        updated = storage.update("Post", "p1", {"views": 2})
        assert updated.data == {"title": "Hello", "views": 2}
        assert updated.updated_at >= updated.created_at

    def test_update_missing(self, storage):
        with pytest.raises(NotFoundError) as exc_info:
            storage.update("Post", "missing", {})
        assert exc_info.value.entity_id == "missing"

    def test_delete_and_count(self, storage):
        storage.create("Post", {}, "p1")
        storage.create("Author", {}, "a1")
        assert storage.count() == 2
        assert storage.delete("Post", "p1") is True
        assert storage.delete("Post", "p1") is False
        assert storage.count("Post") == 0

    def test_find(self, storage):
        first = storage.create("Post", {"author": "a1", "tags": ["x", "y"]})
        second = storage.create("Post", {"author": "a2", "tags": ["y"]})
        assert storage.find("Post") == [first, second]
        assert storage.find("Post", {"author": "a1"}) == [first]
        assert storage.find("Post", {"tags": "x"}) == [first]
        assert storage.find("Post", {"author": ["a1", "a2"]}) == [first, second]
        assert storage.find("Post", {"$id": second.id}) == [second]
        assert storage.find("Ghost") == []


class TestMatchesWhere:
    def test_empty_where_matches(self):
        assert matches_where(Entity(id="1", type="A"), None)
        assert matches_where(Entity(id="1", type="A"), {})

    def test_missing_field(self):
        assert not matches_where(Entity(id="1", type="A", data={}), {"name": "x"})


class TestGenerationContext:
    """Fingerprints and prompt rendering."""

    def test_fingerprint_is_stable(self):
        assert make_context().fingerprint() == make_context().fingerprint()

    def test_fingerprint_changes_with_inputs(self):
        base = make_context().fingerprint()
        assert make_context(field_name="pitch").fingerprint() != base
        assert make_context(owner_fields={"name": "Acme"}).fingerprint() != base
        assert make_context(instructions=["Be bold"]).fingerprint() != base
        assert make_context(count=2).fingerprint() != base

    def test_fingerprint_ignores_depth(self):
        assert make_context(depth=1).fingerprint() == make_context(depth=4).fingerprint()

    def test_to_prompt(self):
        context = make_context(
            prompt="What is the core idea?",
            owner_fields={"name": "Acme"},
            instructions=["Be bold"],
            target_instructions="Be specific",
            context=["B2B"],
        )
        assert context.to_prompt().splitlines() == [
            "What is the core idea?",
            "Instructions: Be specific",
            "Context instructions: Be bold",
            "Context: B2B",
            "Parent Startup:",
            "name: Acme",
        ]
        assert context.estimate_tokens() > 0

    def test_default_prompt(self):
        assert make_context().to_prompt() == "Generate a Idea for Startup.idea"

    def test_owner_text_fields(self):
        schema = build_schema("Startup", {"name": "string", "idea": "->Idea"})
        entity = Entity(
            id="s1",
            type="Startup",
            data={"name": "Acme", "idea": "i1", "$note": "x", "_secret": "y", "mrr": 10, "empty": ""},
        )
        assert owner_text_fields(entity, schema) == {"name": "Acme"}


class TestPlaceholderGeneration:
    """Deterministic offline generation."""

    @pytest.fixture
    def schema(self):
        return build_schema(
            "Founder",
            {
                "name": "string",
                "role": "ceo | cto",
                "age": "integer",
                "active": "boolean",
                "stage": "seed | seriesA = seriesA",
                "pitch": "{name} is building the future",
            },
        )

    def test_single(self, schema):
        provider = PlaceholderGenerationProvider()
        data = provider.generate("Founder", make_context(target_type="Founder", target_schema=schema, owner_fields={"name": "Acme"}))
        assert data["name"] == "name: Founder for Startup Acme"
        assert data["role"] == "ceo"
        assert data["age"] == 0
        assert data["active"] is False
        assert data["stage"] == "seriesA"
        assert data["pitch"] == "Acme is building the future"

    def test_array_counts(self, schema):
        provider = PlaceholderGenerationProvider(default_count=2)
        context = make_context(target_type="Founder", target_schema=schema, is_array=True)
        assert len(provider.generate("Founder", context)) == 2
        items = provider.generate("Founder", context, 4)
        assert len(items) == 4
        assert items[3]["name"] == "name: Founder #4 for Startup s1"

    def test_without_schema(self):
        data = PlaceholderGenerationProvider().generate("Idea", make_context(prompt="Pitch it"))
        assert data == {"name": "Idea for Startup s1", "description": "Pitch it"}


class TestCallableGeneration:
    def test_delegates(self):
        seen = []

        def generate(target_type, context, count):
            seen.append((target_type, context.field_name, count))
            return {"description": "from callable"}

        provider = CallableGenerationProvider(generate)
        assert provider.generate("Idea", make_context(), 1) == {"description": "from callable"}
        assert seen == [("Idea", "idea", 1)]
