# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Session tests: end-to-end flows through schema definition, CRUD, verbs and
relationship resolution.
"""

from __future__ import annotations

import pytest

from graphcascade import (
    CascadeSession,
    InMemoryStorageProvider,
    NotFoundError,
    SessionClosedError,
    StorageError,
    ValidationError,
    get_registered_schemas,
    parse_filters,
    topological_sort,
)

from . import STARTUP_SCHEMA


class TestEndToEnd:
    """Complete flows from definition to generated relationships."""

    def test_generated_forward_relationship(self, session, storage, generator):
        session.define({"Startup": {"idea": "What is the core idea? ->Idea"}, "Idea": {"description": "string"}})
        startup = session.create("Startup", {"name": "Acme"})

        idea = session.resolve(startup, "idea").result(timeout=5)

        assert idea.type == "Idea"
        assert idea.data["description"]
        assert generator.call_count == 1

        edge = storage.get("Edge", "Startup.idea")
        assert edge is not None
        assert edge.data["direction"] == "forward"
        assert edge.data["matchMode"] == "exact"
        assert edge.data["to"] == "Idea"

    def test_optional_relationship_is_not_generated(self, session, generator):
        session.define({"Post": {"category": "->Category?"}, "Category": {"name": "string"}})
        post = session.create("Post", {})

        assert session.resolve(post, "category").result(timeout=5) is None
        assert generator.call_count == 0

    def test_filters_are_typed(self, session):
        [revenue] = parse_filters("mrr>1000")
        assert (revenue.field, revenue.operator, revenue.value) == ("mrr", ">", 1000)
        [active] = parse_filters("active=true")
        assert active.value is True

        session.define(
            {
                "Investor": {"name": "string", "portfolio": ["<-Startup[mrr>1000]"]},
                "Startup": {"name": "string", "mrr": "number", "investor": "->Investor"},
            }
        )
        investor = session.create("Investor", {"name": "Fund"})
        big = session.create("Startup", {"name": "Big", "mrr": 5000, "investor": investor})
        session.create("Startup", {"name": "Small", "mrr": 100, "investor": investor})

        assert session.resolve(investor, "portfolio").result(timeout=5) == [big]

    def test_create_with_cascade(self, session, generator):
        session.define(STARTUP_SCHEMA)
        startup = session.create("Startup", {"name": "Acme"}, cascade=True)

        assert session.get("Idea", startup.data["idea"]) is not None
        assert len(startup.data["founders"]) == 3
        assert generator.call_count == 2

    def test_generated_entities_emit_lifecycle_events(self, session, events):
        session.define(STARTUP_SCHEMA)
        startup = session.create("Startup", {"name": "Acme"})
        session.resolve(startup, "idea").result(timeout=5)

        [created] = events.list(event="Idea.created")
        assert created.actor == f"Startup/{startup.id}"


class TestSchemaDefinition:
    """define(), edges and the dependency graph."""

    def test_edges(self, session):
        session.define(STARTUP_SCHEMA)
        assert {(record.from_, record.name, record.to) for record in session.edges()} == {
            ("Startup", "idea", "Idea"),
            ("Startup", "founders", "Founder"),
        }

    def test_redefinition_updates_edge_entity(self, session, storage):
        session.define({"Startup": {"idea": "->Idea"}, "Idea": {}})
        session.define({"Startup": {"idea": "~>Idea"}})
        assert storage.get("Edge", "Startup.idea").data["matchMode"] == "fuzzy"

    def test_edges_not_stored_when_disabled(self, storage):
        with CascadeSession(storage=storage, store_edges=False) as session:
            session.define(STARTUP_SCHEMA)
        assert storage.count("Edge") == 0

    def test_default_session_uses_isolated_registry(self):
        with CascadeSession() as session:
            session.define(STARTUP_SCHEMA)
            assert session.schema("Startup").name == "Startup"
        assert get_registered_schemas() == []

    def test_dependency_graph(self, session):
        session.define(STARTUP_SCHEMA)
        order = topological_sort(session.dependency_graph()).order
        assert order[0] == "Startup"
        assert set(order) == {"Startup", "Idea", "Founder"}

    def test_unknown_schema(self, session):
        with pytest.raises(NotFoundError):
            session.schema("Nope")


class TestCrud:
    """Validated CRUD with lifecycle events."""

    @pytest.fixture(autouse=True)
    def schema(self, session):
        session.define(
            {
                "Post": {"title": "string!", "views": "integer", "publish": "publish"},
                "AuditLog": {"message": "string", "update": None, "delete": None},
            }
        )

    def test_create_validates_and_emits(self, session, events):
        post = session.create("Post", {"title": "Hello", "views": "3"}, actor="user/1")
        assert post.data == {"title": "Hello", "views": 3}

        generic, typed = events.list()
        assert generic.event == "entity:created"
        assert typed.event == "Post.created"
        assert typed.actor == "user/1"
        assert typed.object == f"Post/{post.id}"

    def test_create_with_explicit_id(self, session):
        assert session.create("Post", {"title": "Hello"}, entity_id="p1").id == "p1"

    def test_create_rejects_invalid_data(self, session, storage, events):
        with pytest.raises(ValidationError):
            session.create("Post", {"views": 1})
        assert storage.count("Post") == 0
        assert len(events) == 0

    def test_create_unknown_type(self, session):
        with pytest.raises(NotFoundError):
            session.create("Ghost", {})

    def test_get_require_find(self, session):
        post = session.create("Post", {"title": "Hello"})
        session.create("Post", {"title": "Other"})

        assert session.get("Post", post.id) == post
        assert session.get("Post", "missing") is None
        assert session.require("Post", post.id) == post
        with pytest.raises(NotFoundError):
            session.require("Post", "missing")
        assert session.find("Post", {"title": "Hello"}) == [post]

    def test_update(self, session, events):
        post = session.create("Post", {"title": "Hello"})
        updated = session.update("Post", post.id, {"views": "7"})
        assert updated.data == {"title": "Hello", "views": 7}
        assert events.list(event="Post.updated")[0].object_data["views"] == 7

    def test_update_missing_entity(self, session):
        with pytest.raises(NotFoundError):
            session.update("Post", "missing", {"views": 1})

    def test_delete(self, session, events):
        post = session.create("Post", {"title": "Hello"})
        assert session.delete("Post", post.id, actor="user/1") is True
        assert session.get("Post", post.id) is None

        [deleted] = events.list(event="Post.deleted")
        assert deleted.object_data["title"] == "Hello"
        assert deleted.actor == "user/1"

        assert session.delete("Post", post.id) is False
        assert len(events.list(event="Post.deleted")) == 1

    def test_disabled_verbs(self, session):
        log = session.create("AuditLog", {"message": "started"})
        with pytest.raises(ValidationError):
            session.update("AuditLog", log.id, {"message": "changed"})
        with pytest.raises(ValidationError):
            session.delete("AuditLog", log.id)

    def test_perform_custom_verb(self, session, events):
        post = session.create("Post", {"title": "Draft"})
        published = session.perform(post, "publish", {"title": "Final"}, actor="user/1")

        assert published.data["title"] == "Final"
        [event] = events.list(event="Post.published")
        assert event.actor == "user/1"
        assert event.object == f"Post/{post.id}"
        assert event.object_data["title"] == "Final"

    def test_perform_without_data(self, session, events):
        post = session.create("Post", {"title": "Draft"})
        assert session.perform(post, "publish") == post
        assert events.list(event="Post.published")[0].actor == "system"

    def test_perform_undeclared_verb(self, session):
        post = session.create("Post", {"title": "Draft"})
        with pytest.raises(ValidationError):
            session.perform(post, "archive")


class TestLifecycle:
    """Closing and storage failures."""

    def test_closed_session(self, storage):
        session = CascadeSession(storage=storage)
        session.define(STARTUP_SCHEMA)
        with session:
            pass
        assert session.closed
        session.close()

        with pytest.raises(SessionClosedError):
            session.create("Startup", {"name": "Acme"})
        with pytest.raises(SessionClosedError):
            session.get("Startup", "s1")
        with pytest.raises(SessionClosedError):
            session.define(STARTUP_SCHEMA)

    def test_storage_failure_is_wrapped(self, generator):
        class BrokenStorage(InMemoryStorageProvider):
            def create(self, entity_type, data, entity_id=None, meta=None):
                raise OSError("disk full")

        with CascadeSession(storage=BrokenStorage(), generator=generator, store_edges=False) as session:
            session.define(STARTUP_SCHEMA)
            with pytest.raises(StorageError) as exc_info:
                session.create("Startup", {"name": "Acme"})
        assert isinstance(exc_info.value.cause, OSError)
        assert exc_info.value.entity_type == "Startup"
