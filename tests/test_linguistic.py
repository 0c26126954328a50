# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Verb and noun derivation tests.
"""

from __future__ import annotations

import pytest

from graphcascade import conjugate, derive_reverse_verb, pluralize, reverse_field_name, singularize, type_meta
from graphcascade.linguistic import (
    field_name_to_verb,
    is_passive_verb,
    known_verbs,
    register_bidirectional_pair,
    register_field_verb,
    register_verb_pair,
    split_camel_case,
    to_actor,
    to_gerund,
    to_past_participle,
    to_present,
    to_result,
    to_slug,
)


class TestConjugation:
    """Known verbs come from the table, others are derived by rule."""

    def test_create(self):
        verb = conjugate("create")
        assert verb.action == "create"
        assert verb.actor == "creator"
        assert verb.act == "creates"
        assert verb.activity == "creating"
        assert verb.result == "creation"
        assert verb.inverse == "delete"
        assert verb.reverse.at == "createdAt"
        assert verb.reverse.by == "createdBy"
        assert verb.reverse.as_dict() == {
            "at": "createdAt",
            "by": "createdBy",
            "in": "createdIn",
            "for": "createdFor",
        }

    def test_publish(self):
        verb = conjugate("publish")
        assert verb.actor == "publisher"
        assert verb.act == "publishes"
        assert verb.activity == "publishing"
        assert verb.result == "publication"
        assert verb.inverse == "unpublish"
        assert verb.event_name("Post") == "Post.published"

    def test_unknown_verb_is_derived(self):
        verb = conjugate("launch")
        assert verb.actor == "launcher"
        assert verb.act == "launches"
        assert verb.reverse.at == "launchedAt"
        assert verb.inverse is None

    def test_un_prefix_inverse(self):
        assert conjugate("unpublish").inverse == "publish"

    def test_deterministic(self):
        assert conjugate("Approve ") == conjugate("approve")

    def test_known_verbs(self):
        assert {"create", "update", "delete", "publish"} <= known_verbs()


class TestVerbForms:
    """Rule-based forms."""

    @pytest.mark.parametrize(
        "verb, past",
        [("create", "created"), ("submit", "submitted"), ("apply", "applied"), ("play", "played"), ("stop", "stopped")],
    )
    def test_past_participle(self, verb, past):
        assert to_past_participle(verb) == past

    def test_other_forms(self):
        assert to_actor("validate") == "validator"
        assert to_actor("run") == "runner"
        assert to_present("carry") == "carries"
        assert to_gerund("tie") == "tying"
        assert to_gerund("see") == "seeing"
        assert to_result("classify") == "classification"
        assert to_result("organize") == "organization"


class TestNouns:
    """Plurals, singulars and type metadata."""

    @pytest.mark.parametrize(
        "singular, plural",
        [
            ("post", "posts"),
            ("category", "categories"),
            ("person", "people"),
            ("box", "boxes"),
            ("knife", "knives"),
            ("day", "days"),
            ("Person", "People"),
        ],
    )
    def test_pluralize_and_back(self, singular, plural):
        assert pluralize(singular) == plural
        assert singularize(plural) == singular

    def test_type_meta(self):
        meta = type_meta("BlogPost")
        assert meta.singular == "blog post"
        assert meta.plural == "blog posts"
        assert meta.slug == "blog-post"
        assert meta.slug_plural == "blog-posts"
        assert meta.created == "BlogPost.created"
        assert meta.deleted == "BlogPost.deleted"

    def test_split_camel_case_and_slug(self):
        assert split_camel_case("BlogPost") == ["Blog", "Post"]
        assert to_slug("APIKey") == "apikey"

    def test_reverse_field_name(self):
        assert reverse_field_name("BlogPost") == "blogPosts"
        assert reverse_field_name("Category") == "categories"


class TestReverseVerbs:
    """Reverse relationship verbs."""

    def test_table_entries(self):
        assert derive_reverse_verb("manages") == "managedBy"
        assert derive_reverse_verb("managedBy") == "manages"
        assert derive_reverse_verb("parent_of") == "child_of"

    def test_rule_derivation(self):
        assert derive_reverse_verb("watches") == "watchedBy"
        assert derive_reverse_verb("sponsors") == "sponsoredBy"
        assert derive_reverse_verb("approvedBy") == "approved"
        assert derive_reverse_verb("mentor") == "mentorBy"

    def test_field_name_to_verb(self):
        assert field_name_to_verb("manager") == "manages"
        assert field_name_to_verb("sponsor") == "sponsor"

    def test_is_passive_verb(self):
        assert is_passive_verb("managedBy")
        assert is_passive_verb("child_of")
        assert not is_passive_verb("manages")
        assert not is_passive_verb("")

    def test_registration(self):
        register_verb_pair("mentors", "mentoredBy")
        register_bidirectional_pair("sibling_of", "sibling_to")
        register_field_verb("mentor", "mentors")

        assert derive_reverse_verb("mentors") == "mentoredBy"
        assert derive_reverse_verb("mentoredBy") == "mentors"
        assert derive_reverse_verb("sibling_to") == "sibling_of"
        assert field_name_to_verb("mentor") == "mentors"
