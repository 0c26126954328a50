# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Verb conjugation and noun inflection helpers.

Used to derive entity type metadata (plural, slug, event names), the verb
forms attached to every schema, and reverse field names for back references.

:module: linguistic
:synopsis: Deterministic verb/noun derivations for entity schemas
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional

from .constants import EventConstants


_CAMEL_BOUNDARY_RE = re.compile(r"([a-z0-9])([A-Z])")
_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")
_VOWELS = "aeiou"

# Verbs whose final consonant doubles before -ed/-er/-ing
_DOUBLING_VERBS: FrozenSet[str] = frozenset({
    "submit", "commit", "permit", "omit", "admit", "emit", "transmit",
    "refer", "prefer", "defer", "occur", "recur", "begin",
    "stop", "drop", "shop", "plan", "scan", "ban", "run", "cut", "shut",
    "hit", "sit", "fit", "quit", "get", "set", "put", "tag", "flag", "drag",
    "grab", "rob", "nod", "plot", "spot", "chat", "tap", "wrap", "snap",
    "trap", "map", "tip", "zip", "slip", "trip", "drip", "chip", "clip",
    "flip", "grip", "ship", "skip", "strip", "equip", "hop", "pop", "chop",
    "crop", "swim", "trim", "skim", "jam", "slam", "spam", "hum", "drum", "sum",
})

_IRREGULAR_PLURALS: Dict[str, str] = {
    "person": "people",
    "child": "children",
    "man": "men",
    "woman": "women",
    "foot": "feet",
    "tooth": "teeth",
    "goose": "geese",
    "mouse": "mice",
    "ox": "oxen",
    "leaf": "leaves",
    "life": "lives",
    "knife": "knives",
    "wife": "wives",
    "half": "halves",
    "self": "selves",
    "calf": "calves",
    "analysis": "analyses",
    "crisis": "crises",
    "thesis": "theses",
    "datum": "data",
    "medium": "media",
    "criterion": "criteria",
    "phenomenon": "phenomena",
}
_IRREGULAR_SINGULARS: Dict[str, str] = {plural: singular for singular, plural in _IRREGULAR_PLURALS.items()}


# ----------------------------------------------------------------------------
# Case helpers
# ----------------------------------------------------------------------------

def capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


def preserve_case(original: str, replacement: str) -> str:
    """Capitalize ``replacement`` when ``original`` starts with a capital."""
    if original[:1].isupper():
        return capitalize(replacement)
    return replacement


def is_vowel(char: Optional[str]) -> bool:
    return bool(char) and char.lower() in _VOWELS


def split_camel_case(text: str) -> List[str]:
    """``'BlogPost'`` -> ``['Blog', 'Post']``."""
    return _CAMEL_BOUNDARY_RE.sub(r"\1 \2", text).split()


def to_slug(text: str) -> str:
    """``'BlogPost'`` -> ``'blog-post'``."""
    words = " ".join(split_camel_case(text)).lower()
    return _NON_SLUG_RE.sub("-", words).strip("-")


def to_camel_case(text: str) -> str:
    """``'BlogPost'`` -> ``'blogPost'``."""
    return text[:1].lower() + text[1:]


# ----------------------------------------------------------------------------
# Verb forms
# ----------------------------------------------------------------------------

def _should_double_consonant(verb: str) -> bool:
    if len(verb) < 2:
        return False
    last, second_last = verb[-1], verb[-2]
    if last in "wxy":
        return False
    if is_vowel(last) or not is_vowel(second_last):
        return False
    if len(verb) <= 3:
        return True
    return any(verb == candidate or verb.endswith(candidate) for candidate in _DOUBLING_VERBS)


def _ends_in_consonant_y(verb: str) -> bool:
    return len(verb) > 1 and verb.endswith("y") and not is_vowel(verb[-2])


def to_past_participle(verb: str) -> str:
    """``create`` -> ``created``, ``submit`` -> ``submitted``."""
    if verb.endswith("e"):
        return verb + "d"
    if _ends_in_consonant_y(verb):
        return verb[:-1] + "ied"
    if _should_double_consonant(verb):
        return verb + verb[-1] + "ed"
    return verb + "ed"


def to_actor(verb: str) -> str:
    """``create`` -> ``creator``, ``publish`` -> ``publisher``."""
    if verb.endswith("ate"):
        return verb[:-1] + "or"
    if verb.endswith("e"):
        return verb + "r"
    if _ends_in_consonant_y(verb):
        return verb[:-1] + "ier"
    if _should_double_consonant(verb):
        return verb + verb[-1] + "er"
    return verb + "er"


def to_present(verb: str) -> str:
    """Third person singular: ``publish`` -> ``publishes``."""
    if _ends_in_consonant_y(verb):
        return verb[:-1] + "ies"
    if verb.endswith(("s", "x", "z", "ch", "sh")):
        return verb + "es"
    return verb + "s"


def to_gerund(verb: str) -> str:
    """``create`` -> ``creating``, ``run`` -> ``running``."""
    if verb.endswith("ie"):
        return verb[:-2] + "ying"
    if verb.endswith("e") and not verb.endswith("ee"):
        return verb[:-1] + "ing"
    if _should_double_consonant(verb):
        return verb + verb[-1] + "ing"
    return verb + "ing"


def to_result(verb: str) -> str:
    """``create`` -> ``creation``, ``publish`` -> ``publication``."""
    if verb.endswith("ate"):
        return verb[:-1] + "ion"
    if verb.endswith("ify"):
        return verb[:-1] + "ication"
    if verb.endswith("ize"):
        return verb[:-1] + "ation"
    if verb.endswith("e"):
        return verb[:-1] + "ion"
    return verb + "ion"


# ----------------------------------------------------------------------------
# Conjugation
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class VerbReverse:
    """Reverse field names derived from a verb (``createdAt``, ``createdBy``, ...)."""

    at: str
    by: str
    in_: str
    for_: str

    def as_dict(self) -> Dict[str, str]:
        return {"at": self.at, "by": self.by, "in": self.in_, "for": self.for_}


@dataclass(frozen=True)
class VerbConjugation:
    """
    Full set of forms for one action.

    :class: VerbConjugation
    :synopsis: action/actor/act/activity/result plus reverse names and inverse action
    """

    action: str
    actor: str
    act: str
    activity: str
    result: str
    reverse: VerbReverse
    inverse: Optional[str] = None

    def event_name(self, entity_type: str) -> str:
        """``Post`` + ``publish`` -> ``Post.published``."""
        return EventConstants.TYPED_EVENT_FORMAT.format(
            type=entity_type, action=to_past_participle(self.action)
        )


def _reverse_for(verb: str) -> VerbReverse:
    past = to_past_participle(verb)
    return VerbReverse(at=past + "At", by=past + "By", in_=past + "In", for_=past + "For")


def _derive(action: str, inverse: Optional[str] = None, **overrides: str) -> VerbConjugation:
    forms = {
        "actor": to_actor(action),
        "act": to_present(action),
        "activity": to_gerund(action),
        "result": to_result(action),
    }
    forms.update(overrides)
    return VerbConjugation(action=action, reverse=_reverse_for(action), inverse=inverse, **forms)


# @@ STEP: Known verbs; everything else is derived by rule
_VERB_TABLE: Dict[str, VerbConjugation] = {
    "create": _derive("create", inverse="delete", result="creation"),
    "update": _derive("update", result="update"),
    "delete": _derive("delete", inverse="create", result="deletion"),
    "publish": _derive("publish", inverse="unpublish", result="publication"),
    "archive": _derive("archive", inverse="unarchive", result="archive"),
    "approve": _derive("approve", inverse="reject", result="approval"),
    "reject": _derive("reject", inverse="approve", result="rejection"),
    "assign": _derive("assign", inverse="unassign", result="assignment"),
    "complete": _derive("complete", result="completion"),
    "submit": _derive("submit", result="submission"),
    "review": _derive("review", result="review"),
}

# Inverse pairs for actions outside the table (``unpublish`` -> ``publish``)
_INVERSE_PREFIX = "un"


def known_verbs() -> FrozenSet[str]:
    return frozenset(_VERB_TABLE)


def conjugate(action: str) -> VerbConjugation:
    """
    Conjugate an action verb.

    Args:
        action: Base form, e.g. ``'publish'``

    Returns:
        The fixed-table entry when known, otherwise a rule-derived conjugation.
        The result is deterministic for a given input.
    """
    verb = action.strip().lower()
    known = _VERB_TABLE.get(verb)
    if known is not None:
        return known
    inverse: Optional[str] = None
    if verb.startswith(_INVERSE_PREFIX) and verb[len(_INVERSE_PREFIX):] in _VERB_TABLE:
        inverse = verb[len(_INVERSE_PREFIX):]
    return _derive(verb, inverse=inverse)


# ----------------------------------------------------------------------------
# Nouns
# ----------------------------------------------------------------------------

def pluralize(singular: str) -> str:
    """``post`` -> ``posts``, ``category`` -> ``categories``, ``person`` -> ``people``."""
    lower = singular.lower()
    irregular = _IRREGULAR_PLURALS.get(lower)
    if irregular is not None:
        return preserve_case(singular, irregular)
    if _ends_in_consonant_y(lower):
        return singular[:-1] + "ies"
    if lower.endswith("z") and not lower.endswith("zz"):
        return singular + "zes"
    if lower.endswith(("s", "x", "zz", "ch", "sh")):
        return singular + "es"
    if lower.endswith("fe"):
        return singular[:-2] + "ves"
    if lower.endswith("f"):
        return singular[:-1] + "ves"
    return singular + "s"


def singularize(plural: str) -> str:
    """Reverse of :func:`pluralize`."""
    lower = plural.lower()
    irregular = _IRREGULAR_SINGULARS.get(lower)
    if irregular is not None:
        return preserve_case(plural, irregular)
    if lower.endswith("ies"):
        return plural[:-3] + "y"
    if lower.endswith("ves"):
        return plural[:-3] + "f"
    if lower.endswith(("ses", "xes", "zes", "ches", "shes")):
        return plural[:-2]
    if lower.endswith("s") and not lower.endswith("ss"):
        return plural[:-1]
    return plural


@dataclass(frozen=True)
class TypeMeta:
    """Naming metadata derived from an entity type name."""

    name: str
    singular: str
    plural: str
    slug: str
    slug_plural: str
    created: str
    updated: str
    deleted: str


def type_meta(name: str) -> TypeMeta:
    words = split_camel_case(name) or [name]
    singular = " ".join(word.lower() for word in words)
    plural = " ".join([*(word.lower() for word in words[:-1]), pluralize(words[-1].lower())])
    return TypeMeta(
        name=name,
        singular=singular,
        plural=plural,
        slug=to_slug(name),
        slug_plural=_NON_SLUG_RE.sub("-", plural).strip("-"),
        created=EventConstants.TYPED_EVENT_FORMAT.format(type=name, action="created"),
        updated=EventConstants.TYPED_EVENT_FORMAT.format(type=name, action="updated"),
        deleted=EventConstants.TYPED_EVENT_FORMAT.format(type=name, action="deleted"),
    )


def reverse_field_name(owner_type: str) -> str:
    """Default back-reference field name for a relationship owned by ``owner_type``."""
    return to_camel_case(pluralize(owner_type))


# ----------------------------------------------------------------------------
# Reverse verb derivation
# ----------------------------------------------------------------------------

_registry_lock = threading.Lock()

_forward_to_reverse: Dict[str, str] = {
    "manages": "managedBy",
    "owns": "ownedBy",
    "creates": "createdBy",
    "reviews": "reviewedBy",
    "employs": "employedBy",
    "contains": "containedBy",
    "assigns": "assignedBy",
}
_reverse_to_forward: Dict[str, str] = {reverse: forward for forward, reverse in _forward_to_reverse.items()}
_bidirectional_pairs: Dict[str, str] = {"parent_of": "child_of", "child_of": "parent_of"}
_field_to_verb: Dict[str, str] = {
    "manager": "manages",
    "owner": "owns",
    "creator": "creates",
    "reviewer": "reviews",
    "employer": "employs",
    "parent": "parent_of",
    "child": "child_of",
    "assignee": "assigns",
}


def derive_reverse_verb(verb: str) -> str:
    """
    Derive the reverse of a relationship verb.

    ``manages`` -> ``managedBy``, ``parent_of`` -> ``child_of``,
    ``managedBy`` -> ``manages``, ``customAction`` -> ``customActionBy``.
    """
    with _registry_lock:
        if verb in _bidirectional_pairs:
            return _bidirectional_pairs[verb]
        if verb in _forward_to_reverse:
            return _forward_to_reverse[verb]
        if verb in _reverse_to_forward:
            return _reverse_to_forward[verb]
    if verb.endswith("By"):
        return verb[:-2]
    if verb.endswith("s") and len(verb) > 2:
        stem = verb[:-2] if verb.endswith(("sses", "xes", "zes", "ches", "shes")) else verb[:-1]
        return to_past_participle(stem) + "By"
    return verb + "By"


def field_name_to_verb(field_name: str) -> str:
    """``manager`` -> ``manages``; unknown names are returned unchanged."""
    with _registry_lock:
        return _field_to_verb.get(field_name, field_name)


def is_passive_verb(verb: str) -> bool:
    return bool(verb) and verb.endswith(("By", "To", "Of", "_of"))


def register_verb_pair(forward: str, reverse: str) -> None:
    with _registry_lock:
        _forward_to_reverse[forward] = reverse
        _reverse_to_forward[reverse] = forward


def register_bidirectional_pair(verb_a: str, verb_b: str) -> None:
    with _registry_lock:
        _bidirectional_pairs[verb_a] = verb_b
        _bidirectional_pairs[verb_b] = verb_a


def register_field_verb(field_name: str, verb: str) -> None:
    with _registry_lock:
        _field_to_verb[field_name] = verb
