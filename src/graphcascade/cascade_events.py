# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
In-process event bus.

Events follow an actor/event/object/result shape. Subscribers register glob-like
patterns (``Post.created``, ``Post.*``, ``*.created``, ``cascade:*``, ``*``) and
are invoked sequentially in subscription order. Every emitted event is kept in
an append-only, bounded history that :meth:`EventBus.list` and
:meth:`EventBus.replay` read from.

:module: cascade_events
:synopsis: DBEvent model, pattern matching and the EventBus
"""

from __future__ import annotations

import itertools
import logging
import threading
import uuid
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .cascade_models import utc_now
from .constants import EventConstants
from .pipelining import resolve_value

logger = logging.getLogger(__name__)

EventHandler = Callable[["DBEvent"], Any]


# -----------------------------------------------------------------------------
# Event model
# -----------------------------------------------------------------------------

class DBEvent(BaseModel):
    """
    One emitted event.

    Accepts the legacy ``{type, data, url}`` shape and normalizes it into
    ``event``/``objectData``/``object``.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    actor: Optional[str] = None
    event: str
    object: Optional[str] = None
    object_data: Optional[Dict[str, Any]] = Field(default=None, alias="objectData")
    result: Optional[str] = None
    result_data: Optional[Dict[str, Any]] = Field(default=None, alias="resultData")
    meta: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=utc_now)

    @model_validator(mode="before")
    @classmethod
    def normalize_legacy_shape(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        values = dict(values)
        # @@ STEP 1: 'type' -> 'event'
        legacy_type = values.pop("type", None)
        if legacy_type is not None and values.get("event") is None:
            values["event"] = legacy_type
        # @@ STEP 2: 'data' -> 'objectData'
        legacy_data = values.pop("data", None)
        if legacy_data is not None and values.get("objectData") is None and values.get("object_data") is None:
            values["objectData"] = legacy_data if isinstance(legacy_data, dict) else {"value": legacy_data}
        # @@ STEP 3: 'url' -> 'object'
        legacy_url = values.pop("url", None)
        if legacy_url is not None and values.get("object") is None:
            values["object"] = legacy_url
        return values

    @property
    def type(self) -> str:
        return self.event

    @property
    def data(self) -> Optional[Dict[str, Any]]:
        return self.object_data

    def to_wire(self) -> Dict[str, Any]:
        """Serialized form: ``{actor?, event, object?, objectData?, result?, meta?, timestamp}``."""
        return self.model_dump(by_alias=True, exclude_none=True)


# -----------------------------------------------------------------------------
# Pattern matching
# -----------------------------------------------------------------------------

def matches_pattern(pattern: str, event_name: str) -> bool:
    """
    Glob-like match of an event name.

    ``*`` matches everything, ``kind:*`` matches every ``kind:...`` event, and in
    dotted patterns each ``*`` segment matches exactly one segment.
    """
    if pattern == EventConstants.WILDCARD or pattern == event_name:
        return True

    colon_wildcard = EventConstants.COLON_SEPARATOR + EventConstants.WILDCARD
    if pattern.endswith(colon_wildcard):
        prefix = pattern[: -len(EventConstants.WILDCARD)]
        return event_name.startswith(prefix)

    pattern_parts = pattern.split(EventConstants.DOT_SEPARATOR)
    event_parts = event_name.split(EventConstants.DOT_SEPARATOR)
    if len(pattern_parts) != len(event_parts):
        return False
    return all(
        expected == EventConstants.WILDCARD or expected == actual
        for expected, actual in zip(pattern_parts, event_parts)
    )


# -----------------------------------------------------------------------------
# Bus
# -----------------------------------------------------------------------------

class EventBus:
    """
    Thread-safe publish/subscribe bus with history.

    :class: EventBus
    :synopsis: on/emit/list/replay over DBEvent records
    """

    def __init__(self, max_history: int = EventConstants.MAX_HISTORY):
        self._lock = threading.RLock()
        self._sequence = itertools.count()
        self._handlers: List[Tuple[int, str, EventHandler]] = []
        self._history: Deque[DBEvent] = deque(maxlen=max_history)

    def __len__(self) -> int:
        return len(self._history)

    def on(self, pattern: str, handler: EventHandler) -> Callable[[], None]:
        """
        Subscribe ``handler`` to events matching ``pattern``.

        Returns:
            A callable that removes this subscription
        """
        with self._lock:
            token = next(self._sequence)
            self._handlers.append((token, pattern, handler))

        def unsubscribe() -> None:
            with self._lock:
                self._handlers = [entry for entry in self._handlers if entry[0] != token]

        return unsubscribe

    def emit(
        self,
        event: Union[str, DBEvent, Mapping[str, Any]],
        payload: Optional[Any] = None,
        **fields: Any,
    ) -> DBEvent:
        """
        Record an event and run matching handlers.

        Accepts a :class:`DBEvent`, a mapping of event options, or an event name
        with an optional legacy payload (``emit('Post.created', {...})``).
        Handlers run sequentially; a handler returning a ``Future`` or
        pipelined value is waited on before the next one runs.
        """
        record = self._build(event, payload, fields)

        with self._lock:
            self._history.append(record)
            handlers = [handler for _, pattern, handler in self._handlers if matches_pattern(pattern, record.event)]

        for handler in handlers:
            try:
                resolve_value(handler(record))
            except Exception:
                logger.exception("Event handler %r failed for %s", handler, record.event)
                raise
        return record

    @staticmethod
    def _build(event: Union[str, DBEvent, Mapping[str, Any]], payload: Any, fields: Dict[str, Any]) -> DBEvent:
        if isinstance(event, DBEvent):
            return event
        if isinstance(event, Mapping):
            return DBEvent.model_validate({**event, **fields})
        options: Dict[str, Any] = {"event": event, **fields}
        if payload is not None:
            options["data"] = payload
        return DBEvent.model_validate(options)

    def list(
        self,
        event: Optional[str] = None,
        actor: Optional[str] = None,
        object: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[DBEvent]:
        """History filtered by event pattern, actor, object and time window, oldest first."""
        with self._lock:
            snapshot = tuple(self._history)
        matched: List[DBEvent] = []
        for record in snapshot:
            if event is not None and not matches_pattern(event, record.event):
                continue
            if actor is not None and record.actor != actor:
                continue
            if object is not None and record.object != object:
                continue
            if since is not None and record.timestamp < since:
                continue
            if until is not None and record.timestamp > until:
                continue
            matched.append(record)
            if limit is not None and len(matched) >= limit:
                break
        return matched

    def replay(
        self,
        handler: EventHandler,
        event: Optional[str] = None,
        actor: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> int:
        """Feed matching history to ``handler`` in order. Returns the number replayed."""
        records = self.list(event=event, actor=actor, since=since)
        for record in records:
            resolve_value(handler(record))
        return len(records)

    def clear(self) -> None:
        with self._lock:
            self._history.clear()

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._handlers)


# -----------------------------------------------------------------------------
# Lifecycle helpers
# -----------------------------------------------------------------------------

def object_ref(entity_type: str, entity_id: str) -> str:
    return EventConstants.OBJECT_REF_FORMAT.format(type=entity_type, id=entity_id)


def emit_lifecycle(
    bus: Optional[EventBus],
    action: str,
    entity: Any,
    actor: Optional[str] = None,
    meta: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Emit ``entity:<action>`` followed by ``<Type>.<action>`` for one entity.

    ``action`` is one of the past-tense lifecycle actions (created/updated/deleted).
    """
    if bus is None:
        return
    options = {
        "actor": actor or EventConstants.SYSTEM_ACTOR,
        "object": object_ref(entity.type, entity.id),
        "objectData": entity.to_dict(),
        "meta": meta,
    }
    bus.emit({"event": EventConstants.ENTITY_EVENT_FORMAT.format(action=action), **options})
    bus.emit({"event": EventConstants.TYPED_EVENT_FORMAT.format(type=entity.type, action=action), **options})
