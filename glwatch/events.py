# The MIT License (MIT)
# Copyright © 2025 Entrius

"""
In-process typed publish/subscribe for watch events.

Payloads per kind:
    NEW_MERGE_REQUEST       MergeRequest
    UPDATED_MERGE_REQUEST   MergeRequest
    MERGED_MERGE_REQUEST    MergeRequest
    UPDATED_PIPELINE        PipelineUpdate
    NEW_TODO                Todo
    TODO_COUNT              int
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class EventKind(Enum):
    """The fixed set of events emitted by the watch engine"""

    NEW_MERGE_REQUEST = "new-merge-request"
    UPDATED_MERGE_REQUEST = "updated-merge-request"
    MERGED_MERGE_REQUEST = "merged-merge-request"
    UPDATED_PIPELINE = "updated-pipeline"
    NEW_TODO = "new-todo"
    TODO_COUNT = "todo-length"


class EventBus:
    """Synchronous event dispatcher keyed by EventKind.

    Handlers of one kind run in registration order. There is no buffering:
    a handler only sees events published after it subscribed.
    """

    def __init__(self):
        self._handlers: Dict[EventKind, List[Handler]] = {kind: [] for kind in EventKind}

    def _check_kind(self, kind: EventKind) -> None:
        if not isinstance(kind, EventKind):
            raise ValueError(f'Unknown event kind: {kind!r}')

    def subscribe(self, kind: EventKind, handler: Handler) -> Handler:
        """Register a handler for a kind. Returns the handler unchanged."""
        self._check_kind(kind)
        self._handlers[kind].append(handler)
        return handler

    def on(self, kind: EventKind) -> Callable[[Handler], Handler]:
        """Decorator form of subscribe."""

        def decorator(handler: Handler) -> Handler:
            return self.subscribe(kind, handler)

        return decorator

    def unsubscribe(self, kind: EventKind, handler: Handler) -> None:
        self._check_kind(kind)
        try:
            self._handlers[kind].remove(handler)
        except ValueError:
            pass

    def handlers(self, kind: EventKind) -> List[Handler]:
        self._check_kind(kind)
        return list(self._handlers[kind])

    def publish(self, kind: EventKind, payload: Any) -> None:
        """Deliver a payload to every handler of its kind.

        A failing handler is logged and does not stop delivery to the rest.
        """
        self._check_kind(kind)
        for handler in list(self._handlers[kind]):
            try:
                handler(payload)
            except Exception as e:
                logger.exception(f'Event handler {handler!r} failed for {kind.value}: {e}')
