"""
Push and execution notifications.

Events are plain frozen dataclasses. A dispatcher is injected into the queue
and the worker; delivery is synchronous and in registration order, so a
listener that raises aborts the operation that emitted the event.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Protocol, TypeVar

from .types import Message

if TYPE_CHECKING:
    from .worker import QueueHandle

log = logging.getLogger(__name__)

E = TypeVar("E")


@dataclass(frozen=True, slots=True)
class QueueEvent:
    queue: "QueueHandle"
    message: Message


@dataclass(frozen=True, slots=True)
class BeforePush(QueueEvent):
    pass


@dataclass(frozen=True, slots=True)
class AfterPush(QueueEvent):
    pass


@dataclass(frozen=True, slots=True)
class BeforeExecution(QueueEvent):
    pass


@dataclass(frozen=True, slots=True)
class AfterExecution(QueueEvent):
    pass


@dataclass(frozen=True, slots=True)
class JobFailure(QueueEvent):
    error: BaseException


class EventDispatcher(Protocol):
    def dispatch(self, event: E) -> E:
        ...


class NullEventDispatcher:
    def dispatch(self, event: E) -> E:
        return event


class SyncEventDispatcher:
    def __init__(self):
        self._listeners: dict[type, list[Callable[[object], None]]] = defaultdict(list)

    def subscribe(self, event_type: type, listener: Callable[[object], None]) -> None:
        self._listeners[event_type].append(listener)

    def listeners_for(self, event: object) -> list[Callable[[object], None]]:
        found: list[Callable[[object], None]] = []
        for cls in type(event).__mro__:
            found.extend(self._listeners.get(cls, ()))
        return found

    def dispatch(self, event: E) -> E:
        listeners = self.listeners_for(event)
        log.debug("dispatch %s to %d listener(s)", type(event).__name__, len(listeners))
        for listener in listeners:
            listener(event)
        return event
