from __future__ import annotations


class QueueError(Exception):
    """Base class for errors raised by queuekit."""


class BehaviorNotSupportedError(QueueError):
    """The configured adapter does not implement the requested behavior."""

    def __init__(self, adapter: object, behavior: str):
        self.adapter = adapter
        self.behavior = behavior
        super().__init__(f"Adapter {type(adapter).__name__} does not support {behavior}")


class UnknownMessageIdError(QueueError, ValueError):
    def __init__(self, message_id: str):
        self.message_id = message_id
        super().__init__(f"There is no message with id {message_id!r}")


class InvalidMiddlewareDefinitionError(QueueError, ValueError):
    def __init__(self, definition: object, reason: str = "unsupported definition shape"):
        self.definition = definition
        super().__init__(f"Cannot create push middleware from {definition!r}: {reason}")


class InvalidStatusTransitionError(QueueError):
    pass


class UnknownHandlerError(QueueError, LookupError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No handler registered for message {name!r}")
