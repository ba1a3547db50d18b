from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Callable, Protocol

from .backends import supports
from .events import AfterExecution, BeforeExecution, EventDispatcher, JobFailure, NullEventDispatcher
from .exceptions import UnknownHandlerError
from .types import JobStatus, Message

log = logging.getLogger(__name__)


class QueueHandle(Protocol):
    """What a worker may do with the queue while it processes a message."""

    def push(self, message: Message) -> str | None:
        ...

    def status(self, message_id: str) -> JobStatus:
        ...


class Worker(Protocol):
    def process(self, message: Message, queue: QueueHandle) -> None:
        ...


Handler = Callable[[Message, QueueHandle], object]


class HandlerWorker:
    """Runs the handler registered for a message's name.

    Status transitions are written through the adapter's ``set_status`` when
    the adapter has one, and mirrored into ``message.metadata``. Handler
    errors are reported as ``JobFailure`` and re-raised.
    """

    def __init__(
        self,
        handlers: Mapping[str, Handler],
        *,
        adapter: object | None = None,
        event_dispatcher: EventDispatcher | None = None,
        logger: logging.Logger | None = None,
    ):
        self.handlers = dict(handlers)
        self.adapter = adapter
        self.event_dispatcher = event_dispatcher or NullEventDispatcher()
        self.logger = logger or log

    def process(self, message: Message, queue: QueueHandle) -> None:
        started = time.monotonic()
        self._transition(message, JobStatus.RUNNING)
        try:
            handler = self.handlers.get(message.name)
            if handler is None:
                raise UnknownHandlerError(message.name)
            self.event_dispatcher.dispatch(BeforeExecution(queue, message))
            handler(message, queue)
        except Exception as exc:
            self._transition(message, JobStatus.FAILED)
            self.logger.error(
                "Processing of message %s (id=%s) failed: %s", message.name, message.id, exc
            )
            self.event_dispatcher.dispatch(JobFailure(queue, message, exc))
            raise
        self._transition(message, JobStatus.DONE)
        self.logger.debug(
            "Processed message %s (id=%s) in %d ms",
            message.name,
            message.id,
            int((time.monotonic() - started) * 1000),
        )
        self.event_dispatcher.dispatch(AfterExecution(queue, message))

    def _transition(self, message: Message, status: JobStatus) -> None:
        if message.id is not None and self.adapter is not None and supports(self.adapter, "set_status"):
            self.adapter.set_status(message.id, status)
        message.mark(status)
