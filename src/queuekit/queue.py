from __future__ import annotations

import logging
from typing import Any, Iterable

from .backends import supports
from .events import AfterPush, BeforePush, EventDispatcher, NullEventDispatcher
from .exceptions import BehaviorNotSupportedError
from .loop import Loop
from .middleware import MiddlewareFactoryPush, PushMiddlewareDispatcher, PushRequest, build_push_middlewares
from .types import JobStatus, Message
from .worker import Worker

log = logging.getLogger(__name__)


class Queue:
    """Pushes messages to an adapter and feeds delivered messages to a worker.

    The queue keeps no state of its own; everything durable lives in the
    adapter. Collaborators are fixed at construction.
    """

    def __init__(
        self,
        *,
        adapter: Any,
        worker: Worker,
        loop: Loop,
        event_dispatcher: EventDispatcher | None = None,
        logger: logging.Logger | None = None,
        middleware_definitions: Iterable[Any] = (),
        middleware_factory: MiddlewareFactoryPush | None = None,
    ):
        self._adapter = adapter
        self._worker = worker
        self._loop = loop
        self._event_dispatcher = event_dispatcher or NullEventDispatcher()
        self._logger = logger or log
        self._push_pipeline = PushMiddlewareDispatcher(
            build_push_middlewares(middleware_definitions, middleware_factory),
            self._push_to_adapter,
        )

    @property
    def adapter(self) -> Any:
        return self._adapter

    @property
    def worker(self) -> Worker:
        return self._worker

    @property
    def loop(self) -> Loop:
        return self._loop

    def push(self, message: Message) -> str | None:
        """Push a message into the queue and return the id the adapter gave it.

        Raises BehaviorNotSupportedError when the adapter cannot enqueue.
        BeforePush has already been dispatched by then.
        """
        if message is None:
            raise TypeError("push() requires a Message")
        self._logger.debug('Preparing to push message "%s".', message.name)
        self._event_dispatcher.dispatch(BeforePush(self, message))

        request = self._push_pipeline.dispatch(PushRequest(message=message, adapter=self._adapter))

        self._logger.debug('Successfully pushed message "%s" to the queue.', request.message.name)
        self._event_dispatcher.dispatch(AfterPush(self, request.message))
        return request.message_id

    def run(self, max_messages: int = 0) -> int:
        """Handle messages already in the queue, then return.

        ``max_messages`` of 0 means no bound. Returns the number handled.
        """
        if max_messages < 0:
            raise ValueError("max_messages must be >= 0")
        self._require("run_existing")
        self._logger.debug("Start processing queue messages.")
        count = 0

        def continuation(message: Message) -> bool:
            nonlocal count
            if (max_messages > 0 and max_messages <= count) or not self._loop.can_continue():
                return False
            self._handle(message)
            count += 1
            return True

        self._adapter.run_existing(continuation)

        self._logger.debug(
            "Finish processing queue messages. There were %d messages to work with.", count
        )
        return count

    def listen(self) -> None:
        """Handle messages as they arrive until the adapter's subscription ends."""
        self._require("subscribe")
        self._logger.debug("Start listening to the queue.")
        self._adapter.subscribe(self._handle)
        self._logger.debug("Finish listening to the queue.")

    def status(self, message_id: str) -> JobStatus:
        """Raises UnknownMessageIdError when the adapter has no such id."""
        self._require("status")
        return self._adapter.status(message_id)

    def _handle(self, message: Message) -> None:
        self._worker.process(message, self)

    def _push_to_adapter(self, request: PushRequest) -> PushRequest:
        if not supports(request.adapter, "push"):
            raise BehaviorNotSupportedError(request.adapter, "push")
        request.message_id = request.adapter.push(request.message)
        return request

    def _require(self, behavior: str) -> None:
        if not supports(self._adapter, behavior):
            raise BehaviorNotSupportedError(self._adapter, behavior)
