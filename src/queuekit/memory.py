"""
In-process adapter. Useful for tests and single-process tools; nothing
survives the process.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from uuid import uuid4

from .backends import Continuation, MessageHandler
from .exceptions import InvalidStatusTransitionError, UnknownMessageIdError
from .loop import Loop, SimpleLoop
from .types import JobStatus, Message

log = logging.getLogger(__name__)


class InMemoryAdapter:
    """Deque-backed adapter.

    Statuses are kept for every id ever pushed, for the adapter's lifetime,
    so ``status`` keeps answering after a message is done. Memory grows with
    the number of pushes; long-running services should use the filesystem
    adapter instead.
    """

    supports_delay = False

    def __init__(self, *, loop: Loop | None = None, poll_interval_seconds: float = 0.1):
        self.loop = loop or SimpleLoop()
        self.poll_interval_seconds = poll_interval_seconds
        self._pending: deque[Message] = deque()
        self._statuses: dict[str, JobStatus] = {}
        self._lock = threading.RLock()

    def push(self, message: Message) -> str:
        """Enqueue ``message`` and return its id.

        Pushing a message this adapter already enqueued (a requeue) enqueues
        a copy under a new id instead. A new message whose caller-chosen id
        is taken is rejected with ValueError.
        """
        with self._lock:
            if message.id in self._statuses and message.status is not None:
                message = message.copy_for_requeue()
            message_id = message.id or uuid4().hex
            if message_id in self._statuses:
                raise ValueError(f"Message id {message_id!r} was already pushed")
            message.assign_id(message_id)
            message.mark(JobStatus.WAITING)
            self._statuses[message_id] = JobStatus.WAITING
            self._pending.append(message)
        log.debug("enqueue message %s (id=%s)", message.name, message_id)
        return message_id

    def _pop(self) -> Message | None:
        with self._lock:
            return self._pending.popleft() if self._pending else None

    def run_existing(self, continuation: Continuation) -> None:
        while True:
            message = self._pop()
            if message is None:
                return
            if not continuation(message):
                with self._lock:
                    self._pending.appendleft(message)
                return

    def subscribe(self, handler: MessageHandler) -> None:
        while self.loop.can_continue():
            message = self._pop()
            if message is None:
                time.sleep(self.poll_interval_seconds)
                continue
            handler(message)

    def status(self, message_id: str) -> JobStatus:
        with self._lock:
            try:
                return self._statuses[message_id]
            except KeyError:
                raise UnknownMessageIdError(message_id) from None

    def set_status(self, message_id: str, status: JobStatus) -> None:
        status = JobStatus(status)
        with self._lock:
            current = self.status(message_id)
            if current.is_terminal and current is not status:
                raise InvalidStatusTransitionError(
                    f"Message {message_id} is already {current.value}, cannot become {status.value}"
                )
            self._statuses[message_id] = status

    def pending(self) -> int:
        with self._lock:
            return len(self._pending)
