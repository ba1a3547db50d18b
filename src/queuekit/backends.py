from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable

from .types import JobStatus, Message


Continuation = Callable[[Message], bool]
MessageHandler = Callable[[Message], None]


@runtime_checkable
class PushableAdapter(Protocol):
    def push(self, message: Message) -> str:
        """Durably enqueue ``message``, assign its id and return it."""
        ...


@runtime_checkable
class DrainableAdapter(Protocol):
    def run_existing(self, continuation: Continuation) -> None:
        """Offer available messages one at a time until ``continuation``
        returns False or nothing is left."""
        ...


@runtime_checkable
class SubscribableAdapter(Protocol):
    def subscribe(self, handler: MessageHandler) -> None:
        """Block, delivering every incoming message to ``handler`` until
        cancelled."""
        ...


@runtime_checkable
class StatusAdapter(Protocol):
    def status(self, message_id: str) -> JobStatus:
        ...


@runtime_checkable
class StatusTrackingAdapter(Protocol):
    def set_status(self, message_id: str, status: JobStatus) -> None:
        ...


class QueueAdapter(
    PushableAdapter,
    DrainableAdapter,
    SubscribableAdapter,
    StatusAdapter,
    StatusTrackingAdapter,
    Protocol,
):
    supports_delay: bool


_CAPABILITIES = {
    "push": PushableAdapter,
    "run_existing": DrainableAdapter,
    "subscribe": SubscribableAdapter,
    "status": StatusAdapter,
    "set_status": StatusTrackingAdapter,
}


def supports(adapter: object, behavior: str) -> bool:
    protocol = _CAPABILITIES.get(behavior)
    if protocol is None:
        raise KeyError(f"Unknown adapter behavior {behavior!r}")
    return isinstance(adapter, protocol)
