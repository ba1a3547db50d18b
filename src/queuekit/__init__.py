"""queuekit public API."""

from .backends import (
    DrainableAdapter,
    PushableAdapter,
    QueueAdapter,
    StatusAdapter,
    StatusTrackingAdapter,
    SubscribableAdapter,
    supports,
)
from .config import QueueConfig, build_queue
from .events import (
    AfterExecution,
    AfterPush,
    BeforeExecution,
    BeforePush,
    EventDispatcher,
    JobFailure,
    NullEventDispatcher,
    SyncEventDispatcher,
)
from .exceptions import (
    BehaviorNotSupportedError,
    InvalidMiddlewareDefinitionError,
    InvalidStatusTransitionError,
    QueueError,
    UnknownHandlerError,
    UnknownMessageIdError,
)
from .fs_queue import FilesystemAdapter
from .lease import LeaseManager
from .loop import Loop, SignalLoop, SimpleLoop
from .memory import InMemoryAdapter
from .middleware import (
    DelayMiddleware,
    MiddlewareFactory,
    MiddlewareFactoryPush,
    MiddlewarePush,
    PushMiddlewareDispatcher,
    PushRequest,
)
from .queue import Queue
from .types import JobStatus, Message
from .worker import HandlerWorker, QueueHandle, Worker

__all__ = [
    "Queue",
    "Message",
    "JobStatus",
    "QueueConfig",
    "build_queue",
    "PushableAdapter",
    "DrainableAdapter",
    "SubscribableAdapter",
    "StatusAdapter",
    "StatusTrackingAdapter",
    "QueueAdapter",
    "supports",
    "InMemoryAdapter",
    "FilesystemAdapter",
    "LeaseManager",
    "Loop",
    "SimpleLoop",
    "SignalLoop",
    "Worker",
    "QueueHandle",
    "HandlerWorker",
    "EventDispatcher",
    "NullEventDispatcher",
    "SyncEventDispatcher",
    "BeforePush",
    "AfterPush",
    "BeforeExecution",
    "AfterExecution",
    "JobFailure",
    "PushRequest",
    "MiddlewarePush",
    "MiddlewareFactoryPush",
    "MiddlewareFactory",
    "PushMiddlewareDispatcher",
    "DelayMiddleware",
    "QueueError",
    "BehaviorNotSupportedError",
    "UnknownMessageIdError",
    "InvalidMiddlewareDefinitionError",
    "InvalidStatusTransitionError",
    "UnknownHandlerError",
]
