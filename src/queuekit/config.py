from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .events import EventDispatcher
from .fs_queue import FilesystemAdapter
from .loop import Loop, SignalLoop
from .queue import Queue
from .worker import Handler, HandlerWorker


@dataclass(slots=True)
class QueueConfig:
    workspace: str | Path = "."
    queue_name: str = "default"
    lease_seconds: int = 120
    poll_interval_seconds: float = 0.5
    memory_soft_limit: int = 0
    max_messages: int = 0
    middleware: list[Any] = field(default_factory=list)


def build_queue(
    config: QueueConfig,
    handlers: Mapping[str, Handler] | None = None,
    *,
    loop: Loop | None = None,
    event_dispatcher: EventDispatcher | None = None,
    logger: logging.Logger | None = None,
) -> Queue:
    """Wire a filesystem-backed queue from ``config``."""
    loop = loop or SignalLoop(memory_soft_limit=config.memory_soft_limit)
    adapter = FilesystemAdapter(
        workspace=config.workspace,
        queue_name=config.queue_name,
        loop=loop,
        lease_seconds=config.lease_seconds,
        poll_interval_seconds=config.poll_interval_seconds,
    )
    worker = HandlerWorker(handlers or {}, adapter=adapter, event_dispatcher=event_dispatcher, logger=logger)
    return Queue(
        adapter=adapter,
        worker=worker,
        loop=loop,
        event_dispatcher=event_dispatcher,
        logger=logger,
        middleware_definitions=config.middleware,
    )
