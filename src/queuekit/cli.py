from __future__ import annotations

import argparse
import importlib
import json
import logging
import sys
from collections.abc import Mapping
from pathlib import Path

from .config import QueueConfig, build_queue
from .exceptions import QueueError
from .fs_queue import FilesystemAdapter
from .loop import SignalLoop, SimpleLoop
from .middleware import DelayMiddleware
from .types import Message


def _load_handlers(spec: str) -> dict:
    if ":" not in spec:
        raise ValueError("Handlers must be import path in form module:attr")
    module_name, attr = spec.split(":", 1)
    module = importlib.import_module(module_name)
    handlers = getattr(module, attr)
    if callable(handlers) and not isinstance(handlers, Mapping):
        handlers = handlers()
    if not isinstance(handlers, Mapping):
        raise ValueError("Loaded handlers must be a mapping of message name to callable")
    return dict(handlers)


def _config(args) -> QueueConfig:
    return QueueConfig(
        workspace=Path(args.workspace),
        queue_name=args.queue,
        lease_seconds=getattr(args, "lease_seconds", 120),
        poll_interval_seconds=getattr(args, "poll_interval", 0.5),
        memory_soft_limit=getattr(args, "memory_soft_limit", 0),
        max_messages=getattr(args, "max", 0),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="queuekit")
    parser.add_argument("--log-level", default="WARNING")
    sub = parser.add_subparsers(dest="command", required=True)

    worker_p = sub.add_parser("worker")
    worker_sub = worker_p.add_subparsers(dest="worker_cmd", required=True)
    for name in ("run", "listen"):
        p = worker_sub.add_parser(name)
        p.add_argument("handlers", help="Handler mapping import path module:attr")
        p.add_argument("--queue", default="default")
        p.add_argument("--workspace", default=".")
        p.add_argument("--lease-seconds", type=int, default=120)
        p.add_argument("--poll-interval", type=float, default=0.5)
        p.add_argument("--memory-soft-limit", type=int, default=0)
        if name == "run":
            p.add_argument("--max", type=int, default=0)

    queue_p = sub.add_parser("queue")
    queue_sub = queue_p.add_subparsers(dest="queue_cmd", required=True)

    push_p = queue_sub.add_parser("push")
    push_p.add_argument("queue")
    push_p.add_argument("name")
    push_p.add_argument("--payload", default="null", help="JSON payload")
    push_p.add_argument("--delay", type=float, default=None, help="Seconds before the message is visible")
    push_p.add_argument("--workspace", default=".")

    status_p = queue_sub.add_parser("status")
    status_p.add_argument("queue")
    status_p.add_argument("message_id")
    status_p.add_argument("--workspace", default=".")

    stats_p = queue_sub.add_parser("stats")
    stats_p.add_argument("queue")
    stats_p.add_argument("--workspace", default=".")

    retry_p = queue_sub.add_parser("retry")
    retry_p.add_argument("queue")
    retry_p.add_argument("--workspace", default=".")
    retry_p.add_argument("--message-id", default=None)

    deadletter_p = queue_sub.add_parser("deadletter")
    deadletter_sub = deadletter_p.add_subparsers(dest="deadletter_cmd", required=True)
    dl_list_p = deadletter_sub.add_parser("list")
    dl_list_p.add_argument("queue")
    dl_list_p.add_argument("--workspace", default=".")

    return parser


def _dispatch(args, parser: argparse.ArgumentParser) -> int:
    if args.command == "worker":
        config = _config(args)
        loop = SignalLoop(memory_soft_limit=config.memory_soft_limit)
        try:
            queue = build_queue(config, _load_handlers(args.handlers), loop=loop)
            if args.worker_cmd == "run":
                processed = queue.run(config.max_messages)
                print(json.dumps({"processed": processed}))
            else:
                queue.listen()
                print(json.dumps({"stopped": True}))
        finally:
            loop.restore()
        return 0

    if args.command == "queue" and args.queue_cmd == "push":
        config = _config(args)
        if args.delay:
            config.middleware.append(DelayMiddleware(args.delay))
        queue = build_queue(config, loop=SimpleLoop())
        message_id = queue.push(Message(args.name, json.loads(args.payload)))
        print(json.dumps({"id": message_id}))
        return 0

    if args.command == "queue" and args.queue_cmd == "status":
        queue = build_queue(_config(args), loop=SimpleLoop())
        print(json.dumps({"id": args.message_id, "status": queue.status(args.message_id).value}))
        return 0

    adapter = FilesystemAdapter(workspace=Path(args.workspace), queue_name=args.queue)

    if args.command == "queue" and args.queue_cmd == "stats":
        print(json.dumps(adapter.stats()))
        return 0

    if args.command == "queue" and args.queue_cmd == "retry":
        pushed = adapter.retry_deadletter(message_id=args.message_id)
        print(json.dumps({"retried": len(pushed), "ids": pushed}))
        return 0

    if args.command == "queue" and args.queue_cmd == "deadletter" and args.deadletter_cmd == "list":
        items = [str(p) for p in adapter.deadletter_items()]
        print(json.dumps({"items": items}))
        return 0

    parser.print_help()
    return 1


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return _dispatch(args, parser)
    except QueueError as exc:
        print(json.dumps({"error": str(exc), "type": type(exc).__name__}))
        return 1


if __name__ == "__main__":
    sys.exit(main())
