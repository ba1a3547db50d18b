from __future__ import annotations

import json
import logging
import os
import socket
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

from .backends import Continuation, MessageHandler
from .exceptions import InvalidStatusTransitionError, UnknownMessageIdError
from .lease import LeaseManager
from .loop import Loop, SimpleLoop
from .types import JobStatus, Message, utc_now

log = logging.getLogger(__name__)


def _ts_for_name(dt: datetime) -> str:
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H%M%S.%fZ")


def _safe_id(message_id: str) -> str:
    return "".join(ch if ch.isalnum() or ch in {"-", "_"} else "_" for ch in message_id)


class FilesystemAdapter:
    """Adapter that keeps each message as a JSON file under ``workspace``.

    Layout per queue name::

        inbox/<queue>/<visible-at>__m_<id>.json
        status/<queue>/<id>.json
        deadletter/<queue>/<failed-at>__m_<id>.json
        locks/<queue>/<id>.lock

    Inbox files sort by the time they become visible, so delivery is FIFO
    for undelayed pushes. Several processes may share a workspace; each
    delivery is claimed with a lease first.
    """

    supports_delay = True

    def __init__(
        self,
        *,
        workspace: str | Path,
        queue_name: str,
        loop: Loop | None = None,
        lease_seconds: int = 120,
        poll_interval_seconds: float = 0.5,
    ):
        self.workspace = Path(workspace)
        self.queue_name = queue_name
        self.loop = loop or SimpleLoop()
        self.lease_seconds = lease_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.owner = f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"

        self.inbox_dir = self.workspace / "inbox" / queue_name
        self.status_dir = self.workspace / "status" / queue_name
        self.deadletter_dir = self.workspace / "deadletter" / queue_name
        self.lock_dir = self.workspace / "locks" / queue_name

        for folder in [self.inbox_dir, self.status_dir, self.deadletter_dir, self.lock_dir]:
            folder.mkdir(parents=True, exist_ok=True)

        self.leases = LeaseManager(self.lock_dir)
        self._io_lock = threading.RLock()

    def push(self, message: Message) -> str:
        """Same requeue rule as ``InMemoryAdapter.push``."""
        delay = float(message.metadata.get("delay_seconds") or 0)
        visible_at = utc_now() + timedelta(seconds=delay)
        with self._io_lock:
            if message.id is not None and message.status is not None and self._status_path(message.id).exists():
                message = message.copy_for_requeue()
            message_id = message.id or uuid4().hex
            if self._status_path(message_id).exists():
                raise ValueError(f"Message id {message_id!r} was already pushed")
            message.assign_id(message_id)
            message.mark(JobStatus.WAITING)
            self._write_status(message_id, JobStatus.WAITING)
            path = self.inbox_dir / f"{_ts_for_name(visible_at)}__m_{_safe_id(message_id)}.json"
            self._write_json(path, message.to_dict())
        log.debug("enqueue message %s (id=%s) visible at %s", message.name, message_id, visible_at.isoformat())
        return message_id

    def run_existing(self, continuation: Continuation) -> None:
        while True:
            claimed = self._claim_next()
            if claimed is None:
                return
            message, path = claimed
            try:
                keep_going = continuation(message)
            except Exception as exc:
                self._deadletter(path, message, str(exc))
                raise
            if not keep_going:
                self.leases.release(_safe_id(message.id))
                return
            self._ack(path, message)

    def subscribe(self, handler: MessageHandler) -> None:
        while self.loop.can_continue():
            claimed = self._claim_next()
            if claimed is None:
                time.sleep(self.poll_interval_seconds)
                continue
            message, path = claimed
            try:
                handler(message)
            except Exception as exc:
                self._deadletter(path, message, str(exc))
                raise
            self._ack(path, message)

    def status(self, message_id: str) -> JobStatus:
        path = self._status_path(message_id)
        try:
            raw = self._read_json(path)
        except FileNotFoundError:
            raise UnknownMessageIdError(message_id) from None
        return JobStatus(raw["status"])

    def set_status(self, message_id: str, status: JobStatus) -> None:
        status = JobStatus(status)
        with self._io_lock:
            current = self.status(message_id)
            if current.is_terminal and current is not status:
                raise InvalidStatusTransitionError(
                    f"Message {message_id} is already {current.value}, cannot become {status.value}"
                )
            self._write_status(message_id, status)

    def stats(self) -> dict[str, int]:
        return {
            "inbox": len(list(self.inbox_dir.glob("*.json"))),
            "status": len(list(self.status_dir.glob("*.json"))),
            "deadletter": len(list(self.deadletter_dir.glob("*.json"))),
            "locks": len(list(self.lock_dir.glob("*.lock"))),
        }

    def deadletter_items(self) -> list[Path]:
        return sorted(self.deadletter_dir.glob("*.json"))

    def retry_deadletter(self, *, message_id: str | None = None) -> list[str]:
        """Push failed messages again under new ids and return those ids.

        The failed originals keep their FAILED status.
        """
        pushed = []
        for item in self.deadletter_items():
            raw = self._read_json(item)
            failed = Message.from_dict(raw["message"])
            if message_id and failed.id != message_id:
                continue
            retry = failed.copy_for_requeue()
            retry.metadata.pop("delay_seconds", None)
            pushed.append(self.push(retry))
            item.unlink()
        return pushed

    def _claim_next(self) -> tuple[Message, Path] | None:
        now_name = _ts_for_name(utc_now())
        for path in sorted(self.inbox_dir.glob("*.json")):
            visible_at = path.name.split("__", 1)[0]
            if visible_at > now_name:
                break
            lock_id = path.name.split("__m_", 1)[1][: -len(".json")]
            lease = self.leases.try_acquire(
                message_id=lock_id,
                owner=self.owner,
                lease_seconds=self.lease_seconds,
            )
            if lease is None:
                continue
            try:
                message = Message.from_dict(self._read_json(path))
            except FileNotFoundError:
                # acked by another consumer between glob and lease
                self.leases.release(lock_id)
                continue
            return message, path
        return None

    def _ack(self, path: Path, message: Message) -> None:
        with self._io_lock:
            path.unlink(missing_ok=True)
            self.leases.release(_safe_id(message.id))

    def _deadletter(self, path: Path, message: Message, error: str) -> None:
        name = f"{_ts_for_name(utc_now())}__m_{_safe_id(message.id)}.json"
        with self._io_lock:
            self._write_json(
                self.deadletter_dir / name,
                {
                    "message": message.to_dict(),
                    "final_error": error,
                    "deadlettered_at": utc_now().isoformat(),
                },
            )
            path.unlink(missing_ok=True)
            self.leases.release(_safe_id(message.id))
        log.warning("message %s (id=%s) moved to deadletter: %s", message.name, message.id, error)

    def _status_path(self, message_id: str) -> Path:
        return self.status_dir / f"{_safe_id(message_id)}.json"

    def _write_status(self, message_id: str, status: JobStatus) -> None:
        self._write_json(
            self._status_path(message_id),
            {"id": message_id, "status": status.value, "updated_at": utc_now().isoformat()},
        )

    @staticmethod
    def _read_json(path: Path) -> dict:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)

    @staticmethod
    def _write_json(path: Path, payload: dict) -> None:
        tmp = path.with_name(f".{path.name}.{uuid4().hex[:8]}.tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=True)
        os.replace(tmp, path)
