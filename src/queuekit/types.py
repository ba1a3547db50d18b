from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any


UTC = timezone.utc


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class JobStatus(str, Enum):
    WAITING = "waiting"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.FAILED)


class Message:
    """A unit of work.

    ``name`` selects the handler, ``payload`` is opaque to the queue. The
    adapter stores the assigned id in ``metadata["id"]``; workers record the
    last known status in ``metadata["status"]``.
    """

    __slots__ = ("_name", "payload", "metadata")

    def __init__(self, name: str, payload: Any = None, metadata: dict[str, Any] | None = None):
        if not name:
            raise ValueError("Message name must be a non-empty string")
        self._name = str(name)
        self.payload = payload
        self.metadata = dict(metadata or {})

    @property
    def name(self) -> str:
        return self._name

    @property
    def id(self) -> str | None:
        raw = self.metadata.get("id")
        return None if raw is None else str(raw)

    @property
    def status(self) -> JobStatus | None:
        raw = self.metadata.get("status")
        return None if raw is None else JobStatus(raw)

    def assign_id(self, message_id: str) -> None:
        current = self.id
        if current is not None and current != message_id:
            raise ValueError(f"Message already has id {current!r}")
        self.metadata["id"] = str(message_id)

    def mark(self, status: JobStatus) -> None:
        self.metadata["status"] = JobStatus(status).value

    def copy_for_requeue(self) -> "Message":
        """A fresh message with the same name and payload, pointing back at
        this one through ``metadata["retry_of"]``."""
        metadata = {k: v for k, v in self.metadata.items() if k not in {"id", "status"}}
        metadata["retry_of"] = self.id
        return Message(self.name, self.payload, metadata)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Message":
        return cls(
            name=str(raw["name"]),
            payload=raw.get("payload"),
            metadata=dict(raw.get("metadata", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "payload": self.payload,
            "metadata": dict(self.metadata),
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Message):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Message(name={self.name!r}, id={self.id!r})"
