from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4


@dataclass(frozen=True, slots=True)
class Lease:
    message_id: str
    owner: str
    expires_at: datetime

    def expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def dumps(self) -> str:
        return json.dumps({"message_id": self.message_id, "owner": self.owner, "expires_at": self.expires_at.isoformat()})

    @classmethod
    def loads(cls, raw: str) -> "Lease":
        data = json.loads(raw)
        expires_at = datetime.fromisoformat(data["expires_at"])
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return cls(message_id=str(data.get("message_id", "")), owner=str(data["owner"]), expires_at=expires_at)


class LeaseManager:
    """Claims messages with lock files.

    A free message is claimed by creating ``<id>.lock`` with O_EXCL. An
    expired lock is taken over only by whoever creates ``<id>.breaking``
    first; that claimant swaps in its own lease with ``os.replace``, so the
    lock file never disappears while it is being broken.

    A lock whose content cannot be parsed is probably being written right
    now, so it counts as held until it is ``stale_after_seconds`` old.
    """

    def __init__(self, lock_dir: Path, *, stale_after_seconds: float = 30.0):
        self.lock_dir = Path(lock_dir)
        self.lock_dir.mkdir(parents=True, exist_ok=True)
        self.stale_after_seconds = stale_after_seconds

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _lock_path(self, message_id: str) -> Path:
        return self.lock_dir / f"{message_id}.lock"

    def try_acquire(self, *, message_id: str, owner: str, lease_seconds: int) -> Lease | None:
        now = self._now()
        lease = Lease(message_id, owner, now + timedelta(seconds=max(1, lease_seconds)))
        lock_path = self._lock_path(message_id)
        if lock_path.exists():
            if not self._is_expired(lock_path, now):
                return None
            return lease if self._take_over(lock_path, lease, now) else None
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            return None
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(lease.dumps())
        return lease

    def release(self, message_id: str) -> None:
        self._lock_path(message_id).unlink(missing_ok=True)

    def holder(self, message_id: str) -> str | None:
        try:
            return Lease.loads(self._lock_path(message_id).read_text(encoding="utf-8")).owner
        except (OSError, ValueError, KeyError):
            return None

    def _take_over(self, lock_path: Path, lease: Lease, now: datetime) -> bool:
        marker = lock_path.with_suffix(".breaking")
        try:
            if time.time() - marker.stat().st_mtime >= self.stale_after_seconds:
                # left behind by a claimant that died mid-takeover
                marker.unlink(missing_ok=True)
        except FileNotFoundError:
            pass
        try:
            fd = os.open(marker, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            return False
        os.close(fd)
        try:
            if not lock_path.exists() or not self._is_expired(lock_path, now):
                return False
            tmp = lock_path.with_name(f".{lock_path.name}.{uuid4().hex[:8]}.tmp")
            tmp.write_text(lease.dumps(), encoding="utf-8")
            os.replace(tmp, lock_path)
            return True
        finally:
            marker.unlink(missing_ok=True)

    def _is_expired(self, lock_path: Path, now: datetime) -> bool:
        try:
            return Lease.loads(lock_path.read_text(encoding="utf-8")).expired(now)
        except FileNotFoundError:
            return True
        except (OSError, ValueError, KeyError, TypeError):
            try:
                age = time.time() - lock_path.stat().st_mtime
            except FileNotFoundError:
                return True
            return age >= self.stale_after_seconds
