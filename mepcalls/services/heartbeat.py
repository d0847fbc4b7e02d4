"""Last-heartbeat registry, owned by the running app instead of a global map."""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
import threading

import redis


class HeartbeatStore(ABC):
    @abstractmethod
    def record(self, staff_id: int, at: datetime, syncing: bool = False) -> None:
        """Store ``at`` as the latest heartbeat of ``staff_id``."""

    @abstractmethod
    def last_seen(self, staff_id: int) -> tuple[datetime, bool] | None:
        """Return the latest heartbeat and syncing flag, if any."""


class InMemoryHeartbeatStore(HeartbeatStore):
    def __init__(self) -> None:
        self._beats: dict[int, tuple[datetime, bool]] = {}
        self._lock = threading.Lock()

    def record(self, staff_id: int, at: datetime, syncing: bool = False) -> None:
        with self._lock:
            self._beats[staff_id] = (at, syncing)

    def last_seen(self, staff_id: int) -> tuple[datetime, bool] | None:
        with self._lock:
            return self._beats.get(staff_id)


class RedisHeartbeatStore(HeartbeatStore):
    def __init__(self, client: redis.Redis, prefix: str = "heartbeat", ttl_seconds: int = 86400):
        self.client = client
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds

    def record(self, staff_id: int, at: datetime, syncing: bool = False) -> None:
        key = f"{self.prefix}:{staff_id}"
        self.client.hset(key, mapping={"at": at.timestamp(), "syncing": int(syncing)})
        self.client.expire(key, self.ttl_seconds)

    def last_seen(self, staff_id: int) -> tuple[datetime, bool] | None:
        data = self.client.hgetall(f"{self.prefix}:{staff_id}")
        if not data:
            return None
        at = datetime.fromtimestamp(float(data["at"]), tz=timezone.utc)
        return at, bool(int(data.get("syncing", 0)))


def is_live(last_seen: datetime | None, now: datetime, live_seconds: int) -> bool:
    if last_seen is None:
        return False
    return (now - last_seen).total_seconds() <= live_seconds
