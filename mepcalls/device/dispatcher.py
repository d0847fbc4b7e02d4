"""Uploads pending calls and keeps the recurring sync on the configured interval."""
from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, List, Optional, Protocol

from mepcalls.device.exceptions import IngestError, QueueStorageError
from mepcalls.device.models import CallRecord, DeviceSession
from mepcalls.device.queue import DevicePreferences, LocalCallQueue
from mepcalls.device.scheduler import RecurringTask, SchedulePolicy
from mepcalls.device.session import SessionStore

logger = logging.getLogger(__name__)

SYNC_INTERVAL_PREF = "sync_interval_minutes"


class IngestPort(Protocol):
    def send_call_logs(self, records: Iterable[CallRecord], session: DeviceSession) -> Any: ...


class IntervalSource(Protocol):
    def get_sync_interval(self, session: DeviceSession) -> str: ...


class SyncOutcome(str, enum.Enum):
    SKIPPED_IN_FLIGHT = "skipped_in_flight"
    SKIPPED_NO_SESSION = "skipped_no_session"
    EMPTY = "empty"
    SYNCED = "synced"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncResult:
    outcome: SyncOutcome
    attempted: int = 0
    synced: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (SyncOutcome.EMPTY, SyncOutcome.SYNCED)


class SyncDispatcher:
    """Moves PENDING records to the backend, all or nothing per run.

    At most one run is in flight; a run attempted meanwhile is skipped,
    not queued.
    """

    def __init__(
        self,
        queue: LocalCallQueue,
        ingest: IngestPort,
        sessions: SessionStore,
        clock: Callable[[], datetime],
    ) -> None:
        self._queue = queue
        self._ingest = ingest
        self._sessions = sessions
        self._clock = clock
        self._in_flight = threading.Lock()
        self._start_listeners: List[Callable[[DeviceSession, int], None]] = []

    @property
    def is_running(self) -> bool:
        return self._in_flight.locked()

    def on_batch_started(self, listener: Callable[[DeviceSession, int], None]) -> None:
        """Call ``listener(session, size)`` once a non-empty batch is about to upload."""
        self._start_listeners.append(listener)

    def _notify_started(self, session: DeviceSession, size: int) -> None:
        for listener in list(self._start_listeners):
            try:
                listener(session, size)
            except Exception:
                logger.exception("Sync start listener failed")

    def run_once(self) -> SyncResult:
        if not self._in_flight.acquire(blocking=False):
            logger.debug("Sync already running, skipping")
            return SyncResult(SyncOutcome.SKIPPED_IN_FLIGHT)
        try:
            return self._run()
        finally:
            self._in_flight.release()

    def _run(self) -> SyncResult:
        session = self._sessions.current()
        if session is None or session.is_expired(self._clock()):
            logger.debug("No valid session, sync deferred")
            return SyncResult(SyncOutcome.SKIPPED_NO_SESSION)

        try:
            batch = self._queue.list_pending()
        except QueueStorageError as exc:
            logger.exception("Could not read pending calls")
            return SyncResult(SyncOutcome.FAILED, error=str(exc))
        if not batch:
            return SyncResult(SyncOutcome.EMPTY)

        self._notify_started(session, len(batch))

        try:
            self._ingest.send_call_logs(batch, session)
        except IngestError as exc:
            logger.warning("Sync of %s call(s) failed, will retry: %s", len(batch), exc)
            return SyncResult(SyncOutcome.FAILED, attempted=len(batch), error=str(exc))

        try:
            synced = self._queue.mark_synced(record.provider_call_id for record in batch)
        except QueueStorageError as exc:
            logger.exception("Backend accepted %s call(s) but marking them failed", len(batch))
            return SyncResult(SyncOutcome.FAILED, attempted=len(batch), error=str(exc))
        logger.info("Synced %s call(s)", synced)
        return SyncResult(SyncOutcome.SYNCED, attempted=len(batch), synced=synced)


def clamp_interval(value: str | int, floor_minutes: int) -> int:
    """Parse a remote interval in minutes, raising it to ``floor_minutes``."""
    minutes = int(str(value).strip())
    return max(minutes, floor_minutes)


class SyncScheduler:
    """Keeps the recurring task armed on the backend-configured interval."""

    def __init__(
        self,
        task: RecurringTask,
        preferences: DevicePreferences,
        source: IntervalSource,
        sessions: SessionStore,
        floor_minutes: int = 15,
    ) -> None:
        self._task = task
        self._preferences = preferences
        self._source = source
        self._sessions = sessions
        self._floor = floor_minutes

    @property
    def cached_minutes(self) -> int:
        try:
            cached = self._preferences.get_int(SYNC_INTERVAL_PREF, self._floor)
        except QueueStorageError:
            logger.exception("Could not read the cached sync interval")
            return self._floor
        return max(cached, self._floor)

    def arm(self) -> bool:
        return self._task.schedule(timedelta(minutes=self.cached_minutes), SchedulePolicy.KEEP)

    def cancel(self) -> None:
        self._task.cancel()

    def adopt_remote_interval(self) -> int:
        """Fetch the interval; reschedule and cache it when it changed."""
        cached = self.cached_minutes
        session = self._sessions.current()
        if session is None:
            return cached
        try:
            minutes = clamp_interval(self._source.get_sync_interval(session), self._floor)
        except (IngestError, ValueError) as exc:
            logger.debug("Keeping cached sync interval of %s minute(s): %s", cached, exc)
            return cached
        if minutes == cached and self._task.is_scheduled:
            return minutes
        self._task.schedule(timedelta(minutes=minutes), SchedulePolicy.REPLACE)
        if minutes != cached:
            try:
                self._preferences.set(SYNC_INTERVAL_PREF, str(minutes))
            except QueueStorageError:
                logger.exception("Could not cache sync interval of %s minute(s)", minutes)
            logger.info("Sync interval changed from %s to %s minute(s)", cached, minutes)
        return minutes
