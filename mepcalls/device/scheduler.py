"""Recurring background work, independent of the host's job scheduler."""
from __future__ import annotations

import enum
import logging
import threading
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class SchedulePolicy(str, enum.Enum):
    KEEP = "keep"
    REPLACE = "replace"


class RecurringTask(ABC):
    """A job run every ``interval`` until cancelled."""

    @property
    @abstractmethod
    def interval(self) -> Optional[timedelta]:
        """The active interval, or None when nothing is scheduled."""

    @property
    def is_scheduled(self) -> bool:
        return self.interval is not None

    @abstractmethod
    def schedule(self, interval: timedelta, policy: SchedulePolicy = SchedulePolicy.KEEP) -> bool:
        """Arm the job; returns False when KEEP left an existing schedule alone."""

    @abstractmethod
    def cancel(self) -> None:
        """Stop the job; a no-op when nothing is scheduled."""


class ThreadTicker(RecurringTask):
    """In-process ticker: a daemon thread that sleeps on an Event between runs."""

    def __init__(self, job: Callable[[], object], name: str = "mepcalls-sync") -> None:
        self._job = job
        self._name = name
        self._lock = threading.Lock()
        self._interval: Optional[timedelta] = None
        self._stop: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def interval(self) -> Optional[timedelta]:
        return self._interval

    def schedule(self, interval: timedelta, policy: SchedulePolicy = SchedulePolicy.KEEP) -> bool:
        if interval.total_seconds() <= 0:
            raise ValueError("interval must be positive")
        with self._lock:
            if self._interval is not None:
                if policy is SchedulePolicy.KEEP:
                    return False
                self._stop_locked()
            stop = threading.Event()
            thread = threading.Thread(
                target=self._loop, args=(interval, stop), name=self._name, daemon=True
            )
            self._interval, self._stop, self._thread = interval, stop, thread
            thread.start()
        logger.info("Recurring sync scheduled every %s", interval)
        return True

    def cancel(self) -> None:
        with self._lock:
            if self._interval is None:
                return
            self._stop_locked()
        logger.info("Recurring sync cancelled")

    def _stop_locked(self) -> None:
        if self._stop is not None:
            self._stop.set()
        self._interval, self._stop, self._thread = None, None, None

    def _loop(self, interval: timedelta, stop: threading.Event) -> None:
        while not stop.wait(interval.total_seconds()):
            try:
                self._job()
            except Exception:
                logger.exception("Recurring job failed")
