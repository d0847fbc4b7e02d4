"""Wires capture, queue and sync together and reacts to app lifecycle signals."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

import requests

from mepcalls.device.call_log import CallLogProvider, JsonCallLogProvider
from mepcalls.device.capture import CallCapturer, utcnow
from mepcalls.device.client import MepApiClient
from mepcalls.device.config import DeviceSettings
from mepcalls.device.dispatcher import SyncDispatcher, SyncOutcome, SyncResult, SyncScheduler
from mepcalls.device.exceptions import IngestError
from mepcalls.device.models import DeviceSession
from mepcalls.device.queue import DevicePreferences, LocalCallQueue, create_device_engine
from mepcalls.device.scheduler import RecurringTask, ThreadTicker
from mepcalls.device.session import FileSessionStore, SessionStore

logger = logging.getLogger(__name__)


class DeviceAgent:
    """Trigger model: a recurring run while signed in, plus an immediate run
    on sign-in and on every return to the foreground."""

    def __init__(
        self,
        queue: LocalCallQueue,
        dispatcher: SyncDispatcher,
        scheduler: SyncScheduler,
        sessions: SessionStore,
        api: MepApiClient,
        retention: timedelta = timedelta(days=30),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._queue = queue
        self._dispatcher = dispatcher
        self._scheduler = scheduler
        self._sessions = sessions
        self._api = api
        self._retention = retention
        self._clock = clock
        sessions.subscribe(self._on_session_changed)
        dispatcher.on_batch_started(self._on_batch_started)

    @property
    def is_syncing(self) -> bool:
        return self._dispatcher.is_running

    def start(self) -> None:
        """Re-arm the recurring sync after a process or device restart."""
        if self._sessions.current() is not None:
            self._scheduler.arm()

    def login(self, phone: str, password: str) -> DeviceSession:
        session = self._api.login(phone, password)
        self._sessions.save(session)
        return session

    def logout(self) -> None:
        self._sessions.clear()

    def _on_session_changed(self, session: Optional[DeviceSession]) -> None:
        if session is None:
            self._scheduler.cancel()
            return
        self._scheduler.arm()
        self.sync_now()

    def on_foreground(self) -> SyncResult:
        if self._sessions.current() is not None:
            self._scheduler.adopt_remote_interval()
        return self.sync_now()

    def on_tick(self) -> SyncResult:
        self._send_heartbeat()
        result = self.sync_now()
        if result.outcome is SyncOutcome.SYNCED:
            self._queue.purge_synced_older_than(self._clock() - self._retention)
        return result

    def sync_now(self) -> SyncResult:
        result = self._dispatcher.run_once()
        logger.debug("Sync run finished: %s", result.outcome.value)
        return result

    def _on_batch_started(self, session: DeviceSession, size: int) -> None:
        self._beat(session, syncing=True)

    def _send_heartbeat(self) -> None:
        session = self._sessions.current()
        if session is None or session.is_expired(self._clock()):
            return
        self._beat(session, syncing=self._dispatcher.is_running)

    def _beat(self, session: DeviceSession, syncing: bool) -> None:
        try:
            self._api.send_heartbeat(session, syncing=syncing)
        except IngestError as exc:
            logger.debug("Heartbeat not delivered: %s", exc)


@dataclass
class DeviceRuntime:
    queue: LocalCallQueue
    preferences: DevicePreferences
    sessions: SessionStore
    api: MepApiClient
    capturer: CallCapturer
    dispatcher: SyncDispatcher
    scheduler: SyncScheduler
    ticker: RecurringTask
    agent: DeviceAgent


def build_runtime(
    settings: DeviceSettings,
    sessions: Optional[SessionStore] = None,
    call_log: Optional[CallLogProvider] = None,
    http_client: Optional[requests.Session] = None,
    clock: Callable[[], datetime] = utcnow,
) -> DeviceRuntime:
    engine = create_device_engine(settings.database_path)
    queue = LocalCallQueue(engine)
    preferences = DevicePreferences(engine, queue.lock)
    sessions = sessions or FileSessionStore(settings.session_path)
    api = MepApiClient(settings.api_base_url, settings.request_timeout_seconds, http_client)
    capturer = CallCapturer(
        queue,
        call_log or JsonCallLogProvider(settings.call_log_path),
        sessions,
        lookback=timedelta(seconds=settings.call_log_lookback_seconds),
        clock=clock,
    )
    dispatcher = SyncDispatcher(queue, api, sessions, clock)
    holder: dict[str, DeviceAgent] = {}
    ticker = ThreadTicker(lambda: holder["agent"].on_tick())
    scheduler = SyncScheduler(
        ticker, preferences, api, sessions, floor_minutes=settings.min_sync_interval_minutes
    )
    agent = DeviceAgent(
        queue,
        dispatcher,
        scheduler,
        sessions,
        api,
        retention=timedelta(days=settings.retention_days),
        clock=clock,
    )
    holder["agent"] = agent
    return DeviceRuntime(queue, preferences, sessions, api, capturer, dispatcher, scheduler, ticker, agent)
