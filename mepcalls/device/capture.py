"""Turns telephony state transitions into queued CallRecords.

Incoming calls go IDLE -> RINGING -> OFFHOOK -> IDLE, outgoing calls
IDLE -> OFFHOOK -> IDLE, and a rejected or missed call RINGING -> IDLE.
Nothing is recorded until the call ends; the finished call is then looked up
in the device call log, whose id, type and duration are authoritative.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from mepcalls.device.call_log import CallLogProvider
from mepcalls.device.exceptions import QueueStorageError
from mepcalls.device.models import CallLogEntry, CallRecord, CallType, TelephonyState
from mepcalls.device.queue import LocalCallQueue
from mepcalls.device.session import SessionStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CallCapturer:
    """State machine fed one telephony callback at a time.

    The host delivers callbacks sequentially, so no locking happens here.
    """

    def __init__(
        self,
        queue: LocalCallQueue,
        call_log: CallLogProvider,
        sessions: SessionStore,
        lookback: timedelta = timedelta(seconds=60),
        clock: Clock = utcnow,
    ) -> None:
        self._queue = queue
        self._call_log = call_log
        self._sessions = sessions
        self._lookback = lookback
        self._clock = clock
        self._reset()

    @property
    def state(self) -> TelephonyState:
        return self._state

    @property
    def call_active(self) -> bool:
        return self._active

    def _reset(self) -> None:
        self._state = TelephonyState.IDLE
        self._incoming_number: Optional[str] = None
        self._started_at: Optional[datetime] = None
        self._active_since: Optional[datetime] = None
        self._active = False
        self._rang = False

    def on_state(self, state: TelephonyState | str, number: Optional[str] = None) -> Optional[CallRecord]:
        """Handle one transition; returns the record queued when a call ends."""
        try:
            state = TelephonyState(state)
        except ValueError:
            logger.warning("Unknown phone state: %s", state)
            return None
        if state is TelephonyState.RINGING:
            self._on_ringing(number)
            return None
        if state is TelephonyState.OFFHOOK:
            self._on_offhook()
            return None
        return self._on_idle()

    def _on_ringing(self, number: Optional[str]) -> None:
        self._state = TelephonyState.RINGING
        self._incoming_number = number
        self._started_at = self._clock()
        self._active = False
        self._rang = True
        logger.debug("Ringing, incoming call from %s", number)

    def _on_offhook(self) -> None:
        self._state = TelephonyState.OFFHOOK
        if self._active:
            return
        now = self._clock()
        self._active = True
        self._active_since = now
        if not self._rang:
            self._started_at = now
        logger.debug("Off hook, call active (%s)", "answered" if self._rang else "outgoing")

    def _on_idle(self) -> Optional[CallRecord]:
        if not (self._active or self._rang):
            logger.warning("Phone idle but no call was tracked")
            self._reset()
            return None
        now = self._clock()
        answered = self._active
        rang = self._rang
        elapsed = int((now - self._active_since).total_seconds()) if answered else 0
        incoming_number = self._incoming_number
        self._reset()
        logger.debug("Call ended after %ss of activity", elapsed)

        session = self._sessions.current()
        if session is None:
            logger.warning("No operator signed in, dropping call that ended at %s", now.isoformat())
            return None

        entry = self._find_entry(now)
        if entry is None:
            logger.warning(
                "No call log entry within %ss of call end (number=%s); call not recorded",
                int(self._lookback.total_seconds()),
                incoming_number,
            )
            return None

        record = self._build_record(entry, session.staff_id, answered, rang, incoming_number)
        if record.call_type is not CallType.MISSED and record.duration_seconds != elapsed:
            logger.debug(
                "Call %s: call log reports %ss, observed %ss",
                record.provider_call_id,
                record.duration_seconds,
                elapsed,
            )
        try:
            created = self._queue.insert(record)
        except QueueStorageError:
            logger.exception("Could not queue call %s", record.provider_call_id)
            return None
        return record if created else None

    def _find_entry(self, now: datetime) -> Optional[CallLogEntry]:
        try:
            entries = self._call_log.recent_entries(now - self._lookback)
        except (ValueError, OSError):
            logger.exception("Call log could not be read at %s", now.isoformat())
            return None
        return entries[0] if entries else None

    @staticmethod
    def _build_record(
        entry: CallLogEntry,
        staff_id: int,
        answered: bool,
        rang: bool,
        incoming_number: Optional[str],
    ) -> CallRecord:
        if rang and not answered:
            call_type = CallType.MISSED
        elif entry.call_type is not CallType.UNKNOWN:
            call_type = entry.call_type
        else:
            call_type = CallType.INCOMING if rang else CallType.OUTGOING
        duration = 0 if call_type is CallType.MISSED else entry.duration_seconds
        number = entry.number if entry.number and entry.number != "Unknown" else (incoming_number or "Unknown")
        return CallRecord(
            provider_call_id=entry.call_id,
            phone_number=number,
            contact_name=entry.cached_name,
            call_type=call_type,
            duration_seconds=duration,
            captured_at=entry.date,
            staff_id=staff_id,
        )
