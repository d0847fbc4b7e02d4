import json
from datetime import datetime, timedelta, timezone

import pytest

from mepcalls.device.call_log import InMemoryCallLogProvider, JsonCallLogProvider
from mepcalls.device.capture import CallCapturer
from mepcalls.device.models import CallLogEntry, CallType, DeviceSession, SyncState, TelephonyState
from mepcalls.device.queue import LocalCallQueue
from mepcalls.device.session import InMemorySessionStore

START = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def queue():
    return LocalCallQueue.from_path(":memory:")


@pytest.fixture()
def call_log():
    return InMemoryCallLogProvider()


@pytest.fixture()
def sessions():
    return InMemorySessionStore(DeviceSession(token="t", staff_id=3, staff_name="Asha"))


@pytest.fixture()
def capturer(queue, call_log, sessions, clock):
    return CallCapturer(queue, call_log, sessions, lookback=timedelta(seconds=60), clock=clock)


def _entry(call_id, call_type, duration, date=START, number="+919876543210", name=None):
    return CallLogEntry(
        call_id=call_id,
        number=number,
        call_type=call_type,
        date=date,
        duration_seconds=duration,
        cached_name=name,
    )


def test_answered_incoming_call(capturer, queue, call_log, clock):
    assert capturer.on_state("RINGING", "+919876543210") is None
    assert capturer.state is TelephonyState.RINGING
    clock.advance(5)
    capturer.on_state(TelephonyState.OFFHOOK)
    assert capturer.call_active
    clock.advance(50)
    call_log.add(_entry("101", CallType.INCOMING, 42, name="Kiran"))

    record = capturer.on_state("IDLE")

    assert record.provider_call_id == "101"
    assert record.call_type is CallType.INCOMING
    assert record.duration_seconds == 42
    assert record.contact_name == "Kiran"
    assert record.staff_id == 3
    assert capturer.state is TelephonyState.IDLE
    assert not capturer.call_active
    pending = queue.list_pending()
    assert [item.provider_call_id for item in pending] == ["101"]
    assert pending[0].sync_state is SyncState.PENDING


def test_unanswered_ring_is_missed(capturer, queue, call_log, clock):
    capturer.on_state("RINGING", "+919876543210")
    clock.advance(20)
    call_log.add(_entry("102", CallType.MISSED, 0))

    record = capturer.on_state("IDLE")

    assert record.call_type is CallType.MISSED
    assert record.duration_seconds == 0
    assert queue.count() == 1


def test_unanswered_ring_overrides_call_log_type(capturer, call_log, clock):
    capturer.on_state("RINGING", "+919876543210")
    clock.advance(20)
    call_log.add(_entry("103", CallType.INCOMING, 7))

    record = capturer.on_state("IDLE")

    assert record.call_type is CallType.MISSED
    assert record.duration_seconds == 0


def test_outgoing_call(capturer, call_log, clock):
    capturer.on_state("OFFHOOK")
    clock.advance(50)
    call_log.add(_entry("104", CallType.OUTGOING, 48, date=START))

    record = capturer.on_state("IDLE")

    assert record.call_type is CallType.OUTGOING
    assert record.duration_seconds == 48


def test_unknown_call_log_type_is_inferred(capturer, call_log, clock):
    capturer.on_state("RINGING", "9876543210")
    capturer.on_state("OFFHOOK")
    capturer.on_state("OFFHOOK")
    clock.advance(10)
    call_log.add(_entry("105", CallType.UNKNOWN, 10, number="Unknown"))

    record = capturer.on_state("IDLE")

    assert record.call_type is CallType.INCOMING
    assert record.phone_number == "9876543210"


def test_call_dropped_without_session(queue, call_log, clock):
    capturer = CallCapturer(queue, call_log, InMemorySessionStore(), clock=clock)
    capturer.on_state("RINGING", "9876543210")
    capturer.on_state("OFFHOOK")
    clock.advance(30)
    call_log.add(_entry("106", CallType.INCOMING, 30))

    assert capturer.on_state("IDLE") is None
    assert queue.count() == 0


def test_expired_session_still_captures(queue, call_log, clock):
    expired = DeviceSession(token="t", staff_id=3, expires_at=START - timedelta(days=1))
    capturer = CallCapturer(queue, call_log, InMemorySessionStore(expired), clock=clock)
    capturer.on_state("OFFHOOK")
    clock.advance(30)
    call_log.add(_entry("107", CallType.OUTGOING, 30))

    assert capturer.on_state("IDLE") is not None
    assert queue.count(SyncState.PENDING) == 1


def test_no_call_log_entry_in_window(capturer, queue, call_log, clock):
    call_log.add(_entry("108", CallType.INCOMING, 30, date=START - timedelta(minutes=10)))
    capturer.on_state("RINGING", "9876543210")
    capturer.on_state("OFFHOOK")
    clock.advance(30)

    assert capturer.on_state("IDLE") is None
    assert queue.count() == 0


def test_newest_entry_wins(capturer, call_log, clock):
    capturer.on_state("OFFHOOK")
    clock.advance(30)
    call_log.add(_entry("109", CallType.OUTGOING, 5, date=START - timedelta(seconds=20)))
    call_log.add(_entry("110", CallType.OUTGOING, 30, date=START))

    assert capturer.on_state("IDLE").provider_call_id == "110"


def test_same_entry_is_queued_once(capturer, queue, call_log, clock):
    call_log.add(_entry("111", CallType.OUTGOING, 12))
    capturer.on_state("OFFHOOK")
    clock.advance(12)
    assert capturer.on_state("IDLE") is not None

    capturer.on_state("OFFHOOK")
    clock.advance(3)
    assert capturer.on_state("IDLE") is None
    assert queue.count() == 1


def test_idle_without_call_is_ignored(capturer, queue):
    assert capturer.on_state("IDLE") is None
    assert capturer.on_state("DIALING") is None
    assert queue.count() == 0


def test_unreadable_call_log_export_is_an_anomaly(queue, sessions, clock, tmp_path):
    export = tmp_path / "call_log.json"
    export.write_text('[{"_id": 1, "number": "98765', encoding="utf-8")
    capturer = CallCapturer(queue, JsonCallLogProvider(export), sessions, clock=clock)
    capturer.on_state("OFFHOOK")
    clock.advance(30)

    assert capturer.on_state("IDLE") is None
    assert capturer.state is TelephonyState.IDLE
    assert queue.count() == 0


def test_non_object_rows_in_export_are_skipped(queue, sessions, clock, tmp_path):
    export = tmp_path / "call_log.json"
    row = {"_id": 112, "number": "9876543210", "type": 2, "date": START.isoformat(), "duration": 25}
    export.write_text(json.dumps([1, "junk", row]), encoding="utf-8")
    capturer = CallCapturer(queue, JsonCallLogProvider(export), sessions, clock=clock)
    capturer.on_state("OFFHOOK")
    clock.advance(30)

    record = capturer.on_state("IDLE")

    assert record.provider_call_id == "112"
    assert record.duration_seconds == 25
    assert queue.count() == 1
