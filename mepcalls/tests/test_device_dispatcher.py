import threading
from datetime import datetime, timedelta, timezone

import pytest

from mepcalls.device.dispatcher import SyncDispatcher, SyncOutcome, SyncScheduler, clamp_interval
from mepcalls.device.exceptions import IngestError, QueueStorageError
from mepcalls.device.models import CallRecord, CallType, DeviceSession, SyncState
from mepcalls.device.queue import DevicePreferences, LocalCallQueue, Preference
from mepcalls.device.scheduler import RecurringTask, SchedulePolicy
from mepcalls.device.session import InMemorySessionStore

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeIngest:
    def __init__(self):
        self.batches = []
        self.error = None

    def send_call_logs(self, records, session):
        records = list(records)
        if self.error:
            raise self.error
        self.batches.append(records)
        return {"received": len(records)}


class BlockingIngest(FakeIngest):
    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def send_call_logs(self, records, session):
        self.entered.set()
        self.release.wait(5)
        return super().send_call_logs(records, session)


class FakeTask(RecurringTask):
    def __init__(self):
        self._interval = None
        self.calls = []

    @property
    def interval(self):
        return self._interval

    def schedule(self, interval, policy=SchedulePolicy.KEEP):
        self.calls.append((interval, policy))
        if self._interval is not None and policy is SchedulePolicy.KEEP:
            return False
        self._interval = interval
        return True

    def cancel(self):
        self._interval = None


class FakeIntervalSource:
    def __init__(self, value="15"):
        self.value = value
        self.error = None

    def get_sync_interval(self, session):
        if self.error:
            raise self.error
        return self.value


@pytest.fixture()
def queue():
    queue = LocalCallQueue.from_path(":memory:")
    for index in range(5):
        queue.insert(
            CallRecord(
                provider_call_id=str(100 + index),
                phone_number="9876543210",
                call_type=CallType.INCOMING,
                duration_seconds=10,
                captured_at=NOW - timedelta(minutes=10 - index),
                staff_id=3,
            )
        )
    return queue


@pytest.fixture()
def sessions():
    return InMemorySessionStore(DeviceSession(token="t", staff_id=3))


def _dispatcher(queue, ingest, sessions):
    return SyncDispatcher(queue, ingest, sessions, clock=lambda: NOW)


def test_syncs_all_pending_in_one_batch(queue, sessions):
    ingest = FakeIngest()
    result = _dispatcher(queue, ingest, sessions).run_once()

    assert result.outcome is SyncOutcome.SYNCED
    assert result.ok
    assert (result.attempted, result.synced) == (5, 5)
    assert [record.provider_call_id for record in ingest.batches[0]] == ["100", "101", "102", "103", "104"]
    assert queue.count(SyncState.PENDING) == 0
    assert queue.count(SyncState.SYNCED) == 5


def test_failure_leaves_records_pending_until_retry(queue, sessions):
    ingest = FakeIngest()
    ingest.error = IngestError("backend unreachable")
    dispatcher = _dispatcher(queue, ingest, sessions)

    failed = dispatcher.run_once()
    assert failed.outcome is SyncOutcome.FAILED
    assert not failed.ok
    assert failed.attempted == 5
    assert "unreachable" in failed.error
    assert queue.count(SyncState.PENDING) == 5

    ingest.error = None
    assert dispatcher.run_once().outcome is SyncOutcome.SYNCED
    assert queue.count(SyncState.PENDING) == 0


def test_empty_queue(sessions):
    ingest = FakeIngest()
    result = _dispatcher(LocalCallQueue.from_path(":memory:"), ingest, sessions).run_once()
    assert result.outcome is SyncOutcome.EMPTY
    assert ingest.batches == []


def test_skipped_without_valid_session(queue):
    ingest = FakeIngest()
    assert _dispatcher(queue, ingest, InMemorySessionStore()).run_once().outcome is SyncOutcome.SKIPPED_NO_SESSION

    expired = InMemorySessionStore(DeviceSession(token="t", staff_id=3, expires_at=NOW))
    assert _dispatcher(queue, ingest, expired).run_once().outcome is SyncOutcome.SKIPPED_NO_SESSION
    assert ingest.batches == []
    assert queue.count(SyncState.PENDING) == 5


def test_concurrent_run_is_skipped(queue, sessions):
    ingest = BlockingIngest()
    dispatcher = _dispatcher(queue, ingest, sessions)
    results = []
    worker = threading.Thread(target=lambda: results.append(dispatcher.run_once()))
    worker.start()
    try:
        assert ingest.entered.wait(5)
        assert dispatcher.is_running
        assert dispatcher.run_once().outcome is SyncOutcome.SKIPPED_IN_FLIGHT
    finally:
        ingest.release.set()
        worker.join(5)

    assert results[0].outcome is SyncOutcome.SYNCED
    assert len(ingest.batches) == 1
    assert not dispatcher.is_running


@pytest.mark.parametrize("value, expected", [("10", 15), ("15", 15), (" 30 ", 30), (60, 60)])
def test_clamp_interval(value, expected):
    assert clamp_interval(value, 15) == expected


def test_clamp_interval_rejects_garbage():
    with pytest.raises(ValueError):
        clamp_interval("soon", 15)


@pytest.fixture()
def preferences():
    return DevicePreferences(LocalCallQueue.from_path(":memory:").engine)


def test_arm_keeps_existing_schedule(preferences, sessions):
    task = FakeTask()
    scheduler = SyncScheduler(task, preferences, FakeIntervalSource(), sessions)
    assert scheduler.arm()
    assert not scheduler.arm()
    assert task.interval == timedelta(minutes=15)
    assert [policy for _, policy in task.calls] == [SchedulePolicy.KEEP, SchedulePolicy.KEEP]


def test_remote_interval_below_floor_is_clamped(preferences, sessions):
    task = FakeTask()
    scheduler = SyncScheduler(task, preferences, FakeIntervalSource("10"), sessions)
    assert scheduler.adopt_remote_interval() == 15
    assert task.interval == timedelta(minutes=15)
    assert preferences.get("sync_interval_minutes") is None


def test_remote_interval_change_replaces_schedule(preferences, sessions):
    task = FakeTask()
    source = FakeIntervalSource("30")
    scheduler = SyncScheduler(task, preferences, source, sessions)
    scheduler.arm()

    assert scheduler.adopt_remote_interval() == 30
    assert task.calls[-1] == (timedelta(minutes=30), SchedulePolicy.REPLACE)
    assert preferences.get("sync_interval_minutes") == "30"
    assert scheduler.cached_minutes == 30

    calls = len(task.calls)
    assert scheduler.adopt_remote_interval() == 30
    assert len(task.calls) == calls


def test_remote_interval_errors_keep_cached(preferences, sessions):
    preferences.set("sync_interval_minutes", "45")
    task = FakeTask()
    source = FakeIntervalSource()
    scheduler = SyncScheduler(task, preferences, source, sessions)

    source.error = IngestError("offline")
    assert scheduler.adopt_remote_interval() == 45
    source.error = None
    source.value = "every hour"
    assert scheduler.adopt_remote_interval() == 45
    assert task.calls == []


def test_remote_interval_needs_session(preferences):
    task = FakeTask()
    scheduler = SyncScheduler(task, preferences, FakeIntervalSource("60"), InMemorySessionStore())
    assert scheduler.adopt_remote_interval() == 15
    assert task.calls == []


def test_batch_start_listener_runs_inside_the_run(queue, sessions):
    dispatcher = _dispatcher(queue, FakeIngest(), sessions)
    started = []

    def record_start(session, size):
        started.append((session.staff_id, size, dispatcher.is_running))

    dispatcher.on_batch_started(record_start)

    def broken(session, size):
        raise RuntimeError("listener bug")

    dispatcher.on_batch_started(broken)

    assert dispatcher.run_once().outcome is SyncOutcome.SYNCED
    assert started == [(3, 5, True)]

    assert dispatcher.run_once().outcome is SyncOutcome.EMPTY
    assert len(started) == 1


def test_unreadable_preferences_fall_back_to_floor(sessions):
    queue = LocalCallQueue.from_path(":memory:")
    preferences = DevicePreferences(queue.engine, queue.lock)
    Preference.__table__.drop(queue.engine)
    with pytest.raises(QueueStorageError):
        preferences.get("sync_interval_minutes")
    with pytest.raises(QueueStorageError):
        preferences.set("sync_interval_minutes", "30")

    task = FakeTask()
    scheduler = SyncScheduler(task, preferences, FakeIntervalSource("30"), sessions)
    assert scheduler.cached_minutes == 15
    assert scheduler.adopt_remote_interval() == 30
    assert task.interval == timedelta(minutes=30)
