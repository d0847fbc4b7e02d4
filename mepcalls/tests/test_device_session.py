import json
from datetime import datetime, timedelta, timezone

import pytest

from mepcalls.device.call_log import JsonCallLogProvider
from mepcalls.device.models import CallType, DeviceSession, entry_from_row, parse_call_type
from mepcalls.device.session import FileSessionStore

NOW = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def test_file_session_store_persists_and_notifies(tmp_path):
    path = tmp_path / "session.json"
    store = FileSessionStore(path)
    seen = []
    store.subscribe(seen.append)

    def broken(session):
        raise RuntimeError("listener bug")

    store.subscribe(broken)
    session = DeviceSession(token="tok", staff_id=3, staff_name="Asha", expires_at=NOW)
    store.save(session)

    assert FileSessionStore(path).current() == session
    store.clear()
    assert store.current() is None
    assert not path.exists()
    assert seen == [session, None]


def test_unreadable_session_file_is_ignored(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{not json", encoding="utf-8")
    assert FileSessionStore(path).current() is None


def test_session_expiry():
    session = DeviceSession(token="tok", staff_id=3, expires_at=NOW)
    assert not session.is_expired(NOW - timedelta(seconds=1))
    assert session.is_expired(NOW)
    assert not DeviceSession(token="tok", staff_id=3).is_expired(NOW)


def test_parse_call_type():
    assert parse_call_type(1) is CallType.INCOMING
    assert parse_call_type("2") is CallType.OUTGOING
    assert parse_call_type(3) is CallType.MISSED
    assert parse_call_type(5) is CallType.MISSED
    assert parse_call_type("missed") is CallType.MISSED
    assert parse_call_type(4) is CallType.UNKNOWN
    assert parse_call_type(None) is CallType.UNKNOWN


def test_entry_from_row():
    entry = entry_from_row(
        {"_id": 42, "number": "+919876543210", "type": 1, "date": 1714557600000, "duration": "61", "name": "Kiran"}
    )
    assert entry.call_id == "42"
    assert entry.call_type is CallType.INCOMING
    assert entry.date == NOW
    assert entry.duration_seconds == 61
    assert entry.cached_name == "Kiran"


def test_json_call_log_provider(tmp_path):
    path = tmp_path / "call_log.json"
    rows = [
        {"_id": 1, "number": "9876543210", "type": 2, "date": "2024-05-01T09:59:30Z", "duration": 20},
        {"_id": 2, "number": "9123456789", "type": 3, "date": "2024-05-01T09:59:50Z", "duration": 0},
        {"_id": 3, "number": "9000012345", "type": 1, "date": "2024-05-01T09:00:00Z", "duration": 5},
        {"number": "no id", "type": 1, "date": "2024-05-01T09:59:59Z"},
    ]
    path.write_text(json.dumps(rows), encoding="utf-8")

    entries = JsonCallLogProvider(path).recent_entries(NOW - timedelta(seconds=60))

    assert [entry.call_id for entry in entries] == ["2", "1"]
    assert JsonCallLogProvider(tmp_path / "missing.json").recent_entries(NOW) == []


def test_json_call_log_provider_skips_non_object_rows(tmp_path):
    path = tmp_path / "call_log.json"
    rows = [1, None, ["_id", 4], {"_id": 4, "number": "9876543210", "type": 1, "date": "2024-05-01T09:59:40Z"}]
    path.write_text(json.dumps(rows), encoding="utf-8")

    entries = JsonCallLogProvider(path).recent_entries(NOW - timedelta(seconds=60))

    assert [entry.call_id for entry in entries] == ["4"]


def test_json_call_log_provider_rejects_non_array_export(tmp_path):
    path = tmp_path / "call_log.json"
    path.write_text(json.dumps({"_id": 1}), encoding="utf-8")
    with pytest.raises(ValueError):
        JsonCallLogProvider(path).recent_entries(NOW)
