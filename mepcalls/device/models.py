"""Domain types for the on-device call pipeline."""
from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, field_validator


class CallType(str, enum.Enum):
    INCOMING = "INCOMING"
    OUTGOING = "OUTGOING"
    MISSED = "MISSED"
    UNKNOWN = "UNKNOWN"


class SyncState(str, enum.Enum):
    PENDING = "PENDING"
    SYNCED = "SYNCED"


class TelephonyState(str, enum.Enum):
    IDLE = "IDLE"
    RINGING = "RINGING"
    OFFHOOK = "OFFHOOK"


# android.provider.CallLog.Calls.TYPE values; 5 is a rejected incoming call.
_OS_CALL_TYPES = {
    1: CallType.INCOMING,
    2: CallType.OUTGOING,
    3: CallType.MISSED,
    5: CallType.MISSED,
}


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CallRecord(BaseModel):
    """One phone call observed on this device."""

    provider_call_id: str = Field(..., min_length=1)
    phone_number: str
    contact_name: Optional[str] = None
    call_type: CallType = CallType.UNKNOWN
    duration_seconds: int = Field(default=0, ge=0)
    captured_at: datetime
    staff_id: int
    sync_state: SyncState = SyncState.PENDING

    @field_validator("captured_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def to_payload(self) -> dict[str, Any]:
        """Body item for ``POST /call-logs``."""
        return {
            "phoneNumber": self.phone_number,
            "callType": self.call_type.value,
            "duration": self.duration_seconds,
            "contactName": self.contact_name,
            "timestamp": self.captured_at.isoformat(),
            "staffId": self.staff_id,
            "phoneCallId": self.provider_call_id,
        }


class CallLogEntry(BaseModel):
    """A row of the device call log."""

    call_id: str
    number: str
    call_type: CallType = CallType.UNKNOWN
    date: datetime
    duration_seconds: int = Field(default=0, ge=0)
    cached_name: Optional[str] = None

    @field_validator("date")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


def parse_call_type(value: Any) -> CallType:
    if isinstance(value, str) and value.upper() in CallType.__members__:
        return CallType[value.upper()]
    try:
        return _OS_CALL_TYPES.get(int(value), CallType.UNKNOWN)
    except (TypeError, ValueError):
        return CallType.UNKNOWN


def entry_from_row(row: Mapping[str, Any]) -> CallLogEntry:
    """Map a content-provider style row (``_id``, ``number``, ``type``,
    ``date`` in epoch millis, ``duration``, ``name``) to a CallLogEntry."""
    call_id = row.get("_id") if row.get("_id") is not None else row.get("id")
    if call_id is None:
        raise ValueError("Call log row has no id")
    call_type = parse_call_type(row.get("type"))
    raw_date = row.get("date")
    if isinstance(raw_date, (int, float)):
        date = datetime.fromtimestamp(raw_date / 1000, tz=timezone.utc)
    else:
        date = datetime.fromisoformat(str(raw_date).replace("Z", "+00:00"))
    return CallLogEntry(
        call_id=str(call_id),
        number=row.get("number") or "Unknown",
        call_type=call_type,
        date=date,
        duration_seconds=int(row.get("duration") or 0),
        cached_name=row.get("name") or row.get("cached_name"),
    )


class DeviceSession(BaseModel):
    """Authenticated operator on this device."""

    token: str
    staff_id: int
    staff_name: Optional[str] = None
    expires_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        return ensure_utc(now) >= ensure_utc(self.expires_at)
