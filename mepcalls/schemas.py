from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    phone: str = Field(min_length=3, max_length=32)
    password: str = Field(min_length=4, max_length=128)


class UserOut(BaseModel):
    id: int
    name: str
    phone: str
    role: str
    is_active: bool

    class Config:
        from_attributes = True


class StaffCreate(BaseModel):
    name: str = Field(min_length=1, max_length=150)
    phone: str = Field(min_length=3, max_length=32)
    password: str = Field(min_length=4, max_length=128)


class CallLogIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone_number: str = Field(alias="phoneNumber", min_length=1, max_length=64)
    call_type: str = Field(alias="callType", pattern="^(INCOMING|OUTGOING|MISSED|UNKNOWN)$")
    duration: int = Field(ge=0)
    contact_name: Optional[str] = Field(default=None, alias="contactName", max_length=255)
    timestamp: datetime
    staff_id: int = Field(alias="staffId")
    phone_call_id: Optional[str] = Field(default=None, alias="phoneCallId", max_length=64)


class IngestResult(BaseModel):
    received: int
    created: int
    duplicates: int


class CallLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    phone_call_id: Optional[str]
    phone_number: str
    call_type: str
    duration: int
    contact_name: Optional[str]
    timestamp: datetime
    staff_id: int
    staff_name: Optional[str] = None


class PaginatedCallLogs(BaseModel):
    items: List[CallLogOut]
    total: int
    page: int
    page_size: int


class ExcludedContactIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone_number: str = Field(alias="phoneNumber", min_length=1, max_length=64)
    contact_name: Optional[str] = Field(default=None, alias="contactName", max_length=255)


class ExcludedContactOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    phone_number: str
    contact_name: Optional[str]
    created_at: Optional[datetime]


class BatchExclusionResult(BaseModel):
    status: str = "success"
    added: int
    skipped: int
    total: int


class ConfigValue(BaseModel):
    value: str


class HeartbeatIn(BaseModel):
    syncing: bool = False


class HeartbeatResponse(BaseModel):
    status: str
    timestamp: datetime


class StaffStatus(BaseModel):
    staff_id: int
    staff_name: str
    is_live: bool
    is_syncing: bool
    last_heartbeat: Optional[datetime]


class HeartbeatStatusResponse(BaseModel):
    users: List[StaffStatus]


class ReturningCustomer(BaseModel):
    phone_number: str
    contact_name: Optional[str]
    first_call: datetime
    return_call: datetime
    days_between: int
    total_calls: int
    staff_name: Optional[str]
    call_history: List[CallLogOut]
