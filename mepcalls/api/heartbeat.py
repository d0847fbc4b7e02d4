from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from mepcalls.core.config import settings
from mepcalls.core.database import get_db
from mepcalls.core.deps import get_current_user, get_heartbeat_store
from mepcalls.models import Role, User
from mepcalls.schemas import HeartbeatIn, HeartbeatResponse, HeartbeatStatusResponse, StaffStatus
from mepcalls.services.heartbeat import HeartbeatStore, is_live

router = APIRouter(prefix="/heartbeat", tags=["heartbeat"])


@router.post("", response_model=HeartbeatResponse)
def send_heartbeat(
    payload: HeartbeatIn | None = None,
    user: User = Depends(get_current_user),
    store: HeartbeatStore = Depends(get_heartbeat_store),
):
    now = datetime.now(timezone.utc)
    store.record(user.id, now, syncing=payload.syncing if payload else False)
    return HeartbeatResponse(status="ok", timestamp=now)


@router.get("/status", response_model=HeartbeatStatusResponse)
def heartbeat_status(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    store: HeartbeatStore = Depends(get_heartbeat_store),
):
    now = datetime.now(timezone.utc)
    statuses = []
    for staff in db.query(User).filter(User.role == Role.STAFF).all():
        seen = store.last_seen(staff.id)
        last_beat, syncing = seen if seen else (None, False)
        live = is_live(last_beat, now, settings.heartbeat_live_seconds)
        statuses.append(
            StaffStatus(
                staff_id=staff.id,
                staff_name=staff.name,
                is_live=live,
                is_syncing=live and syncing,
                last_heartbeat=last_beat,
            )
        )
    statuses.sort(key=lambda item: item.last_heartbeat.timestamp() if item.last_heartbeat else 0.0, reverse=True)
    return HeartbeatStatusResponse(users=statuses)
