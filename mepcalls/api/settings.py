import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from mepcalls.core.database import get_db
from mepcalls.core.deps import get_current_user, require_admin
from mepcalls.models import SYNC_INTERVAL_KEY, User
from mepcalls.schemas import ConfigValue
from mepcalls.services.system_config import get_sync_interval, set_config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/sync-interval", response_model=ConfigValue)
def read_sync_interval(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return ConfigValue(value=get_sync_interval(db))


@router.patch("/sync-interval", response_model=ConfigValue)
def update_sync_interval(payload: ConfigValue, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    value = payload.value.strip()
    if not value.isdigit() or int(value) <= 0:
        raise HTTPException(status_code=400, detail="Value must be a positive number of minutes")
    row = set_config(db, SYNC_INTERVAL_KEY, str(int(value)))
    logger.info("Sync interval set to %s minute(s) by %s", row.value, admin.phone)
    return ConfigValue(value=row.value)
