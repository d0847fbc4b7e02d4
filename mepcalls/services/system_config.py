from sqlalchemy.orm import Session
from mepcalls.core.config import settings
from mepcalls.models import SYNC_INTERVAL_KEY, SystemConfig


def get_config(db: Session, key: str, default: str | None = None) -> str | None:
    row = db.query(SystemConfig).filter(SystemConfig.key == key).first()
    return row.value if row else default


def set_config(db: Session, key: str, value: str) -> SystemConfig:
    row = db.query(SystemConfig).filter(SystemConfig.key == key).first()
    if not row:
        row = SystemConfig(key=key, value=value)
        db.add(row)
    else:
        row.value = value
    db.commit()
    db.refresh(row)
    return row


def get_sync_interval(db: Session) -> str:
    return get_config(db, SYNC_INTERVAL_KEY, str(settings.default_sync_interval_minutes))
