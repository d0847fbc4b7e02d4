import logging
from sqlalchemy.orm import Session
from mepcalls.core.config import settings
from mepcalls.core.security import hash_password
from mepcalls.models import SYNC_INTERVAL_KEY, Role, SystemConfig, User

logger = logging.getLogger(__name__)


def ensure_user(db: Session, name: str, phone: str, password: str, role: Role) -> bool:
    if db.query(User).filter(User.phone == phone).first():
        return False
    db.add(User(name=name, phone=phone, hashed_password=hash_password(password), role=role))
    db.commit()
    logger.info("Seeded %s user %s", role.value, phone)
    return True


def seed_defaults(db: Session) -> None:
    ensure_user(db, settings.admin_name, settings.admin_phone, settings.admin_password, Role.ADMIN)
    if not db.query(SystemConfig).filter(SystemConfig.key == SYNC_INTERVAL_KEY).first():
        db.add(SystemConfig(key=SYNC_INTERVAL_KEY, value=str(settings.default_sync_interval_minutes)))
        db.commit()
        logger.info("Seeded default sync interval: %s minutes", settings.default_sync_interval_minutes)
