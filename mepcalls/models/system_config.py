from sqlalchemy import Column, String
from mepcalls.core.database import Base

SYNC_INTERVAL_KEY = "sync_interval_minutes"


class SystemConfig(Base):
    __tablename__ = "system_config"

    key = Column("config_key", String(64), primary_key=True)
    value = Column("config_value", String(255), nullable=False)
