from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func
from mepcalls.core.database import Base


class ExcludedContact(Base):
    __tablename__ = "excluded_contacts"

    id = Column(Integer, primary_key=True)
    phone_number = Column(String(64), unique=True, nullable=False)
    contact_name = Column(String(255))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
