from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from mepcalls.core.database import Base


class CallLog(Base):
    __tablename__ = "call_logs"
    __table_args__ = (UniqueConstraint("phone_call_id", "staff_id", name="uq_call_logs_call_staff"),)

    id = Column(Integer, primary_key=True)
    phone_call_id = Column(String(64), nullable=True)
    phone_number = Column(String(64), nullable=False, index=True)
    call_type = Column(String(16), nullable=False)
    duration = Column(Integer, default=0, nullable=False)
    contact_name = Column(String(255))
    timestamp = Column(DateTime, nullable=False, index=True)
    staff_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    staff = relationship("User")
