from sqlalchemy import Column, Integer, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base

class MonthlyLeaveUsage(Base):
    __tablename__ = "monthly_leave_usage"
    __table_args__ = (
        UniqueConstraint("user_id", "leave_type_id", "year", "month", name="uq_monthly_usage_user_type_month"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False) # 1-12
    used_days = Column(Integer, nullable=False, default=0)
    max_allowed = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    leave_type = relationship("LeaveType")
