from sqlalchemy import Column, Integer, String, Text, DateTime, CheckConstraint
from sqlalchemy.sql import func
from app.database import Base
import enum

class LeaveCategory(str, enum.Enum):
    CASUAL = "casual"
    HEALTH = "health"

class LeaveType(Base):
    __tablename__ = "leave_types"
    __table_args__ = (
        CheckConstraint("annual_days >= 0", name="ck_leave_types_annual_days"),
        CheckConstraint("notice_period_days >= 0", name="ck_leave_types_notice_period"),
        CheckConstraint("carry_forward_days >= 0", name="ck_leave_types_carry_forward"),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, index=True, nullable=False) # category code, e.g. "casual"
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    annual_days = Column(Integer, nullable=False, default=0)
    max_consecutive_days = Column(Integer, nullable=True)
    notice_period_days = Column(Integer, nullable=False, default=0)
    carry_forward_days = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<LeaveType {self.code}>"
