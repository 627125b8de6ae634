from sqlalchemy import Column, Integer, ForeignKey, DateTime, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base

class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (
        UniqueConstraint("user_id", "leave_type_id", "year", name="uq_leave_balances_user_type_year"),
        CheckConstraint("used_days >= 0", name="ck_leave_balances_used"),
        CheckConstraint("pending_days >= 0", name="ck_leave_balances_pending"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False, index=True)
    year = Column(Integer, nullable=False, index=True)
    total_days = Column(Integer, nullable=False, default=0)
    used_days = Column(Integer, nullable=False, default=0)
    pending_days = Column(Integer, nullable=False, default=0)
    carry_forward_days = Column(Integer, nullable=False, default=0)
    # Derived: max(total - used - pending + carry_forward, 0); only written by BalanceLedger
    remaining_days = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    leave_type = relationship("LeaveType")

    def __repr__(self):
        return (
            f"<LeaveBalance user={self.user_id} type={self.leave_type_id} year={self.year} "
            f"remaining={self.remaining_days}>"
        )
