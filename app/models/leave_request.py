from sqlalchemy import Column, Integer, String, Date, Boolean, ForeignKey, DateTime, Text, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import enum

class LeaveStatus(str, enum.Enum):
    PENDING = "pending"                     # awaiting the assigned manager
    HR_PENDING = "hr_pending"               # awaiting an admin
    MANAGER_APPROVED = "manager_approved"
    MANAGER_REJECTED = "manager_rejected"
    ADMIN_APPROVED = "admin_approved"
    ADMIN_REJECTED = "admin_rejected"
    CANCELLED = "cancelled"

# Requests in these states no longer reserve their dates
RELEASED_STATUSES = frozenset({
    LeaveStatus.MANAGER_REJECTED,
    LeaveStatus.ADMIN_REJECTED,
    LeaveStatus.CANCELLED,
})

class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        Index("ix_leave_requests_date_range", "start_date", "end_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_days = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    emergency = Column(Boolean, nullable=False, default=False)
    status = Column(String(32), nullable=False, default=LeaveStatus.PENDING.value, index=True)

    # Assigned approvers
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    admin_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    manager_comments = Column(Text, nullable=True)
    admin_comments = Column(Text, nullable=True)
    manager_approved_at = Column(DateTime(timezone=True), nullable=True)
    manager_rejected_at = Column(DateTime(timezone=True), nullable=True)
    admin_approved_at = Column(DateTime(timezone=True), nullable=True)
    admin_rejected_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", foreign_keys=[user_id])
    manager = relationship("User", foreign_keys=[manager_id])
    admin = relationship("User", foreign_keys=[admin_id])
    leave_type = relationship("LeaveType")

    @property
    def status_enum(self) -> LeaveStatus:
        return LeaveStatus(self.status)

    @property
    def leave_type_code(self):
        return self.leave_type.code if self.leave_type else None

    def __repr__(self):
        return f"<LeaveRequest {self.id} user={self.user_id} {self.start_date}..{self.end_date} {self.status}>"
