# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    user, leave_type, leave_balance, monthly_usage, leave_request,
    notification, system_setting, audit_log
)

# Explicit class exports for cleaner imports
from .user import User, UserRole
from .leave_type import LeaveType, LeaveCategory
from .leave_balance import LeaveBalance
from .monthly_usage import MonthlyLeaveUsage
from .leave_request import LeaveRequest, LeaveStatus
from .notification import Notification
from .system_setting import SystemSetting
from .audit_log import AuditLog

__all__ = [
    "User",
    "UserRole",
    "LeaveType",
    "LeaveCategory",
    "LeaveBalance",
    "MonthlyLeaveUsage",
    "LeaveRequest",
    "LeaveStatus",
    "Notification",
    "SystemSetting",
    "AuditLog",
]
