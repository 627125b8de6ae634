"""
Monthly Usage Tracker

Per (user, leave type, year, month) counter that caps usage independently of
the annual balance. Rows are created lazily on first use and removed at the
year boundary. There is intentionally no decrement: a cancelled or rejected
request still counts against its month.
"""
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.leave_type import LeaveType
from app.models.monthly_usage import MonthlyLeaveUsage
from app.services.base import BaseService


class MonthlyUsageTracker(BaseService):

    def __init__(self, db: Session):
        super().__init__(db)
        self.max_allowed = settings.leave.monthly_max_days

    def get(self, user_id: int, leave_type_id: int, year: int, month: int) -> Optional[MonthlyLeaveUsage]:
        return self.db.scalar(
            select(MonthlyLeaveUsage)
            .where(
                MonthlyLeaveUsage.user_id == user_id,
                MonthlyLeaveUsage.leave_type_id == leave_type_id,
                MonthlyLeaveUsage.year == year,
                MonthlyLeaveUsage.month == month,
            )
            .execution_options(populate_existing=True)
        )

    def used_and_limit(self, user_id: int, leave_type_id: int, year: int, month: int):
        usage = self.get(user_id, leave_type_id, year, month)
        if usage is None:
            return 0, self.max_allowed
        return usage.used_days, usage.max_allowed

    def increment(self, user_id: int, leave_type_id: int, year: int, month: int, days: int) -> MonthlyLeaveUsage:
        """Upsert: create the month's row with used_days=days, or add to it."""
        stmt = self.insert_stmt(MonthlyLeaveUsage).values(
            user_id=user_id,
            leave_type_id=leave_type_id,
            year=year,
            month=month,
            used_days=days,
            max_allowed=self.max_allowed,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "leave_type_id", "year", "month"],
            set_={
                "used_days": MonthlyLeaveUsage.used_days + days,
                "updated_at": func.now(),
            },
        )
        self.db.execute(stmt)
        return self.get(user_id, leave_type_id, year, month)

    def list_for_user(self, user_id: int, year: int, month: int) -> List[MonthlyLeaveUsage]:
        return list(self.db.scalars(
            select(MonthlyLeaveUsage)
            .join(LeaveType, MonthlyLeaveUsage.leave_type_id == LeaveType.id)
            .where(
                MonthlyLeaveUsage.user_id == user_id,
                MonthlyLeaveUsage.year == year,
                MonthlyLeaveUsage.month == month,
            )
            .order_by(LeaveType.code)
            .execution_options(populate_existing=True)
        ))

    def clear_year(self, user_id: int, year: int) -> int:
        result = self.db.execute(
            delete(MonthlyLeaveUsage)
            .where(MonthlyLeaveUsage.user_id == user_id, MonthlyLeaveUsage.year == year)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
