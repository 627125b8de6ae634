"""
Balance Ledger

Per (user, leave type, year) record of entitlement versus consumption.

Architecture:
- Every numeric mutation is a single UPDATE with column arithmetic, so two
  transactions touching the same row never lose each other's writes.
- Decrements floor at zero inside the statement (CASE expression).
- remaining_days is recomputed in the same statement from the new values:
  remaining = max(total - used - pending + carry_forward, 0)
- The ledger never opens its own transaction for mutations; callers (the
  lifecycle, the annual reset) own the transaction scope.
"""
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import case, select, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.models.leave_balance import LeaveBalance
from app.models.leave_type import LeaveType
from app.services.base import BaseService
from app.services.leave_types import LeaveTypeRegistry


def _floor_zero(expr):
    return case((expr < 0, 0), else_=expr)


def _remaining_expr(total, used, pending, carry_forward):
    return _floor_zero(total - used - pending + carry_forward)


class BalanceLedger(BaseService):

    def __init__(self, db: Session, registry: Optional[LeaveTypeRegistry] = None):
        super().__init__(db)
        self.registry = registry or LeaveTypeRegistry(db)

    # --- Reads ---

    def _key(self, user_id: int, leave_type_id: int, year: int):
        return (
            LeaveBalance.user_id == user_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year,
        )

    def find(self, user_id: int, leave_type_id: int, year: int) -> Optional[LeaveBalance]:
        return self.db.scalar(
            select(LeaveBalance)
            .where(*self._key(user_id, leave_type_id, year))
            .execution_options(populate_existing=True)
        )

    def get(self, user_id: int, leave_type_id: int, year: int) -> LeaveBalance:
        balance = self.find(user_id, leave_type_id, year)
        if balance is None:
            raise NotFoundError("Leave balance", f"user={user_id} type={leave_type_id} year={year}")
        return balance

    def lock(self, user_id: int, leave_type_id: int, year: int) -> Optional[LeaveBalance]:
        """SELECT ... FOR UPDATE on the balance row; must run inside a transaction."""
        return self.db.scalar(
            select(LeaveBalance)
            .where(*self._key(user_id, leave_type_id, year))
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    def list_for_user(self, user_id: int, year: int) -> List[LeaveBalance]:
        return list(self.db.scalars(
            select(LeaveBalance)
            .join(LeaveType, LeaveBalance.leave_type_id == LeaveType.id)
            .where(LeaveBalance.user_id == user_id, LeaveBalance.year == year)
            .order_by(LeaveType.code)
            .execution_options(populate_existing=True)
        ))

    def summary(self, user_id: int, year: int) -> Dict[str, Any]:
        balances = self.list_for_user(user_id, year)
        return {
            "year": year,
            "total_days": sum(b.total_days for b in balances),
            "used_days": sum(b.used_days for b in balances),
            "pending_days": sum(b.pending_days for b in balances),
            "carry_forward_days": sum(b.carry_forward_days for b in balances),
            "remaining_days": sum(b.remaining_days for b in balances),
            "balances": balances,
        }

    def snapshot(self, year: int, limit: int) -> List[Dict[str, Any]]:
        """Plain-dict copy of a year's balance rows, used for audit entries."""
        rows = self.db.execute(
            select(LeaveBalance, LeaveType.code)
            .join(LeaveType, LeaveBalance.leave_type_id == LeaveType.id)
            .where(LeaveBalance.year == year)
            .order_by(LeaveBalance.user_id, LeaveType.code)
            .limit(limit)
        ).all()
        return [
            {
                "user_id": b.user_id,
                "leave_type": code,
                "year": b.year,
                "total_days": b.total_days,
                "used_days": b.used_days,
                "pending_days": b.pending_days,
                "remaining_days": b.remaining_days,
                "carry_forward_days": b.carry_forward_days,
            }
            for b, code in rows
        ]

    # --- Row creation (insert-or-skip) ---

    def _insert_missing(self, rows: List[Dict[str, Any]]) -> None:
        if not rows:
            return
        stmt = self.insert_stmt(LeaveBalance).values(rows).on_conflict_do_nothing(
            index_elements=["user_id", "leave_type_id", "year"]
        )
        self.db.execute(stmt)

    @staticmethod
    def _opening_row(user_id: int, leave_type: LeaveType, year: int) -> Dict[str, Any]:
        return {
            "user_id": user_id,
            "leave_type_id": leave_type.id,
            "year": year,
            "total_days": leave_type.annual_days,
            "used_days": 0,
            "pending_days": 0,
            "carry_forward_days": 0,
            "remaining_days": leave_type.annual_days,
        }

    def ensure_initialized(self, user_id: int, year: int) -> List[LeaveBalance]:
        """
        Create one row per auto-enrolled leave type for the year. Safe to call
        concurrently: existing rows are skipped, never overwritten or duplicated.
        """
        leave_types = self.registry.list_by_codes(settings.leave.auto_enrolled_categories)
        self._insert_missing([self._opening_row(user_id, lt, year) for lt in leave_types])
        return self.list_for_user(user_id, year)

    def ensure_row(self, user_id: int, leave_type: LeaveType, year: int) -> None:
        """Open a balance row for a single leave type if it does not exist yet."""
        self._insert_missing([self._opening_row(user_id, leave_type, year)])

    # --- Atomic mutations ---

    def _apply(self, user_id: int, leave_type_id: int, year: int, *, used_delta: int = 0, pending_delta: int = 0) -> LeaveBalance:
        new_used = _floor_zero(LeaveBalance.used_days + used_delta)
        new_pending = _floor_zero(LeaveBalance.pending_days + pending_delta)
        stmt = (
            update(LeaveBalance)
            .where(*self._key(user_id, leave_type_id, year))
            .values(
                used_days=new_used,
                pending_days=new_pending,
                remaining_days=_remaining_expr(
                    LeaveBalance.total_days, new_used, new_pending, LeaveBalance.carry_forward_days
                ),
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError("Leave balance", f"user={user_id} type={leave_type_id} year={year}")
        return self.get(user_id, leave_type_id, year)

    def adjust_pending(self, user_id: int, leave_type_id: int, year: int, delta_days: int) -> LeaveBalance:
        """pending += delta (negative deltas floor at zero)."""
        return self._apply(user_id, leave_type_id, year, pending_delta=delta_days)

    def commit_usage(self, user_id: int, leave_type_id: int, year: int, days: int) -> LeaveBalance:
        """Final approval: move days from pending to used."""
        return self._apply(user_id, leave_type_id, year, used_delta=days, pending_delta=-days)

    def revert_pending(self, user_id: int, leave_type_id: int, year: int, days: int) -> LeaveBalance:
        """Rejection/cancellation: release reserved days, used is untouched."""
        return self._apply(user_id, leave_type_id, year, pending_delta=-days)

    def record_direct_usage(self, user_id: int, leave_type_id: int, year: int, days: int) -> LeaveBalance:
        """Self-approved submissions skip the pending phase entirely."""
        return self._apply(user_id, leave_type_id, year, used_delta=days)

    # --- Year boundary ---

    def hard_reset(self, user_id: int, year: int, leave_type_ids: Iterable[int], days: int) -> int:
        stmt = (
            update(LeaveBalance)
            .where(
                LeaveBalance.user_id == user_id,
                LeaveBalance.year == year,
                LeaveBalance.leave_type_id.in_(list(leave_type_ids)),
            )
            .values(
                total_days=days,
                used_days=0,
                pending_days=0,
                carry_forward_days=0,
                remaining_days=days,
            )
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def rollover_balances(self, from_year: int, to_year: int) -> int:
        """
        Carry unused days into the next year for leave types that allow it,
        capped at the type's carry_forward_days. Existing next-year rows keep
        their usage; entitlement and carry-forward are rewritten.
        Returns the number of rows written.
        """
        written = 0
        leave_types = self.db.scalars(select(LeaveType).where(LeaveType.carry_forward_days > 0)).all()
        for leave_type in leave_types:
            balances = self.db.scalars(
                select(LeaveBalance).where(
                    LeaveBalance.leave_type_id == leave_type.id,
                    LeaveBalance.year == from_year,
                    LeaveBalance.remaining_days > 0,
                )
            ).all()
            for balance in balances:
                carry = min(balance.remaining_days, leave_type.carry_forward_days)
                stmt = self.insert_stmt(LeaveBalance).values(
                    user_id=balance.user_id,
                    leave_type_id=leave_type.id,
                    year=to_year,
                    total_days=leave_type.annual_days,
                    used_days=0,
                    pending_days=0,
                    carry_forward_days=carry,
                    remaining_days=leave_type.annual_days + carry,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["user_id", "leave_type_id", "year"],
                    set_={
                        "total_days": stmt.excluded.total_days,
                        "carry_forward_days": stmt.excluded.carry_forward_days,
                        "remaining_days": _remaining_expr(
                            stmt.excluded.total_days,
                            LeaveBalance.used_days,
                            LeaveBalance.pending_days,
                            stmt.excluded.carry_forward_days,
                        ),
                    },
                )
                self.db.execute(stmt)
                written += 1
        self._logger.info(f"Rolled over {written} balance(s) from {from_year} to {to_year}")
        return written
