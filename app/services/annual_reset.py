"""
Annual Reset Process

Year-boundary batch job: every active user's auto-enrolled balances for the
target year are hard-reset to the policy entitlement and the prior year's
monthly counters are deleted. This is a forfeiture reset; carry-forward
(`BalanceLedger.rollover_balances`) is a separate, explicit admin operation.

Each user is reset in its own transaction. A failing user is recorded and
skipped; users already reset stay reset.
"""
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import AppException
from app.services.audit import AuditService
from app.services.base import BaseService
from app.services.leave_balance import BalanceLedger
from app.services.leave_types import LeaveTypeRegistry
from app.services.monthly_usage import MonthlyUsageTracker
from app.services.system_settings import SystemSettingsStore
from app.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)

LAST_RESET_KEY = "last_annual_reset"
LAST_RESET_ERROR_KEY = "last_reset_error"


class AnnualResetService(BaseService):

    def __init__(self, db: Session):
        super().__init__(db)
        self.registry = LeaveTypeRegistry(db)
        self.ledger = BalanceLedger(db, self.registry)
        self.tracker = MonthlyUsageTracker(db)
        self.directory = UserDirectory(db)
        self.settings_store = SystemSettingsStore(db)
        self.audit = AuditService(db)

    def run(self, year: Optional[int] = None) -> Dict[str, Any]:
        year = year or datetime.now(timezone.utc).year
        previous_year = year - 1
        policy = settings.leave
        logger.info(f"Starting annual leave reset for {year}")

        try:
            leave_type_ids = [lt.id for lt in self.registry.list_by_codes(policy.auto_enrolled_categories)]
            balances_before = self.ledger.snapshot(previous_year, policy.reset_audit_sample_size)
            users = self.directory.list_active()

            users_reset = 0
            errors = []
            for user in users:
                try:
                    with self.transaction(f"annual_reset_user_{user.id}"):
                        self.ledger.ensure_initialized(user.id, year)
                        self.ledger.hard_reset(user.id, year, leave_type_ids, policy.annual_reset_days)
                        self.tracker.clear_year(user.id, previous_year)
                    users_reset += 1
                except AppException as e:
                    logger.error(f"Annual reset failed for user {user.id}: {e.message}")
                    errors.append({"user_id": user.id, "error": e.message, "code": e.error_code})

            with self.transaction("annual_reset_audit"):
                if errors:
                    self.settings_store.upsert(
                        LAST_RESET_ERROR_KEY,
                        {
                            "timestamp": datetime.now(timezone.utc).isoformat(),
                            "reset_year": year,
                            "users_reset": users_reset,
                            "errors": errors,
                        },
                        "Last failed reset operation details",
                    )
                else:
                    self.settings_store.upsert(
                        LAST_RESET_KEY,
                        {
                            "timestamp": datetime.now(timezone.utc).isoformat(),
                            "users_reset": users_reset,
                            "reset_year": year,
                            "previous_year": previous_year,
                            "balances_before_reset": balances_before,
                        },
                        "Last yearly usage counter and leave balance reset execution details",
                    )
                self.audit.log_operational_event(
                    "annual_reset",
                    "partial" if errors else "success",
                    {"reset_year": year, "users_reset": users_reset, "error_count": len(errors)},
                )
        except Exception as e:
            logger.error(f"Annual leave reset for {year} aborted: {e}", exc_info=True)
            self.db.rollback()
            with self.transaction("annual_reset_error"):
                self.settings_store.upsert(
                    LAST_RESET_ERROR_KEY,
                    {
                        "timestamp": datetime.now(timezone.utc).isoformat(),
                        "reset_year": year,
                        "error": str(e),
                        "stack": traceback.format_exc(),
                    },
                    "Last failed reset operation details",
                )
            raise

        logger.info(
            f"Annual leave reset for {year} completed: {users_reset} user(s) reset to "
            f"{policy.annual_reset_days} days, {len(errors)} error(s)"
        )
        return {"year": year, "users_reset": users_reset, "errors": errors}
