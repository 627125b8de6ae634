"""
Service providers for the routers.

Each request gets services bound to its own session from `get_db`, so tests
that override `get_db` transparently get services on the test database.
"""
from fastapi import BackgroundTasks, Depends
from sqlalchemy.orm import Session

from app.database import get_db, get_session_factory
from app.services.annual_reset import AnnualResetService
from app.services.leave_balance import BalanceLedger
from app.services.leave_lifecycle import LeaveLifecycleService
from app.services.leave_types import LeaveTypeRegistry
from app.services.monthly_usage import MonthlyUsageTracker
from app.services.notification import NotificationService
from app.services.system_settings import SystemSettingsStore
from app.services.user_directory import UserDirectory


def get_lifecycle(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory)
) -> LeaveLifecycleService:
    return LeaveLifecycleService(db, background_tasks=background_tasks, session_factory=session_factory)


def get_registry(db: Session = Depends(get_db)) -> LeaveTypeRegistry:
    return LeaveTypeRegistry(db)


def get_ledger(db: Session = Depends(get_db)) -> BalanceLedger:
    return BalanceLedger(db)


def get_tracker(db: Session = Depends(get_db)) -> MonthlyUsageTracker:
    return MonthlyUsageTracker(db)


def get_notifications(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


def get_directory(db: Session = Depends(get_db)) -> UserDirectory:
    return UserDirectory(db)


def get_settings_store(db: Session = Depends(get_db)) -> SystemSettingsStore:
    return SystemSettingsStore(db)


def get_annual_reset(db: Session = Depends(get_db)) -> AnnualResetService:
    return AnnualResetService(db)
