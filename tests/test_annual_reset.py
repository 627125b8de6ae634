import importlib.util
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker

from app.core.exceptions import AppException
from app.models.audit_log import AuditLog
from app.models.leave_balance import LeaveBalance
from app.models.monthly_usage import MonthlyLeaveUsage
from app.models.user import UserRole
from app.services.annual_reset import LAST_RESET_ERROR_KEY, LAST_RESET_KEY, AnnualResetService
from app.services.leave_balance import BalanceLedger
from app.services.monthly_usage import MonthlyUsageTracker
from app.services.system_settings import SystemSettingsStore


def test_reset_restores_entitlement_and_clears_last_year(db_session, ledger, leave_types, admin_user, employee_user):
    casual = leave_types["casual"]
    tracker = MonthlyUsageTracker(db_session)
    ledger.ensure_initialized(employee_user.id, 2026)
    ledger.record_direct_usage(employee_user.id, casual.id, 2026, 4)
    ledger.adjust_pending(employee_user.id, casual.id, 2026, 2)
    tracker.increment(employee_user.id, casual.id, 2025, 11, 1)
    tracker.increment(employee_user.id, casual.id, 2025, 12, 1)
    tracker.increment(employee_user.id, casual.id, 2026, 1, 1)
    db_session.commit()

    result = AnnualResetService(db_session).run(2026)

    assert result["year"] == 2026
    assert result["errors"] == []
    balance = ledger.get(employee_user.id, casual.id, 2026)
    assert (balance.total_days, balance.used_days, balance.pending_days, balance.remaining_days) == (12, 0, 0, 12)

    remaining_months = db_session.query(MonthlyLeaveUsage).filter_by(user_id=employee_user.id).all()
    assert [(u.year, u.month) for u in remaining_months] == [(2026, 1)]

def test_reset_creates_missing_rows_for_every_active_user(db_session, leave_types, admin_user, manager_user, employee_user, make_user):
    retired = make_user("retired@example.com", UserRole.EMPLOYEE)
    retired.is_active = False
    db_session.commit()

    result = AnnualResetService(db_session).run(2026)

    assert result["users_reset"] == 3
    for user in (admin_user, manager_user, employee_user):
        rows = db_session.query(LeaveBalance).filter_by(user_id=user.id, year=2026).all()
        assert len(rows) == 2
        assert all(b.remaining_days == 12 for b in rows)
    assert db_session.query(LeaveBalance).filter_by(user_id=retired.id).count() == 0

def test_reset_leaves_non_enrolled_types_alone(db_session, ledger, leave_types, employee_user):
    vacation = leave_types["vacation"]
    ledger.ensure_row(employee_user.id, vacation, 2026)
    ledger.record_direct_usage(employee_user.id, vacation.id, 2026, 3)
    db_session.commit()

    AnnualResetService(db_session).run(2026)

    assert ledger.get(employee_user.id, vacation.id, 2026).used_days == 3

def test_reset_records_a_bounded_snapshot(db_session, ledger, leave_types, admin_user, make_user):
    for i in range(6):
        user = make_user(f"staff{i}@example.com", UserRole.EMPLOYEE)
        ledger.ensure_initialized(user.id, 2025)
    db_session.commit()

    AnnualResetService(db_session).run(2026)

    value = SystemSettingsStore(db_session).get_value(LAST_RESET_KEY)
    assert value["reset_year"] == 2026
    assert value["previous_year"] == 2025
    assert value["users_reset"] == 7
    assert len(value["balances_before_reset"]) == 10
    assert value["balances_before_reset"][0]["year"] == 2025
    assert SystemSettingsStore(db_session).get(LAST_RESET_ERROR_KEY) is None

def test_reset_is_repeatable_and_audited(db_session, leave_types, employee_user):
    service = AnnualResetService(db_session)
    service.run(2026)
    service.run(2026)

    assert db_session.query(LeaveBalance).filter_by(user_id=employee_user.id, year=2026).count() == 2
    events = db_session.query(AuditLog).filter_by(action="ops_annual_reset").all()
    assert len(events) == 2
    assert events[-1].details["ops_status"] == "success"

@pytest.fixture
def failing_reset_for(monkeypatch):
    """Make hard_reset fail for one user and behave normally for everyone else."""
    original = BalanceLedger.hard_reset

    def _failing_reset_for(failing_user_id):
        def hard_reset(self, user_id, *args, **kwargs):
            if user_id == failing_user_id:
                raise AppException("Balance rows are locked by another job", error_code="RESET_BLOCKED")
            return original(self, user_id, *args, **kwargs)
        monkeypatch.setattr(BalanceLedger, "hard_reset", hard_reset)
    return _failing_reset_for

def test_failed_user_is_recorded_and_others_stay_reset(db_session, ledger, leave_types, admin_user, manager_user, employee_user, failing_reset_for):
    casual = leave_types["casual"]
    tracker = MonthlyUsageTracker(db_session)
    ledger.ensure_initialized(admin_user.id, 2026)
    ledger.record_direct_usage(admin_user.id, casual.id, 2026, 5)
    tracker.increment(admin_user.id, casual.id, 2025, 12, 1)
    tracker.increment(employee_user.id, casual.id, 2025, 12, 1)
    db_session.commit()
    failing_reset_for(employee_user.id)

    result = AnnualResetService(db_session).run(2026)

    assert result["users_reset"] == 2
    assert result["errors"] == [
        {"user_id": employee_user.id, "error": "Balance rows are locked by another job", "code": "RESET_BLOCKED"}
    ]

    # Users reset before and after the failure keep their committed reset
    assert ledger.get(admin_user.id, casual.id, 2026).used_days == 0
    assert db_session.query(LeaveBalance).filter_by(user_id=manager_user.id, year=2026).count() == 2
    assert db_session.query(MonthlyLeaveUsage).filter_by(user_id=admin_user.id, year=2025).count() == 0

    # The failing user's transaction rolled back as a whole
    assert db_session.query(LeaveBalance).filter_by(user_id=employee_user.id, year=2026).count() == 0
    assert db_session.query(MonthlyLeaveUsage).filter_by(user_id=employee_user.id, year=2025).count() == 1

def test_partial_reset_writes_error_record_instead_of_success(db_session, leave_types, admin_user, employee_user, failing_reset_for):
    failing_reset_for(employee_user.id)

    AnnualResetService(db_session).run(2026)

    store = SystemSettingsStore(db_session)
    assert store.get(LAST_RESET_KEY) is None
    error_record = store.get_value(LAST_RESET_ERROR_KEY)
    assert error_record["reset_year"] == 2026
    assert error_record["users_reset"] == 1
    assert [e["user_id"] for e in error_record["errors"]] == [employee_user.id]

    event = db_session.query(AuditLog).filter_by(action="ops_annual_reset").one()
    assert event.details["ops_status"] == "partial"
    assert event.details["error_count"] == 1


def _load_reset_script():
    path = Path(__file__).resolve().parents[1] / "scripts" / "run_annual_reset.py"
    spec = importlib.util.spec_from_file_location("run_annual_reset", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module

@pytest.fixture
def reset_script(monkeypatch, engine):
    script = _load_reset_script()
    monkeypatch.setattr(script, "SessionLocal", sessionmaker(autoflush=False, expire_on_commit=False, bind=engine))
    monkeypatch.setattr(script, "init_db", lambda: None)
    return script

def test_reset_script_exits_zero_on_success(reset_script, leave_types, employee_user):
    assert reset_script.main(["--year", "2026"]) == 0

def test_reset_script_exits_non_zero_when_a_user_fails(reset_script, leave_types, admin_user, employee_user, failing_reset_for):
    failing_reset_for(employee_user.id)

    assert reset_script.main(["--year", "2026"]) == 1
