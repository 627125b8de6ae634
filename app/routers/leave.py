from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from app.core.exceptions import ForbiddenError
from app.core.limiter import limiter
from app.core.permissions import Permission, has_permission
from app.core.schemas import ApiResponse
from app.dependencies import get_directory, get_ledger, get_lifecycle, get_tracker
from app.models.leave_request import LeaveStatus
from app.models.user import User
from app.routers.auth_deps import get_current_user, require_permission
from app.schemas.leave import (
    BalanceSummary,
    BalanceView,
    CancelRequest,
    LeaveRequestCreate,
    LeaveRequestPage,
    LeaveRequestQuery,
    LeaveRequestResponse,
    LeaveSubmissionResult,
    MonthlyUsageView,
    TransitionRequest,
    TransitionResult,
)
from app.services.leave_balance import BalanceLedger
from app.services.leave_lifecycle import LeaveLifecycleService
from app.services.monthly_usage import MonthlyUsageTracker
from app.services.user_directory import UserDirectory

router = APIRouter(prefix="/leaves", tags=["Leave"])


def _subject_id(current_user: User, user_id: Optional[int], directory: UserDirectory) -> int:
    """Whose ledger to read: your own, a team member's, or anyone's for admins."""
    if user_id is None or user_id == current_user.id:
        return current_user.id
    if has_permission(current_user.role, Permission.READ_ALL_LEAVES):
        directory.get(user_id)
        return user_id
    if has_permission(current_user.role, Permission.READ_TEAM_BALANCES) and directory.is_manager_of(current_user.id, user_id):
        return user_id
    raise ForbiddenError("You can only view balances of your own team")


# --- Requests ---

@router.post("/requests", response_model=LeaveSubmissionResult, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def submit_leave_request(
    request: Request,
    payload: LeaveRequestCreate,
    current_user: User = Depends(require_permission(Permission.WRITE_OWN_LEAVES)),
    lifecycle: LeaveLifecycleService = Depends(get_lifecycle)
):
    leave = lifecycle.submit(
        current_user.id,
        payload.leave_type_id,
        payload.start_date,
        payload.end_date,
        reason=payload.reason,
        emergency=payload.emergency,
    )
    return LeaveSubmissionResult(id=leave.id, status=leave.status, total_days=leave.total_days)


@router.get("/requests", response_model=LeaveRequestPage)
def list_leave_requests(
    status: Optional[LeaveStatus] = None,
    leave_type: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    user_id: Optional[int] = None,
    department: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(require_permission(Permission.READ_OWN_LEAVES)),
    lifecycle: LeaveLifecycleService = Depends(get_lifecycle)
):
    try:
        spec = LeaveRequestQuery(
            status=status,
            leave_type=leave_type,
            start_date=start_date,
            end_date=end_date,
            user_id=user_id,
            department=department,
            page=page,
            limit=limit,
        )
    except ValidationError as e:
        # The date-window check is cross-field, so it runs here rather than per parameter
        raise RequestValidationError([
            {**err, "loc": ("query", *err["loc"])}
            for err in e.errors(include_url=False, include_context=False)
        ])
    return lifecycle.list_requests(current_user, spec)


@router.get("/requests/{request_id}", response_model=LeaveRequestResponse)
def get_leave_request(
    request_id: int,
    current_user: User = Depends(get_current_user),
    lifecycle: LeaveLifecycleService = Depends(get_lifecycle)
):
    return lifecycle.get_request(request_id, current_user)


@router.post("/requests/{request_id}/transition", response_model=TransitionResult)
def transition_leave_request(
    request_id: int,
    payload: TransitionRequest,
    current_user: User = Depends(get_current_user),
    lifecycle: LeaveLifecycleService = Depends(get_lifecycle)
):
    leave = lifecycle.transition(request_id, current_user, payload.action, payload.comments)
    return TransitionResult(id=leave.id, status=leave.status)


@router.post("/requests/{request_id}/cancel", response_model=TransitionResult)
def cancel_leave_request(
    request_id: int,
    payload: Optional[CancelRequest] = None,
    current_user: User = Depends(get_current_user),
    lifecycle: LeaveLifecycleService = Depends(get_lifecycle)
):
    leave = lifecycle.cancel(request_id, current_user, payload.comments if payload else None)
    return TransitionResult(id=leave.id, status=leave.status)


@router.get("/approvals/pending", response_model=List[LeaveRequestResponse])
def pending_approvals(
    current_user: User = Depends(get_current_user),
    lifecycle: LeaveLifecycleService = Depends(get_lifecycle)
):
    return lifecycle.pending_approvals(current_user)


# --- Ledger ---

@router.get("/balances", response_model=BalanceSummary)
def get_balances(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    user_id: Optional[int] = None,
    current_user: User = Depends(require_permission(Permission.READ_LEAVE_BALANCES)),
    ledger: BalanceLedger = Depends(get_ledger),
    directory: UserDirectory = Depends(get_directory)
):
    subject_id = _subject_id(current_user, user_id, directory)
    year = year or date.today().year

    with ledger.transaction("initialize_balances"):
        ledger.ensure_initialized(subject_id, year)
    summary = ledger.summary(subject_id, year)

    return BalanceSummary(
        user_id=subject_id,
        year=year,
        total=summary["total_days"],
        used=summary["used_days"],
        pending=summary["pending_days"],
        remaining=summary["remaining_days"],
        carry_forward=summary["carry_forward_days"],
        balances=[BalanceView.from_model(b) for b in summary["balances"]],
    )


@router.get("/monthly-usage", response_model=List[MonthlyUsageView])
def get_monthly_usage(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    user_id: Optional[int] = None,
    current_user: User = Depends(require_permission(Permission.READ_LEAVE_BALANCES)),
    tracker: MonthlyUsageTracker = Depends(get_tracker),
    directory: UserDirectory = Depends(get_directory)
):
    subject_id = _subject_id(current_user, user_id, directory)
    today = date.today()
    usage = tracker.list_for_user(subject_id, year or today.year, month or today.month)
    return [MonthlyUsageView.from_model(u) for u in usage]


@router.get("/statistics", response_model=ApiResponse[dict])
def get_statistics(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    current_user: User = Depends(require_permission(Permission.READ_ALL_LEAVES)),
    lifecycle: LeaveLifecycleService = Depends(get_lifecycle)
):
    return ApiResponse.ok(lifecycle.statistics(year or date.today().year))
