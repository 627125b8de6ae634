"""
Leave Request Lifecycle

Owns request creation and every status transition, and is the only writer of
ledger and monthly-usage numbers. Each operation runs in one transaction:

    submit      validate -> lock -> re-check -> insert + reserve -> commit -> notify
    transition  lock request -> authorize -> check state -> ledger effect -> audit -> commit -> notify

Notifications go out strictly after commit and never undo the transition.
"""
import logging
import math
from collections import namedtuple
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy import and_, case, extract, func, or_, select
from fastapi import BackgroundTasks
from sqlalchemy.orm import Session, selectinload

from app.core.config import settings
from app.core.exceptions import (
    ExceedsMaxConsecutiveDaysError,
    ForbiddenError,
    InsufficientBalanceError,
    InvalidDateRangeError,
    InvalidStateTransitionError,
    MonthlyLimitExceededError,
    NotFoundError,
    OverlappingRequestError,
)
from app.core.permissions import Permission, has_permission
from app.database import SessionLocal
from app.models.leave_request import LeaveRequest, LeaveStatus, RELEASED_STATUSES
from app.models.leave_type import LeaveType
from app.models.user import User, UserRole
from app.schemas.leave import LeaveRequestQuery, TransitionAction
from app.services.audit import AuditService
from app.services.base import BaseService
from app.services.leave_balance import BalanceLedger
from app.services.leave_types import LeaveTypeRegistry
from app.services.monthly_usage import MonthlyUsageTracker
from app.services.notification import NEW_REQUEST, STATUS_CHANGE, NotificationService, send_leave_notification
from app.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)

# ledger: "commit" moves pending to used, "revert" releases pending, None leaves it alone
TransitionRule = namedtuple("TransitionRule", ["from_states", "to_state", "ledger", "stage"])

_OPEN_STATES = frozenset({LeaveStatus.PENDING, LeaveStatus.MANAGER_APPROVED, LeaveStatus.HR_PENDING})

TRANSITIONS = {
    TransitionAction.APPROVE_MANAGER: TransitionRule(
        frozenset({LeaveStatus.PENDING}), LeaveStatus.HR_PENDING, None, "manager"),
    TransitionAction.REJECT_MANAGER: TransitionRule(
        frozenset({LeaveStatus.PENDING}), LeaveStatus.MANAGER_REJECTED, "revert", "manager"),
    TransitionAction.APPROVE_ADMIN: TransitionRule(
        _OPEN_STATES, LeaveStatus.ADMIN_APPROVED, "commit", "admin"),
    TransitionAction.REJECT_ADMIN: TransitionRule(
        _OPEN_STATES, LeaveStatus.ADMIN_REJECTED, "revert", "admin"),
    TransitionAction.CANCEL: TransitionRule(
        _OPEN_STATES, LeaveStatus.CANCELLED, "revert", "owner"),
}

ADMIN_QUEUE = (LeaveStatus.PENDING, LeaveStatus.MANAGER_APPROVED, LeaveStatus.HR_PENDING)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _status_values(statuses) -> List[str]:
    return [s.value for s in statuses]


class LeaveLifecycleService(BaseService):

    def __init__(
        self,
        db: Session,
        notifier: Optional[NotificationService] = None,
        today: Callable[[], date] = date.today,
        background_tasks: Optional[BackgroundTasks] = None,
        session_factory: Optional[Callable[[], Session]] = None
    ):
        super().__init__(db)
        self.registry = LeaveTypeRegistry(db)
        self.ledger = BalanceLedger(db, self.registry)
        self.tracker = MonthlyUsageTracker(db)
        self.directory = UserDirectory(db)
        self.audit = AuditService(db)
        self.notifier = notifier or NotificationService(db)
        self.today = today
        self.background_tasks = background_tasks
        self.session_factory = session_factory or SessionLocal

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        user_id: int,
        leave_type: Union[int, str],
        start_date: date,
        end_date: date,
        reason: Optional[str] = None,
        emergency: bool = False
    ) -> LeaveRequest:
        """
        Create a leave request.

        All rule checks that need no lock run first; the balance, monthly and
        overlap checks run again under row locks right before the writes.
        """
        leave_type = self.registry.resolve(leave_type)

        if start_date < self.today():
            raise InvalidDateRangeError("Start date cannot be in the past", start_date, end_date)
        if end_date < start_date:
            raise InvalidDateRangeError("End date must be on or after start date", start_date, end_date)

        total_days = (end_date - start_date).days + 1
        if leave_type.max_consecutive_days and total_days > leave_type.max_consecutive_days:
            raise ExceedsMaxConsecutiveDaysError(leave_type.name, leave_type.max_consecutive_days, total_days)

        year, month = start_date.year, start_date.month
        throttled = emergency or leave_type.code in settings.leave.monthly_throttled_categories

        with self.transaction("submit_leave_request"):
            # Serializes submissions of the same user for the overlap check
            user = self.directory.lock(user_id)

            self.ledger.ensure_initialized(user.id, year)
            self.ledger.ensure_row(user.id, leave_type, year)

            if throttled and not emergency:
                used, max_allowed = self.tracker.used_and_limit(user.id, leave_type.id, year, month)
                if used + total_days > max_allowed:
                    raise MonthlyLimitExceededError(leave_type.name, used, total_days, max_allowed)

            balance = self.ledger.lock(user.id, leave_type.id, year)
            if user.role == UserRole.EMPLOYEE and not emergency:
                available = balance.remaining_days if balance else 0
                if available < total_days:
                    raise InsufficientBalanceError(available, total_days)

            conflicts = self._overlapping(user.id, start_date, end_date)
            if conflicts:
                raise OverlappingRequestError(conflicts)

            request = LeaveRequest(
                user_id=user.id,
                leave_type_id=leave_type.id,
                start_date=start_date,
                end_date=end_date,
                total_days=total_days,
                reason=reason,
                emergency=emergency,
            )
            self._route(request, user)
            self.db.add(request)
            self.db.flush()

            if request.status == LeaveStatus.ADMIN_APPROVED.value:
                self.ledger.record_direct_usage(user.id, leave_type.id, year, total_days)
            else:
                self.ledger.adjust_pending(user.id, leave_type.id, year, total_days)
                if throttled:
                    self.tracker.increment(user.id, leave_type.id, year, month, total_days)

            self.audit.log_action(
                action="submit_leave_request",
                entity_type="leave_request",
                entity_id=request.id,
                user_id=user.id,
                user_role=user.role.value,
                details={
                    "leave_type": leave_type.code,
                    "total_days": total_days,
                    "emergency": emergency,
                },
                after_state=self._state(request),
            )

        logger.info(
            f"Leave request {request.id} submitted by user {user.id}: "
            f"{total_days} day(s) of {leave_type.code}, status={request.status}"
        )

        if request.status != LeaveStatus.ADMIN_APPROVED.value:
            self._notify(NEW_REQUEST, request, user)
        return request

    def _route(self, request: LeaveRequest, user: User) -> None:
        """Initial status and approver depend on who submits."""
        if user.role == UserRole.ADMIN:
            request.status = LeaveStatus.ADMIN_APPROVED.value
            request.admin_id = user.id
            request.admin_approved_at = _utcnow()
        elif user.role == UserRole.MANAGER:
            request.status = LeaveStatus.HR_PENDING.value
            admin = self.directory.find_admin(exclude_id=user.id)
            request.admin_id = admin.id if admin else None
        else:
            request.status = LeaveStatus.PENDING.value
            request.manager_id = user.manager_id

    def _overlapping(self, user_id: int, start_date: date, end_date: date) -> List[int]:
        return list(self.db.scalars(
            select(LeaveRequest.id).where(
                LeaveRequest.user_id == user_id,
                LeaveRequest.status.notin_(_status_values(RELEASED_STATUSES)),
                LeaveRequest.start_date <= end_date,
                LeaveRequest.end_date >= start_date,
            ).order_by(LeaveRequest.id)
        ))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition(
        self,
        request_id: int,
        actor: User,
        action: Union[TransitionAction, str],
        comments: Optional[str] = None
    ) -> LeaveRequest:
        action = TransitionAction(action)
        rule = TRANSITIONS[action]

        with self.transaction(f"leave_{action.value}"):
            request = self.db.scalar(
                select(LeaveRequest)
                .where(LeaveRequest.id == request_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            if request is None:
                raise NotFoundError("Leave request", request_id)

            self._authorize(actor, request, rule)

            current = request.status_enum
            if current not in rule.from_states:
                raise InvalidStateTransitionError(action.value.replace("_", " "), current.value)

            before = self._state(request)
            now = _utcnow()
            request.status = rule.to_state.value

            if action == TransitionAction.APPROVE_MANAGER:
                request.manager_id = request.manager_id or actor.id
                request.manager_comments = comments
                request.manager_approved_at = now
                admin = self.directory.find_admin(exclude_id=actor.id)
                request.admin_id = admin.id if admin else None
            elif action == TransitionAction.REJECT_MANAGER:
                request.manager_id = request.manager_id or actor.id
                request.manager_comments = comments
                request.manager_rejected_at = now
            elif action == TransitionAction.APPROVE_ADMIN:
                request.admin_id = actor.id
                request.admin_comments = comments
                request.admin_approved_at = now
            elif action == TransitionAction.REJECT_ADMIN:
                request.admin_id = actor.id
                request.admin_comments = comments
                request.admin_rejected_at = now
            else:
                request.cancelled_at = now
                if comments and actor.id != request.user_id:
                    request.manager_comments = comments

            year = request.start_date.year
            if rule.ledger == "commit":
                self.ledger.commit_usage(request.user_id, request.leave_type_id, year, request.total_days)
            elif rule.ledger == "revert":
                self.ledger.revert_pending(request.user_id, request.leave_type_id, year, request.total_days)

            self.db.flush()
            self.audit.log_action(
                action=f"leave_{action.value}",
                entity_type="leave_request",
                entity_id=request.id,
                user_id=actor.id,
                user_role=actor.role.value,
                details={"comments": comments, "total_days": request.total_days},
                before_state=before,
                after_state=self._state(request),
            )

        logger.info(f"Leave request {request.id}: {before['status']} -> {request.status} by user {actor.id}")
        self._notify(STATUS_CHANGE, request, actor, rule.to_state, comments)
        return request

    def cancel(self, request_id: int, actor: User, comments: Optional[str] = None) -> LeaveRequest:
        return self.transition(request_id, actor, TransitionAction.CANCEL, comments)

    def _authorize(self, actor: User, request: LeaveRequest, rule: TransitionRule) -> None:
        if rule.stage == "manager":
            allowed = has_permission(actor.role, Permission.APPROVE_TEAM_LEAVES) and actor.id != request.user_id and (
                request.manager_id == actor.id or self.directory.is_manager_of(actor.id, request.user_id)
            )
        elif rule.stage == "admin":
            allowed = has_permission(actor.role, Permission.APPROVE_FINAL_LEAVES)
        else:
            allowed = actor.id == request.user_id or (
                has_permission(actor.role, Permission.CANCEL_TEAM_LEAVES)
                and self.directory.is_manager_of(actor.id, request.user_id)
            )
        if not allowed:
            raise ForbiddenError("You are not allowed to perform this action on this leave request")

    @staticmethod
    def _state(request: LeaveRequest) -> Dict[str, Any]:
        return {
            "status": request.status,
            "manager_id": request.manager_id,
            "admin_id": request.admin_id,
            "total_days": request.total_days,
        }

    def _notify(
        self,
        event: str,
        request: LeaveRequest,
        actor: User,
        new_status: Optional[LeaveStatus] = None,
        comments: Optional[str] = None
    ) -> None:
        """
        Post-commit notification. Under HTTP it is queued as a background task
        with its own session; scripts and direct callers deliver it inline.
        """
        if self.background_tasks is not None:
            self.background_tasks.add_task(
                send_leave_notification, self.session_factory, event, request.id, actor.id, new_status, comments
            )
            return

        try:
            if event == NEW_REQUEST:
                self.notifier.notify_new_request(request, actor)
            else:
                self.notifier.notify_status_change(request, new_status, actor, comments)
        except Exception as e:
            logger.warning(f"Notification failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_request(self, request_id: int, actor: User) -> LeaveRequest:
        request = self.db.scalar(
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .options(selectinload(LeaveRequest.leave_type))
            .execution_options(populate_existing=True)
        )
        if request is None:
            raise NotFoundError("Leave request", request_id)

        if not (
            request.user_id == actor.id
            or has_permission(actor.role, Permission.READ_ALL_LEAVES)
            or (
                has_permission(actor.role, Permission.READ_TEAM_LEAVES)
                and (request.manager_id == actor.id or self.directory.is_manager_of(actor.id, request.user_id))
            )
        ):
            raise ForbiddenError("You can only view your own or your team's leave requests")
        return request

    def list_requests(self, actor: User, spec: LeaveRequestQuery) -> Dict[str, Any]:
        conditions = []

        if has_permission(actor.role, Permission.READ_ALL_LEAVES):
            pass
        elif has_permission(actor.role, Permission.READ_TEAM_LEAVES):
            conditions.append(or_(LeaveRequest.user_id == actor.id, LeaveRequest.manager_id == actor.id))
        else:
            conditions.append(LeaveRequest.user_id == actor.id)

        if spec.status:
            conditions.append(LeaveRequest.status == spec.status.value)
        if spec.leave_type:
            conditions.append(LeaveType.code == spec.leave_type.strip().lower())
        if spec.start_date:
            conditions.append(LeaveRequest.start_date >= spec.start_date)
        if spec.end_date:
            conditions.append(LeaveRequest.end_date <= spec.end_date)

        if has_permission(actor.role, Permission.READ_TEAM_LEAVES):
            if spec.user_id:
                conditions.append(LeaveRequest.user_id == spec.user_id)
            if spec.department:
                conditions.append(User.department.ilike(f"%{spec.department}%"))

        base = (
            select(LeaveRequest)
            .join(User, LeaveRequest.user_id == User.id)
            .join(LeaveType, LeaveRequest.leave_type_id == LeaveType.id)
            .where(and_(True, *conditions))
        )
        total = self.db.scalar(select(func.count()).select_from(base.subquery())) or 0

        requests = list(self.db.scalars(
            base.options(selectinload(LeaveRequest.leave_type))
            .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
            .offset((spec.page - 1) * spec.limit)
            .limit(spec.limit)
        ))

        total_pages = math.ceil(total / spec.limit) if total else 0
        return {
            "requests": requests,
            "pagination": {
                "current_page": spec.page,
                "total_pages": total_pages,
                "total_requests": total,
                "per_page": spec.limit,
                "has_next": spec.page < total_pages,
                "has_prev": spec.page > 1,
            },
        }

    def pending_approvals(self, actor: User) -> List[LeaveRequest]:
        query = select(LeaveRequest).options(selectinload(LeaveRequest.leave_type))
        if has_permission(actor.role, Permission.APPROVE_FINAL_LEAVES):
            query = query.where(LeaveRequest.status.in_(_status_values(ADMIN_QUEUE)))
        elif has_permission(actor.role, Permission.APPROVE_TEAM_LEAVES):
            query = query.where(
                LeaveRequest.status == LeaveStatus.PENDING.value,
                LeaveRequest.manager_id == actor.id,
            )
        else:
            raise ForbiddenError("Only managers and admins have an approval queue")
        return list(self.db.scalars(query.order_by(LeaveRequest.created_at.asc(), LeaveRequest.id.asc())))

    def statistics(self, year: int) -> Dict[str, Any]:
        """Counts for requests whose leave starts in the given year."""
        in_year = extract("year", LeaveRequest.start_date) == year

        def count_in(*statuses):
            return func.coalesce(func.sum(case((LeaveRequest.status.in_(_status_values(statuses)), 1), else_=0)), 0)

        overall = self.db.execute(
            select(
                func.count(LeaveRequest.id),
                count_in(*ADMIN_QUEUE),
                count_in(LeaveStatus.ADMIN_APPROVED),
                count_in(LeaveStatus.MANAGER_REJECTED, LeaveStatus.ADMIN_REJECTED),
                count_in(LeaveStatus.CANCELLED),
            ).where(in_year)
        ).one()

        by_type = self.db.execute(
            select(
                LeaveType.code,
                LeaveType.name,
                func.count(LeaveRequest.id),
                func.coalesce(func.sum(LeaveRequest.total_days), 0),
            )
            .select_from(LeaveType)
            .outerjoin(LeaveRequest, and_(LeaveRequest.leave_type_id == LeaveType.id, in_year))
            .group_by(LeaveType.id, LeaveType.code, LeaveType.name)
            .order_by(func.count(LeaveRequest.id).desc(), LeaveType.code)
        ).all()

        month_col = extract("month", LeaveRequest.start_date)
        by_month = self.db.execute(
            select(month_col, func.count(LeaveRequest.id), func.sum(LeaveRequest.total_days))
            .where(in_year)
            .group_by(month_col)
            .order_by(month_col)
        ).all()

        return {
            "year": year,
            "overall": {
                "total_requests": overall[0],
                "pending_requests": int(overall[1]),
                "approved_requests": int(overall[2]),
                "rejected_requests": int(overall[3]),
                "cancelled_requests": int(overall[4]),
            },
            "by_leave_type": [
                {
                    "leave_type": code,
                    "name": name,
                    "requests_count": count,
                    "total_days_requested": int(days),
                    "average_days_per_request": round(int(days) / count, 2) if count else 0,
                }
                for code, name, count, days in by_type
            ],
            "by_month": [
                {"month": int(month), "requests_count": count, "total_days_requested": int(days or 0)}
                for month, count, days in by_month
            ],
        }
