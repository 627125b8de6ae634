from datetime import date
from typing import Any, Dict, Optional

class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

class ForbiddenError(AppException):
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            status_code=403,
            error_code="FORBIDDEN"
        )

class NotFoundError(AppException):
    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found" if identifier is None else f"{resource} {identifier} not found"
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND",
            details={"resource": resource, "id": identifier}
        )

# --- Leave business rules ---

class InvalidLeaveTypeError(AppException):
    def __init__(self, leave_type: Any):
        super().__init__(
            message=f"Invalid leave type: {leave_type}",
            error_code="INVALID_LEAVE_TYPE",
            details={"leave_type": leave_type}
        )

class InvalidDateRangeError(AppException):
    def __init__(self, message: str, start_date: date, end_date: date):
        super().__init__(
            message=message,
            error_code="INVALID_DATE_RANGE",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()}
        )

class ExceedsMaxConsecutiveDaysError(AppException):
    def __init__(self, leave_type_name: str, max_days: int, requested: int):
        super().__init__(
            message=f"Maximum consecutive days for {leave_type_name} is {max_days}",
            error_code="EXCEEDS_MAX_CONSECUTIVE_DAYS",
            details={"max_consecutive_days": max_days, "requested": requested}
        )

class MonthlyLimitExceededError(AppException):
    def __init__(self, leave_type_name: str, used: int, requested: int, max_allowed: int):
        super().__init__(
            message=(
                f"Cannot apply for {requested} day(s). You have already used {used} day(s) "
                f"this month for {leave_type_name}. Monthly limit: {max_allowed} day(s)."
            ),
            error_code="MONTHLY_LIMIT_EXCEEDED",
            details={"used": used, "requested": requested, "max_allowed": max_allowed}
        )

class InsufficientBalanceError(AppException):
    def __init__(self, available: int, requested: int):
        super().__init__(
            message=f"Insufficient leave balance. Available: {available} days, Requested: {requested} days",
            error_code="INSUFFICIENT_BALANCE",
            details={"available": available, "requested": requested}
        )

class OverlappingRequestError(AppException):
    def __init__(self, conflicting_ids):
        super().__init__(
            message="Leave request overlaps with an existing leave request",
            status_code=409,
            error_code="OVERLAPPING_REQUEST",
            details={"conflicting_request_ids": list(conflicting_ids)}
        )

class InvalidStateTransitionError(AppException):
    """Raised when an action is not allowed from the request's current status."""
    def __init__(self, action: str, current_status: str):
        self.current_status = current_status
        super().__init__(
            message=f"Cannot {action} request with current status: {current_status}",
            status_code=409,
            error_code="INVALID_STATE_TRANSITION",
            details={"action": action, "current_status": current_status}
        )

class TransactionFailureError(AppException):
    def __init__(self, operation: str, reason: str):
        super().__init__(
            message=f"Storage failure during {operation}; no changes were applied. Please retry.",
            status_code=503,
            error_code="TRANSACTION_FAILED",
            details={"operation": operation, "reason": reason}
        )
