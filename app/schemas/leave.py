from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import date, datetime
from enum import Enum
from typing import List, Optional, Union

from app.models.leave_request import LeaveStatus


class TransitionAction(str, Enum):
    APPROVE_MANAGER = "approve_manager"
    REJECT_MANAGER = "reject_manager"
    APPROVE_ADMIN = "approve_admin"
    REJECT_ADMIN = "reject_admin"
    CANCEL = "cancel"


# --- Requests ---

class LeaveRequestCreate(BaseModel):
    # Numeric id or category code ("casual", "health", ...)
    leave_type_id: Union[int, str]
    start_date: date
    end_date: date
    reason: Optional[str] = Field(None, max_length=1000)
    emergency: bool = False


class LeaveSubmissionResult(BaseModel):
    id: int
    status: LeaveStatus
    total_days: int


class TransitionRequest(BaseModel):
    action: TransitionAction
    comments: Optional[str] = Field(None, max_length=1000)


class CancelRequest(BaseModel):
    comments: Optional[str] = Field(None, max_length=1000)


class TransitionResult(BaseModel):
    id: int
    status: LeaveStatus


class LeaveRequestResponse(BaseModel):
    id: int
    user_id: int
    leave_type_id: int
    leave_type_code: Optional[str] = None
    start_date: date
    end_date: date
    total_days: int
    reason: Optional[str] = None
    emergency: bool
    status: LeaveStatus
    manager_id: Optional[int] = None
    admin_id: Optional[int] = None
    manager_comments: Optional[str] = None
    admin_comments: Optional[str] = None
    manager_approved_at: Optional[datetime] = None
    manager_rejected_at: Optional[datetime] = None
    admin_approved_at: Optional[datetime] = None
    admin_rejected_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LeaveRequestQuery(BaseModel):
    """Filters for listing leave requests. Role scoping is applied on top."""
    status: Optional[LeaveStatus] = None
    leave_type: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    user_id: Optional[int] = None
    department: Optional[str] = None
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)

    @model_validator(mode="after")
    def check_window(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_requests: int
    per_page: int
    has_next: bool
    has_prev: bool


class LeaveRequestPage(BaseModel):
    requests: List[LeaveRequestResponse]
    pagination: Pagination


# --- Ledger views ---

class BalanceView(BaseModel):
    leave_type_id: int
    leave_type: str
    year: int
    total: int
    used: int
    pending: int
    remaining: int
    carry_forward: int

    @classmethod
    def from_model(cls, balance) -> "BalanceView":
        return cls(
            leave_type_id=balance.leave_type_id,
            leave_type=balance.leave_type.code,
            year=balance.year,
            total=balance.total_days,
            used=balance.used_days,
            pending=balance.pending_days,
            remaining=balance.remaining_days,
            carry_forward=balance.carry_forward_days,
        )


class BalanceSummary(BaseModel):
    user_id: int
    year: int
    total: int
    used: int
    pending: int
    remaining: int
    carry_forward: int
    balances: List[BalanceView]


class MonthlyUsageView(BaseModel):
    leave_type_id: int
    leave_type: str
    year: int
    month: int
    used: int
    max_allowed: int

    @classmethod
    def from_model(cls, usage) -> "MonthlyUsageView":
        return cls(
            leave_type_id=usage.leave_type_id,
            leave_type=usage.leave_type.code,
            year=usage.year,
            month=usage.month,
            used=usage.used_days,
            max_allowed=usage.max_allowed,
        )


# --- Leave types ---

class LeaveTypeBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    annual_days: int = Field(0, ge=0)
    max_consecutive_days: Optional[int] = Field(None, ge=1)
    notice_period_days: int = Field(0, ge=0)
    carry_forward_days: int = Field(0, ge=0)


class LeaveTypeCreate(LeaveTypeBase):
    code: str = Field(..., min_length=1, max_length=50, pattern=r"^[A-Za-z_]+$")


class LeaveTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    annual_days: Optional[int] = Field(None, ge=0)
    max_consecutive_days: Optional[int] = Field(None, ge=1)
    notice_period_days: Optional[int] = Field(None, ge=0)
    carry_forward_days: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def reject_explicit_nulls(self):
        # Omitted means unchanged; only description and max_consecutive_days can be cleared
        required = ("name", "annual_days", "notice_period_days", "carry_forward_days")
        nulled = [f for f in required if f in self.model_fields_set and getattr(self, f) is None]
        if nulled:
            raise ValueError(f"{', '.join(nulled)} cannot be null")
        return self


class LeaveTypeResponse(LeaveTypeBase):
    id: int
    code: str

    model_config = ConfigDict(from_attributes=True)


# --- Admin operations ---

class AnnualResetRequest(BaseModel):
    year: Optional[int] = Field(None, ge=2000, le=2100)


class AnnualResetResult(BaseModel):
    year: int
    users_reset: int
    errors: List[dict] = []


class RolloverRequest(BaseModel):
    from_year: int = Field(..., ge=2000, le=2100)
    to_year: Optional[int] = Field(None, ge=2000, le=2100)

    @model_validator(mode="after")
    def default_target(self):
        if self.to_year is None:
            self.to_year = self.from_year + 1
        if self.to_year <= self.from_year:
            raise ValueError("to_year must be after from_year")
        return self


class RolloverResult(BaseModel):
    from_year: int
    to_year: int
    balances_written: int
