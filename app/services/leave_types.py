"""
Leave Type Registry

Read-mostly reference data. Writes are admin operations restricted to an
allow-list of mutable fields; the category code is fixed at creation.
"""
from typing import Any, Dict, Iterable, List, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import AppException, InvalidLeaveTypeError, NotFoundError
from app.models.leave_type import LeaveType, LeaveCategory
from app.services.base import BaseService

MUTABLE_FIELDS = (
    "name",
    "description",
    "annual_days",
    "carry_forward_days",
    "max_consecutive_days",
    "notice_period_days",
)

# Fields that may be cleared with null
NULLABLE_FIELDS = ("description", "max_consecutive_days")

DEFAULT_LEAVE_TYPES = [
    {
        "code": LeaveCategory.CASUAL.value,
        "name": "Casual Leave",
        "description": "General personal or short-term absences",
        "annual_days": 12,
        "notice_period_days": 1,
    },
    {
        "code": LeaveCategory.HEALTH.value,
        "name": "Health Leave",
        "description": "Medical or health-related absences",
        "annual_days": 12,
        "notice_period_days": 1,
    },
]


class LeaveTypeRegistry(BaseService):

    def __init__(self, db: Session):
        super().__init__(db)

    def list(self) -> List[LeaveType]:
        return list(self.db.scalars(select(LeaveType).order_by(LeaveType.code)))

    def list_by_codes(self, codes: Iterable[str]) -> List[LeaveType]:
        return list(self.db.scalars(
            select(LeaveType).where(LeaveType.code.in_(list(codes))).order_by(LeaveType.code)
        ))

    def get_by_id(self, leave_type_id: int) -> LeaveType:
        leave_type = self.db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundError("Leave type", leave_type_id)
        return leave_type

    def get_by_code(self, code: str) -> LeaveType:
        leave_type = self.db.scalar(select(LeaveType).where(LeaveType.code == code))
        if leave_type is None:
            raise NotFoundError("Leave type", code)
        return leave_type

    def resolve(self, id_or_code: Union[int, str]) -> LeaveType:
        """
        Accepts either the numeric identifier or the category code.
        Unknown values are a submission error, not a lookup miss.
        """
        try:
            if isinstance(id_or_code, int) or str(id_or_code).isdigit():
                return self.get_by_id(int(id_or_code))
            return self.get_by_code(str(id_or_code).strip().lower())
        except NotFoundError:
            raise InvalidLeaveTypeError(id_or_code)

    def create(self, data: Dict[str, Any]) -> LeaveType:
        code = data["code"].strip().lower()
        with self.transaction("create_leave_type"):
            existing = self.db.scalar(select(LeaveType).where(LeaveType.code == code))
            if existing is not None:
                raise AppException(
                    f"Leave type '{code}' already exists",
                    status_code=409,
                    error_code="DUPLICATE_LEAVE_TYPE",
                )
            leave_type = LeaveType(code=code, **{k: data[k] for k in MUTABLE_FIELDS if k in data and data[k] is not None})
            self.db.add(leave_type)
        self._logger.info(f"Created leave type {code}")
        return leave_type

    def update(self, leave_type_id: int, changes: Dict[str, Any]) -> LeaveType:
        allowed = {k: v for k, v in changes.items() if k in MUTABLE_FIELDS}
        if not allowed:
            raise AppException("No valid fields to update", error_code="NO_VALID_FIELDS")
        cleared = sorted(k for k, v in allowed.items() if v is None and k not in NULLABLE_FIELDS)
        if cleared:
            raise AppException(
                f"Fields cannot be null: {', '.join(cleared)}",
                error_code="INVALID_FIELD_VALUE",
                details={"fields": cleared},
            )

        with self.transaction("update_leave_type"):
            leave_type = self.get_by_id(leave_type_id)
            for field, value in allowed.items():
                setattr(leave_type, field, value)
        self._logger.info(f"Updated leave type {leave_type.code}: {sorted(allowed)}")
        return leave_type

    def seed_defaults(self) -> int:
        """Insert the auto-enrolled categories when missing. Returns rows created."""
        created = 0
        with self.transaction("seed_leave_types"):
            for item in DEFAULT_LEAVE_TYPES:
                exists = self.db.scalar(select(LeaveType.id).where(LeaveType.code == item["code"]))
                if exists is None:
                    self.db.add(LeaveType(**item))
                    created += 1
        return created
