from fastapi import APIRouter, Depends

from app.core.exceptions import NotFoundError
from app.core.permissions import Permission
from app.core.schemas import ApiResponse
from app.dependencies import get_annual_reset, get_ledger, get_settings_store
from app.models.user import User
from app.routers.auth_deps import require_permission
from app.schemas.leave import AnnualResetRequest, AnnualResetResult, RolloverRequest, RolloverResult
from app.schemas.system_setting import SystemSettingResponse
from app.services.annual_reset import AnnualResetService
from app.services.audit import AuditService
from app.services.leave_balance import BalanceLedger
from app.services.system_settings import SystemSettingsStore

router = APIRouter(prefix="/admin", tags=["Administration"])


@router.post("/annual-reset", response_model=ApiResponse[AnnualResetResult])
def run_annual_reset(
    payload: AnnualResetRequest,
    current_user: User = Depends(require_permission(Permission.RUN_ANNUAL_RESET)),
    reset: AnnualResetService = Depends(get_annual_reset)
):
    """Manual trigger for the year-boundary reset; the scheduler uses scripts/run_annual_reset.py."""
    result = reset.run(payload.year)
    return ApiResponse.ok(AnnualResetResult(**result), metadata={"triggered_by": current_user.id})


@router.post("/rollover", response_model=ApiResponse[RolloverResult])
def rollover_balances(
    payload: RolloverRequest,
    current_user: User = Depends(require_permission(Permission.RUN_ANNUAL_RESET)),
    ledger: BalanceLedger = Depends(get_ledger)
):
    with ledger.transaction("rollover_balances"):
        written = ledger.rollover_balances(payload.from_year, payload.to_year)
        AuditService.log(
            ledger.db,
            action="rollover_balances",
            entity_type="leave_balance",
            entity_id=None,
            user_id=current_user.id,
            user_role=current_user.role.value,
            details={"from_year": payload.from_year, "to_year": payload.to_year, "balances_written": written},
        )
    return ApiResponse.ok(RolloverResult(from_year=payload.from_year, to_year=payload.to_year, balances_written=written))


@router.get("/settings/{key}", response_model=SystemSettingResponse)
def get_system_setting(
    key: str,
    current_user: User = Depends(require_permission(Permission.MANAGE_SYSTEM_SETTINGS)),
    store: SystemSettingsStore = Depends(get_settings_store)
):
    setting = store.get(key)
    if setting is None:
        raise NotFoundError("Setting", key)
    return setting
