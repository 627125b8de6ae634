from fastapi import APIRouter, Depends, status
from typing import List

from app.core.permissions import Permission
from app.dependencies import get_registry
from app.models.user import User
from app.routers.auth_deps import get_current_user, require_permission
from app.schemas.leave import LeaveTypeCreate, LeaveTypeResponse, LeaveTypeUpdate
from app.services.leave_types import LeaveTypeRegistry

router = APIRouter(prefix="/leave-types", tags=["Leave Types"])


@router.get("/", response_model=List[LeaveTypeResponse])
def list_leave_types(
    current_user: User = Depends(get_current_user),
    registry: LeaveTypeRegistry = Depends(get_registry)
):
    return registry.list()


@router.get("/{id_or_code}", response_model=LeaveTypeResponse)
def get_leave_type(
    id_or_code: str,
    current_user: User = Depends(get_current_user),
    registry: LeaveTypeRegistry = Depends(get_registry)
):
    if id_or_code.isdigit():
        return registry.get_by_id(int(id_or_code))
    return registry.get_by_code(id_or_code.lower())


@router.post("/", response_model=LeaveTypeResponse, status_code=status.HTTP_201_CREATED)
def create_leave_type(
    payload: LeaveTypeCreate,
    current_user: User = Depends(require_permission(Permission.MANAGE_LEAVE_TYPES)),
    registry: LeaveTypeRegistry = Depends(get_registry)
):
    return registry.create(payload.model_dump())


@router.patch("/{leave_type_id}", response_model=LeaveTypeResponse)
def update_leave_type(
    leave_type_id: int,
    payload: LeaveTypeUpdate,
    current_user: User = Depends(require_permission(Permission.MANAGE_LEAVE_TYPES)),
    registry: LeaveTypeRegistry = Depends(get_registry)
):
    return registry.update(leave_type_id, payload.model_dump(exclude_unset=True))
