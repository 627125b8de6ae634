"""
Role -> permission mapping.

Kept as plain data plus a pure lookup so the rules can be tested without
touching request handling or the database.
"""
import enum
from typing import FrozenSet, Union


class Role(str, enum.Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"


class Permission(str, enum.Enum):
    READ_OWN_LEAVES = "read_own_leaves"
    WRITE_OWN_LEAVES = "write_own_leaves"
    READ_LEAVE_BALANCES = "read_leave_balances"
    READ_TEAM_LEAVES = "read_team_leaves"
    READ_ALL_LEAVES = "read_all_leaves"
    APPROVE_TEAM_LEAVES = "approve_team_leaves"
    APPROVE_FINAL_LEAVES = "approve_final_leaves"
    CANCEL_TEAM_LEAVES = "cancel_team_leaves"
    READ_TEAM_BALANCES = "read_team_balances"
    MANAGE_LEAVE_TYPES = "manage_leave_types"
    MANAGE_SYSTEM_SETTINGS = "manage_system_settings"
    RUN_ANNUAL_RESET = "run_annual_reset"


_SELF_SERVICE = frozenset({
    Permission.READ_OWN_LEAVES,
    Permission.WRITE_OWN_LEAVES,
    Permission.READ_LEAVE_BALANCES,
})

_ROLE_PERMISSIONS = {
    Role.EMPLOYEE: _SELF_SERVICE,
    Role.MANAGER: _SELF_SERVICE | {
        Permission.READ_TEAM_LEAVES,
        Permission.APPROVE_TEAM_LEAVES,
        Permission.CANCEL_TEAM_LEAVES,
        Permission.READ_TEAM_BALANCES,
    },
    Role.ADMIN: _SELF_SERVICE | {
        Permission.READ_TEAM_LEAVES,
        Permission.READ_ALL_LEAVES,
        Permission.APPROVE_FINAL_LEAVES,
        Permission.READ_TEAM_BALANCES,
        Permission.MANAGE_LEAVE_TYPES,
        Permission.MANAGE_SYSTEM_SETTINGS,
        Permission.RUN_ANNUAL_RESET,
    },
}


def permissions_for(role: Union[Role, str]) -> FrozenSet[Permission]:
    """Return the permission set of a role; unknown roles get nothing."""
    try:
        role = Role(role)
    except ValueError:
        return frozenset()
    return frozenset(_ROLE_PERMISSIONS[role])


def has_permission(role: Union[Role, str], permission: Permission) -> bool:
    return permission in permissions_for(role)
