"""
Authentication and permission dependencies.

The acting principal comes from a bearer JWT whose `sub` is the user id; the
user row is then read so role and manager relationships are current.
"""
import logging
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.core.permissions import Permission, has_permission
from app.database import get_db
from app.models.user import User
from app.services import auth as auth_service

logger = logging.getLogger(__name__)

# Token issuance lives in the identity service
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    """
    Extracts and validates the current user from the JWT token.
    """
    payload = auth_service.decode_access_token(token)

    if payload is None:
        logger.warning("Authentication failed: Invalid token")
        raise _unauthorized("Could not validate credentials")

    if payload.get("error") == "TOKEN_EXPIRED":
        logger.info("Authentication failed: Token expired")
        raise _unauthorized("TOKEN_EXPIRED")

    if payload.get("type") != "access":
        logger.warning("Authentication failed: Invalid token type")
        raise _unauthorized("Invalid token type")

    subject = payload.get("sub")
    if subject is None or not str(subject).isdigit():
        logger.warning("Authentication failed: Missing or malformed subject in token")
        raise _unauthorized("Missing subject in token")

    user = db.get(User, int(subject))
    if user is None:
        logger.warning(f"Authentication failed: User {subject} not found in database")
        raise _unauthorized("User not found")
    if not user.is_active:
        logger.warning(f"Authentication failed: User {subject} is inactive")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is inactive"
        )
    return user


def require_permission(permission: Permission) -> Callable:
    """
    Dependency factory that checks the current user's role grants a permission.

    Usage:
        @router.post("/admin/annual-reset")
        def run_reset(user: User = Depends(require_permission(Permission.RUN_ANNUAL_RESET))):
            ...
    """
    def permission_checker(current_user: User = Depends(get_current_user)) -> User:
        if not has_permission(current_user.role, permission):
            logger.warning(f"Access denied for user {current_user.id}: requires {permission.value}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required permission: {permission.value}"
            )
        return current_user
    return permission_checker
