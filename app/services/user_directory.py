from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.models.user import User, UserRole
from app.services.base import BaseService


class UserDirectory(BaseService):
    """Read-only view of users for workflow routing and team checks."""

    def __init__(self, db: Session):
        super().__init__(db)

    def get(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def lock(self, user_id: int) -> User:
        """
        Row lock on the user, taken by submissions so that two requests from
        the same user are checked for overlap one after the other.
        """
        user = self.db.scalar(select(User).where(User.id == user_id).with_for_update())
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def is_manager_of(self, manager_id: int, user_id: int) -> bool:
        return self.db.scalar(
            select(User.id).where(User.id == user_id, User.manager_id == manager_id)
        ) is not None

    def list_active(self) -> List[User]:
        return list(self.db.scalars(select(User).where(User.is_active.is_(True)).order_by(User.id)))

    def find_admin(self, exclude_id: Optional[int] = None) -> Optional[User]:
        query = select(User).where(User.role == UserRole.ADMIN, User.is_active.is_(True))
        if exclude_id is not None:
            query = query.where(User.id != exclude_id)
        return self.db.scalar(query.order_by(User.id).limit(1))
