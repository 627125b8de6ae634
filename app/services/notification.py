import logging
from typing import Callable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.models.leave_request import LeaveRequest, LeaveStatus
from app.models.notification import Notification
from app.models.user import User
from app.services.base import BaseService
from app.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)

NEW_REQUEST = "new_request"
STATUS_CHANGE = "status_change"

STATUS_MESSAGES = {
    LeaveStatus.HR_PENDING: ("Leave request forwarded", "approved", "was approved by your manager and forwarded to HR"),
    LeaveStatus.MANAGER_REJECTED: ("Leave request rejected", "rejected", "was rejected by your manager"),
    LeaveStatus.ADMIN_APPROVED: ("Leave request approved", "approved", "was approved"),
    LeaveStatus.ADMIN_REJECTED: ("Leave request rejected", "rejected", "was rejected by HR"),
    LeaveStatus.CANCELLED: ("Leave request cancelled", "cancelled", "was cancelled"),
}


class NotificationService(BaseService):
    """
    In-app notification sink. Each notification is written in its own
    transaction; callers invoke it only after their own work has committed.
    """

    def __init__(self, db: Session):
        super().__init__(db)
        self.directory = UserDirectory(db)

    def notify(
        self,
        user_id: int,
        leave_request_id: Optional[int],
        title: str,
        message: str,
        type: str = "info"
    ) -> Notification:
        with self.transaction("create_notification"):
            notification = Notification(
                user_id=user_id,
                leave_request_id=leave_request_id,
                title=title,
                message=message,
                type=type
            )
            self.db.add(notification)
        return notification

    def notify_new_request(self, request: LeaveRequest, submitter: User) -> Optional[Notification]:
        """Tell the assigned approver, or an admin when nobody is assigned."""
        recipient_id = request.manager_id or request.admin_id
        if recipient_id is None or recipient_id == submitter.id:
            admin = self.directory.find_admin(exclude_id=submitter.id)
            recipient_id = admin.id if admin else None
        if recipient_id is None:
            self._logger.warning(f"No approver to notify for leave request {request.id}")
            return None

        return self.notify(
            recipient_id,
            request.id,
            "New leave request",
            f"{submitter.display_name} requested {request.total_days} day(s) "
            f"from {request.start_date.isoformat()} to {request.end_date.isoformat()}",
            "request_submitted"
        )

    def notify_status_change(
        self,
        request: LeaveRequest,
        new_status: LeaveStatus,
        actor: User,
        comments: Optional[str] = None
    ) -> Optional[Notification]:
        entry = STATUS_MESSAGES.get(new_status)
        if entry is None:
            return None

        title, type_, phrase = entry
        period = f"{request.start_date.isoformat()} to {request.end_date.isoformat()}"
        if request.user_id == actor.id:
            # Owner withdrew the request: let the approver know instead
            recipient_id = request.manager_id or request.admin_id
            if recipient_id is None or recipient_id == actor.id:
                return None
            return self.notify(
                recipient_id, request.id, title,
                f"{actor.display_name} cancelled their leave request for {period}", type_
            )

        message = f"Your leave request for {period} {phrase}"
        if comments:
            message += f": {comments}"
        return self.notify(request.user_id, request.id, title, message, type_)

    # --- Inbox ---

    def list_for_user(
        self,
        user_id: int,
        unread_only: bool = False,
        type: Optional[str] = None,
        skip: int = 0,
        limit: int = 20
    ) -> List[Notification]:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        if type:
            query = query.where(Notification.type == type)
        return list(self.db.scalars(
            query.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(skip).limit(limit)
        ))

    def unread_count(self, user_id: int) -> int:
        return self.db.scalar(
            select(func.count(Notification.id))
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        ) or 0

    def mark_read(self, notification_id: int, user_id: int) -> Notification:
        with self.transaction("mark_notification_read"):
            notification = self.db.scalar(
                select(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
            )
            if notification is None:
                raise NotFoundError("Notification", notification_id)
            notification.is_read = True
        return notification

    def mark_all_read(self, user_id: int) -> int:
        with self.transaction("mark_all_notifications_read"):
            result = self.db.execute(
                update(Notification)
                .where(Notification.user_id == user_id, Notification.is_read.is_(False))
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount


def send_leave_notification(
    session_factory: Callable,
    event: str,
    request_id: int,
    actor_id: int,
    new_status: Optional[LeaveStatus] = None,
    comments: Optional[str] = None
) -> None:
    """
    Background entry point for lifecycle notifications.

    Runs after the response has been sent, when the request's session is
    already closed, so it opens its own session and reloads the committed rows.
    Failures are logged and dropped.
    """
    db = session_factory()
    try:
        request = db.get(LeaveRequest, request_id)
        actor = db.get(User, actor_id)
        if request is None or actor is None:
            logger.warning(f"Notification skipped: leave request {request_id} or user {actor_id} not found")
            return

        service = NotificationService(db)
        if event == NEW_REQUEST:
            service.notify_new_request(request, actor)
        else:
            service.notify_status_change(request, new_status, actor, comments)
    except Exception as e:
        logger.warning(f"Notification for leave request {request_id} failed: {e}", exc_info=True)
    finally:
        db.close()
