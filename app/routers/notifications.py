from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from app.dependencies import get_notifications
from app.models.user import User
from app.routers.auth_deps import get_current_user
from app.schemas.notification import MarkAllReadResult, NotificationResponse, UnreadCount
from app.services.notification import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])

@router.get("/", response_model=List[NotificationResponse])
def get_notifications_for_user(
    unread_only: bool = False,
    type: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notifications)
):
    return notifications.list_for_user(
        current_user.id, unread_only=unread_only, type=type, skip=(page - 1) * limit, limit=limit
    )

@router.get("/unread-count", response_model=UnreadCount)
def get_unread_count(
    current_user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notifications)
):
    return UnreadCount(unread=notifications.unread_count(current_user.id))

@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_as_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notifications)
):
    return notifications.mark_read(notification_id, current_user.id)

@router.post("/mark-all-read", response_model=MarkAllReadResult)
def mark_all_notifications_as_read(
    current_user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notifications)
):
    return MarkAllReadResult(updated=notifications.mark_all_read(current_user.id))
