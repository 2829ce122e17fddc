from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.api.errors import to_http_exception
from app.database.databse import get_db
from app.database.services.notification_service import NotificationService
from app.ReqResModels.notificationmodels import (
    NotificationListResponse,
    UnreadCountResponse,
    NotificationMessageResponse
)
from app.logic.workflow_types import UserRef
from app.logic.exceptions import NotFoundError

router = APIRouter(
    prefix="/notifications",
    tags=["notifications"]
)

@router.get(
    "/",
    response_model=NotificationListResponse,
    summary="Get my notifications",
    description="Newest first"
)
def get_notifications(
    limit: int = Query(20, ge=1, le=100, description="Maximum number of notifications"),
    current_user: UserRef = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return NotificationService.get_user_notifications(db, current_user.id, limit)

@router.get(
    "/unread-count",
    response_model=UnreadCountResponse,
    summary="Count my unread notifications"
)
def get_unread_count(
    current_user: UserRef = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return UnreadCountResponse(unread_count=NotificationService.get_unread_count(db, current_user.id))

@router.patch(
    "/read-all",
    response_model=NotificationMessageResponse,
    summary="Mark all my notifications as read"
)
def mark_all_as_read(
    current_user: UserRef = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    NotificationService.mark_all_as_read(db, current_user.id)
    return NotificationMessageResponse(message="All notifications marked as read")

@router.patch(
    "/{notification_id}/read",
    response_model=NotificationMessageResponse,
    summary="Mark a notification as read"
)
def mark_as_read(
    notification_id: int,
    current_user: UserRef = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        NotificationService.mark_as_read(db, current_user.id, notification_id)
    except NotFoundError as e:
        raise to_http_exception(e)
    return NotificationMessageResponse(message="Notification marked as read")
