from typing import Iterable, Optional
from sqlalchemy.orm import Session
from sqlalchemy import and_, desc
from datetime import datetime
import json
import logging
import os

from app.database.models.notification import Notification
from app.ReqResModels.notificationmodels import NotificationResponse, NotificationListResponse
from app.logic.workflow_types import ApprovalEvent, EventType
from app.logic.exceptions import NotFoundError, PersistenceError

logger = logging.getLogger(__name__)

# Only the newest notifications are kept per user
NOTIFICATION_HISTORY_LIMIT = int(os.getenv("NOTIFICATION_HISTORY_LIMIT", "100"))

EVENT_TITLES = {
    EventType.EXPENSE_SUBMITTED: "Expense Submitted",
    EventType.APPROVAL_REQUESTED: "Approval Required",
    EventType.VOTE_RECORDED: "Approval Vote Recorded",
    EventType.EXPENSE_APPROVED: "Expense Approved",
    EventType.EXPENSE_REJECTED: "Expense Rejected",
}

class NotificationService:
    """Durable per-user notification feed fed by approval workflow events"""

    @staticmethod
    def dispatch(db: Session, events: Iterable[ApprovalEvent]) -> int:
        """Persist one notification per event recipient; returns how many were created"""
        created = 0
        recipients = set()
        try:
            for event in events:
                for user_id in event.recipient_ids:
                    db.add(Notification(
                        user_id=user_id,
                        type=event.type.value,
                        title=EVENT_TITLES.get(event.type, event.type.value),
                        message=event.message,
                        data=json.dumps({
                            "expense_id": event.expense_id,
                            "step_order": event.step_order,
                            "actor_id": event.actor_id
                        }),
                        is_read=False,
                        created_at=datetime.utcnow()
                    ))
                    recipients.add(user_id)
                    created += 1
            db.flush()
            for user_id in recipients:
                NotificationService._prune(db, user_id)
            db.commit()
        except Exception as e:
            db.rollback()
            raise PersistenceError(f"Failed to store notifications: {str(e)}")

        logger.info(f"Created {created} notifications for {len(recipients)} users")
        return created

    @staticmethod
    def get_user_notifications(db: Session, user_id: int, limit: int = 20) -> NotificationListResponse:
        rows = db.query(Notification).filter(
            Notification.user_id == user_id
        ).order_by(desc(Notification.created_at), desc(Notification.id)).limit(limit).all()

        return NotificationListResponse(
            notifications=[NotificationService._model_to_response(n) for n in rows],
            unread_count=NotificationService.get_unread_count(db, user_id)
        )

    @staticmethod
    def get_unread_count(db: Session, user_id: int) -> int:
        return db.query(Notification).filter(
            and_(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
        ).count()

    @staticmethod
    def mark_as_read(db: Session, user_id: int, notification_id: int) -> None:
        notification = db.query(Notification).filter(
            and_(Notification.id == notification_id, Notification.user_id == user_id)
        ).first()
        if not notification:
            raise NotFoundError(f"Notification with ID {notification_id} not found")
        notification.is_read = True
        db.commit()

    @staticmethod
    def mark_all_as_read(db: Session, user_id: int) -> int:
        updated = db.query(Notification).filter(
            and_(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
        ).update({"is_read": True}, synchronize_session=False)
        db.commit()
        return updated

    @staticmethod
    def _prune(db: Session, user_id: int):
        stale_ids = [
            row.id for row in db.query(Notification.id).filter(
                Notification.user_id == user_id
            ).order_by(desc(Notification.created_at), desc(Notification.id)).offset(NOTIFICATION_HISTORY_LIMIT).all()
        ]
        if stale_ids:
            db.query(Notification).filter(Notification.id.in_(stale_ids)).delete(synchronize_session=False)

    @staticmethod
    def _model_to_response(notification: Notification) -> NotificationResponse:
        data: Optional[dict] = None
        if notification.data:
            try:
                data = json.loads(notification.data)
            except ValueError:
                logger.warning(f"Notification {notification.id} has malformed data")
        return NotificationResponse(
            id=notification.id,
            user_id=notification.user_id,
            type=notification.type,
            title=notification.title,
            message=notification.message,
            data=data,
            read=bool(notification.is_read),
            created_at=notification.created_at
        )
