import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

import requests
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pto_service.core.config import settings
from pto_service.core.logging import request_id_var
from pto_service.models.notification import Notification
from pto_service.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutgoingNotification:
    """A message queued during a unit of work and delivered after it commits."""
    user_id: int
    title: str
    message: str
    type: str = "info"
    link: Optional[str] = None
    pto_request_id: Optional[int] = None


class NotificationService:
    @staticmethod
    def create_notification(db: Session, note: OutgoingNotification) -> Notification:
        notification = Notification(
            user_id=note.user_id,
            pto_request_id=note.pto_request_id,
            title=note.title,
            message=note.message,
            type=note.type,
            link=note.link,
        )
        db.add(notification)
        db.commit()
        db.refresh(notification)
        return notification

    @staticmethod
    def send_webhook(user: Optional[User], note: OutgoingNotification) -> bool:
        """Forward to the email gateway, if one is configured."""
        url = settings.notification_webhook_url
        if not url:
            return False
        payload = {
            "user_id": note.user_id,
            "email": user.email if user else None,
            "title": note.title,
            "message": note.message,
            "type": note.type,
            "link": note.link,
            "pto_request_id": note.pto_request_id,
        }
        headers = {}
        if request_id_var.get():
            headers[settings.request_id_header] = request_id_var.get()
        response = requests.post(url, json=payload, headers=headers, timeout=settings.notification_timeout_seconds)
        response.raise_for_status()
        return True

    @staticmethod
    def notify_user(db: Session, note: OutgoingNotification):
        """
        Store the in-app notification and push it to the gateway. Fire-and-forget:
        delivery problems are logged and never reach the caller.
        """
        notification = None
        try:
            notification = NotificationService.create_notification(db, note)
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"Notification for user {note.user_id} not stored: {e}", exc_info=True)
        try:
            delivered = NotificationService.send_webhook(db.get(User, note.user_id), note)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Notification webhook failed for user {note.user_id}: {e}")
            return
        if delivered and notification is not None:
            try:
                notification.delivered_at = datetime.now(timezone.utc)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.warning(f"Could not mark notification {notification.id} delivered: {e}")

    @staticmethod
    def dispatch(db: Session, notes: Iterable[OutgoingNotification]):
        for note in notes:
            NotificationService.notify_user(db, note)
