"""
Notification port.
Services emit NotificationIntent values; the notifier turns them into inbox
rows. Delivery is best-effort: it runs after the business transaction has
committed and a failure here is logged, never raised.
"""
import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.models import Notification
from ..config import settings


@dataclass(frozen=True)
class NotificationIntent:
    recipient_id: Optional[uuid.UUID]
    title: str
    body: str
    category: str = "INFO"  # INFO|SUCCESS|ALERT|PAYMENT_REMINDER
    project_id: Optional[uuid.UUID] = None


class DatabaseNotifier:
    def __init__(self, db: Session, enabled: Optional[bool] = None):
        self.db = db
        self.enabled = settings.enable_notifications if enabled is None else enabled
        self.log = structlog.get_logger()

    def send(self, intent: NotificationIntent) -> Optional[Notification]:
        if not self.enabled or intent.recipient_id is None:
            return None
        try:
            notification = Notification(
                user_id=intent.recipient_id,
                project_id=intent.project_id,
                title=intent.title,
                message=intent.body,
                category=intent.category,
            )
            self.db.add(notification)
            self.db.commit()
            return notification
        except SQLAlchemyError as e:
            self.db.rollback()
            self.log.warning(
                "notification_failed",
                recipient_id=str(intent.recipient_id),
                title=intent.title,
                error=str(e),
            )
            return None

    def send_all(self, intents: Iterable[NotificationIntent]) -> int:
        sent = 0
        for intent in intents:
            if self.send(intent) is not None:
                sent += 1
        return sent
