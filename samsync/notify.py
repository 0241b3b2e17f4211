from abc import ABC, abstractmethod
import logging

from sqlalchemy.orm import sessionmaker

from samsync.db import SessionLocal, session_scope
from samsync.models import Notification

logger = logging.getLogger("samsync.notify")

class NotificationSink(ABC):
    @abstractmethod
    def notify(
        self,
        recipient_id: int,
        type: str,
        title: str,
        message: str = "",
        metadata: dict | None = None,
    ) -> None:
        ...

class DatabaseNotificationSink(NotificationSink):
    """Writes an in-app notification row per request."""

    def __init__(self, session_factory: sessionmaker | None = None):
        self.session_factory = session_factory or SessionLocal

    def notify(self, recipient_id, type, title, message="", metadata=None) -> None:
        with session_scope(self.session_factory) as session:
            session.add(Notification(
                user_id=recipient_id,
                type=type,
                title=title,
                message=message,
                data=metadata or {},
            ))

class BestEffortNotifier(NotificationSink):
    """Wraps a sink so delivery failures are logged and never reach the caller."""

    def __init__(self, sink: NotificationSink):
        self.sink = sink

    def notify(self, recipient_id, type, title, message="", metadata=None) -> bool:
        try:
            self.sink.notify(recipient_id, type, title, message, metadata)
            return True
        except Exception as e:
            logger.warning(f"⚠️  Notification '{type}' to user {recipient_id} not delivered: {e}")
            return False
