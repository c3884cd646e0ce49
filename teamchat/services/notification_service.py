"""Admin notifications for backup outcomes and system alerts."""

import enum
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from teamchat.db.session import SessionLocal
from teamchat.models.user import User
from teamchat.services.cache_service import cache_service

logger = logging.getLogger(__name__)

ADMIN_CHANNEL = "notifications:admin"


class NotificationKind(str, enum.Enum):
    backup_failure = "backup_failure"
    backup_success = "backup_success"
    system_alert = "system_alert"


TITLES = {
    NotificationKind.backup_failure: "Backup failed",
    NotificationKind.backup_success: "Backup completed",
    NotificationKind.system_alert: "System alert",
}

SEVERITY = {
    NotificationKind.backup_failure: "high",
    NotificationKind.backup_success: "low",
    NotificationKind.system_alert: "medium",
}


class Notifier(ABC):
    """Fire-and-forget notification sink. ``notify`` must never raise."""

    @abstractmethod
    def notify(self, kind: NotificationKind, message: str) -> None:
        ...


class AdminNotifier(Notifier):
    """Logs the notification and publishes it to every active admin via Redis."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def _admin_count(self) -> Optional[int]:
        db = self.session_factory()
        try:
            users = db.query(User).filter(User.is_active == True).all()  # noqa: E712
            return sum(1 for u in users if u.has_role("admin"))
        finally:
            db.close()

    def notify(self, kind: NotificationKind, message: str) -> None:
        try:
            kind = NotificationKind(kind)
            admins = self._admin_count()
            severity = SEVERITY[kind]
            logger.log(
                logging.ERROR if severity == "high" else logging.INFO,
                "[NOTIFICATION] %s: %s (severity=%s, admins=%s) %s",
                kind.value.upper(), TITLES[kind], severity, admins, message,
            )
            cache_service.publish(ADMIN_CHANNEL, json.dumps({
                "type": kind.value,
                "title": TITLES[kind],
                "message": message,
                "severity": severity,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }))
        except Exception:
            logger.exception("Failed to send admin notification")


admin_notifier = AdminNotifier()
