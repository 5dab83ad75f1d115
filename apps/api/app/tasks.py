from __future__ import annotations

import logging

from app.core.celery_app import DISPATCH_NOTIFICATION_TASK, celery_app
from app.core.database import SessionLocal
from app.crm.notifications import notification_service


logger = logging.getLogger("app.tasks")


@celery_app.task(name=DISPATCH_NOTIFICATION_TASK)
def dispatch_notification(notification_id: str) -> str | None:
    """Hand a queued notification to the delivery channel and mark it sent."""

    session = SessionLocal()
    try:
        notification = notification_service.update_status(session, notification_id, "sent")
        if notification is None:
            logger.warning("notification_missing", extra={"notification_id": notification_id})
            return None
        logger.info(
            "notification_dispatched",
            extra={"notification_id": notification_id, "template_id": notification.template_id},
        )
        return notification.status
    finally:
        session.close()
