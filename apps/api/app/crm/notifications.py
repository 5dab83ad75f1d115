from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.celery_app import DISPATCH_NOTIFICATION_TASK, celery_app
from app.core.config import get_settings
from app.crm.models import Lead, Notification
from app.metrics import observe_notification_queued


logger = logging.getLogger("app.crm.notifications")

NOTIFICATION_STATUSES = {"pending", "sent", "failed", "cancelled"}


class NotificationService:
    def queue_notification(
        self,
        session: Session,
        *,
        entity_type: str,
        entity_id: str,
        template_id: str,
        channel: str | None = None,
        variables: dict[str, Any] | None = None,
        recipient_address: str | None = None,
        scheduled_at: datetime | None = None,
    ) -> Notification | None:
        """Insert a pending notification row; delivery happens elsewhere.

        Failures are logged and swallowed so the caller's request never fails
        because a notification could not be queued.
        """

        settings = get_settings()
        try:
            notification = Notification(
                entity_type=entity_type,
                entity_id=str(entity_id),
                template_id=template_id,
                channel=channel or settings.notification_channel,
                status="pending",
                variables=variables or {},
                recipient_address=recipient_address,
                scheduled_at=scheduled_at or datetime.now(timezone.utc),
            )
            session.add(notification)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            observe_notification_queued(template_id, "failed")
            logger.exception(
                "notification_queue_failed",
                extra={"entity_type": entity_type, "entity_id": str(entity_id), "template_id": template_id, "error": str(exc)},
            )
            return None

        observe_notification_queued(template_id, "queued")
        logger.info(
            "notification_queued",
            extra={"notification_id": notification.id, "template_id": template_id, "entity_id": str(entity_id)},
        )
        if settings.notifications_async_dispatch:
            self._dispatch_async(notification.id)
        return notification

    def queue_lead_creation_notification(self, session: Session, lead: Lead) -> Notification | None:
        if not lead.id:
            return None
        return self.queue_notification(
            session,
            entity_type="lead",
            entity_id=lead.id,
            template_id=get_settings().lead_creation_template_id,
            variables={"lead_name": lead.name or ""},
            recipient_address=lead.phone,
        )

    def queue_lead_lost_notification(self, session: Session, lead: Lead) -> Notification | None:
        if not lead.id:
            return None
        return self.queue_notification(
            session,
            entity_type="lead",
            entity_id=lead.id,
            template_id=get_settings().lead_lost_template_id,
            variables={"lead_name": lead.name or "", "lost_reason": lead.lost_reason or ""},
            recipient_address=lead.phone,
        )

    def update_status(self, session: Session, notification_id: str, status: str) -> Notification | None:
        if status not in NOTIFICATION_STATUSES:
            raise ValueError(f"invalid notification status: {status}")
        notification = session.get(Notification, notification_id)
        if notification is None:
            return None
        notification.status = status
        if status == "sent":
            notification.sent_at = datetime.now(timezone.utc)
        session.commit()
        return notification

    def list_for_entity(self, session: Session, entity_type: str, entity_id: str) -> list[Notification]:
        return (
            session.query(Notification)
            .filter(Notification.entity_type == entity_type, Notification.entity_id == str(entity_id))
            .order_by(Notification.created_at.asc())
            .all()
        )

    @staticmethod
    def _dispatch_async(notification_id: str) -> None:
        # Fire-and-forget: the request never waits on delivery.
        try:
            celery_app.send_task(DISPATCH_NOTIFICATION_TASK, args=[notification_id])
        except Exception as exc:
            logger.exception("notification_dispatch_failed", extra={"notification_id": notification_id, "error": str(exc)})


notification_service = NotificationService()
