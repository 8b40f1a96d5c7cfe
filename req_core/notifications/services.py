# req_core/notifications/services.py
from __future__ import annotations

import logging
from typing import Iterable, Protocol

from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone
from django.utils.module_loading import import_string

from req_core.common.errors import NotificationError, NotFoundError
from req_core.notifications.models import Notification, Severity

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(
        self,
        recipient_id: int,
        title: str,
        body: str,
        related_id: str = "",
        severity: str = Severity.INFO,
    ) -> None: ...


class InAppNotifier:
    """Writes Notification rows; a failed write surfaces as NotificationError."""

    def notify(
        self,
        recipient_id: int,
        title: str,
        body: str,
        related_id: str = "",
        severity: str = Severity.INFO,
    ) -> None:
        try:
            # savepoint: a failed insert must not poison an enclosing transaction
            with transaction.atomic():
                Notification.objects.create(
                    recipient_id=recipient_id,
                    title=title,
                    body=body,
                    severity=severity,
                    related_requisition_id=related_id or "",
                )
        except DatabaseError as exc:
            raise NotificationError(f"Could not deliver '{title}' to user {recipient_id}.") from exc


def get_notifier() -> Notifier:
    return import_string(settings.REQUISITION_NOTIFIER)()


def notify_many(
    recipient_ids: Iterable[int],
    *,
    title: str,
    body: str,
    related_id: str = "",
    severity: str = Severity.INFO,
    notifier: Notifier | None = None,
) -> int:
    """
    Deliver to every recipient. One failed delivery does not stop the rest;
    the first failure is re-raised once all were attempted.
    """
    notifier = notifier or get_notifier()
    delivered = 0
    first_error: NotificationError | None = None
    for uid in dict.fromkeys(recipient_ids):
        try:
            notifier.notify(uid, title, body, related_id=related_id, severity=severity)
            delivered += 1
        except NotificationError as exc:
            logger.warning("Notification '%s' to user %s failed", title, uid)
            first_error = first_error or exc
    if first_error is not None:
        raise first_error
    return delivered


class NotificationService:
    @staticmethod
    def mark_read(*, user_id: int, notification_id: int) -> Notification:
        notif = Notification.objects.filter(id=notification_id, recipient_id=user_id).first()
        if notif is None:
            raise NotFoundError("Notification was not found.")
        notif.mark_read()
        notif.save(update_fields=["is_read", "read_at", "updated_at"])
        return notif

    @staticmethod
    def mark_all_read(*, user_id: int) -> int:
        return Notification.objects.filter(recipient_id=user_id, is_read=False).update(
            is_read=True,
            read_at=timezone.now(),
        )
