# req_core/requisitions/events.py
from __future__ import annotations

import logging
from typing import Any, Dict

from django.db import DatabaseError

from req_core.common.errors import NotificationError
from req_core.common.events import subscribers

logger = logging.getLogger(__name__)

STAGE_CHANGED = "requisition.stage_changed"
REMINDER_SENT = "requisition.reminder_sent"
PAYMENT_RECORDED = "requisition.payment_recorded"

# Failures a subscriber may hit while delivering; the write they follow is already committed.
DELIVERY_ERRORS = (NotificationError, DatabaseError)


def emit(event_name: str, payload: Dict[str, Any]) -> None:
    """
    Publish after a committed write. Each subscriber runs on its own, and
    delivery failures are logged and never undo the write that triggered them.
    """
    for handler in subscribers(event_name):
        try:
            handler(payload)
        except DELIVERY_ERRORS:
            logger.error(
                "Notification dispatch failed for %s on %s (%s)",
                event_name,
                payload.get("requisition_id"),
                getattr(handler, "__name__", handler),
                exc_info=True,
            )
