# req_core/notifications/apps.py
from __future__ import annotations

from django.apps import AppConfig


class NotificationsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "req_core.notifications"

    def ready(self) -> None:
        # registers workflow event handlers
        from req_core.notifications import subscribers  # noqa: F401
