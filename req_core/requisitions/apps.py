# req_core/requisitions/apps.py
from __future__ import annotations

from django.apps import AppConfig


class RequisitionsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "req_core.requisitions"
