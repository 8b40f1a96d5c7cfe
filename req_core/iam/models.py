# req_core/iam/models.py
import uuid

from django.conf import settings
from django.db import models

from req_core.common.permissions import (
    ROLE_ACCOUNTS,
    ROLE_ADMIN,
    ROLE_AUDITOR,
    ROLE_CHAIRMAN,
    ROLE_FINANCE,
    ROLE_LAB,
    ROLE_PHARMACY,
    ROLE_READONLY,
)


class UserRole(models.TextChoices):
    LAB = ROLE_LAB, "Laboratory"
    PHARMACY = ROLE_PHARMACY, "Pharmacy / Store"
    AUDITOR = ROLE_AUDITOR, "Internal Audit"
    CHAIRMAN = ROLE_CHAIRMAN, "Chairman"
    FINANCE = ROLE_FINANCE, "Head of Finance"
    ACCOUNTS = ROLE_ACCOUNTS, "Accounts"
    ADMIN = ROLE_ADMIN, "Administrator"
    READONLY = ROLE_READONLY, "Read only"


class UserProfile(models.Model):
    """
    Requisition identity anchored to Django's AUTH_USER_MODEL.
    One workflow role per user.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="req_profile")
    display_name = models.CharField(max_length=150)
    role = models.CharField(max_length=16, choices=UserRole.choices, default=UserRole.READONLY, db_index=True)
    department = models.CharField(max_length=120, blank=True, default="")
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "iam_user_profile"
        indexes = [
            models.Index(fields=["role", "is_active"]),
        ]

    def __str__(self) -> str:
        return f"{self.display_name} ({self.role})"
