# req_core/iam/identity.py
from __future__ import annotations

from dataclasses import dataclass

from django.conf import settings
from django.contrib.auth import get_user_model

from req_core.common.errors import AuthorizationError
from req_core.common.permissions import ROLE_ADMIN, ROLE_AUDITOR, ROLE_READONLY


@dataclass(frozen=True)
class Actor:
    """
    The acting user as the workflow engine sees it.
    """
    user_id: int
    username: str
    display_name: str
    role: str
    department: str = ""
    is_second_auditor: bool = False


def second_auditor_username() -> str:
    return (settings.REQUISITION_WORKFLOW.get("SECOND_AUDITOR_USERNAME") or "").strip()


def actor_for_user(user) -> Actor:
    if not user or not getattr(user, "is_authenticated", False):
        raise AuthorizationError("Sign in to act on requisitions.")

    profile = getattr(user, "req_profile", None)
    if profile is not None and not profile.is_active:
        raise AuthorizationError("Your profile is inactive.")

    if profile is not None:
        role = profile.role
        display_name = profile.display_name
        department = profile.department
    else:
        role = ROLE_ADMIN if user.is_superuser else ROLE_READONLY
        display_name = user.get_full_name() or user.get_username()
        department = ""

    username = user.get_username()
    return Actor(
        user_id=user.pk,
        username=username,
        display_name=display_name,
        role=role,
        department=department,
        is_second_auditor=role == ROLE_AUDITOR and bool(username) and username == second_auditor_username(),
    )


def actor_for_user_id(user_id: int) -> Actor:
    User = get_user_model()
    user = User.objects.select_related("req_profile").get(pk=user_id)
    return actor_for_user(user)


def user_ids_for_role(role: str, *, second_auditor: bool | None = None) -> list[int]:
    """
    Active users holding ``role``. For auditors, ``second_auditor`` narrows
    the result to (True) or away from (False) the designated second auditor.
    """
    User = get_user_model()
    qs = User.objects.filter(is_active=True, req_profile__is_active=True, req_profile__role=role)
    if second_auditor is not None:
        username_field = User.USERNAME_FIELD
        designated = second_auditor_username()
        if second_auditor:
            qs = qs.filter(**{username_field: designated})
        else:
            qs = qs.exclude(**{username_field: designated})
    return list(qs.order_by("pk").values_list("pk", flat=True))
