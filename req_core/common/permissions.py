# req_core/common/permissions.py

from __future__ import annotations

from typing import Set

from rest_framework.permissions import BasePermission, SAFE_METHODS

# Role names. Stored on the user profile; Django auth Group names are honoured too.
ROLE_ADMIN = "ADMIN"
ROLE_CHAIRMAN = "CHAIRMAN"
ROLE_AUDITOR = "AUDITOR"
ROLE_PHARMACY = "PHARMACY"  # doubles as the store role
ROLE_LAB = "LAB"
ROLE_FINANCE = "FINANCE"
ROLE_ACCOUNTS = "ACCOUNTS"
ROLE_READONLY = "READONLY"

ALL_ROLES = {
    ROLE_ADMIN,
    ROLE_CHAIRMAN,
    ROLE_AUDITOR,
    ROLE_PHARMACY,
    ROLE_LAB,
    ROLE_FINANCE,
    ROLE_ACCOUNTS,
    ROLE_READONLY,
}


def _user_roles(user) -> Set[str]:
    """
    Resolve roles from:
    1) the requisition profile (user.req_profile.role)
    2) Django groups: user.groups

    Returns set of role strings.

    Default behavior:
    - If authenticated user has no roles/groups, treat them as READONLY.
    """
    roles: Set[str] = set()

    if not user or not getattr(user, "is_authenticated", False):
        return roles

    # Superuser treated as admin
    if getattr(user, "is_superuser", False):
        roles.add(ROLE_ADMIN)
        return roles

    profile = getattr(user, "req_profile", None)
    if profile is not None and profile.is_active and profile.role:
        roles.add(str(profile.role))

    if hasattr(user, "groups"):
        roles.update(name for name in user.groups.values_list("name", flat=True) if name in ALL_ROLES)

    if not roles:
        roles.add(ROLE_READONLY)

    return roles


class BaseRolePermission(BasePermission):
    """
    Base permission class for role-based access control.

    Key behavior:
    - Requires authentication.
    - ADMIN bypass.
    - Uses allowed_roles_per_action for coarse RBAC; stage-level rules
      are enforced by the workflow engine, not here.
    - If action is unknown and request is SAFE, fall back to list/retrieve.
    """
    message = "You do not have permission to perform this action."

    # Override in subclasses: dict of action -> set of allowed roles
    allowed_roles_per_action: dict[str, Set[str]] = {
        "list": ALL_ROLES,
        "retrieve": ALL_ROLES,
    }

    def _infer_action(self, request, view) -> str | None:
        action = getattr(view, "action", None)
        if action:
            return action

        kwargs = getattr(view, "kwargs", {}) or {}
        is_detail = "pk" in kwargs or "id" in kwargs

        method = request.method.upper()
        if method in ("GET", "HEAD", "OPTIONS"):
            return "retrieve" if is_detail else "list"
        if method == "POST":
            return "create"
        return None

    def has_permission(self, request, view) -> bool:
        user = request.user
        if not user or not getattr(user, "is_authenticated", False):
            return False

        roles = _user_roles(user)

        if ROLE_ADMIN in roles:
            return True

        action = self._infer_action(request, view)
        allowed = self.allowed_roles_per_action.get(action)

        if allowed is None and request.method in SAFE_METHODS:
            kwargs = getattr(view, "kwargs", {}) or {}
            is_detail = "pk" in kwargs or "id" in kwargs
            allowed = self.allowed_roles_per_action.get("retrieve" if is_detail else "list")

        if allowed is not None:
            return bool(roles & allowed)

        # Unknown action => deny by default
        return False

    def has_object_permission(self, request, view, obj) -> bool:
        return self.has_permission(request, view)


class RequisitionPermission(BaseRolePermission):
    """
    Anyone signed in may view. Mutating endpoints are open to workflow
    roles; whether the actor may act *now* is the gate's decision.
    """
    WORKFLOW_ROLES = {ROLE_CHAIRMAN, ROLE_AUDITOR, ROLE_PHARMACY, ROLE_LAB, ROLE_FINANCE}

    allowed_roles_per_action = {
        "list": ALL_ROLES,
        "retrieve": ALL_ROLES,
        "inbox": ALL_ROLES,
        "legal_actions": ALL_ROLES,
        "printable": ALL_ROLES,
        "duplicates": ALL_ROLES,
        "create": {ROLE_LAB, ROLE_PHARMACY},
        "begin_action": WORKFLOW_ROLES,
        "attachments": WORKFLOW_ROLES | {ROLE_ACCOUNTS},
        "uploads": WORKFLOW_ROLES | {ROLE_ACCOUNTS},
        "remind": {ROLE_LAB, ROLE_PHARMACY},
        "payments": ALL_ROLES,
    }

    def has_permission(self, request, view) -> bool:
        # Payments are readable by all, recordable only by accounts.
        if getattr(view, "action", None) == "payments" and request.method not in SAFE_METHODS:
            roles = _user_roles(request.user)
            return bool(roles & {ROLE_ADMIN, ROLE_ACCOUNTS})
        return super().has_permission(request, view)
