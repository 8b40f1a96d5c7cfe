# req_core/common/errors.py
"""
Workflow error taxonomy.

Every error carries an ``outcome`` so callers can tell
"nothing happened, fix your input" apart from
"your action may have partially applied, please verify".
They are DRF APIExceptions, so they flow through the global
exception handler and land in the standard error envelope.
"""
from __future__ import annotations

from typing import Any

from rest_framework import status
from rest_framework.exceptions import APIException

NOT_APPLIED = "not_applied"
MAY_HAVE_APPLIED = "may_have_applied"


class WorkflowError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request failed."
    default_code = "workflow_error"
    outcome = NOT_APPLIED

    def __init__(self, detail=None, code=None, *, details: dict[str, Any] | None = None):
        super().__init__(detail=detail or self.default_detail, code=code or self.default_code)
        self.details = details or {}

    @property
    def message(self) -> str:
        return str(self.detail)


class ValidationError(WorkflowError):
    """Input rejected before any state mutation."""
    default_detail = "Invalid input. Nothing was changed; correct it and try again."
    default_code = "validation_error"


class AuthorizationError(WorkflowError):
    """Actor is not permitted to take this action at the current stage."""
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You are not permitted to take this action. Nothing was changed."
    default_code = "authorization_error"


class NotFoundError(WorkflowError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"


class ConflictError(WorkflowError):
    """
    409 Conflict: the stored requisition moved on since it was read.
    Retry against the freshest state.
    """
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The requisition was changed by someone else. Nothing was saved; reload and try again."
    default_code = "conflict"


class PersistenceError(WorkflowError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "persistence_error"

    def __init__(self, detail=None, code=None, *, partial: bool = False, details: dict[str, Any] | None = None):
        self.partial = partial
        if detail is None:
            detail = (
                "Saving failed part-way. Your action may have partially applied; reload and verify before retrying."
                if partial
                else "Saving failed. Nothing was changed; please try again."
            )
        super().__init__(detail=detail, code=code, details=details)

    @property
    def outcome(self) -> str:  # type: ignore[override]
        return MAY_HAVE_APPLIED if self.partial else NOT_APPLIED


class NotificationError(WorkflowError):
    """Delivery failed. Logged by the caller, never rolls back a committed transition."""
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Notification delivery failed."
    default_code = "notification_error"
