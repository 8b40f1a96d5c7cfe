# req_core/iam/signatures.py
"""
Signature artifacts attached to ledger entries.

DRAWN  - a hand-drawn image sent as a ``data:image/...`` URL.
STAMP  - a textual stamp minted only after the user re-enters their password;
         signed with Django's signing framework and bound to the user id.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from django.conf import settings
from django.core import signing
from django.utils import timezone

from req_core.common.errors import AuthorizationError, ValidationError
from req_core.iam.identity import Actor, actor_for_user

DRAWN = "DRAWN"
STAMP = "STAMP"

STAMP_SALT = "req_core.iam.signature-stamp"
MIN_DRAWN_LENGTH = 64
MAX_DRAWN_LENGTH = 2_000_000


@dataclass(frozen=True)
class SignatureArtifact:
    kind: str
    data: str

    def as_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "data": self.data}

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "SignatureArtifact | None":
        if not raw:
            return None
        return cls(kind=str(raw.get("kind") or ""), data=str(raw.get("data") or ""))


def _stamp_max_age() -> int:
    return int(settings.REQUISITION_WORKFLOW.get("STAMP_MAX_AGE", 300))


def mint_stamp(user, password: str) -> SignatureArtifact:
    """
    Re-verify the password and mint a stamp for this user.
    This is the only use of password re-verification in the system.
    """
    if not password or not user.check_password(password):
        raise AuthorizationError("Password verification failed. No signature was created.")

    actor = actor_for_user(user)
    payload = {
        "uid": actor.user_id,
        "name": actor.display_name,
        "role": actor.role,
        "at": timezone.now().isoformat(),
    }
    return SignatureArtifact(kind=STAMP, data=signing.dumps(payload, salt=STAMP_SALT))


def read_stamp(artifact: SignatureArtifact, *, max_age: int | None = None) -> dict[str, Any]:
    try:
        return signing.loads(artifact.data, salt=STAMP_SALT, max_age=max_age)
    except signing.SignatureExpired:
        raise ValidationError("Signature stamp has expired. Re-enter your password to sign again.")
    except signing.BadSignature:
        raise ValidationError("Signature stamp is not valid.")


def verify_artifact(artifact: SignatureArtifact | None, *, actor: Actor) -> SignatureArtifact:
    if artifact is None or not artifact.data:
        raise ValidationError("A signature is required to confirm this action.")

    if artifact.kind == DRAWN:
        data = artifact.data
        if not data.startswith("data:image/") or ";base64," not in data:
            raise ValidationError("Drawn signature must be an image data URL.")
        if not (MIN_DRAWN_LENGTH <= len(data) <= MAX_DRAWN_LENGTH):
            raise ValidationError("Drawn signature is empty or too large.")
        return artifact

    if artifact.kind == STAMP:
        payload = read_stamp(artifact, max_age=_stamp_max_age())
        if payload.get("uid") != actor.user_id:
            raise AuthorizationError("Signature stamp belongs to another user.")
        return artifact

    raise ValidationError(f"Unknown signature kind: {artifact.kind!r}.")


def stamp_text(artifact: SignatureArtifact) -> str:
    """Human-readable stamp for printable output; no expiry check."""
    payload = read_stamp(artifact)
    return f"Digitally signed by {payload.get('name')} ({payload.get('role')}) at {payload.get('at')}"
