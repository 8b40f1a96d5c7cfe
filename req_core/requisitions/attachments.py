# req_core/requisitions/attachments.py
from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Any, Iterable, Mapping

from django.core.files.base import ContentFile, File
from django.core.files.storage import Storage, default_storage
from django.utils.text import get_valid_filename

from req_core.common.errors import ValidationError
from req_core.requisitions.domain import AttachmentRef, Requisition
from req_core.requisitions.models import Attachment

logger = logging.getLogger(__name__)

MAX_ATTACHMENT_BYTES = 20 * 1024 * 1024


def owner_prefix(uploaded_by_id: int | None) -> str:
    """Storage folder of one uploader; references outside it are not theirs to name."""
    return f"requisitions/{uploaded_by_id if uploaded_by_id is not None else 'system'}/"


class AttachmentStore:
    """
    Named blob storage on top of Django's storage API.
    References are opaque to the workflow engine.
    """

    def __init__(self, storage: Storage | None = None):
        self.storage = storage or default_storage

    def put(self, *, name: str, content: Any, content_type: str = "", uploaded_by_id: int | None = None) -> AttachmentRef:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Attachment name is required.")

        if isinstance(content, (bytes, bytearray)):
            content = ContentFile(bytes(content))
        elif not isinstance(content, File):
            raise ValidationError("Attachment content must be a file or bytes.")

        size = getattr(content, "size", None)
        if size is not None and size > MAX_ATTACHMENT_BYTES:
            raise ValidationError(f"{name} is larger than {MAX_ATTACHMENT_BYTES // (1024 * 1024)} MB.")

        path = self.storage.save(f"{owner_prefix(uploaded_by_id)}{uuid.uuid4().hex}/{get_valid_filename(name)}", content)
        logger.info("Stored attachment %s at %s", name, path)
        return AttachmentRef(
            name=name,
            reference=path,
            content_type=content_type or getattr(content, "content_type", "") or "application/octet-stream",
            uploaded_by_id=uploaded_by_id,
        )

    def is_resolved(self, reference: str) -> bool:
        return bool(reference) and self.storage.exists(reference)

    @staticmethod
    def is_owned_by(reference: str, uploaded_by_id: int | None) -> bool:
        return uploaded_by_id is not None and reference.startswith(owner_prefix(uploaded_by_id))

    def open(self, reference: str):
        return self.storage.open(reference, "rb")

    def url(self, reference: str) -> str:
        return self.storage.url(reference)


def parse_refs(
    raw: Iterable[Mapping[str, Any]] | None,
    *,
    uploaded_by_id: int | None = None,
) -> tuple[AttachmentRef, ...]:
    """Read client refs; ``uploaded_by_id`` replaces whatever uploader the client claimed."""
    refs = tuple(AttachmentRef.from_dict(r) for r in (raw or ()))
    if uploaded_by_id is None:
        return refs
    return tuple(replace(r, uploaded_by_id=uploaded_by_id) for r in refs)


def ensure_attachable(
    refs: tuple[AttachmentRef, ...],
    *,
    requisition: Requisition | None,
    store: AttachmentStore,
    uploader_id: int | None,
) -> None:
    """
    Every named attachment must be an upload of ``uploader_id`` that has
    finished and is not attached anywhere yet. Names stay unique within
    the requisition.
    """
    existing = {a.name for a in requisition.attachments} if requisition else set()
    seen: set[str] = set()
    for ref in refs:
        if not ref.name:
            raise ValidationError("Attachment name is required.")
        if ref.name in existing or ref.name in seen:
            raise ValidationError(f"An attachment named {ref.name!r} already exists on this requisition.")
        if not store.is_resolved(ref.reference):
            raise ValidationError(f"Attachment {ref.name!r} has not finished uploading. Nothing was changed.")
        if not store.is_owned_by(ref.reference, uploader_id):
            raise ValidationError(f"Attachment {ref.name!r} was not uploaded by you. Nothing was changed.")
        if Attachment.objects.filter(reference=ref.reference).exists():
            raise ValidationError(f"Attachment {ref.name!r} is already attached to a requisition.")
        seen.add(ref.name)
