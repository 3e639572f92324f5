"""QR bundle domain model.

A bundle is a named, access-controlled collection of documents exposed
through a single QR code. It carries two sub-records:

  - ``AccessControl``: visibility, passcode, time window and view quota.
  - ``ApprovalRecord``: the approval workflow state.

Identity:
  ``id`` is the internal storage key and never appears on public endpoints.
  ``public_id`` (uuid4) is the only identifier encoded in the QR URL. It is
  assigned once and never changes.

Invariants:
  - ``document_ids`` holds no duplicates (checked at write time).
  - ``current_views <= max_views`` whenever ``max_views > 0``.
  - ``passcode`` is only meaningful while ``has_passcode`` is True.

This module provides:
  1. ``Bundle``, ``AccessControl``, ``ApprovalRecord``, ``ApprovalStatus``.
  2. ``BundleDraft``: validated create request.
  3. ``DocumentInfo``: display metadata resolved from the document catalog.
  4. ``AdmitResult``: outcome of the atomic view admission.
  5. ``document_set_key`` / ``validate_document_ids`` helpers.
  6. ``generate_public_id``.
"""

from __future__ import annotations

import enum
import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

from ..errors import ValidationError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enums ────────────────────────────────────────────────────────────


class ApprovalStatus(str, enum.Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    PUBLISHED = 'published'


# Statuses under which an approval-gated bundle may be disclosed.
RELEASED_STATUSES = frozenset({ApprovalStatus.APPROVED, ApprovalStatus.PUBLISHED})


# ── Helpers ──────────────────────────────────────────────────────────


def generate_public_id() -> str:
    """Return a fresh, globally unique public id."""
    return str(uuid.uuid4())


def validate_document_ids(document_ids: Sequence[str]) -> tuple[str, ...]:
    """Return ``document_ids`` as a tuple, rejecting duplicates.

    Raises:
        ValidationError: If any document id appears more than once.
    """
    ids = tuple(str(d) for d in document_ids)
    if len(set(ids)) != len(ids):
        raise ValidationError('Duplicate documents are not allowed in a QR bundle.')
    return ids


def document_set_key(document_ids: Iterable[str]) -> str:
    """Order-independent digest of a document set.

    Two bundles share a key exactly when they reference the same set of
    documents, regardless of order.
    """
    joined = '\n'.join(sorted(set(str(d) for d in document_ids)))
    return hashlib.sha256(joined.encode('utf-8')).hexdigest()


# ── Sub-records ──────────────────────────────────────────────────────


@dataclass
class AccessControl:
    """Access-control settings of a bundle.

    ``max_views == 0`` means unlimited.
    """

    is_public: bool = False
    has_passcode: bool = False
    passcode: str | None = None
    show_lock_status: bool = False
    expiry_date: datetime | None = None
    publish_date: datetime | None = None
    max_views: int = 0
    current_views: int = 0


@dataclass
class ApprovalRecord:
    """Approval workflow state. Bundles that need no review are published."""

    required: bool = False
    status: ApprovalStatus = ApprovalStatus.PUBLISHED
    approver: str | None = None
    approval_date: datetime | None = None
    notes: str = ''


# ── Bundle ───────────────────────────────────────────────────────────


@dataclass
class Bundle:
    """QR bundle aggregate.

    Attributes:
        id: Internal storage key (assigned by the repository).
        public_id: Externally visible identifier encoded in the QR URL.
        title: Display title.
        creator_id: User who created the bundle.
        document_ids: Ordered document references, no duplicates.
        access: Access-control sub-record.
        approval: Approval sub-record.
        qr_image_url: Where the rendered QR image is stored.
        signature: HMAC signature of ``public_id``.
    """

    id: str
    public_id: str
    title: str
    creator_id: str
    description: str = ''
    custom_message: str = ''
    organization_id: str | None = None
    department_id: str | None = None
    document_ids: tuple[str, ...] = ()
    access: AccessControl = field(default_factory=AccessControl)
    approval: ApprovalRecord = field(default_factory=ApprovalRecord)
    qr_image_url: str | None = None
    signature: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def document_set_key(self) -> str:
        return document_set_key(self.document_ids)

    def to_dict(self, *, include_passcode: bool = True) -> dict[str, Any]:
        """Management representation. The passcode is omitted unless requested."""
        access = self.access
        approval = self.approval
        return {
            'id': self.id,
            'public_id': self.public_id,
            'title': self.title,
            'description': self.description,
            'custom_message': self.custom_message,
            'creator_id': self.creator_id,
            'organization_id': self.organization_id,
            'department_id': self.department_id,
            'document_ids': list(self.document_ids),
            'access_control': {
                'is_public': access.is_public,
                'has_passcode': access.has_passcode,
                'passcode': access.passcode if include_passcode and access.has_passcode else None,
                'show_lock_status': access.show_lock_status,
                'expiry_date': _iso(access.expiry_date),
                'publish_date': _iso(access.publish_date),
                'max_views': access.max_views,
                'current_views': access.current_views,
            },
            'approval': {
                'required': approval.required,
                'status': approval.status.value,
                'approver': approval.approver,
                'approval_date': _iso(approval.approval_date),
                'notes': approval.notes,
            },
            'qr_image_url': self.qr_image_url,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


@dataclass(frozen=True)
class BundleDraft:
    """Validated contents of a create request, before persistence."""

    title: str
    document_ids: tuple[str, ...]
    description: str = ''
    custom_message: str = ''
    organization_id: str | None = None
    department_id: str | None = None
    is_public: bool = False
    has_passcode: bool = False
    show_lock_status: bool = False
    expiry_date: datetime | None = None
    publish_date: datetime | None = None
    max_views: int = 0
    requires_approval: bool = False


@dataclass(frozen=True, slots=True)
class DocumentInfo:
    """Display metadata for a document, as resolved by the catalog."""

    id: str
    name: str
    file_type: str = ''
    description: str = ''
    storage_key: str = ''
    url: str = ''
    tags: tuple[str, ...] = ()
    uploaded_by: str | None = None
    organization_id: str | None = None
    department_id: str | None = None

    def to_public_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'file_type': self.file_type,
            'description': self.description,
            'tags': list(self.tags),
        }


@dataclass(frozen=True, slots=True)
class AdmitResult:
    """Outcome of ``admit_view``: whether the view counted, and the count."""

    admitted: bool
    new_count: int


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
