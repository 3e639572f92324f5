"""Dedup resolver: find-or-create for QR bundles.

Sharing the same documents again should hand back the QR code that already
exists instead of minting a new one. Reuse applies only to the plainest
bundles:

Request side (``is_reuse_eligible``):
  public, no passcode, no expiry, unlimited views, no approval required,
  at least one document.

Stored side (``is_reusable``):
  same creator, same document set (order independent), public, no passcode,
  no expiry, unlimited views, status published or approved.

On a match the existing bundle is touched (``updated_at``, and the custom
message when the new request carries one) and returned with
``reused=True``; no signature or image is produced. On a miss a new bundle
gets a fresh public id, its signature, and a rendered and stored QR image,
and is then persisted in a single write.

Concurrency: at-least-one-wins. Two concurrent first shares of the same set
may both miss and both create. Nothing breaks; the set simply has two QR
codes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from ...observability.logging import get_logger
from ...observability.metrics import QR_BUNDLES_CREATED_TOTAL
from ..errors import InternalError
from .model import (
    AccessControl,
    ApprovalRecord,
    ApprovalStatus,
    Bundle,
    BundleDraft,
    RELEASED_STATUSES,
    document_set_key,
    generate_public_id,
)
from .passcode import generate_passcode

if TYPE_CHECKING:
    from ..protocols import BundleRepository
    from ..security.signing import SignatureService
    from .qr_image import QRArtifactPublisher

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ResolveResult:
    bundle: Bundle
    reused: bool


def is_reuse_eligible(draft: BundleDraft) -> bool:
    return (
        draft.is_public
        and not draft.has_passcode
        and draft.expiry_date is None
        and draft.max_views == 0
        and not draft.requires_approval
        and len(draft.document_ids) > 0
    )


def is_reusable(bundle: Bundle, creator_id: str, set_key: str) -> bool:
    access = bundle.access
    return (
        bundle.creator_id == creator_id
        and bundle.document_set_key == set_key
        and access.is_public
        and not access.has_passcode
        and access.expiry_date is None
        and access.max_views == 0
        and bundle.approval.status in RELEASED_STATUSES
    )


class DedupResolver:
    """Finds a reusable bundle or creates a new one."""

    def __init__(
        self,
        repo: BundleRepository,
        signer: SignatureService,
        publisher: QRArtifactPublisher,
        *,
        public_base_url: str,
        clock: Callable[[], datetime],
    ) -> None:
        self._repo = repo
        self._signer = signer
        self._publisher = publisher
        self._public_base_url = public_base_url
        self._clock = clock

    async def resolve(self, creator_id: str, draft: BundleDraft) -> ResolveResult:
        if is_reuse_eligible(draft):
            existing = await self._find_reusable(creator_id, draft)
            if existing is not None:
                touched = await self._repo.touch(
                    existing.id, custom_message=draft.custom_message or None,
                )
                if touched is not None:
                    QR_BUNDLES_CREATED_TOTAL.labels(reused='true').inc()
                    logger.info(
                        'qr_bundle_reused',
                        bundle_id=touched.id,
                        public_id=touched.public_id,
                        creator_id=creator_id,
                    )
                    return ResolveResult(bundle=touched, reused=True)

        bundle = await self._create(creator_id, draft)
        QR_BUNDLES_CREATED_TOTAL.labels(reused='false').inc()
        return ResolveResult(bundle=bundle, reused=False)

    async def _find_reusable(self, creator_id: str, draft: BundleDraft) -> Bundle | None:
        set_key = document_set_key(draft.document_ids)
        candidates = await self._repo.find_by_document_set(creator_id, set_key)
        for candidate in candidates:
            if is_reusable(candidate, creator_id, set_key):
                return candidate
        return None

    async def _create(self, creator_id: str, draft: BundleDraft) -> Bundle:
        now = self._clock()
        public_id = generate_public_id()
        signature = self._signer.sign(public_id)
        qr_image_url = await self._publisher.publish(
            public_id, self._signer.payload_url(self._public_base_url, public_id),
        )

        if draft.requires_approval:
            approval = ApprovalRecord(required=True, status=ApprovalStatus.PENDING)
        else:
            approval = ApprovalRecord(required=False, status=ApprovalStatus.PUBLISHED)

        bundle = Bundle(
            id='',
            public_id=public_id,
            title=draft.title,
            creator_id=creator_id,
            description=draft.description,
            custom_message=draft.custom_message,
            organization_id=draft.organization_id,
            department_id=draft.department_id,
            document_ids=draft.document_ids,
            access=AccessControl(
                is_public=draft.is_public,
                has_passcode=draft.has_passcode,
                passcode=generate_passcode() if draft.has_passcode else None,
                show_lock_status=draft.show_lock_status,
                expiry_date=draft.expiry_date,
                publish_date=draft.publish_date or now,
                max_views=draft.max_views,
            ),
            approval=approval,
            qr_image_url=qr_image_url,
            signature=signature,
            created_at=now,
            updated_at=now,
        )
        try:
            created = await self._repo.create(bundle)
        except Exception as exc:
            logger.exception('qr_bundle_persist_failed', public_id=public_id)
            raise InternalError('Failed to save QR bundle.') from exc
        logger.info(
            'qr_bundle_created',
            bundle_id=created.id,
            public_id=public_id,
            creator_id=creator_id,
            documents=len(created.document_ids),
            requires_approval=draft.requires_approval,
        )
        return created
