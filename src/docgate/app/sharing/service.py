"""Sharing service: orchestration of the access-control engine.

Public scan flow (``scan``)::

    signature verify ─► lookup ─► accessibility gate ─► passcode gate
        ─► resolve documents ─► admit view ─► full payload

Every attempt against a known bundle is recorded as a ScanEvent, failed
ones included. The specific reason a bundle is inaccessible is logged here
and never returned: callers always get the same generic 403.

Ordering guarantees:
  - Documents are resolved before the view is admitted, so a failed lookup
    never burns a view.
  - Success events are written only after admission.
  - A failed passcode never reaches the view counter.

Management operations (create, update, approve, ...) derive the caller's
relation to the bundle once and check a single capability.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Mapping

from ...observability.logging import get_logger
from ...observability.metrics import QR_ACCESS_DENIED_TOTAL
from ..errors import (
    Forbidden,
    InternalError,
    InvalidSignature,
    NotFound,
    Unauthorized,
    ValidationError,
)
from ..security.permissions import (
    Capability,
    Relation,
    Role,
    capabilities_for,
    relation_to_bundle,
    relation_to_document,
    require_capability,
)
from .accessibility import Accessibility, evaluate
from .audit import ClientContext, ScanAction, ScanEventRecorder
from .dedup import DedupResolver, ResolveResult
from .model import (
    ApprovalStatus,
    Bundle,
    BundleDraft,
    DocumentInfo,
    validate_document_ids,
)
from .passcode import PasscodeGate, generate_passcode, locked_summary, normalize_passcode
from .qr_image import QRArtifactPublisher
from .view_counter import ViewCounter

if TYPE_CHECKING:
    from ..protocols import (
        BundleRepository,
        DocumentCatalog,
        Notifier,
        ObjectStorage,
        ScanEventStore,
    )
    from ..security.identity import CallerIdentity
    from ..security.signing import SignatureService

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100

# Fields a PATCH may carry. current_views is deliberately absent.
_METADATA_FIELDS = ('title', 'description', 'custom_message')
_ACCESS_FIELDS = ('is_public', 'expiry_date', 'publish_date', 'max_views', 'show_lock_status')
_PASSCODE_FIELDS = ('has_passcode', 'passcode')


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Page:
    items: list[dict[str, Any]]
    page: int
    limit: int
    has_next: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            'items': self.items,
            'page': self.page,
            'limit': self.limit,
            'has_next': self.has_next,
        }


def _check_page(page: int, limit: int) -> None:
    if page < 1:
        raise ValidationError('page must be >= 1.')
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f'limit must be between 1 and {MAX_PAGE_SIZE}.')


def full_payload(bundle: Bundle, documents: list[DocumentInfo], current_views: int) -> dict[str, Any]:
    """Public payload once every gate has passed."""
    access = bundle.access
    return {
        'public_id': bundle.public_id,
        'title': bundle.title,
        'description': bundle.description,
        'custom_message': bundle.custom_message,
        'has_passcode': access.has_passcode,
        'documents': [d.to_public_dict() for d in documents],
        'current_views': current_views,
        'max_views': access.max_views,
        'expiry_date': access.expiry_date.isoformat() if access.expiry_date else None,
    }


class SharingService:
    """Entry point for every bundle operation, public and management."""

    def __init__(
        self,
        *,
        repo: BundleRepository,
        scan_events: ScanEventStore,
        signer: SignatureService,
        catalog: DocumentCatalog,
        storage: ObjectStorage,
        notifier: Notifier,
        public_base_url: str,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repo = repo
        self._signer = signer
        self._catalog = catalog
        self._notifier = notifier
        self._clock = clock
        self._recorder = ScanEventRecorder(scan_events)
        self._scan_events = scan_events
        self._views = ViewCounter(repo)
        self._dedup = DedupResolver(
            repo,
            signer,
            QRArtifactPublisher(storage),
            public_base_url=public_base_url,
            clock=clock,
        )

    # ── Public access ────────────────────────────────────────────────

    async def scan(
        self,
        public_id: str,
        signature: str | None,
        *,
        client: ClientContext,
        identity: CallerIdentity | None = None,
    ) -> dict[str, Any]:
        """Handle a QR scan: locked summary or full payload.

        Raises:
            InvalidSignature: Signature missing or wrong.
            NotFound: Unknown public id.
            Forbidden: Bundle not accessible, or view quota just ran out.
        """
        action = ScanAction.VIEW if identity else ScanAction.SCAN
        user_id = identity.user_id if identity else None

        await self._verify_signature(public_id, signature, action, client=client, user_id=user_id)
        bundle = await self._lookup(public_id)
        await self._gate(bundle, action, client=client, user_id=user_id)

        if PasscodeGate.is_locked(bundle):
            await self._recorder.record(
                bundle.id, action, success=True, client=client, user_id=user_id,
            )
            return locked_summary(bundle)

        return await self._disclose(bundle, action, client=client, user_id=user_id)

    async def verify_passcode(
        self,
        public_id: str,
        passcode: str | None,
        *,
        client: ClientContext,
        identity: CallerIdentity | None = None,
    ) -> dict[str, Any]:
        """Unlock a passcode-protected bundle.

        Raises:
            NotFound: Unknown public id.
            Forbidden: Bundle not accessible.
            Unauthorized: No passcode on the bundle, or wrong passcode.
        """
        user_id = identity.user_id if identity else None
        bundle = await self._lookup(public_id)
        await self._gate(bundle, ScanAction.PASSCODE_ATTEMPT, client=client, user_id=user_id)

        if not PasscodeGate.check(bundle, passcode):
            await self._recorder.record(
                bundle.id, ScanAction.PASSCODE_ATTEMPT,
                success=False, client=client, user_id=user_id,
            )
            QR_ACCESS_DENIED_TOTAL.labels(reason='passcode').inc()
            logger.info('qr_passcode_rejected', bundle_id=bundle.id)
            raise Unauthorized('Invalid passcode.')

        await self._recorder.record(
            bundle.id, ScanAction.PASSCODE_ATTEMPT,
            success=True, client=client, user_id=user_id,
        )
        action = ScanAction.VIEW if identity else ScanAction.SCAN
        return await self._disclose(
            bundle, action, client=client, user_id=user_id, record_success=False,
        )

    async def download(
        self,
        public_id: str,
        document_id: str,
        signature: str | None,
        *,
        passcode: str | None,
        client: ClientContext,
        identity: CallerIdentity | None = None,
    ) -> dict[str, Any]:
        """Resolve one document of an accessible bundle. Consumes no view."""
        action = ScanAction.DOWNLOAD
        user_id = identity.user_id if identity else None

        await self._verify_signature(
            public_id, signature, action,
            client=client, user_id=user_id, document_id=document_id,
        )
        bundle = await self._lookup(public_id)
        await self._gate(bundle, action, client=client, user_id=user_id, document_id=document_id)

        if PasscodeGate.is_locked(bundle) and not PasscodeGate.check(bundle, passcode):
            await self._recorder.record(
                bundle.id, action, success=False,
                client=client, user_id=user_id, document_id=document_id,
            )
            QR_ACCESS_DENIED_TOTAL.labels(reason='passcode').inc()
            raise Unauthorized('Invalid passcode.')

        documents = []
        if document_id in bundle.document_ids:
            documents = await self._catalog.resolve((document_id,))
        if not documents:
            raise NotFound('Document not found.')

        document = documents[0]
        await self._recorder.record(
            bundle.id, action, success=True,
            client=client, user_id=user_id, document_id=document_id,
        )
        return {'document_id': document.id, 'name': document.name, 'url': document.url}

    # ── Public access helpers ────────────────────────────────────────

    async def _verify_signature(
        self,
        public_id: str,
        signature: str | None,
        action: ScanAction,
        *,
        client: ClientContext,
        user_id: str | None,
        document_id: str | None = None,
    ) -> None:
        if self._signer.verify(public_id, signature):
            return
        bundle = await self._repo.get_by_public_id(public_id)
        if bundle is not None:
            await self._recorder.record(
                bundle.id, action, success=False,
                client=client, user_id=user_id, document_id=document_id,
            )
        QR_ACCESS_DENIED_TOTAL.labels(reason='invalid_signature').inc()
        logger.warning(
            'qr_signature_rejected',
            public_id=public_id,
            known_bundle=bundle is not None,
            ip_address=client.ip_address,
        )
        raise InvalidSignature()

    async def _lookup(self, public_id: str) -> Bundle:
        bundle = await self._repo.get_by_public_id(public_id)
        if bundle is None:
            raise NotFound()
        return bundle

    async def _gate(
        self,
        bundle: Bundle,
        action: ScanAction,
        *,
        client: ClientContext,
        user_id: str | None,
        document_id: str | None = None,
    ) -> None:
        state = evaluate(bundle, self._clock())
        if state is Accessibility.ACCESSIBLE:
            return
        await self._recorder.record(
            bundle.id, action, success=False,
            client=client, user_id=user_id, document_id=document_id,
        )
        QR_ACCESS_DENIED_TOTAL.labels(reason=state.value).inc()
        logger.info('qr_access_denied', bundle_id=bundle.id, reason=state.value)
        raise Forbidden()

    async def _disclose(
        self,
        bundle: Bundle,
        action: ScanAction,
        *,
        client: ClientContext,
        user_id: str | None,
        record_success: bool = True,
    ) -> dict[str, Any]:
        documents = await self._resolve_in_order(bundle.document_ids)
        result = await self._views.admit_view(bundle.id)
        if not result.admitted:
            await self._recorder.record(
                bundle.id, action, success=False, client=client, user_id=user_id,
            )
            QR_ACCESS_DENIED_TOTAL.labels(reason=Accessibility.QUOTA_EXCEEDED.value).inc()
            raise Forbidden()
        if record_success:
            await self._recorder.record(
                bundle.id, action, success=True, client=client, user_id=user_id,
            )
        return full_payload(bundle, documents, result.new_count)

    async def _resolve_in_order(self, document_ids: tuple[str, ...]) -> list[DocumentInfo]:
        if not document_ids:
            return []
        found = {d.id: d for d in await self._catalog.resolve(document_ids)}
        return [found[d] for d in document_ids if d in found]

    # ── Management ───────────────────────────────────────────────────

    async def create_bundle(
        self,
        identity: CallerIdentity,
        *,
        title: str,
        document_ids: list[str],
        description: str = '',
        custom_message: str = '',
        is_public: bool = False,
        has_passcode: bool = False,
        show_lock_status: bool = False,
        expiry_date: datetime | None = None,
        publish_date: datetime | None = None,
        max_views: int = 0,
        requires_approval: bool = False,
    ) -> ResolveResult:
        """Create a bundle, or hand back an identical existing one."""
        if not title.strip():
            raise ValidationError('title is required.')
        if max_views < 0:
            raise ValidationError('max_views must be >= 0.')
        ids = validate_document_ids(document_ids)
        await self._check_includable(identity, ids)

        draft = BundleDraft(
            title=title.strip(),
            document_ids=ids,
            description=description,
            custom_message=custom_message,
            organization_id=identity.organization_id,
            department_id=identity.department_id,
            is_public=is_public,
            has_passcode=has_passcode,
            show_lock_status=show_lock_status,
            expiry_date=expiry_date,
            publish_date=publish_date,
            max_views=max_views,
            requires_approval=requires_approval,
        )
        return await self._dedup.resolve(identity.user_id, draft)

    async def list_my_bundles(
        self, identity: CallerIdentity, *, page: int = 1, limit: int = 20,
    ) -> Page:
        _check_page(page, limit)
        bundles = await self._repo.list_for_creator(
            identity.user_id, limit=limit + 1, offset=(page - 1) * limit,
        )
        return Page(
            items=[b.to_dict() for b in bundles[:limit]],
            page=page,
            limit=limit,
            has_next=len(bundles) > limit,
        )

    async def list_bundles(
        self,
        identity: CallerIdentity,
        *,
        status: ApprovalStatus | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        """Review listing: every bundle for admins, the caller's organization
        for supervisors. Plain users are refused.
        """
        _check_page(page, limit)
        relation = Relation.SAME_ORGANIZATION if identity.organization_id else Relation.NONE
        require_capability(identity, relation, Capability.LIST_BUNDLES)
        organization_id = None if identity.role is Role.ADMIN else identity.organization_id
        bundles = await self._repo.list_bundles(
            organization_id=organization_id,
            status=status,
            search=(search or '').strip() or None,
            limit=limit + 1,
            offset=(page - 1) * limit,
        )
        return Page(
            items=[b.to_dict() for b in bundles[:limit]],
            page=page,
            limit=limit,
            has_next=len(bundles) > limit,
        )

    async def get_bundle(self, identity: CallerIdentity, bundle_id: str) -> dict[str, Any]:
        bundle = await self._load(identity, bundle_id, Capability.VIEW_BUNDLE)
        caps = capabilities_for(identity.role, relation_to_bundle(identity, bundle))
        return bundle.to_dict(include_passcode=Capability.MANAGE_PASSCODE in caps)

    async def update_bundle(
        self,
        identity: CallerIdentity,
        bundle_id: str,
        changes: Mapping[str, Any],
    ) -> Bundle:
        """Apply a partial update. ``current_views`` is never written."""
        bundle = await self._load(identity, bundle_id, Capability.UPDATE_BUNDLE)
        if any(f in changes for f in _PASSCODE_FIELDS):
            require_capability(
                identity, relation_to_bundle(identity, bundle), Capability.MANAGE_PASSCODE,
            )

        for name in _METADATA_FIELDS:
            if name in changes and changes[name] is not None:
                setattr(bundle, name, changes[name])
        if not bundle.title.strip():
            raise ValidationError('title is required.')

        if changes.get('document_ids') is not None:
            ids = validate_document_ids(changes['document_ids'])
            await self._check_includable(identity, ids)
            bundle.document_ids = ids

        access = bundle.access
        for name in _ACCESS_FIELDS:
            if name in changes:
                if name in ('is_public', 'show_lock_status', 'max_views') and changes[name] is None:
                    continue
                setattr(access, name, changes[name])
        if access.max_views < 0:
            raise ValidationError('max_views must be >= 0.')
        if 0 < access.max_views < access.current_views:
            raise ValidationError('max_views cannot be lower than current_views.')

        self._apply_passcode_changes(bundle, changes)

        updated = await self._repo.update(bundle)
        if updated is None:
            raise NotFound()
        logger.info('qr_bundle_updated', bundle_id=bundle_id, fields=sorted(changes))
        return updated

    @staticmethod
    def _apply_passcode_changes(bundle: Bundle, changes: Mapping[str, Any]) -> None:
        access = bundle.access
        supplied = normalize_passcode(changes.get('passcode')) if 'passcode' in changes else ''

        if changes.get('has_passcode') is False:
            access.has_passcode = False
            access.passcode = None
            return
        if changes.get('has_passcode') is True or supplied:
            access.has_passcode = True
            access.passcode = supplied or access.passcode or generate_passcode()

    async def delete_bundle(self, identity: CallerIdentity, bundle_id: str) -> None:
        """Delete the bundle. Its scan events are kept."""
        await self._load(identity, bundle_id, Capability.DELETE_BUNDLE)
        if not await self._repo.delete(bundle_id):
            raise NotFound()
        logger.info('qr_bundle_deleted', bundle_id=bundle_id, actor=identity.user_id)

    async def regenerate_passcode(self, identity: CallerIdentity, bundle_id: str) -> str:
        bundle = await self._load(identity, bundle_id, Capability.MANAGE_PASSCODE)
        passcode = generate_passcode()
        bundle.access.has_passcode = True
        bundle.access.passcode = passcode
        if await self._repo.update(bundle) is None:
            raise NotFound()
        logger.info('qr_passcode_regenerated', bundle_id=bundle_id, actor=identity.user_id)
        return passcode

    async def send_passcode(self, identity: CallerIdentity, bundle_id: str, email: str) -> None:
        bundle = await self._load(identity, bundle_id, Capability.MANAGE_PASSCODE)
        if not bundle.access.has_passcode or not bundle.access.passcode:
            raise ValidationError('This QR bundle is not passcode protected.')
        if '@' not in email:
            raise ValidationError('A valid email address is required.')
        try:
            await self._notifier.send_passcode(email, bundle, bundle.access.passcode)
        except Exception as exc:
            logger.exception('qr_passcode_send_failed', bundle_id=bundle_id)
            raise InternalError('Failed to send passcode.') from exc
        logger.info('qr_passcode_sent', bundle_id=bundle_id, actor=identity.user_id)

    async def approve_bundle(
        self, identity: CallerIdentity, bundle_id: str, notes: str | None = None,
    ) -> Bundle:
        return await self._review(identity, bundle_id, ApprovalStatus.APPROVED, notes or '')

    async def reject_bundle(self, identity: CallerIdentity, bundle_id: str, notes: str) -> Bundle:
        if not (notes or '').strip():
            raise ValidationError('Notes are required when rejecting a QR bundle.')
        return await self._review(identity, bundle_id, ApprovalStatus.REJECTED, notes.strip())

    async def _review(
        self,
        identity: CallerIdentity,
        bundle_id: str,
        status: ApprovalStatus,
        notes: str,
    ) -> Bundle:
        bundle = await self._load(identity, bundle_id, Capability.REVIEW_BUNDLE)
        approval = bundle.approval
        approval.status = status
        approval.approver = identity.user_id
        approval.approval_date = self._clock()
        approval.notes = notes
        updated = await self._repo.update(bundle)
        if updated is None:
            raise NotFound()
        logger.info(
            'qr_bundle_reviewed',
            bundle_id=bundle_id,
            status=status.value,
            approver=identity.user_id,
        )
        return updated

    async def list_scan_events(
        self,
        identity: CallerIdentity,
        bundle_id: str,
        *,
        action: ScanAction | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        """Newest first."""
        _check_page(page, limit)
        await self._load(identity, bundle_id, Capability.VIEW_SCAN_EVENTS)
        events = await self._scan_events.list_for_bundle(
            bundle_id, action=action, limit=limit + 1, offset=(page - 1) * limit,
        )
        return Page(
            items=[e.to_dict() for e in events[:limit]],
            page=page,
            limit=limit,
            has_next=len(events) > limit,
        )

    # ── Management helpers ───────────────────────────────────────────

    async def _load(
        self, identity: CallerIdentity, bundle_id: str, capability: Capability,
    ) -> Bundle:
        bundle = await self._repo.get(bundle_id)
        if bundle is None:
            raise NotFound()
        require_capability(identity, relation_to_bundle(identity, bundle), capability)
        return bundle

    async def _check_includable(self, identity: CallerIdentity, ids: tuple[str, ...]) -> None:
        if not ids:
            return
        documents = {d.id: d for d in await self._catalog.resolve(ids)}
        missing = [d for d in ids if d not in documents]
        if missing:
            raise NotFound(f'Document not found: {missing[0]}')
        for doc_id in ids:
            require_capability(
                identity,
                relation_to_document(identity, documents[doc_id]),
                Capability.INCLUDE_DOCUMENT,
            )
