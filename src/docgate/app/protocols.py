"""Repository and collaborator protocols for dependency injection.

Concrete implementations: InMemory (local development, tests) and Supabase
(non-local). ``create_app`` accepts anything that satisfies these.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .sharing.audit import ScanAction, ScanEvent
from .sharing.model import AdmitResult, ApprovalStatus, Bundle, DocumentInfo


@runtime_checkable
class BundleRepository(Protocol):
    """Bundle persistence.

    ``update`` never writes ``current_views``; only ``admit_view`` does, as a
    single atomic conditional increment. ``admit_view`` and ``touch`` return
    None for an unknown bundle. ``list_bundles`` is newest first; ``search``
    matches title or description case-insensitively.
    """

    async def create(self, bundle: Bundle) -> Bundle: ...
    async def get(self, bundle_id: str) -> Bundle | None: ...
    async def get_by_public_id(self, public_id: str) -> Bundle | None: ...
    async def list_for_creator(
        self, creator_id: str, *, limit: int = 20, offset: int = 0,
    ) -> list[Bundle]: ...
    async def list_bundles(
        self,
        *,
        organization_id: str | None = None,
        status: ApprovalStatus | None = None,
        search: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Bundle]: ...
    async def find_by_document_set(self, creator_id: str, document_set_key: str) -> list[Bundle]: ...
    async def touch(self, bundle_id: str, *, custom_message: str | None = None) -> Bundle | None: ...
    async def update(self, bundle: Bundle) -> Bundle | None: ...
    async def delete(self, bundle_id: str) -> bool: ...
    async def admit_view(self, bundle_id: str) -> AdmitResult | None: ...


@runtime_checkable
class ScanEventStore(Protocol):
    """Append-only scan events with a newest-first read side."""

    async def append(self, event: ScanEvent) -> ScanEvent: ...
    async def list_for_bundle(
        self,
        bundle_id: str,
        *,
        action: ScanAction | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ScanEvent]: ...


@runtime_checkable
class ObjectStorage(Protocol):
    """Blob storage for rendered QR images. ``put`` returns the object URL."""

    async def put(self, key: str, data: bytes, content_type: str) -> str: ...


@runtime_checkable
class DocumentCatalog(Protocol):
    """Read-only view of the document pipeline. Unknown ids are omitted."""

    async def resolve(self, document_ids: tuple[str, ...]) -> list[DocumentInfo]: ...


@runtime_checkable
class Notifier(Protocol):
    """Delivers a bundle passcode out of band."""

    async def send_passcode(self, email: str, bundle: Bundle, passcode: str) -> None: ...
