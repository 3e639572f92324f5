"""In-memory implementations for local development and tests.

Used when ENVIRONMENT=local. They satisfy the protocols in ``protocols.py``
but keep everything in process memory (nothing survives a restart).

Bundles are deep-copied on the way in and out so callers never alias stored
state, and every read or write of the bundle map holds the lock. Around
``admit_view``'s compare-and-increment the lock is the in-process
equivalent of the conditional UPDATE used by Supabase.
"""

from __future__ import annotations

import copy
import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from .sharing.audit import ScanAction, ScanEvent
from .sharing.model import AdmitResult, ApprovalStatus, Bundle, DocumentInfo


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryBundleRepository:
    def __init__(self) -> None:
        self._bundles: dict[str, Bundle] = {}
        self._lock = threading.Lock()

    async def create(self, bundle: Bundle) -> Bundle:
        stored = copy.deepcopy(bundle)
        stored.id = bundle.id or f"bnd_{uuid.uuid4().hex[:8]}"
        with self._lock:
            if any(b.public_id == stored.public_id for b in self._bundles.values()):
                raise ValueError(f"duplicate public_id: {stored.public_id}")
            self._bundles[stored.id] = stored
        return copy.deepcopy(stored)

    async def get(self, bundle_id: str) -> Bundle | None:
        with self._lock:
            bundle = self._bundles.get(bundle_id)
            return copy.deepcopy(bundle) if bundle else None

    async def get_by_public_id(self, public_id: str) -> Bundle | None:
        with self._lock:
            for bundle in self._bundles.values():
                if bundle.public_id == public_id:
                    return copy.deepcopy(bundle)
        return None

    async def list_for_creator(
        self, creator_id: str, *, limit: int = 20, offset: int = 0,
    ) -> list[Bundle]:
        with self._lock:
            owned = [copy.deepcopy(b) for b in self._bundles.values() if b.creator_id == creator_id]
        owned.sort(key=lambda b: b.created_at, reverse=True)
        return owned[offset:offset + limit]

    async def list_bundles(
        self,
        *,
        organization_id: str | None = None,
        status: ApprovalStatus | None = None,
        search: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Bundle]:
        needle = (search or "").lower()
        with self._lock:
            matches = [
                copy.deepcopy(b) for b in self._bundles.values()
                if (organization_id is None or b.organization_id == organization_id)
                and (status is None or b.approval.status is status)
                and (not needle or needle in b.title.lower() or needle in b.description.lower())
            ]
        matches.sort(key=lambda b: b.created_at, reverse=True)
        return matches[offset:offset + limit]

    async def find_by_document_set(self, creator_id: str, document_set_key: str) -> list[Bundle]:
        with self._lock:
            matches = [
                copy.deepcopy(b) for b in self._bundles.values()
                if b.creator_id == creator_id and b.document_set_key == document_set_key
            ]
        matches.sort(key=lambda b: b.updated_at, reverse=True)
        return matches

    async def touch(self, bundle_id: str, *, custom_message: str | None = None) -> Bundle | None:
        with self._lock:
            bundle = self._bundles.get(bundle_id)
            if bundle is None:
                return None
            if custom_message:
                bundle.custom_message = custom_message
            bundle.updated_at = _now()
            return copy.deepcopy(bundle)

    async def update(self, bundle: Bundle) -> Bundle | None:
        with self._lock:
            existing = self._bundles.get(bundle.id)
            if existing is None:
                return None
            stored = copy.deepcopy(bundle)
            stored.access.current_views = existing.access.current_views
            stored.updated_at = _now()
            self._bundles[bundle.id] = stored
            return copy.deepcopy(stored)

    async def delete(self, bundle_id: str) -> bool:
        with self._lock:
            return self._bundles.pop(bundle_id, None) is not None

    async def admit_view(self, bundle_id: str) -> AdmitResult | None:
        with self._lock:
            bundle = self._bundles.get(bundle_id)
            if bundle is None:
                return None
            access = bundle.access
            if access.max_views > 0 and access.current_views >= access.max_views:
                return AdmitResult(admitted=False, new_count=access.current_views)
            access.current_views += 1
            return AdmitResult(admitted=True, new_count=access.current_views)


class InMemoryScanEventStore:
    def __init__(self) -> None:
        self._events: list[ScanEvent] = []
        self._lock = threading.Lock()

    async def append(self, event: ScanEvent) -> ScanEvent:
        with self._lock:
            stored = replace(event, id=f"scn_{len(self._events) + 1}")
            self._events.append(stored)
        return stored

    async def list_for_bundle(
        self,
        bundle_id: str,
        *,
        action: ScanAction | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ScanEvent]:
        with self._lock:
            matching = [
                e for e in self._events
                if e.bundle_id == bundle_id and (action is None or e.action == action)
            ]
        matching.sort(key=lambda e: e.timestamp, reverse=True)
        return matching[offset:offset + limit]

    @property
    def events(self) -> list[ScanEvent]:
        """All events in insertion order."""
        return list(self._events)

    def find(
        self,
        *,
        action: ScanAction | None = None,
        success: bool | None = None,
    ) -> list[ScanEvent]:
        return [
            e for e in self._events
            if (action is None or e.action == action)
            and (success is None or e.success is success)
        ]


class InMemoryObjectStorage:
    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        self.objects[key] = (data, content_type)
        return f"memory://{key}"


class InMemoryDocumentCatalog:
    def __init__(self, documents: list[DocumentInfo] | None = None) -> None:
        self._documents: dict[str, DocumentInfo] = {d.id: d for d in documents or []}

    def add(self, document: DocumentInfo) -> DocumentInfo:
        self._documents[document.id] = document
        return document

    async def resolve(self, document_ids: tuple[str, ...]) -> list[DocumentInfo]:
        return [self._documents[d] for d in document_ids if d in self._documents]


@dataclass(frozen=True)
class SentPasscode:
    email: str
    bundle_id: str
    passcode: str


class InMemoryNotifier:
    """Collects passcode deliveries instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[SentPasscode] = []

    async def send_passcode(self, email: str, bundle: Bundle, passcode: str) -> None:
        self.sent.append(SentPasscode(email=email, bundle_id=bundle.id, passcode=passcode))
