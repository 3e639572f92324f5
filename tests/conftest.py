"""Pytest configuration and shared fixtures for docgate tests."""
from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# src-layout imports without an editable install.
_SRC = Path(__file__).parent.parent / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import pytest

from docgate.app.inmemory import (
    InMemoryBundleRepository,
    InMemoryDocumentCatalog,
    InMemoryNotifier,
    InMemoryObjectStorage,
    InMemoryScanEventStore,
)
from docgate.app.main import create_app
from docgate.app.security.identity import CallerIdentity
from docgate.app.security.permissions import Role
from docgate.app.security.signing import SignatureService, SigningKey
from docgate.app.settings import DocGateSettings
from docgate.app.sharing.audit import ClientContext
from docgate.app.sharing.model import DocumentInfo
from docgate.app.sharing.service import SharingService

SIGNING_SECRET = 'unit-test-signing-secret-0123456789abcdef'
SESSION_SECRET = 'unit-test-session-secret-0123456789abcdef'
BASE_URL = 'https://qr.example.test'


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def signing_key() -> SigningKey:
    return SigningKey(version='v1', secret=SIGNING_SECRET)


@pytest.fixture
def signer(signing_key: SigningKey) -> SignatureService:
    return SignatureService([signing_key])


@pytest.fixture
def documents() -> list[DocumentInfo]:
    return [
        DocumentInfo(
            id=f'doc_{n}',
            name=f'Document {n}',
            file_type='pdf',
            url=f'https://files.example.test/doc_{n}.pdf',
            uploaded_by='user_1',
            organization_id='org_1',
            department_id='dept_1',
        )
        for n in (1, 2, 3)
    ] + [
        DocumentInfo(
            id='doc_foreign',
            name='Other org document',
            uploaded_by='user_9',
            organization_id='org_2',
            department_id='dept_9',
        ),
    ]


@pytest.fixture
def repo() -> InMemoryBundleRepository:
    return InMemoryBundleRepository()


@pytest.fixture
def scan_store() -> InMemoryScanEventStore:
    return InMemoryScanEventStore()


@pytest.fixture
def storage() -> InMemoryObjectStorage:
    return InMemoryObjectStorage()


@pytest.fixture
def catalog(documents) -> InMemoryDocumentCatalog:
    return InMemoryDocumentCatalog(documents)


@pytest.fixture
def notifier() -> InMemoryNotifier:
    return InMemoryNotifier()


@pytest.fixture
def service(repo, scan_store, signer, catalog, storage, notifier, clock) -> SharingService:
    return SharingService(
        repo=repo,
        scan_events=scan_store,
        signer=signer,
        catalog=catalog,
        storage=storage,
        notifier=notifier,
        public_base_url=BASE_URL,
        clock=clock,
    )


@pytest.fixture
def owner() -> CallerIdentity:
    return CallerIdentity(
        user_id='user_1', role=Role.USER, organization_id='org_1', department_id='dept_1',
    )


@pytest.fixture
def client_ctx() -> ClientContext:
    return ClientContext(ip_address='203.0.113.7', user_agent='pytest-scanner')


@pytest.fixture
def settings(signing_key) -> DocGateSettings:
    return DocGateSettings(
        public_base_url=BASE_URL,
        signing_keys=(signing_key,),
        session_secret=SESSION_SECRET,
    )


@pytest.fixture
def app(settings, repo, scan_store, storage, catalog, notifier):
    """Local-mode app wired to the in-memory fixtures above."""
    return create_app(
        settings,
        bundle_repo=repo,
        scan_event_store=scan_store,
        object_storage=storage,
        document_catalog=catalog,
        notifier=notifier,
    )
