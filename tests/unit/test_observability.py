"""Tests for logging redaction, path normalization, and QR metrics."""

from __future__ import annotations

import pytest
from prometheus_client import REGISTRY

from docgate.app.errors import Forbidden
from docgate.observability.logging import (
    REDACTED,
    _add_request_id,
    _redact_sensitive,
    request_id_ctx,
)
from docgate.observability.middleware import normalize_path


def _sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestRedaction:
    def test_masks_sensitive_keys(self):
        event = _redact_sensitive(None, 'info', {
            'event': 'qr_scan',
            'passcode': 'A1B2C3',
            'sig': 'ab' * 32,
            'authorization': 'Bearer x',
            'bundle_id': 'bnd_1',
        })
        assert event['passcode'] == REDACTED
        assert event['sig'] == REDACTED
        assert event['authorization'] == REDACTED
        assert event['bundle_id'] == 'bnd_1'

    def test_leaves_empty_values(self):
        assert _redact_sensitive(None, 'info', {'passcode': None})['passcode'] is None

    def test_request_id_bound(self):
        token = request_id_ctx.set('req-abc-123')
        try:
            assert _add_request_id(None, 'info', {})['request_id'] == 'req-abc-123'
        finally:
            request_id_ctx.reset(token)
        assert 'request_id' not in _add_request_id(None, 'info', {})


class TestNormalizePath:
    @pytest.mark.parametrize('raw, expected', [
        ('/qr/view/7d3c-uuid', '/qr/view/{public_id}'),
        ('/qr/verify-passcode/7d3c-uuid', '/qr/verify-passcode/{public_id}'),
        ('/qr/download/7d3c-uuid/doc_1', '/qr/download/{public_id}/{document_id}'),
        ('/api/v1/bundles/me', '/api/v1/bundles/me'),
        ('/api/v1/bundles/bnd_1', '/api/v1/bundles/{bundle_id}'),
        ('/api/v1/bundles/bnd_1/scan-events', '/api/v1/bundles/{bundle_id}/scan-events'),
        ('/health', '/health'),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_path(raw) == expected


class TestQRMetrics:
    @pytest.mark.asyncio
    async def test_denials_and_admissions_are_counted(self, service, owner, client_ctx):
        bundle = (await service.create_bundle(
            owner, title='Metered', document_ids=['doc_1'], max_views=1,
        )).bundle
        denied_before = _sample('docgate_qr_access_denied_total', reason='quota_exceeded')
        admitted_before = _sample('docgate_qr_view_admissions_total', result='admitted')

        await service.scan(bundle.public_id, bundle.signature, client=client_ctx)
        with pytest.raises(Forbidden):
            await service.scan(bundle.public_id, bundle.signature, client=client_ctx)

        assert _sample('docgate_qr_view_admissions_total', result='admitted') == admitted_before + 1
        assert _sample('docgate_qr_access_denied_total', reason='quota_exceeded') == denied_before + 1

    @pytest.mark.asyncio
    async def test_bundle_creation_counted(self, service, owner):
        before = _sample('docgate_qr_bundles_created_total', reused='true')
        await service.create_bundle(owner, title='A', document_ids=['doc_3'], is_public=True)
        await service.create_bundle(owner, title='A', document_ids=['doc_3'], is_public=True)
        assert _sample('docgate_qr_bundles_created_total', reused='true') == before + 1
