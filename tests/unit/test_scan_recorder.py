"""Tests for ScanEventRecorder and client metadata extraction."""

from __future__ import annotations

import pytest
from starlette.requests import Request

from docgate.app.sharing.audit import (
    ClientContext,
    GeoLocation,
    ScanAction,
    ScanEvent,
    ScanEventRecorder,
    client_context_from_request,
)


class _FailingStore:
    def __init__(self):
        self.calls = 0

    async def append(self, event):
        self.calls += 1
        raise RuntimeError('database unavailable')

    async def list_for_bundle(self, bundle_id, *, action=None, limit=20, offset=0):
        return []


def _request(headers: dict[str, str], client=('10.0.0.1', 5000)) -> Request:
    scope = {
        'type': 'http',
        'method': 'GET',
        'path': '/qr/view/x',
        'headers': [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        'client': client,
    }
    return Request(scope)


class TestRecord:
    @pytest.mark.asyncio
    async def test_appends_event(self, scan_store, client_ctx):
        recorder = ScanEventRecorder(scan_store)
        event = await recorder.record(
            'bnd_1', ScanAction.DOWNLOAD, success=True,
            client=client_ctx, user_id='user_1', document_id='doc_1',
        )
        assert event is not None
        assert event.id == 'scn_1'
        stored = scan_store.events[0]
        assert stored.action is ScanAction.DOWNLOAD
        assert stored.success is True
        assert stored.document_id == 'doc_1'
        assert stored.client.ip_address == '203.0.113.7'

    @pytest.mark.asyncio
    async def test_store_failure_is_swallowed(self):
        store = _FailingStore()
        recorder = ScanEventRecorder(store)
        result = await recorder.record('bnd_1', ScanAction.SCAN, success=False)
        assert result is None
        assert store.calls == 1

    @pytest.mark.asyncio
    async def test_defaults_to_empty_client(self, scan_store):
        await ScanEventRecorder(scan_store).record('bnd_1', ScanAction.SCAN, success=True)
        assert scan_store.events[0].client == ClientContext()

    def test_to_dict_shape(self, client_ctx):
        data = ScanEvent(
            bundle_id='bnd_1', action=ScanAction.VIEW, success=True, client=client_ctx,
        ).to_dict()
        assert data['action'] == 'view'
        assert data['ip_address'] == '203.0.113.7'
        assert data['geo_location'] == {'country': None, 'region': None, 'city': None}
        assert 'passcode' not in data
        assert 'sig' not in data


class TestClientContext:
    def test_forwarded_for_first_hop(self):
        ctx = client_context_from_request(_request({
            'X-Forwarded-For': '198.51.100.4, 10.0.0.2',
            'User-Agent': 'camera-app/2.1',
        }))
        assert ctx.ip_address == '198.51.100.4'
        assert ctx.user_agent == 'camera-app/2.1'

    def test_falls_back_to_peer_address(self):
        ctx = client_context_from_request(_request({}))
        assert ctx.ip_address == '10.0.0.1'

    def test_no_client_at_all(self):
        ctx = client_context_from_request(_request({}, client=None))
        assert ctx.ip_address is None

    def test_geo_headers(self):
        ctx = client_context_from_request(_request({
            'CF-IPCountry': 'NL',
            'X-Geo-Region': 'NH',
            'X-Geo-City': 'Amsterdam',
        }))
        assert ctx.geo == GeoLocation(country='NL', region='NH', city='Amsterdam')

    def test_x_geo_country_fallback(self):
        ctx = client_context_from_request(_request({'X-Geo-Country': 'BE'}))
        assert ctx.geo.country == 'BE'
