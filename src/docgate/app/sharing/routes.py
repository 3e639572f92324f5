"""Public QR endpoints (no authentication).

  GET  /qr/view/{public_id}?sig=...                    → locked summary or full payload
  POST /qr/verify-passcode/{public_id}                 → full payload after unlock
  GET  /qr/download/{public_id}/{document_id}?sig=...  → document URL

Status codes:
  - 400 invalid_signature: signature missing or wrong.
  - 401 unauthorized: wrong passcode.
  - 403 forbidden: bundle not currently accessible (reason never disclosed).
  - 404 not_found: unknown public id.

An identity is optional here. When one is presented the scan is recorded
as ``view`` and attributed to the caller; otherwise it is an anonymous
``scan``.

This module provides:
  ``create_public_qr_router``: FastAPI router factory.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Query, Request
from pydantic import BaseModel, Field

from ..security.identity import CallerIdentity, get_optional_identity
from .audit import client_context_from_request
from .service import SharingService


# ── Request schemas ──────────────────────────────────────────────────


class VerifyPasscodeRequest(BaseModel):
    passcode: str = Field(..., min_length=1, max_length=64)


# ── Route factory ────────────────────────────────────────────────────


def create_public_qr_router(service: SharingService) -> APIRouter:
    """Create the public QR router.

    Args:
        service: Sharing service that owns every gate.
    """
    router = APIRouter(tags=['qr-public'])

    @router.get('/qr/view/{public_id}')
    async def view_bundle(
        public_id: str,
        request: Request,
        sig: str | None = Query(default=None),
        identity: CallerIdentity | None = Depends(get_optional_identity),
    ):
        return await service.scan(
            public_id,
            sig,
            client=client_context_from_request(request),
            identity=identity,
        )

    @router.post('/qr/verify-passcode/{public_id}')
    async def verify_passcode(
        public_id: str,
        body: VerifyPasscodeRequest,
        request: Request,
        identity: CallerIdentity | None = Depends(get_optional_identity),
    ):
        return await service.verify_passcode(
            public_id,
            body.passcode,
            client=client_context_from_request(request),
            identity=identity,
        )

    @router.get('/qr/download/{public_id}/{document_id}')
    async def download_document(
        public_id: str,
        document_id: str,
        request: Request,
        sig: str | None = Query(default=None),
        x_passcode: str | None = Header(default=None),
        identity: CallerIdentity | None = Depends(get_optional_identity),
    ):
        """Hand out the URL of one document. Does not consume a view."""
        return await service.download(
            public_id,
            document_id,
            sig,
            passcode=x_passcode,
            client=client_context_from_request(request),
            identity=identity,
        )

    return router
