"""Bundle management endpoints (caller identity required).

  POST   /api/v1/bundles                                  → create (201) or reuse (200)
  GET    /api/v1/bundles?status=&search=                  → review listing (admin, supervisor)
  GET    /api/v1/bundles/me                               → caller's bundles
  GET    /api/v1/bundles/{bundle_id}                      → one bundle
  PATCH  /api/v1/bundles/{bundle_id}                      → partial update
  DELETE /api/v1/bundles/{bundle_id}                      → delete (scan events kept)
  POST   /api/v1/bundles/{bundle_id}/regenerate-passcode
  POST   /api/v1/bundles/{bundle_id}/send-passcode
  POST   /api/v1/bundles/{bundle_id}/approve
  POST   /api/v1/bundles/{bundle_id}/reject               → notes required
  GET    /api/v1/bundles/{bundle_id}/scan-events          → newest first, paginated

Authorization is decided by ``capabilities_for`` inside the service; these
handlers only parse input and shape output.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..security.identity import CallerIdentity, get_caller_identity
from .audit import ScanAction
from .model import ApprovalStatus
from .service import SharingService


# ── Request schemas ──────────────────────────────────────────────────


class CreateBundleRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default='', max_length=2000)
    custom_message: str = Field(default='', max_length=2000)
    document_ids: list[str] = Field(default_factory=list)
    is_public: bool = False
    has_passcode: bool = False
    show_lock_status: bool = False
    expiry_date: datetime | None = None
    publish_date: datetime | None = None
    max_views: int = Field(default=0, ge=0)
    requires_approval: bool = False


class UpdateBundleRequest(BaseModel):
    """Partial update. Only fields present in the body are applied."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    custom_message: str | None = Field(default=None, max_length=2000)
    document_ids: list[str] | None = None
    is_public: bool | None = None
    show_lock_status: bool | None = None
    expiry_date: datetime | None = None
    publish_date: datetime | None = None
    max_views: int | None = Field(default=None, ge=0)
    has_passcode: bool | None = None
    passcode: str | None = Field(default=None, min_length=1, max_length=64)


class SendPasscodeRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)


class ApproveRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


class RejectRequest(BaseModel):
    notes: str = Field(..., max_length=2000)


# ── Route factory ────────────────────────────────────────────────────


def create_bundle_router(service: SharingService) -> APIRouter:
    router = APIRouter(prefix='/api/v1/bundles', tags=['qr-bundles'])

    @router.post('', status_code=201)
    async def create_bundle(
        body: CreateBundleRequest,
        identity: CallerIdentity = Depends(get_caller_identity),
    ):
        """Create a bundle. Returns 200 with ``reused`` when an identical one exists."""
        result = await service.create_bundle(identity, **body.model_dump())
        payload = {'bundle': result.bundle.to_dict(), 'reused': result.reused}
        if result.reused:
            return JSONResponse(status_code=200, content=payload)
        return payload

    @router.get('')
    async def list_bundles(
        status: ApprovalStatus | None = Query(default=None),
        search: str | None = Query(default=None, max_length=200),
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=20, ge=1, le=100),
        identity: CallerIdentity = Depends(get_caller_identity),
    ):
        """All bundles (admin) or the caller's organization (supervisor)."""
        result = await service.list_bundles(
            identity, status=status, search=search, page=page, limit=limit,
        )
        return result.to_dict()

    @router.get('/me')
    async def list_my_bundles(
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=20, ge=1, le=100),
        identity: CallerIdentity = Depends(get_caller_identity),
    ):
        result = await service.list_my_bundles(identity, page=page, limit=limit)
        return result.to_dict()

    @router.get('/{bundle_id}')
    async def get_bundle(
        bundle_id: str,
        identity: CallerIdentity = Depends(get_caller_identity),
    ):
        return {'bundle': await service.get_bundle(identity, bundle_id)}

    @router.patch('/{bundle_id}')
    async def update_bundle(
        bundle_id: str,
        body: UpdateBundleRequest,
        identity: CallerIdentity = Depends(get_caller_identity),
    ):
        bundle = await service.update_bundle(
            identity, bundle_id, body.model_dump(exclude_unset=True),
        )
        return {'bundle': bundle.to_dict()}

    @router.delete('/{bundle_id}')
    async def delete_bundle(
        bundle_id: str,
        identity: CallerIdentity = Depends(get_caller_identity),
    ):
        await service.delete_bundle(identity, bundle_id)
        return {'deleted': True, 'bundle_id': bundle_id}

    @router.post('/{bundle_id}/regenerate-passcode')
    async def regenerate_passcode(
        bundle_id: str,
        identity: CallerIdentity = Depends(get_caller_identity),
    ):
        passcode = await service.regenerate_passcode(identity, bundle_id)
        return {'bundle_id': bundle_id, 'passcode': passcode}

    @router.post('/{bundle_id}/send-passcode')
    async def send_passcode(
        bundle_id: str,
        body: SendPasscodeRequest,
        identity: CallerIdentity = Depends(get_caller_identity),
    ):
        await service.send_passcode(identity, bundle_id, body.email)
        return {'sent': True}

    @router.post('/{bundle_id}/approve')
    async def approve_bundle(
        bundle_id: str,
        body: ApproveRequest | None = None,
        identity: CallerIdentity = Depends(get_caller_identity),
    ):
        bundle = await service.approve_bundle(
            identity, bundle_id, body.notes if body else None,
        )
        return {'bundle': bundle.to_dict()}

    @router.post('/{bundle_id}/reject')
    async def reject_bundle(
        bundle_id: str,
        body: RejectRequest,
        identity: CallerIdentity = Depends(get_caller_identity),
    ):
        bundle = await service.reject_bundle(identity, bundle_id, body.notes)
        return {'bundle': bundle.to_dict()}

    @router.get('/{bundle_id}/scan-events')
    async def list_scan_events(
        bundle_id: str,
        action: ScanAction | None = Query(default=None),
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=20, ge=1, le=100),
        identity: CallerIdentity = Depends(get_caller_identity),
    ):
        result = await service.list_scan_events(
            identity, bundle_id, action=action, page=page, limit=limit,
        )
        return result.to_dict()

    return router
