"""Supabase-backed BundleRepository.

Persists bundles in ``qr.bundles`` via PostgREST. The access-control and
approval sub-records are flattened into columns; ``document_ids`` is a
``text[]`` and ``document_set_key`` is stored alongside it so the dedup
lookup is a single indexed equality filter.

View admission goes through the ``qr.admit_bundle_view`` SQL function, a
single conditional ``UPDATE ... RETURNING`` (see migrations), so the quota
check and the increment happen atomically inside Postgres.

``update`` never sends ``current_views``. ``list_bundles`` searches title and
description with a grouped ``or=(...ilike...)`` filter.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..sharing.model import (
    AccessControl,
    AdmitResult,
    ApprovalRecord,
    ApprovalStatus,
    Bundle,
)
from .supabase_client import SupabaseClient, as_uuid


def _ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _parse_ts(value: Any) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def bundle_to_row(bundle: Bundle) -> dict[str, Any]:
    """Flatten a bundle into a ``qr.bundles`` row (without id and current_views)."""
    access = bundle.access
    approval = bundle.approval
    return {
        "public_id": bundle.public_id,
        "title": bundle.title,
        "description": bundle.description,
        "custom_message": bundle.custom_message,
        "creator_id": bundle.creator_id,
        "organization_id": bundle.organization_id,
        "department_id": bundle.department_id,
        "document_ids": list(bundle.document_ids),
        "document_set_key": bundle.document_set_key,
        "is_public": access.is_public,
        "has_passcode": access.has_passcode,
        "passcode": access.passcode if access.has_passcode else None,
        "show_lock_status": access.show_lock_status,
        "expiry_date": _ts(access.expiry_date),
        "publish_date": _ts(access.publish_date),
        "max_views": access.max_views,
        "approval_required": approval.required,
        "approval_status": approval.status.value,
        "approver": approval.approver,
        "approval_date": _ts(approval.approval_date),
        "approval_notes": approval.notes,
        "qr_image_url": bundle.qr_image_url,
        "signature": bundle.signature,
    }


def row_to_bundle(row: dict[str, Any]) -> Bundle:
    return Bundle(
        id=str(row["id"]),
        public_id=str(row["public_id"]),
        title=row["title"],
        creator_id=str(row["creator_id"]),
        description=row.get("description") or "",
        custom_message=row.get("custom_message") or "",
        organization_id=row.get("organization_id"),
        department_id=row.get("department_id"),
        document_ids=tuple(row.get("document_ids") or ()),
        access=AccessControl(
            is_public=bool(row.get("is_public")),
            has_passcode=bool(row.get("has_passcode")),
            passcode=row.get("passcode"),
            show_lock_status=bool(row.get("show_lock_status")),
            expiry_date=_parse_ts(row.get("expiry_date")),
            publish_date=_parse_ts(row.get("publish_date")),
            max_views=int(row.get("max_views") or 0),
            current_views=int(row.get("current_views") or 0),
        ),
        approval=ApprovalRecord(
            required=bool(row.get("approval_required")),
            status=ApprovalStatus(row.get("approval_status") or ApprovalStatus.PUBLISHED.value),
            approver=row.get("approver"),
            approval_date=_parse_ts(row.get("approval_date")),
            notes=row.get("approval_notes") or "",
        ),
        qr_image_url=row.get("qr_image_url"),
        signature=row.get("signature"),
        created_at=_parse_ts(row.get("created_at")) or datetime.now(timezone.utc),
        updated_at=_parse_ts(row.get("updated_at")) or datetime.now(timezone.utc),
    )


class SupabaseBundleRepository:
    """BundleRepository backed by qr.bundles via PostgREST.

    ``id`` and ``public_id`` are uuid columns. Lookups by anything else
    short-circuit to "not found" without a request.
    """

    TABLE = "qr.bundles"
    SCHEMA = "qr"
    ADMIT_FUNCTION = "admit_bundle_view"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def _one(self, column: str, value: str) -> Bundle | None:
        key = as_uuid(value)
        if key is None:
            return None
        rows = await self._client.select(self.TABLE, filters={column: ("eq", key)}, limit=1)
        return row_to_bundle(rows[0]) if rows else None

    async def create(self, bundle: Bundle) -> Bundle:
        row = bundle_to_row(bundle)
        row["current_views"] = bundle.access.current_views
        row["created_at"] = _ts(bundle.created_at)
        row["updated_at"] = _ts(bundle.updated_at)
        rows = await self._client.insert(self.TABLE, row)
        return row_to_bundle(rows[0])

    async def get(self, bundle_id: str) -> Bundle | None:
        return await self._one("id", bundle_id)

    async def get_by_public_id(self, public_id: str) -> Bundle | None:
        return await self._one("public_id", public_id)

    async def list_for_creator(
        self, creator_id: str, *, limit: int = 20, offset: int = 0,
    ) -> list[Bundle]:
        rows = await self._client.select(
            self.TABLE,
            filters={"creator_id": ("eq", creator_id)},
            order="created_at.desc",
            limit=limit,
            offset=offset,
        )
        return [row_to_bundle(r) for r in rows]

    async def list_bundles(
        self,
        *,
        organization_id: str | None = None,
        status: ApprovalStatus | None = None,
        search: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Bundle]:
        filters: dict[str, Any] = {}
        if organization_id is not None:
            filters["organization_id"] = ("eq", organization_id)
        if status is not None:
            filters["approval_status"] = ("eq", status.value)
        if search:
            pattern = f"*{search}*"
            filters["or"] = [("title", "ilike", pattern), ("description", "ilike", pattern)]
        rows = await self._client.select(
            self.TABLE,
            filters=filters,
            order="created_at.desc",
            limit=limit,
            offset=offset,
        )
        return [row_to_bundle(r) for r in rows]

    async def find_by_document_set(self, creator_id: str, document_set_key: str) -> list[Bundle]:
        rows = await self._client.select(
            self.TABLE,
            filters={
                "creator_id": ("eq", creator_id),
                "document_set_key": ("eq", document_set_key),
            },
            order="updated_at.desc",
        )
        return [row_to_bundle(r) for r in rows]

    async def touch(self, bundle_id: str, *, custom_message: str | None = None) -> Bundle | None:
        key = as_uuid(bundle_id)
        if key is None:
            return None
        data: dict[str, Any] = {"updated_at": datetime.now(timezone.utc).isoformat()}
        if custom_message:
            data["custom_message"] = custom_message
        rows = await self._client.update(self.TABLE, filters={"id": ("eq", key)}, data=data)
        return row_to_bundle(rows[0]) if rows else None

    async def update(self, bundle: Bundle) -> Bundle | None:
        key = as_uuid(bundle.id)
        if key is None:
            return None
        data = bundle_to_row(bundle)
        data["updated_at"] = datetime.now(timezone.utc).isoformat()
        rows = await self._client.update(self.TABLE, filters={"id": ("eq", key)}, data=data)
        return row_to_bundle(rows[0]) if rows else None

    async def delete(self, bundle_id: str) -> bool:
        key = as_uuid(bundle_id)
        if key is None:
            return False
        rows = await self._client.delete(self.TABLE, filters={"id": ("eq", key)})
        return len(rows) > 0

    async def admit_view(self, bundle_id: str) -> AdmitResult | None:
        key = as_uuid(bundle_id)
        if key is None:
            return None
        rows = await self._client.rpc(
            self.ADMIT_FUNCTION, {"p_bundle_id": key}, schema=self.SCHEMA,
        )
        if not rows:
            return None
        row = rows[0] if isinstance(rows, list) else rows
        return AdmitResult(admitted=bool(row["admitted"]), new_count=int(row["new_count"]))
