"""Supabase-backed ScanEventStore.

Appends to ``qr.scan_events``. There is no update or delete path: events are
append-only, and deleting a bundle leaves its events in place (the
``bundle_id`` column carries no foreign key). ``bundle_id`` is a uuid column,
so listing for anything else returns no events without a request.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any

from ..sharing.audit import ClientContext, GeoLocation, ScanAction, ScanEvent
from .supabase_client import SupabaseClient, as_uuid


def event_to_row(event: ScanEvent) -> dict[str, Any]:
    geo = event.client.geo
    return {
        "bundle_id": event.bundle_id,
        "action": event.action.value,
        "success": event.success,
        "user_id": event.user_id,
        "document_id": event.document_id,
        "ip_address": event.client.ip_address,
        "user_agent": event.client.user_agent,
        "geo_country": geo.country,
        "geo_region": geo.region,
        "geo_city": geo.city,
        "created_at": event.timestamp.isoformat(),
    }


def row_to_event(row: dict[str, Any]) -> ScanEvent:
    return ScanEvent(
        id=str(row["id"]),
        bundle_id=str(row["bundle_id"]),
        action=ScanAction(row["action"]),
        success=bool(row["success"]),
        user_id=row.get("user_id"),
        document_id=row.get("document_id"),
        client=ClientContext(
            ip_address=row.get("ip_address"),
            user_agent=row.get("user_agent"),
            geo=GeoLocation(
                country=row.get("geo_country"),
                region=row.get("geo_region"),
                city=row.get("geo_city"),
            ),
        ),
        timestamp=datetime.fromisoformat(str(row["created_at"]).replace("Z", "+00:00")),
    )


class SupabaseScanEventStore:
    TABLE = "qr.scan_events"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def append(self, event: ScanEvent) -> ScanEvent:
        rows = await self._client.insert(self.TABLE, event_to_row(event))
        return replace(event, id=str(rows[0]["id"])) if rows else event

    async def list_for_bundle(
        self,
        bundle_id: str,
        *,
        action: ScanAction | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ScanEvent]:
        key = as_uuid(bundle_id)
        if key is None:
            return []
        filters: dict[str, Any] = {"bundle_id": ("eq", key)}
        if action is not None:
            filters["action"] = ("eq", action.value)
        rows = await self._client.select(
            self.TABLE,
            filters=filters,
            order="created_at.desc",
            limit=limit,
            offset=offset,
        )
        return [row_to_event(r) for r in rows]
