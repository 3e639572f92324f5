"""Scan event recording.

Every distinguishable access attempt against a bundle (anonymous scan,
identified view, download, passcode attempt of either outcome) appends one
``ScanEvent``. Events are append-only: never mutated, never deleted. They are
the sole input of downstream analytics.

Recording is best-effort relative to the response path: a failure to persist
an event is logged and swallowed, and never changes or undoes the access
decision that produced it.

Security invariant:
  Passcodes and signatures never appear in event data.

This module provides:
  1. ``ScanEvent`` / ``ScanAction`` / ``ClientContext`` / ``GeoLocation``.
  2. ``ScanEventRecorder``: best-effort recorder used by the service.
  3. ``client_context_from_request``: network/client metadata extraction.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from fastapi import Request

from ...observability.logging import get_logger
from ...observability.metrics import QR_SCAN_EVENTS_TOTAL

if TYPE_CHECKING:
    from ..protocols import ScanEventStore

logger = get_logger(__name__)


class ScanAction(str, enum.Enum):
    SCAN = 'scan'
    VIEW = 'view'
    DOWNLOAD = 'download'
    PASSCODE_ATTEMPT = 'passcode_attempt'


# ── Client metadata ──────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class GeoLocation:
    """Coarse geo as reported by the edge (country/region/city)."""

    country: str | None = None
    region: str | None = None
    city: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {'country': self.country, 'region': self.region, 'city': self.city}


@dataclass(frozen=True, slots=True)
class ClientContext:
    """Network/client metadata of the request behind a scan."""

    ip_address: str | None = None
    user_agent: str | None = None
    geo: GeoLocation = field(default_factory=GeoLocation)


def client_context_from_request(request: Request) -> ClientContext:
    """Extract client metadata.

    The client address prefers the first ``X-Forwarded-For`` hop. Geo comes
    from edge headers (``CF-IPCountry`` or ``X-Geo-Country``,
    ``X-Geo-Region``, ``X-Geo-City``) when present.
    """
    headers = request.headers
    forwarded = headers.get('x-forwarded-for', '')
    ip = forwarded.split(',')[0].strip() if forwarded else None
    if not ip and request.client is not None:
        ip = request.client.host
    return ClientContext(
        ip_address=ip or None,
        user_agent=headers.get('user-agent'),
        geo=GeoLocation(
            country=headers.get('cf-ipcountry') or headers.get('x-geo-country'),
            region=headers.get('x-geo-region'),
            city=headers.get('x-geo-city'),
        ),
    )


# ── Event model ──────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ScanEvent:
    """Append-only record of one access attempt.

    Attributes:
        bundle_id: Internal id of the bundle (required).
        action: What was attempted.
        success: Whether the attempt passed its gate.
        user_id: Identified caller, if any.
        document_id: Document involved (downloads).
        client: Network/client metadata.
        timestamp: When the attempt happened.
        id: Assigned by the store.
    """

    bundle_id: str
    action: ScanAction
    success: bool
    user_id: str | None = None
    document_id: str | None = None
    client: ClientContext = field(default_factory=ClientContext)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dict safe for JSON logging and API responses."""
        return {
            'id': self.id,
            'bundle_id': self.bundle_id,
            'action': self.action.value,
            'success': self.success,
            'user_id': self.user_id,
            'document_id': self.document_id,
            'ip_address': self.client.ip_address,
            'user_agent': self.client.user_agent,
            'geo_location': self.client.geo.to_dict(),
            'timestamp': self.timestamp.isoformat(),
        }


# ── Recorder ─────────────────────────────────────────────────────────


class ScanEventRecorder:
    """Best-effort front for a ``ScanEventStore``."""

    def __init__(self, store: ScanEventStore) -> None:
        self._store = store

    async def record(
        self,
        bundle_id: str,
        action: ScanAction,
        *,
        success: bool,
        client: ClientContext | None = None,
        user_id: str | None = None,
        document_id: str | None = None,
    ) -> ScanEvent | None:
        """Append one event. Returns None if persisting failed."""
        event = ScanEvent(
            bundle_id=bundle_id,
            action=action,
            success=success,
            user_id=user_id,
            document_id=document_id,
            client=client or ClientContext(),
        )
        QR_SCAN_EVENTS_TOTAL.labels(
            action=action.value, outcome='success' if success else 'failure',
        ).inc()
        try:
            return await self._store.append(event)
        except Exception:
            logger.exception(
                'scan_event_record_failed',
                bundle_id=bundle_id,
                action=action.value,
                success=success,
            )
            return None
