"""Accessibility evaluation for QR bundles.

``evaluate(bundle, now)`` is a pure function: the result depends only on its
arguments and is recomputed on every request. No "current state" is ever
persisted.

Check order (first match wins):
  1. Approval gate  → PENDING_APPROVAL / REJECTED
  2. Publish date   → NOT_YET_PUBLISHED
  3. Expiry date    → EXPIRED
  4. View quota     → QUOTA_EXCEEDED
  5. otherwise      → ACCESSIBLE

The approval gate runs first so that a rejected or pending bundle never
reveals whether it would otherwise be inside its time window.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from .model import ApprovalStatus, Bundle, RELEASED_STATUSES


class Accessibility(str, enum.Enum):
    ACCESSIBLE = 'accessible'
    NOT_YET_PUBLISHED = 'not_yet_published'
    EXPIRED = 'expired'
    QUOTA_EXCEEDED = 'quota_exceeded'
    PENDING_APPROVAL = 'pending_approval'
    REJECTED = 'rejected'


def as_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def evaluate(bundle: Bundle, now: datetime) -> Accessibility:
    """Decide whether ``bundle`` may be disclosed at ``now``."""
    approval = bundle.approval
    if approval.required and approval.status not in RELEASED_STATUSES:
        if approval.status == ApprovalStatus.REJECTED:
            return Accessibility.REJECTED
        return Accessibility.PENDING_APPROVAL

    now = as_utc(now)
    access = bundle.access

    if access.publish_date is not None and as_utc(access.publish_date) > now:
        return Accessibility.NOT_YET_PUBLISHED

    if access.expiry_date is not None and as_utc(access.expiry_date) < now:
        return Accessibility.EXPIRED

    if access.max_views > 0 and access.current_views >= access.max_views:
        return Accessibility.QUOTA_EXCEEDED

    return Accessibility.ACCESSIBLE


def is_accessible(bundle: Bundle, now: datetime) -> bool:
    return evaluate(bundle, now) is Accessibility.ACCESSIBLE
