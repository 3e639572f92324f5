"""Relation-based permission policy.

All role branching lives in one function::

    capabilities_for(role, relation) -> frozenset[Capability]

Callers derive the caller's relation to the resource once
(``relation_to_bundle`` / ``relation_to_document``), evaluate the policy
once, and check the capability they need.

Policy:
  - admin: every capability on every resource.
  - creator (bundle) / uploader (document): every capability except
    reviewing their own bundle and listing the organization's bundles.
  - supervisor: every capability on resources in their organization.
  - user: may view bundles and include documents from their own
    department or organization.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING

from ..errors import Forbidden

if TYPE_CHECKING:
    from ..sharing.model import Bundle, DocumentInfo
    from .identity import CallerIdentity


class Role(str, enum.Enum):
    ADMIN = 'admin'
    SUPERVISOR = 'supervisor'
    USER = 'user'

    @classmethod
    def parse(cls, value: str | None) -> Role:
        """Unknown or missing roles fall back to ``USER``."""
        try:
            return cls((value or '').strip().lower())
        except ValueError:
            return cls.USER


class Relation(str, enum.Enum):
    OWNER = 'owner'
    SAME_DEPARTMENT = 'same_department'
    SAME_ORGANIZATION = 'same_organization'
    NONE = 'none'


class Capability(str, enum.Enum):
    INCLUDE_DOCUMENT = 'include_document'
    VIEW_BUNDLE = 'view_bundle'
    UPDATE_BUNDLE = 'update_bundle'
    DELETE_BUNDLE = 'delete_bundle'
    MANAGE_PASSCODE = 'manage_passcode'
    REVIEW_BUNDLE = 'review_bundle'
    VIEW_SCAN_EVENTS = 'view_scan_events'
    LIST_BUNDLES = 'list_bundles'


ALL_CAPABILITIES = frozenset(Capability)
_OWNER_CAPABILITIES = ALL_CAPABILITIES - {Capability.REVIEW_BUNDLE, Capability.LIST_BUNDLES}
_READ_CAPABILITIES = frozenset({Capability.VIEW_BUNDLE, Capability.INCLUDE_DOCUMENT})
_NO_CAPABILITIES: frozenset[Capability] = frozenset()


def capabilities_for(role: Role, relation: Relation) -> frozenset[Capability]:
    """Return the capability set for ``role`` acting on a resource."""
    if role is Role.ADMIN:
        return ALL_CAPABILITIES
    if relation is Relation.OWNER:
        if role is Role.SUPERVISOR:
            # Supervisors may review bundles in their organization, own ones included.
            return ALL_CAPABILITIES
        return _OWNER_CAPABILITIES
    if relation in (Relation.SAME_DEPARTMENT, Relation.SAME_ORGANIZATION):
        if role is Role.SUPERVISOR:
            return ALL_CAPABILITIES
        return _READ_CAPABILITIES
    return _NO_CAPABILITIES


# ── Relation derivation ──────────────────────────────────────────────


def _shared_scope(
    identity: CallerIdentity,
    organization_id: str | None,
    department_id: str | None,
) -> Relation:
    if department_id and identity.department_id == department_id:
        return Relation.SAME_DEPARTMENT
    if organization_id and identity.organization_id == organization_id:
        return Relation.SAME_ORGANIZATION
    return Relation.NONE


def relation_to_bundle(identity: CallerIdentity, bundle: Bundle) -> Relation:
    if bundle.creator_id == identity.user_id:
        return Relation.OWNER
    return _shared_scope(identity, bundle.organization_id, bundle.department_id)


def relation_to_document(identity: CallerIdentity, document: DocumentInfo) -> Relation:
    if document.uploaded_by and document.uploaded_by == identity.user_id:
        return Relation.OWNER
    return _shared_scope(identity, document.organization_id, document.department_id)


def require_capability(
    identity: CallerIdentity,
    relation: Relation,
    capability: Capability,
) -> None:
    """Raise Forbidden unless the caller holds ``capability``."""
    if capability not in capabilities_for(identity.role, relation):
        raise Forbidden(f'Not authorized to {capability.value.replace("_", " ")}.')
