"""QR bundle sharing: access gates, view metering, scan audit, and dedup."""

from .accessibility import Accessibility, evaluate, is_accessible
from .admin_routes import (
    CreateBundleRequest,
    UpdateBundleRequest,
    create_bundle_router,
)
from .audit import (
    ClientContext,
    GeoLocation,
    ScanAction,
    ScanEvent,
    ScanEventRecorder,
    client_context_from_request,
)
from .dedup import DedupResolver, ResolveResult, is_reusable, is_reuse_eligible
from .model import (
    AccessControl,
    AdmitResult,
    ApprovalRecord,
    ApprovalStatus,
    Bundle,
    BundleDraft,
    DocumentInfo,
    document_set_key,
    generate_public_id,
    validate_document_ids,
)
from .passcode import PasscodeGate, generate_passcode, locked_summary, normalize_passcode
from .qr_image import QRArtifactPublisher, qr_storage_key, render_qr_png
from .routes import VerifyPasscodeRequest, create_public_qr_router
from .service import SharingService, full_payload
from .view_counter import ViewCounter

__all__ = [
    'AccessControl',
    'Accessibility',
    'AdmitResult',
    'ApprovalRecord',
    'ApprovalStatus',
    'Bundle',
    'BundleDraft',
    'ClientContext',
    'CreateBundleRequest',
    'DedupResolver',
    'DocumentInfo',
    'GeoLocation',
    'PasscodeGate',
    'QRArtifactPublisher',
    'ResolveResult',
    'ScanAction',
    'ScanEvent',
    'ScanEventRecorder',
    'SharingService',
    'UpdateBundleRequest',
    'VerifyPasscodeRequest',
    'ViewCounter',
    'client_context_from_request',
    'create_bundle_router',
    'create_public_qr_router',
    'document_set_key',
    'evaluate',
    'full_payload',
    'generate_passcode',
    'generate_public_id',
    'is_accessible',
    'is_reusable',
    'is_reuse_eligible',
    'locked_summary',
    'normalize_passcode',
    'qr_storage_key',
    'render_qr_png',
    'validate_document_ids',
]
