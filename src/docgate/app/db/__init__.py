"""Supabase persistence for docgate."""

from .bundle_repo import SupabaseBundleRepository, bundle_to_row, row_to_bundle
from .catalog import SupabaseDocumentCatalog
from .errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
)
from .notifier import SupabaseFunctionNotifier
from .scan_event_store import SupabaseScanEventStore
from .storage import SupabaseObjectStorage
from .supabase_client import SupabaseClient

__all__ = [
    "SupabaseAuthError",
    "SupabaseBundleRepository",
    "SupabaseClient",
    "SupabaseConflictError",
    "SupabaseDocumentCatalog",
    "SupabaseError",
    "SupabaseFunctionNotifier",
    "SupabaseNotFoundError",
    "SupabaseObjectStorage",
    "SupabaseScanEventStore",
    "bundle_to_row",
    "row_to_bundle",
]
