"""docgate FastAPI application factory.

The create_app() factory is the single entry point for building the ASGI
application. It validates settings, wires observability middleware and CORS,
builds the signature service and the sharing service, and injects repository
and collaborator implementations.

Usage:
    # Local development (InMemory everything, ephemeral signing key)
    from docgate.app import create_app, DocGateSettings
    app = create_app(DocGateSettings())

    # Non-local (Supabase implementations built from settings)
    app = create_app(DocGateSettings.from_env())

    # Testing (full DI control)
    app = create_app(settings, bundle_repo=repo, scan_event_store=store, ...)
"""

from __future__ import annotations

import secrets
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.requests import Request

from ..observability.logging import configure_logging, get_logger
from ..observability.metrics import metrics_text
from ..observability.middleware import (
    MetricsMiddleware,
    RequestIdMiddleware,
    RequestLoggingMiddleware,
)
from .db.errors import SupabaseError
from .errors import InternalError, install_error_handlers
from .protocols import (
    BundleRepository,
    DocumentCatalog,
    Notifier,
    ObjectStorage,
    ScanEventStore,
)
from .security.signing import SignatureService, SigningKey
from .settings import DocGateSettings
from .sharing.admin_routes import create_bundle_router
from .sharing.routes import create_public_qr_router
from .sharing.service import SharingService

logger = get_logger(__name__)

EPHEMERAL_KEY_VERSION = "ephemeral"


@dataclass(frozen=True)
class AppDependencies:
    """Injected repository/collaborator instances.

    Stored on ``app.state.deps`` so tests and handlers can reach them.
    """

    bundle_repo: BundleRepository
    scan_event_store: ScanEventStore
    object_storage: ObjectStorage
    document_catalog: DocumentCatalog
    notifier: Notifier
    http_client: httpx.AsyncClient | None = None


def _build_inmemory_deps() -> AppDependencies:
    from .inmemory import (
        InMemoryBundleRepository,
        InMemoryDocumentCatalog,
        InMemoryNotifier,
        InMemoryObjectStorage,
        InMemoryScanEventStore,
    )

    return AppDependencies(
        bundle_repo=InMemoryBundleRepository(),
        scan_event_store=InMemoryScanEventStore(),
        object_storage=InMemoryObjectStorage(),
        document_catalog=InMemoryDocumentCatalog(),
        notifier=InMemoryNotifier(),
    )


def _build_supabase_deps(settings: DocGateSettings) -> AppDependencies:
    from .db import (
        SupabaseBundleRepository,
        SupabaseClient,
        SupabaseDocumentCatalog,
        SupabaseFunctionNotifier,
        SupabaseObjectStorage,
        SupabaseScanEventStore,
    )

    http_client = httpx.AsyncClient(timeout=10.0)
    client = SupabaseClient(
        supabase_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
        http_client=http_client,
    )
    return AppDependencies(
        bundle_repo=SupabaseBundleRepository(client),
        scan_event_store=SupabaseScanEventStore(client),
        object_storage=SupabaseObjectStorage(client, bucket=settings.storage_bucket),
        document_catalog=SupabaseDocumentCatalog(client),
        notifier=SupabaseFunctionNotifier(client),
        http_client=http_client,
    )


def build_signature_service(settings: DocGateSettings) -> SignatureService:
    """Signature service from the configured key ring.

    Local environments without a key get a random one that lives as long as
    the process, so QR codes minted locally stop verifying after a restart.
    """
    keys = settings.signing_keys
    if not keys:
        if not settings.is_local:
            raise ValueError("signing keys are required outside the local environment")
        logger.warning(
            "signing_key_ephemeral",
            environment=settings.environment,
            hint="set QR_SIGNING_KEYS to keep QR codes valid across restarts",
        )
        keys = (SigningKey(version=EPHEMERAL_KEY_VERSION, secret=secrets.token_urlsafe(48)),)
    return SignatureService(keys, verify_window=settings.signature_verify_window)


async def _supabase_error_handler(request: Request, exc: SupabaseError) -> JSONResponse:
    logger.error(
        "supabase_request_failed",
        path=request.url.path,
        status_code=exc.status_code,
        code=exc.code,
    )
    return JSONResponse(
        status_code=InternalError.status_code,
        content={"error": InternalError.code, "detail": InternalError.default_detail},
    )


# ── Factory ─────────────────────────────────────────────────────────


def create_app(
    settings: DocGateSettings | None = None,
    *,
    bundle_repo: BundleRepository | None = None,
    scan_event_store: ScanEventStore | None = None,
    object_storage: ObjectStorage | None = None,
    document_catalog: DocumentCatalog | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    """Create a configured docgate FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        bundle_repo..notifier: Overrides. Missing ones are filled with
            InMemory implementations in local mode and Supabase
            implementations otherwise.

    Raises:
        ValueError: If settings validation fails.
    """
    if settings is None:
        settings = DocGateSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "docgate settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    configure_logging()

    overrides = (bundle_repo, scan_event_store, object_storage, document_catalog, notifier)
    if all(o is not None for o in overrides):
        defaults = None
    elif settings.is_local:
        defaults = _build_inmemory_deps()
    else:
        defaults = _build_supabase_deps(settings)

    deps = AppDependencies(
        bundle_repo=bundle_repo or defaults.bundle_repo,  # type: ignore[union-attr]
        scan_event_store=scan_event_store or defaults.scan_event_store,  # type: ignore[union-attr]
        object_storage=object_storage or defaults.object_storage,  # type: ignore[union-attr]
        document_catalog=document_catalog or defaults.document_catalog,  # type: ignore[union-attr]
        notifier=notifier or defaults.notifier,  # type: ignore[union-attr]
        http_client=defaults.http_client if defaults else None,
    )

    signer = build_signature_service(settings)
    service = SharingService(
        repo=deps.bundle_repo,
        scan_events=deps.scan_event_store,
        signer=signer,
        catalog=deps.document_catalog,
        storage=deps.object_storage,
        notifier=deps.notifier,
        public_base_url=settings.public_base_url,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "docgate_startup",
            environment=settings.environment,
            signing_key_version=signer.current_version,
        )
        yield
        if deps.http_client is not None:
            await deps.http_client.aclose()
        logger.info("docgate_shutdown")

    app = FastAPI(
        title="docgate",
        description="Secure QR sharing and access-control engine",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.deps = deps
    app.state.settings = settings
    app.state.signer = signer
    app.state.sharing = service

    install_error_handlers(app)
    app.add_exception_handler(SupabaseError, _supabase_error_handler)  # type: ignore[arg-type]

    # ── Middleware stack (last added runs first) ─────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # ── Routes ──────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {"status": "ok", "environment": settings.environment}

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    app.include_router(create_public_qr_router(service))
    app.include_router(create_bundle_router(service))

    return app


# For uvicorn, use --factory:
#   uvicorn docgate.app.main:create_app --factory
