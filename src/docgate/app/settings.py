"""docgate configuration settings.

DocGateSettings is the single configuration object accepted by create_app().
It is a plain dataclass (not env-coupled) so tests can inject config without
touching os.environ; ``from_env`` is the production entry point.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

from .security.secrets import (
    MIN_SIGNING_SECRET_LENGTH,
    SecretValidationError,
    load_signing_keys,
    validate_signing_keys,
)
from .security.signing import DEFAULT_VERIFY_WINDOW, SigningKey

DEFAULT_CORS_ORIGINS = (
    "http://localhost:5173",
    "http://localhost:3000",
)


@dataclass(frozen=True, slots=True)
class DocGateSettings:
    """Configuration for the docgate FastAPI application.

    All fields have defaults suitable for local development. Non-local
    environments must supply an https public base URL, Supabase credentials,
    a session secret and at least one signing key.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, staging, production."""

    public_base_url: str = "http://localhost:3000"
    """Origin encoded in QR payload URLs."""

    # ── Signing ────────────────────────────────────────────────────
    signing_keys: tuple[SigningKey, ...] = field(default=(), repr=False)
    """Versioned HMAC keys, newest first. The first one signs."""

    signature_verify_window: int = DEFAULT_VERIFY_WINDOW
    """How many of the newest keys verification accepts."""

    # ── Session / Auth ─────────────────────────────────────────────
    session_secret: str = field(default="", repr=False)
    """HS256 secret for bearer identity tokens. Never log this."""

    # ── Supabase ───────────────────────────────────────────────────
    supabase_url: str = ""
    supabase_service_role_key: str = field(default="", repr=False)
    storage_bucket: str = "qr-codes"

    # ── CORS ───────────────────────────────────────────────────────
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    @property
    def has_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid.

        A local environment may run without signing keys; the app factory
        then generates an ephemeral one.
        """
        errors: list[str] = []

        if self.signing_keys or not self.is_local:
            try:
                validate_signing_keys(self.signing_keys)
            except SecretValidationError as exc:
                errors.append(f"{self.environment}: {exc}")
        if self.signature_verify_window < 1:
            errors.append(f"{self.environment}: signature_verify_window must be >= 1")

        if not self.is_local:
            if not self.public_base_url.startswith("https://"):
                errors.append(f"{self.environment}: public_base_url must use https")
            if not self.supabase_url:
                errors.append(f"{self.environment}: supabase_url is required")
            if not self.supabase_service_role_key:
                errors.append(f"{self.environment}: supabase_service_role_key is required")
            if len(self.session_secret) < MIN_SIGNING_SECRET_LENGTH:
                errors.append(
                    f"{self.environment}: session_secret must be >= "
                    f"{MIN_SIGNING_SECRET_LENGTH} characters"
                )
        return errors

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> DocGateSettings:
        """Build settings from environment variables.

        Raises:
            SecretValidationError: If ``QR_SIGNING_KEYS`` is malformed.
        """
        if env is None:
            env = dict(os.environ)

        cors_raw = env.get("CORS_ORIGINS", "")
        cors = (
            tuple(o.strip() for o in cors_raw.split(",") if o.strip())
            if cors_raw
            else DEFAULT_CORS_ORIGINS
        )

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            public_base_url=env.get("PUBLIC_BASE_URL", "http://localhost:3000").rstrip("/"),
            signing_keys=load_signing_keys(env),
            signature_verify_window=int(
                env.get("QR_SIGNATURE_VERIFY_WINDOW", str(DEFAULT_VERIFY_WINDOW))
            ),
            session_secret=env.get("SESSION_SECRET", ""),
            supabase_url=env.get("SUPABASE_URL", "").rstrip("/"),
            supabase_service_role_key=env.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            storage_bucket=env.get("QR_STORAGE_BUCKET", "qr-codes"),
            cors_origins=cors,
        )
