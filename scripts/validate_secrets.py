#!/usr/bin/env python3
"""Validate docgate configuration and secrets before a deploy.

Checks:
  1. Settings load from the environment and pass ``validate()``.
  2. The signing key ring round-trips a signature, and every key inside
     the verification window verifies its own signatures.
  3. No-leak: secrets do not appear in repr/str of the settings.
  4. Bundled SQL migrations pass the idempotency lint.

Usage::

    ENVIRONMENT=production \\
    PUBLIC_BASE_URL=https://qr.example.org \\
    QR_SIGNING_KEYS=v2:...,v1:... \\
    SESSION_SECRET=... \\
    SUPABASE_URL=https://xyz.supabase.co \\
    SUPABASE_SERVICE_ROLE_KEY=... \\
    python3 scripts/validate_secrets.py

Exit codes:
  0: All checks passed.
  1: One or more checks failed.
"""

from __future__ import annotations

import sys
import uuid

from docgate.app.security.signing import SignatureService
from docgate.app.settings import DocGateSettings
from docgate.migrations import validate_all

PASS = 0
FAIL = 0


def check(name: str, fn) -> bool:
    global PASS, FAIL
    try:
        if fn() is False:
            raise AssertionError('returned False')
        print(f'  PASS: {name}')
        PASS += 1
        return True
    except Exception as exc:
        print(f'  FAIL: {name} ({exc})')
        FAIL += 1
        return False


def check_settings() -> DocGateSettings | None:
    settings: DocGateSettings | None = None

    def _load():
        nonlocal settings
        settings = DocGateSettings.from_env()
        errors = settings.validate()
        if errors:
            raise AssertionError('; '.join(errors))

    check('Settings load and validate', _load)
    return settings


def check_signing(settings: DocGateSettings) -> None:
    if not settings.signing_keys:
        print('  SKIP: signing round-trip (no keys configured)')
        return

    def _round_trip():
        signer = SignatureService(
            settings.signing_keys, verify_window=settings.signature_verify_window,
        )
        public_id = str(uuid.uuid4())
        if not signer.verify(public_id, signer.sign(public_id)):
            raise AssertionError('signature did not verify')
        if signer.verify(public_id, '0' * 64):
            raise AssertionError('forged signature verified')

    def _window():
        signer = SignatureService(
            settings.signing_keys, verify_window=settings.signature_verify_window,
        )
        public_id = str(uuid.uuid4())
        for key in signer.verification_keys:
            if not signer.verify(public_id, SignatureService([key]).sign(public_id)):
                raise AssertionError(f'key {key.version} not accepted by verification window')

    check('Signature round-trip', _round_trip)
    check('Every key in the verification window verifies', _window)


def check_no_leak(settings: DocGateSettings) -> None:
    secret_values = [
        settings.session_secret,
        settings.supabase_service_role_key,
        *(k.secret for k in settings.signing_keys),
    ]

    def _check(render):
        def _inner():
            text = render(settings)
            for value in secret_values:
                if value and value in text:
                    raise AssertionError('secret value found in output')
        return _inner

    check('Secrets not leaked in repr()', _check(repr))
    check('Secrets not leaked in str()', _check(str))


def check_migrations() -> None:
    def _lint():
        failures = [
            f'{name}: {err}'
            for name, result in validate_all().items()
            for err in result.errors
        ]
        if failures:
            raise AssertionError('; '.join(failures))

    check('Migrations are idempotent', _lint)


def main() -> int:
    print('docgate configuration check')
    settings = check_settings()
    if settings is not None:
        check_signing(settings)
        check_no_leak(settings)
    check_migrations()
    print(f'\n{PASS} passed, {FAIL} failed')
    return 1 if FAIL else 0


if __name__ == '__main__':
    sys.exit(main())
