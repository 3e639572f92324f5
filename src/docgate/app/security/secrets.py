"""Signing-key configuration and validation.

Loads the versioned HMAC key ring used by ``SignatureService``.

Secret sources (in order of precedence):
  1. Explicit keyword arguments (tests, programmatic setup).
  2. ``QR_SIGNING_KEYS``: comma-separated ``version:secret`` pairs, newest
     first, e.g. ``v3:<secret>,v2:<secret>``.
  3. ``QR_HMAC_SECRET``: a single secret, registered as version ``v1``.

Security invariants:
  - Secrets are never included in ``str()`` or ``repr()`` output.
  - Every secret must be at least 32 characters.
  - Versions must be unique within the ring.
"""

from __future__ import annotations

import os
from typing import Mapping

from .signing import SigningKey

MIN_SIGNING_SECRET_LENGTH = 32
DEFAULT_KEY_VERSION = 'v1'


class SecretValidationError(ValueError):
    """Raised when required secrets are missing or invalid."""

    def __init__(self, missing: list[str], invalid: list[str] | None = None) -> None:
        self.missing = missing
        self.invalid = invalid or []
        parts = []
        if missing:
            parts.append(f'missing: {", ".join(missing)}')
        if self.invalid:
            parts.append(f'invalid: {", ".join(self.invalid)}')
        super().__init__(f'Secret validation failed: {"; ".join(parts)}')


def parse_signing_keys(raw: str) -> tuple[SigningKey, ...]:
    """Parse ``version:secret`` pairs.

    Raises:
        SecretValidationError: On a malformed pair.
    """
    keys: list[SigningKey] = []
    invalid: list[str] = []
    for index, pair in enumerate(p.strip() for p in raw.split(',')):
        if not pair:
            continue
        version, sep, secret = pair.partition(':')
        if not sep or not version.strip() or not secret.strip():
            invalid.append(f'QR_SIGNING_KEYS entry #{index + 1} (expected version:secret)')
            continue
        keys.append(SigningKey(version=version.strip(), secret=secret.strip()))
    if invalid:
        raise SecretValidationError(missing=[], invalid=invalid)
    return tuple(keys)


def load_signing_keys(env: Mapping[str, str] | None = None) -> tuple[SigningKey, ...]:
    """Read the key ring from the environment. Returns ``()`` if unset."""
    if env is None:
        env = os.environ
    raw = env.get('QR_SIGNING_KEYS', '').strip()
    if raw:
        return parse_signing_keys(raw)
    single = env.get('QR_HMAC_SECRET', '').strip()
    if single:
        return (SigningKey(version=DEFAULT_KEY_VERSION, secret=single),)
    return ()


def validate_signing_keys(keys: tuple[SigningKey, ...]) -> None:
    """Validate the key ring.

    Raises:
        SecretValidationError: If the ring is empty, a secret is too short,
            or a version repeats.
    """
    if not keys:
        raise SecretValidationError(missing=['QR_SIGNING_KEYS or QR_HMAC_SECRET'])

    invalid: list[str] = []
    seen: set[str] = set()
    for key in keys:
        if len(key.secret) < MIN_SIGNING_SECRET_LENGTH:
            invalid.append(
                f'signing key {key.version} (min {MIN_SIGNING_SECRET_LENGTH} chars, '
                f'got {len(key.secret)})'
            )
        if key.version in seen:
            invalid.append(f'signing key {key.version} (duplicate version)')
        seen.add(key.version)

    if invalid:
        raise SecretValidationError(missing=[], invalid=invalid)
