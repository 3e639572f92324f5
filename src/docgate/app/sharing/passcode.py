"""Passcode gate.

A secondary disclosure barrier for bundles with ``has_passcode``. It is only
consulted once the bundle is otherwise accessible.

  - A plain scan of a protected bundle yields the locked summary: public id,
    title, description, lock flag and ``show_lock_status``. Never documents,
    never the passcode.
  - ``PasscodeGate.check`` compares a supplied code against the stored one
    after normalization (whitespace stripped, upper-cased), in constant time.

Passcodes are 6 upper-case hex characters. There is no attempt throttling.
"""

from __future__ import annotations

import hmac
import secrets
from typing import Any

from .model import Bundle

PASSCODE_BYTES = 3


def generate_passcode() -> str:
    return secrets.token_hex(PASSCODE_BYTES).upper()


def normalize_passcode(value: str | None) -> str:
    return (value or '').strip().upper()


def locked_summary(bundle: Bundle) -> dict[str, Any]:
    """Public payload of a passcode-protected bundle before unlocking."""
    return {
        'public_id': bundle.public_id,
        'title': bundle.title,
        'description': bundle.description,
        'has_passcode': True,
        'show_lock_status': bundle.access.show_lock_status,
    }


class PasscodeGate:
    """Checks supplied passcodes against a bundle."""

    @staticmethod
    def is_locked(bundle: Bundle) -> bool:
        return bundle.access.has_passcode

    @staticmethod
    def check(bundle: Bundle, supplied: str | None) -> bool:
        """True only if the bundle has a passcode and ``supplied`` matches it.

        A bundle without a passcode never matches.
        """
        access = bundle.access
        if not access.has_passcode or not access.passcode:
            return False
        expected = normalize_passcode(access.passcode).encode('utf-8')
        candidate = normalize_passcode(supplied).encode('utf-8')
        if not candidate:
            return False
        return hmac.compare_digest(expected, candidate)
