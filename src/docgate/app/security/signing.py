"""HMAC signing of bundle public ids.

The QR payload URL is::

    {base_url}/qr/{public_id}?sig={hex_hmac_sha256(secret, public_id)}

The signature is a pure function of the public id and the signing key, so it
is recomputed on every verification rather than stored and compared.

Key rotation:
  Keys are versioned. The first key in the ring signs; verification accepts
  a signature produced by any of the newest ``verify_window`` keys. Rotating
  a secret therefore means prepending a new key and either re-signing every
  live bundle or keeping the retired key inside the window until those
  bundles have been re-signed. A leaked secret invalidates every bundle
  signed with it at once.

Timing:
  Verification compares bytes with ``hmac.compare_digest`` and evaluates
  every key in the window without early exit.
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from typing import Sequence

DEFAULT_VERIFY_WINDOW = 2


@dataclass(frozen=True, slots=True)
class SigningKey:
    """A versioned HMAC secret."""

    version: str
    secret: str

    def __repr__(self) -> str:
        return f'SigningKey(version={self.version!r}, secret=<redacted>)'


class SignatureService:
    """Signs and verifies public ids with a versioned key ring."""

    def __init__(
        self,
        keys: Sequence[SigningKey],
        *,
        verify_window: int = DEFAULT_VERIFY_WINDOW,
    ) -> None:
        if not keys:
            raise ValueError('at least one signing key is required')
        if verify_window < 1:
            raise ValueError('verify_window must be >= 1')
        self._keys = tuple(keys)
        self._verify_window = verify_window

    @property
    def current_version(self) -> str:
        return self._keys[0].version

    @property
    def verification_keys(self) -> tuple[SigningKey, ...]:
        return self._keys[: self._verify_window]

    @staticmethod
    def _digest(key: SigningKey, public_id: str) -> bytes:
        mac = hmac.new(key.secret.encode('utf-8'), public_id.encode('utf-8'), hashlib.sha256)
        return mac.hexdigest().encode('ascii')

    def sign(self, public_id: str) -> str:
        return self._digest(self._keys[0], public_id).decode('ascii')

    def verify(self, public_id: str, supplied: str | None) -> bool:
        """Return True if ``supplied`` is a valid signature for ``public_id``.

        Fails closed on a missing, wrong-length, or non-hex signature.
        """
        if not supplied:
            return False
        candidate = supplied.strip().lower().encode('utf-8')
        matched = False
        for key in self.verification_keys:
            if hmac.compare_digest(self._digest(key, public_id), candidate):
                matched = True
        return matched

    def payload_url(self, base_url: str, public_id: str) -> str:
        """Full signed URL encoded in the QR image."""
        return f'{base_url.rstrip("/")}/qr/{public_id}?sig={self.sign(public_id)}'
