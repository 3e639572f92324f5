"""Tests for SignatureService and signing-key configuration.

Validates:
  - sign is deterministic; verify accepts its own output.
  - Tampered, truncated, empty, and non-hex signatures fail closed.
  - Rotation: old keys verify only inside the window.
  - Every key in the window is evaluated (no early exit).
  - Key parsing, validation, and repr redaction.
"""

from __future__ import annotations

import hmac

import pytest

from docgate.app.security import signing as signing_module
from docgate.app.security.secrets import (
    SecretValidationError,
    load_signing_keys,
    parse_signing_keys,
    validate_signing_keys,
)
from docgate.app.security.signing import SignatureService, SigningKey

PUBLIC_ID = '7d3c2f6e-6c1b-4a53-9a8e-2b9d5f0c1e44'


def _key(version: str, fill: str) -> SigningKey:
    return SigningKey(version=version, secret=fill * 40)


class TestSignVerify:
    def test_sign_is_deterministic_hex(self, signer):
        sig = signer.sign(PUBLIC_ID)
        assert sig == signer.sign(PUBLIC_ID)
        assert len(sig) == 64
        int(sig, 16)

    def test_verify_accepts_own_signature(self, signer):
        assert signer.verify(PUBLIC_ID, signer.sign(PUBLIC_ID)) is True

    def test_verify_is_case_and_whitespace_tolerant(self, signer):
        assert signer.verify(PUBLIC_ID, f'  {signer.sign(PUBLIC_ID).upper()} ')

    def test_signature_is_bound_to_public_id(self, signer):
        other = '11111111-2222-4333-8444-555555555555'
        assert signer.verify(other, signer.sign(PUBLIC_ID)) is False

    @pytest.mark.parametrize('supplied', [None, '', 'abc', 'zz' * 32, '0' * 64])
    def test_bad_signatures_fail_closed(self, signer, supplied):
        assert signer.verify(PUBLIC_ID, supplied) is False

    def test_truncated_signature_fails(self, signer):
        assert signer.verify(PUBLIC_ID, signer.sign(PUBLIC_ID)[:-1]) is False

    def test_non_ascii_signature_fails(self, signer):
        assert signer.verify(PUBLIC_ID, 'é' * 64) is False

    def test_payload_url(self, signer):
        url = signer.payload_url('https://qr.example.test/', PUBLIC_ID)
        assert url == f'https://qr.example.test/qr/{PUBLIC_ID}?sig={signer.sign(PUBLIC_ID)}'

    def test_requires_a_key(self):
        with pytest.raises(ValueError):
            SignatureService([])

    def test_rejects_zero_window(self):
        with pytest.raises(ValueError):
            SignatureService([_key('v1', 'a')], verify_window=0)


class TestRotation:
    def test_newest_key_signs(self):
        old, new = _key('v1', 'a'), _key('v2', 'b')
        ring = SignatureService([new, old])
        assert ring.current_version == 'v2'
        assert ring.sign(PUBLIC_ID) == SignatureService([new]).sign(PUBLIC_ID)

    def test_retired_key_inside_window_still_verifies(self):
        old, new = _key('v1', 'a'), _key('v2', 'b')
        legacy_sig = SignatureService([old]).sign(PUBLIC_ID)
        assert SignatureService([new, old], verify_window=2).verify(PUBLIC_ID, legacy_sig)

    def test_retired_key_outside_window_is_rejected(self):
        oldest, old, new = _key('v1', 'a'), _key('v2', 'b'), _key('v3', 'c')
        legacy_sig = SignatureService([oldest]).sign(PUBLIC_ID)
        ring = SignatureService([new, old, oldest], verify_window=2)
        assert ring.verify(PUBLIC_ID, legacy_sig) is False

    def test_every_window_key_is_compared(self, monkeypatch):
        keys = [_key('v3', 'c'), _key('v2', 'b'), _key('v1', 'a')]
        ring = SignatureService(keys, verify_window=3)
        calls = []
        real = hmac.compare_digest

        def counting(a, b):
            calls.append(1)
            return real(a, b)

        monkeypatch.setattr(signing_module.hmac, 'compare_digest', counting)
        assert ring.verify(PUBLIC_ID, ring.sign(PUBLIC_ID)) is True
        assert len(calls) == 3


class TestKeyConfig:
    def test_parse_pairs_newest_first(self):
        keys = parse_signing_keys(f'v2:{"b" * 40}, v1:{"a" * 40}')
        assert [k.version for k in keys] == ['v2', 'v1']

    def test_parse_rejects_malformed_pair(self):
        with pytest.raises(SecretValidationError) as exc_info:
            parse_signing_keys('no-colon-here')
        assert exc_info.value.invalid

    def test_load_prefers_key_ring_over_single_secret(self):
        env = {'QR_SIGNING_KEYS': f'v9:{"z" * 40}', 'QR_HMAC_SECRET': 'x' * 40}
        assert [k.version for k in load_signing_keys(env)] == ['v9']

    def test_load_single_secret_as_v1(self):
        keys = load_signing_keys({'QR_HMAC_SECRET': 'x' * 40})
        assert keys == (SigningKey(version='v1', secret='x' * 40),)

    def test_load_nothing(self):
        assert load_signing_keys({}) == ()

    def test_validate_short_secret(self):
        with pytest.raises(SecretValidationError, match='min 32'):
            validate_signing_keys((SigningKey('v1', 'short'),))

    def test_validate_duplicate_versions(self):
        with pytest.raises(SecretValidationError, match='duplicate'):
            validate_signing_keys((_key('v1', 'a'), _key('v1', 'b')))

    def test_validate_empty(self):
        with pytest.raises(SecretValidationError) as exc_info:
            validate_signing_keys(())
        assert exc_info.value.missing

    def test_repr_redacts_secret(self):
        key = _key('v1', 'q')
        assert 'q' * 40 not in repr(key)
        assert '<redacted>' in repr(key)
