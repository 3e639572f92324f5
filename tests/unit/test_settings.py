"""Tests for DocGateSettings validation and environment loading."""

from __future__ import annotations

import pytest

from docgate.app.security.secrets import SecretValidationError
from docgate.app.security.signing import SigningKey
from docgate.app.settings import DEFAULT_CORS_ORIGINS, DocGateSettings

KEY = SigningKey(version='v1', secret='s' * 40)


def _production(**overrides) -> DocGateSettings:
    fields = dict(
        environment='production',
        public_base_url='https://qr.example.test',
        signing_keys=(KEY,),
        session_secret='p' * 40,
        supabase_url='https://abc.supabase.co',
        supabase_service_role_key='service-role',
    )
    fields.update(overrides)
    return DocGateSettings(**fields)


class TestValidate:
    def test_local_defaults_are_valid(self):
        assert DocGateSettings().validate() == []

    def test_local_with_bad_key_is_invalid(self):
        errors = DocGateSettings(signing_keys=(SigningKey('v1', 'short'),)).validate()
        assert any('min 32' in e for e in errors)

    def test_complete_production_is_valid(self):
        assert _production().validate() == []

    def test_production_requires_signing_keys(self):
        errors = _production(signing_keys=()).validate()
        assert any('QR_SIGNING_KEYS' in e for e in errors)

    def test_production_requires_https(self):
        errors = _production(public_base_url='http://qr.example.test').validate()
        assert any('https' in e for e in errors)

    @pytest.mark.parametrize('field, message', [
        ('supabase_url', 'supabase_url'),
        ('supabase_service_role_key', 'supabase_service_role_key'),
        ('session_secret', 'session_secret'),
    ])
    def test_production_requires(self, field, message):
        errors = _production(**{field: ''}).validate()
        assert any(message in e for e in errors)

    def test_window_must_be_positive(self):
        errors = DocGateSettings(signature_verify_window=0).validate()
        assert any('signature_verify_window' in e for e in errors)

    def test_repr_hides_secrets(self):
        text = repr(_production())
        assert 'p' * 40 not in text
        assert 's' * 40 not in text
        assert 'service-role' not in text


class TestFromEnv:
    def test_defaults(self):
        settings = DocGateSettings.from_env({})
        assert settings.environment == 'local'
        assert settings.signing_keys == ()
        assert settings.cors_origins == DEFAULT_CORS_ORIGINS
        assert settings.storage_bucket == 'qr-codes'

    def test_reads_everything(self):
        settings = DocGateSettings.from_env({
            'ENVIRONMENT': 'staging',
            'PUBLIC_BASE_URL': 'https://qr.example.test/',
            'QR_SIGNING_KEYS': f'v2:{"b" * 40},v1:{"a" * 40}',
            'QR_SIGNATURE_VERIFY_WINDOW': '3',
            'SESSION_SECRET': 'x' * 40,
            'SUPABASE_URL': 'https://abc.supabase.co/',
            'SUPABASE_SERVICE_ROLE_KEY': 'service-role',
            'QR_STORAGE_BUCKET': 'codes',
            'CORS_ORIGINS': 'https://a.test, https://b.test',
        })
        assert settings.environment == 'staging'
        assert settings.public_base_url == 'https://qr.example.test'
        assert [k.version for k in settings.signing_keys] == ['v2', 'v1']
        assert settings.signature_verify_window == 3
        assert settings.supabase_url == 'https://abc.supabase.co'
        assert settings.storage_bucket == 'codes'
        assert settings.cors_origins == ('https://a.test', 'https://b.test')
        assert settings.has_supabase
        assert settings.validate() == []

    def test_malformed_key_ring(self):
        with pytest.raises(SecretValidationError):
            DocGateSettings.from_env({'QR_SIGNING_KEYS': 'broken'})
