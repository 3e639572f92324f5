"""Tests for the passcode gate and locked summary."""

from __future__ import annotations

import re

import pytest

from docgate.app.sharing.model import AccessControl, Bundle
from docgate.app.sharing.passcode import (
    PasscodeGate,
    generate_passcode,
    locked_summary,
    normalize_passcode,
)


def _bundle(has_passcode=True, passcode='A1B2C3', show_lock_status=False) -> Bundle:
    return Bundle(
        id='bnd_1',
        public_id='pub-1',
        title='Board pack',
        description='Quarterly figures',
        creator_id='user_1',
        document_ids=('doc_1',),
        access=AccessControl(
            has_passcode=has_passcode,
            passcode=passcode,
            show_lock_status=show_lock_status,
        ),
    )


class TestGeneratePasscode:
    def test_six_upper_hex(self):
        for _ in range(20):
            assert re.fullmatch(r'[0-9A-F]{6}', generate_passcode())

    def test_varies(self):
        assert len({generate_passcode() for _ in range(20)}) > 1

    @pytest.mark.parametrize('raw, expected', [
        (' a1b2c3 ', 'A1B2C3'),
        (None, ''),
        ('', ''),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_passcode(raw) == expected


class TestCheck:
    def test_exact_match(self):
        assert PasscodeGate.check(_bundle(), 'A1B2C3')

    def test_match_is_case_and_whitespace_insensitive(self):
        assert PasscodeGate.check(_bundle(), '  a1b2c3\n')

    @pytest.mark.parametrize('supplied', ['A1B2C4', 'A1B2C', '', None, 'A1B2C3X'])
    def test_mismatch(self, supplied):
        assert PasscodeGate.check(_bundle(), supplied) is False

    def test_bundle_without_passcode_never_matches(self):
        bundle = _bundle(has_passcode=False, passcode=None)
        assert PasscodeGate.check(bundle, 'anything') is False
        assert PasscodeGate.check(bundle, '') is False

    def test_stale_passcode_ignored_when_disabled(self):
        assert PasscodeGate.check(_bundle(has_passcode=False), 'A1B2C3') is False

    def test_is_locked(self):
        assert PasscodeGate.is_locked(_bundle())
        assert not PasscodeGate.is_locked(_bundle(has_passcode=False, passcode=None))


class TestLockedSummary:
    def test_contents(self):
        summary = locked_summary(_bundle(show_lock_status=True))
        assert summary == {
            'public_id': 'pub-1',
            'title': 'Board pack',
            'description': 'Quarterly figures',
            'has_passcode': True,
            'show_lock_status': True,
        }

    def test_never_leaks_passcode_or_documents(self):
        summary = locked_summary(_bundle())
        assert 'A1B2C3' not in repr(summary)
        assert 'documents' not in summary
        assert 'doc_1' not in repr(summary)
