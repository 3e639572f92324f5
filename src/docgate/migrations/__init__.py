"""Migration discovery and idempotency linting for the ``qr`` schema.

Migrations are applied with ``supabase db push``; this module only discovers
them in order and checks that each file can be re-run safely:

  1. CREATE SCHEMA / TABLE / INDEX use IF NOT EXISTS.
  2. CREATE FUNCTION uses CREATE OR REPLACE.
  3. CREATE TRIGGER / POLICY are preceded by DROP ... IF EXISTS of the same name.
  4. DROP TABLE / INDEX use IF EXISTS.
  5. ADD COLUMN uses IF NOT EXISTS (warning).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

_MIGRATION_RE = re.compile(r'^(\d{3})_.*\.sql$')

MIGRATIONS_DIR = Path(__file__).parent


@dataclass(frozen=True, slots=True)
class MigrationFile:
    sequence: int
    filename: str
    path: Path


@dataclass
class ValidationResult:
    path: Path
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


# (pattern, message, severity)
_LINE_RULES: list[tuple[re.Pattern[str], str, str]] = [
    (
        re.compile(r'^create\s+schema\s+(?!if\s+not\s+exists)', re.IGNORECASE),
        'CREATE SCHEMA without IF NOT EXISTS',
        'error',
    ),
    (
        re.compile(r'^create\s+table\s+(?!if\s+not\s+exists)', re.IGNORECASE),
        'CREATE TABLE without IF NOT EXISTS',
        'error',
    ),
    (
        re.compile(r'^create\s+(unique\s+)?index\s+(?!if\s+not\s+exists)', re.IGNORECASE),
        'CREATE INDEX without IF NOT EXISTS',
        'error',
    ),
    (
        re.compile(r'^create\s+function\s+', re.IGNORECASE),
        'CREATE FUNCTION without OR REPLACE',
        'error',
    ),
    (
        re.compile(r'^drop\s+(table|index)\s+(?!if\s+exists)', re.IGNORECASE),
        'DROP TABLE/INDEX without IF EXISTS',
        'error',
    ),
    (
        re.compile(r'\badd\s+column\s+(?!if\s+not\s+exists)', re.IGNORECASE),
        'ADD COLUMN without IF NOT EXISTS',
        'warning',
    ),
]

_CREATE_NAMED_RE = re.compile(
    r'^create\s+(?:or\s+replace\s+)?(trigger|policy)\s+(\S+)', re.IGNORECASE
)
_DROP_NAMED_RE = re.compile(
    r'^drop\s+(trigger|policy)\s+if\s+exists\s+(\S+)', re.IGNORECASE
)


def discover_migrations(directory: Path | None = None) -> list[MigrationFile]:
    """Migration files sorted by sequence number.

    Raises:
        ValueError: On a duplicate sequence number.
    """
    d = directory or MIGRATIONS_DIR
    seen: dict[int, str] = {}
    results: list[MigrationFile] = []
    for p in sorted(d.iterdir()):
        m = _MIGRATION_RE.match(p.name)
        if not p.is_file() or not m:
            continue
        seq = int(m.group(1))
        if seq in seen:
            raise ValueError(f'Duplicate migration sequence {seq:03d}: {seen[seq]} and {p.name}')
        seen[seq] = p.name
        results.append(MigrationFile(sequence=seq, filename=p.name, path=p))
    results.sort(key=lambda mf: mf.sequence)
    return results


def validate_idempotency(sql_path: Path) -> ValidationResult:
    result = ValidationResult(path=sql_path)
    dropped: set[tuple[str, str]] = set()

    for i, line in enumerate(sql_path.read_text().splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith('--'):
            continue

        drop = _DROP_NAMED_RE.match(stripped)
        if drop:
            dropped.add((drop.group(1).lower(), drop.group(2).lower()))
            continue

        create = _CREATE_NAMED_RE.match(stripped)
        if create:
            kind, name = create.group(1).lower(), create.group(2).lower()
            if (kind, name) not in dropped:
                result.errors.append(
                    f'Line {i}: CREATE {kind.upper()} {create.group(2)} without '
                    f'preceding DROP {kind.upper()} IF EXISTS'
                )
            continue

        for pattern, message, severity in _LINE_RULES:
            if pattern.search(stripped):
                target = result.errors if severity == 'error' else result.warnings
                target.append(f'Line {i}: {message}')

    return result


def validate_all(directory: Path | None = None) -> dict[str, ValidationResult]:
    return {
        mf.filename: validate_idempotency(mf.path)
        for mf in discover_migrations(directory)
    }
