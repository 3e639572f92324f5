"""Supabase error hierarchy.

Raised by ``SupabaseClient`` for any non-2xx PostgREST, Storage or Functions
response. Errors carry the parsed status and message only, never the
``httpx.Response`` (whose request holds the service-role key).
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(eq=False)
class SupabaseError(Exception):
    status_code: int
    message: str
    code: str | None = None
    details: str | None = None
    hint: str | None = None

    def __str__(self) -> str:
        bits: list[str] = [f"SupabaseError(status={self.status_code})", self.message]
        if self.code:
            bits.append(f"code={self.code}")
        if self.details:
            bits.append(f"details={self.details}")
        return " ".join(bits)


class SupabaseAuthError(SupabaseError):
    """401/403: bad key or row-level security refusal."""


class SupabaseNotFoundError(SupabaseError):
    """404: missing table, function, bucket or object."""


class SupabaseConflictError(SupabaseError):
    """409: unique violation (e.g. a public_id collision)."""


def error_class_for(status_code: int) -> type[SupabaseError]:
    if status_code in (401, 403):
        return SupabaseAuthError
    if status_code == 404:
        return SupabaseNotFoundError
    if status_code == 409:
        return SupabaseConflictError
    return SupabaseError
