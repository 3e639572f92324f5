"""Caller identity resolution.

Authentication itself is handled upstream; this module only reads the
identity the upstream issued.

Transports (in order of precedence):
  - Bearer: ``Authorization: Bearer <jwt>`` signed HS256 with
    ``settings.session_secret``. Claims: ``sub`` (required), ``role``,
    ``org``, ``dept``, ``email``.
  - Local headers (``environment == 'local'`` only): ``X-User-ID``,
    ``X-User-Role``, ``X-Org-ID``, ``X-Dept-ID``.

Management routes depend on ``get_caller_identity`` (401 without identity).
Public QR routes depend on ``get_optional_identity``.
"""

from __future__ import annotations

from dataclasses import dataclass

import jwt
from fastapi import Request

from ..errors import Unauthorized
from .permissions import Role

BEARER_PREFIX = 'Bearer '


@dataclass(frozen=True, slots=True)
class CallerIdentity:
    """Identity of an authenticated caller."""

    user_id: str
    role: Role = Role.USER
    organization_id: str | None = None
    department_id: str | None = None
    email: str = ''


def extract_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get('authorization', '')
    if auth_header.startswith(BEARER_PREFIX):
        return auth_header[len(BEARER_PREFIX):].strip() or None
    return None


def decode_identity_token(token: str, secret: str) -> CallerIdentity:
    """Verify an HS256 token and build the identity.

    Raises:
        Unauthorized: On any verification failure.
    """
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=['HS256'],
            options={'require': ['sub', 'exp'], 'verify_exp': True},
        )
    except jwt.ExpiredSignatureError:
        raise Unauthorized('Session has expired.')
    except jwt.InvalidTokenError:
        raise Unauthorized('Invalid credentials.')

    return CallerIdentity(
        user_id=str(claims['sub']),
        role=Role.parse(claims.get('role')),
        organization_id=claims.get('org'),
        department_id=claims.get('dept'),
        email=(claims.get('email') or '').lower(),
    )


def resolve_identity(request: Request) -> CallerIdentity | None:
    """Resolve the caller identity, or None when no credential is present."""
    settings = request.app.state.settings

    token = extract_bearer_token(request)
    if token:
        if not settings.session_secret:
            raise Unauthorized('Bearer authentication is not configured.')
        return decode_identity_token(token, settings.session_secret)

    if settings.is_local:
        user_id = request.headers.get('x-user-id')
        if user_id:
            return CallerIdentity(
                user_id=user_id,
                role=Role.parse(request.headers.get('x-user-role')),
                organization_id=request.headers.get('x-org-id'),
                department_id=request.headers.get('x-dept-id'),
            )
    return None


def get_caller_identity(request: Request) -> CallerIdentity:
    """FastAPI dependency: require an authenticated caller."""
    identity = resolve_identity(request)
    if identity is None:
        raise Unauthorized('Authentication required.')
    return identity


def get_optional_identity(request: Request) -> CallerIdentity | None:
    """FastAPI dependency: identity if supplied. Bad credentials still fail."""
    return resolve_identity(request)
