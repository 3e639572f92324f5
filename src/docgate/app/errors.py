"""Domain error taxonomy for the sharing engine.

Every error carries an HTTP ``status_code`` and a stable ``code`` so a single
exception handler can render ``{'error': code, 'detail': message}``.

Gate failures are intentionally low-information: ``Forbidden`` raised for an
inaccessible bundle always carries ``INACCESSIBLE_DETAIL`` regardless of the
underlying reason (not yet published, rejected, expired, quota).
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

INACCESSIBLE_DETAIL = 'This QR bundle is not currently accessible.'


class SharingError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    code: str = 'internal_error'
    default_detail: str = 'Internal error.'

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(SharingError):
    """Malformed create/update request (e.g. duplicate documents)."""

    status_code = 400
    code = 'validation_error'
    default_detail = 'Invalid request.'


class NotFound(SharingError):
    """Unknown public id, bundle, or referenced document."""

    status_code = 404
    code = 'not_found'
    default_detail = 'QR bundle not found.'


class Forbidden(SharingError):
    """Accessibility gate failed, or the caller lacks the capability."""

    status_code = 403
    code = 'forbidden'
    default_detail = INACCESSIBLE_DETAIL


class Unauthorized(SharingError):
    """Bad passcode or missing caller identity."""

    status_code = 401
    code = 'unauthorized'
    default_detail = 'Unauthorized.'


class InvalidSignature(Unauthorized):
    """QR URL signature missing or wrong. Public endpoints answer 400."""

    status_code = 400
    code = 'invalid_signature'
    default_detail = 'Invalid QR code signature.'


class InternalError(SharingError):
    """Storage or image-generation failure."""


# ── FastAPI wiring ───────────────────────────────────────────────────


async def sharing_error_handler(request: Request, exc: SharingError) -> JSONResponse:
    headers = {'WWW-Authenticate': 'Bearer'} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={'error': exc.code, 'detail': exc.detail},
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render body/query validation failures as 400 validation_error."""
    first = exc.errors()[0] if exc.errors() else {}
    location = '.'.join(str(p) for p in first.get('loc', ()) if p != 'body')
    message = first.get('msg', ValidationError.default_detail)
    detail = f'{location}: {message}' if location else message
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={'error': ValidationError.code, 'detail': detail},
    )


def install_error_handlers(app: FastAPI) -> None:
    """Register the SharingError and request-validation handlers on ``app``."""
    app.add_exception_handler(SharingError, sharing_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
