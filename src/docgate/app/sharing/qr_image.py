"""QR image rendering and publication.

``render_qr_png`` is a pure function from the signed payload URL to PNG
bytes (error correction H, border 2). ``QRArtifactPublisher`` renders and
uploads the image under ``qrcodes/{public_id}.png`` and returns its URL.
"""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

import qrcode
from qrcode.constants import ERROR_CORRECT_H

from ...observability.logging import get_logger
from ..errors import InternalError

if TYPE_CHECKING:
    from ..protocols import ObjectStorage

logger = get_logger(__name__)

QR_BOX_SIZE = 10
QR_BORDER = 2
PNG_CONTENT_TYPE = 'image/png'


def qr_storage_key(public_id: str) -> str:
    return f'qrcodes/{public_id}.png'


def render_qr_png(payload: str) -> bytes:
    qr = qrcode.QRCode(
        error_correction=ERROR_CORRECT_H,
        box_size=QR_BOX_SIZE,
        border=QR_BORDER,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    image = qr.make_image(fill_color='black', back_color='white')
    buf = io.BytesIO()
    image.save(buf, format='PNG')
    return buf.getvalue()


class QRArtifactPublisher:
    """Renders a bundle's QR image and stores it."""

    def __init__(self, storage: ObjectStorage) -> None:
        self._storage = storage

    async def publish(self, public_id: str, payload_url: str) -> str:
        """Render and upload; return the stored image URL.

        Raises:
            InternalError: If rendering or upload fails.
        """
        try:
            png = render_qr_png(payload_url)
        except Exception as exc:
            logger.exception('qr_render_failed', public_id=public_id)
            raise InternalError('Failed to generate QR code.') from exc
        try:
            return await self._storage.put(qr_storage_key(public_id), png, PNG_CONTENT_TYPE)
        except InternalError:
            raise
        except Exception as exc:
            logger.exception('qr_upload_failed', public_id=public_id)
            raise InternalError('Failed to store QR code.') from exc
