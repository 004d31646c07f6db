"""Render pairing QR payloads as PNG data URLs."""

from __future__ import annotations

import base64
from io import BytesIO
from typing import Optional

import qrcode
from qrcode.exceptions import DataOverflowError

from app.core.logging import get_logger

logger = get_logger(__name__)


def qr_png_bytes(payload: str) -> bytes:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer)
    return buffer.getvalue()


def qr_data_url(payload: str) -> Optional[str]:
    """``data:image/png;base64,...`` for ``payload``; None when it cannot be rendered."""
    if not payload:
        return None
    try:
        png = qr_png_bytes(payload)
    except (DataOverflowError, ValueError, OSError) as e:
        logger.warning("qr_render_failed", error=str(e))
        return None
    return "data:image/png;base64," + base64.b64encode(png).decode()
