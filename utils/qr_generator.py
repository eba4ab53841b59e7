# =============================================================================
# 🧠 QR-Code Generator – Dynamic QR
# -----------------------------------------------------------------------------
# Kodiert einen Text als QR-Bild (PNG über Pillow, SVG über qrcode's
# SVG-Factory). Gibt immer Bytes zurück, schreibt selbst keine Dateien.
# =============================================================================

from __future__ import annotations
from typing import Any, Dict, Optional
from io import BytesIO
import logging
import qrcode
import qrcode.image.svg
from qrcode.constants import (
    ERROR_CORRECT_H,
    ERROR_CORRECT_L,
    ERROR_CORRECT_M,
    ERROR_CORRECT_Q,
)
from PIL import Image, ImageColor

from utils.qr_config import QR_DEFAULT_OPTIONS

# ---------------------------------------------------------------------------
# ⚙️ Logging konfigurieren
# ---------------------------------------------------------------------------
logger = logging.getLogger(__name__)

ERROR_LEVELS = {
    "L": ERROR_CORRECT_L,
    "M": ERROR_CORRECT_M,
    "Q": ERROR_CORRECT_Q,
    "H": ERROR_CORRECT_H,
}

MIME_TYPES = {
    "png": "image/png",
    "svg": "image/svg+xml",
}


def _build_matrix(text: str, margin: int, error_correction: str) -> qrcode.QRCode:
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_LEVELS.get((error_correction or "M").upper(), ERROR_CORRECT_M),
        box_size=10,
        border=max(0, int(margin)),
    )
    qr.add_data(text)
    qr.make(fit=True)
    return qr


# ---------------------------------------------------------------------------
# 🧩 Hauptfunktion: encode_qr
# ---------------------------------------------------------------------------
def encode_qr(text: str, options: Optional[Dict[str, Any]] = None, fmt: str = "png") -> bytes:
    """
    Erstellt ein QR-Bild für `text`.
    options: width, margin, dark, light, error_correction
    """
    if not text:
        raise ValueError("QR payload must not be empty")

    opts = {**QR_DEFAULT_OPTIONS, **(options or {})}
    qr = _build_matrix(text, opts["margin"], opts["error_correction"])

    # === SVG ===
    if fmt == "svg":
        img = qr.make_image(image_factory=qrcode.image.svg.SvgPathFillImage)
        buffer = BytesIO()
        img.save(buffer)
        return buffer.getvalue()

    if fmt != "png":
        raise ValueError(f"Unsupported QR format: {fmt}")

    # === PNG ===
    img = qr.make_image(
        fill_color=ImageColor.getrgb(opts["dark"]),
        back_color=ImageColor.getrgb(opts["light"]),
    ).convert("RGB")

    width = int(opts["width"])
    if width > 0 and img.size != (width, width):
        img = img.resize((width, width), Image.Resampling.NEAREST)

    buffer = BytesIO()
    img.save(buffer, format="PNG")
    data = buffer.getvalue()

    if not data:
        raise ValueError("QR encoder produced no bytes")

    logger.debug(f"✅ QR-Bild erzeugt ({fmt}, {width}px, {len(data)} bytes)")
    return data
