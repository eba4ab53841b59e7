"""
utils/qr_engine.py
────────────────────────────────────────────
Bindet eine QR-ID an ihr QR-Bild.
- Kodiert immer die Scan-URL <BASE_URL>/scan/<id>
- Speichert unter qrcodes/dynamic_qr_<id>.png im Blob-Store
- Rendert bei Bedarf neu (Größe, Format, Farbstil) ohne die
  gespeicherte Bildreferenz anzufassen
────────────────────────────────────────────
"""

from typing import Any, Callable, Dict, Optional, Tuple
import logging

import config
from utils.blob_store import BlobStore
from utils.errors import BlobWriteError, ImageBindingError
from utils.qr_config import get_qr_options
from utils.qr_generator import MIME_TYPES, encode_qr

logger = logging.getLogger(__name__)

QR_IMAGE_DIR = "qrcodes"

Encoder = Callable[..., bytes]


def image_ref_for(qr_id: str) -> str:
    return f"{QR_IMAGE_DIR}/dynamic_qr_{qr_id}.png"


def bind_qr_image(
    qr_id: str,
    store: BlobStore,
    encoder: Encoder = encode_qr,
    options: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Erstellt das QR-Bild für eine neue ID und gibt die Bildreferenz zurück.
    Bei jedem Fehler wird ein evtl. teilweise geschriebenes Bild gelöscht.
    """
    scan_url = config.build_scan_url(qr_id)
    ref = image_ref_for(qr_id)

    try:
        data = encoder(scan_url, options or get_qr_options(), "png")
        store.write(data, ref)
    except (BlobWriteError, ValueError, OSError) as exc:
        logger.exception(f"❌ QR-Bild konnte nicht erstellt werden: {qr_id}")
        store.delete(ref)
        raise ImageBindingError(f"could not bind image for {qr_id}") from exc

    logger.info(f"🎯 QR-Bild erstellt: {ref} → {scan_url}")
    return ref


def render_qr_image(
    qr_id: str,
    size: Optional[str] = None,
    fmt: str = "png",
    style_name: Optional[str] = None,
    encoder: Encoder = encode_qr,
) -> Tuple[bytes, str]:
    """Rendert das QR-Bild neu und gibt (bytes, mime_type) zurück."""
    options = get_qr_options(style_name=style_name, size=size)
    data = encoder(config.build_scan_url(qr_id), options, fmt)
    return data, MIME_TYPES[fmt]
