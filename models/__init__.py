# =============================================================================
# 📦 models/__init__.py
# -----------------------------------------------------------------------------
# Registriert alle Modelle an Base.metadata
# =============================================================================

from .qr_scan import QRScan
from .qrcode import QRCode

__all__ = [
    "QRCode",
    "QRScan",
]
