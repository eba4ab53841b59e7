"""
utils/qr_config.py
────────────────────────────────────────────
QR-Bild-Konfiguration für Dynamic QR.

Standardoptionen (Größe, Rand, Farben, Fehlerkorrektur)
sowie die benannten Farbstile und Größenstufen für das
erneute Rendern eines QR-Bildes.
────────────────────────────────────────────
"""

from typing import Dict, Any, Optional

import config

# ─────────────────────────────────────────────
# 🎨 STANDARDOPTIONEN
# ─────────────────────────────────────────────
QR_DEFAULT_OPTIONS: Dict[str, Any] = {
    "width": 400,
    "margin": 2,
    "dark": "#0016D8",
    "light": "#FFFFFF",
    "error_correction": "M",
}

# ─────────────────────────────────────────────
# 🪄 FARBSTILE
# ─────────────────────────────────────────────
QR_STYLES: Dict[str, Dict[str, str]] = {
    "default": {"dark": "#000000", "light": "#FFFFFF"},
    "blue": {"dark": "#1a73e8", "light": "#FFFFFF"},
    "green": {"dark": "#34a853", "light": "#FFFFFF"},
    "red": {"dark": "#ea4335", "light": "#FFFFFF"},
    "purple": {"dark": "#9c27b0", "light": "#FFFFFF"},
    # Verläufe kann der Encoder nicht – nächstliegende Vollfarbe
    "gradient": {"dark": "#667eea", "light": "#FFFFFF"},
}

# ─────────────────────────────────────────────
# 📐 GRÖSSENSTUFEN (Pixel)
# ─────────────────────────────────────────────
QR_SIZES: Dict[str, int] = {
    "small": 200,
    "medium": 400,
    "large": 800,
}

QR_FORMATS = ("png", "svg")


# ─────────────────────────────────────────────
# 🧠 FUNKTION: Optionen zusammenstellen
# ─────────────────────────────────────────────
def get_qr_options(
    style_name: Optional[str] = None,
    size: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Liefert die Encoder-Optionen. Breite und Rand kommen aus der
    Konfiguration (QR_SIZE / QR_MARGIN). Unbekannte Stile oder
    Größen werden ignoriert.
    """
    options = {
        **QR_DEFAULT_OPTIONS,
        "width": config.QR_SIZE,
        "margin": config.QR_MARGIN,
    }
    if style_name and style_name in QR_STYLES:
        options.update(QR_STYLES[style_name])
    if size and size in QR_SIZES:
        options["width"] = QR_SIZES[size]
    return options
