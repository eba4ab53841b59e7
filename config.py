# =============================================================================
# ⚙️ config.py
# -----------------------------------------------------------------------------
# Zentrale Konfiguration für Dynamic QR (.env + Umgebungsvariablen)
# =============================================================================

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional, Tuple
from urllib.parse import quote_plus

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent

# 🔹 .env laden (muss vor allen os.getenv-Aufrufen passieren)
load_dotenv(dotenv_path=BASE_DIR / ".env")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw.strip() else default
    except ValueError:
        return default


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


# -----------------------------------------------------------------------------
# 🗄️ Datenbank
# -----------------------------------------------------------------------------
def get_database_url() -> str:
    """
    DATABASE_URL hat Vorrang. Sonst MySQL (wenn MYSQL_HOST gesetzt ist),
    ansonsten eine lokale SQLite-Datei.
    """
    explicit = os.getenv("DATABASE_URL", "").strip()
    if explicit:
        return explicit

    if os.getenv("MYSQL_HOST"):
        user = os.getenv("MYSQL_USER", "root")
        password = quote_plus(os.getenv("MYSQL_PASS", ""))
        host = os.getenv("MYSQL_HOST", "localhost")
        port = os.getenv("MYSQL_PORT", "3306")
        name = os.getenv("MYSQL_DB", "dynamic_qr")
        return f"mysql+pymysql://{user}:{password}@{host}:{port}/{name}?charset=utf8mb4"

    return f"sqlite:///{BASE_DIR / 'dynamic_qr.db'}"


# -----------------------------------------------------------------------------
# 🌐 Öffentliche URLs
# -----------------------------------------------------------------------------
def get_base_url() -> str:
    return os.getenv("BASE_URL", "http://localhost:8000").rstrip("/")


def build_scan_url(qr_id: str) -> str:
    """Kanonische Scan-URL, die im QR-Bild kodiert wird."""
    return f"{get_base_url()}/scan/{qr_id}"


def build_image_url(qr_id: str) -> str:
    return f"{get_base_url()}/qr-image/{qr_id}"


# -----------------------------------------------------------------------------
# 📁 Uploads / Blob-Store
# -----------------------------------------------------------------------------
UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", str(BASE_DIR / "uploads")))
MAX_FILE_SIZE = _env_int("MAX_FILE_SIZE", 104857600)  # 100 MB


def get_allowed_file_types() -> List[str]:
    raw = os.getenv("ALLOWED_FILE_TYPES", "")
    return [t.strip() for t in raw.split(",") if t.strip()]


# -----------------------------------------------------------------------------
# 🧩 QR-Bild
# -----------------------------------------------------------------------------
QR_SIZE = _env_int("QR_SIZE", 400)
QR_MARGIN = _env_int("QR_MARGIN", 2)


# -----------------------------------------------------------------------------
# 🔐 Session & Admin
# -----------------------------------------------------------------------------
SESSION_SECRET = os.getenv("SESSION_SECRET", "dynamic-qr-secret-key")
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "dynamic_qr_session")
SESSION_SAME_SITE = os.getenv("SESSION_SAME_SITE", "lax")
SESSION_HTTPS_ONLY = _env_flag("SESSION_HTTPS_ONLY")
SESSION_MAX_AGE = 60 * 60 * 24

LOGIN_MAX_ATTEMPTS = _env_int("LOGIN_MAX_ATTEMPTS", 5)
LOGIN_LOCKOUT_MINUTES = _env_int("LOGIN_LOCKOUT_MINUTES", 15)


def get_admin_credentials() -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """
    Liefert (username, password, password_hash) – zur Laufzeit gelesen,
    damit Änderungen an der Umgebung ohne Neustart greifen.
    """
    return (
        os.getenv("ADMIN_USERNAME") or None,
        os.getenv("ADMIN_PASSWORD") or None,
        os.getenv("ADMIN_PASSWORD_HASH") or None,
    )
