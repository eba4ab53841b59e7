from __future__ import annotations
from datetime import datetime
from functools import lru_cache
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, Request
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

import config
from database import get_db
from models.qr_scan import ensure_utc, utc_now
from models.qrcode import QRCode
from utils.blob_store import BlobStore
from utils.qr_save import ContentUpdateEngine
from utils.rate_limit import LoginRateLimiter
from utils.repository import QRRepository
from utils.scan_dispatch import AccessContext, ScanDispatcher

# 📁 Templates liegen neben dem Projekt, unabhängig vom Arbeitsverzeichnis
templates = Jinja2Templates(directory=str(config.BASE_DIR / "templates"))

HISTORY_PREVIEW_LIMIT = 10


# --------------------------------------------------------------------------- #
# 🔌 Dependencies (in Tests über app.dependency_overrides austauschbar)
# --------------------------------------------------------------------------- #

@lru_cache(maxsize=1)
def get_blob_store() -> BlobStore:
    return BlobStore(config.UPLOAD_DIR)


def get_clock() -> Callable[[], datetime]:
    return utc_now


def get_repo(db: Session = Depends(get_db)) -> QRRepository:
    return QRRepository(db)


def get_dispatcher(
    repo: QRRepository = Depends(get_repo),
    store: BlobStore = Depends(get_blob_store),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> ScanDispatcher:
    return ScanDispatcher(repo, store, clock)


def get_update_engine(
    repo: QRRepository = Depends(get_repo),
    store: BlobStore = Depends(get_blob_store),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> ContentUpdateEngine:
    return ContentUpdateEngine(repo, store, clock)


def get_login_limiter(request: Request) -> LoginRateLimiter:
    return request.app.state.login_limiter


# --------------------------------------------------------------------------- #
# 🌐 Request-Hilfsfunktionen
# --------------------------------------------------------------------------- #

def client_ip(request: Request) -> str:
    """Erste Adresse aus X-Forwarded-For, sonst die direkte Client-IP."""
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded.strip():
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def build_access_context(request: Request, preview: bool = False) -> AccessContext:
    params = request.query_params
    return AccessContext(
        password=params.get("password"),
        preview=preview,
        export_format=params.get("format"),
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        referer=request.headers.get("referer"),
        country=request.headers.get("cf-ipcountry"),
    )


# --------------------------------------------------------------------------- #
# 🧾 Serialisierung
# --------------------------------------------------------------------------- #

def _iso(value: Optional[datetime]) -> Optional[str]:
    value = ensure_utc(value)
    return value.isoformat() if value else None


def serialize_qr(qr: QRCode, include_settings: bool = False, include_history: bool = False) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": qr.id,
        "title": qr.title,
        "content": qr.content,
        "scan_url": config.build_scan_url(qr.id),
        "qr_image_url": config.build_image_url(qr.id),
        "created_at": _iso(qr.created_at),
        "updated_at": _iso(qr.updated_at),
        "scan_count": qr.scan_count,
        "last_scanned_at": _iso(qr.last_scanned_at),
        "active": bool(qr.active),
    }
    if include_settings:
        data["settings"] = qr.settings
    if include_history:
        data["history"] = list(qr.history or [])[-HISTORY_PREVIEW_LIMIT:]
    return data
