# routes/qr_base.py
# =============================================================================
# 🚀 Zentrale QR-Verwaltung (nur Admin)
# - Anlegen / Inhalt tauschen / Liste / Details / Statistik
# - Einstellungen / Löschen / Wiederherstellen / Bulk-Delete
# =============================================================================

from __future__ import annotations
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel, Field

import config
from routes.utils import (
    get_blob_store,
    get_clock,
    get_repo,
    get_update_engine,
    serialize_qr,
)
from utils.access_control import require_admin
from utils.blob_store import BlobStore, store_upload
from utils.errors import InvalidContentType, NotFoundError
from utils.qr_content import CONTENT_TYPES
from utils.qr_save import (
    ContentUpdateEngine,
    bulk_delete,
    create_qr,
    hard_delete,
    restore,
    soft_delete,
    update_settings,
)
from utils.repository import Page, QRFilter, QRRepository, QRSort, SORT_FIELDS
from utils.scan_dispatch import start_of_day

router = APIRouter(
    prefix="/api/qr",
    tags=["QR-Codes"],
    dependencies=[Depends(require_admin)],
)

MAX_PAGE_SIZE = 50


class CreateQRIn(BaseModel):
    title: str = Field(..., description="Anzeigename")
    description: Optional[str] = None


class SettingsIn(BaseModel):
    allow_tracking: Optional[bool] = None
    custom_domain: Optional[str] = None
    password: Optional[str] = None


class BulkDeleteIn(BaseModel):
    qr_ids: List[str] = Field(default_factory=list)
    force: bool = False


def _find_active_or_404(repo: QRRepository, qr_id: str):
    qr = repo.find_by_id(qr_id, active=True)
    if qr is None:
        raise NotFoundError()
    return qr


# =============================================================================
# ✅ ANLEGEN
# =============================================================================
@router.post("/create", status_code=201)
def create(
    payload: CreateQRIn,
    repo: QRRepository = Depends(get_repo),
    store: BlobStore = Depends(get_blob_store),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> Dict[str, Any]:
    qr = create_qr(repo, store, payload.title, payload.description, clock=clock)
    return {
        "success": True,
        "message": "QR code created",
        "qr": serialize_qr(qr),
    }


# =============================================================================
# ✅ LISTE / STATISTIK
# =============================================================================
@router.get("")
def list_qrs(
    page: int = 1,
    limit: int = 10,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    content_type: Optional[str] = None,
    search: Optional[str] = None,
    repo: QRRepository = Depends(get_repo),
) -> Dict[str, Any]:
    page = max(1, page)
    limit = min(MAX_PAGE_SIZE, max(1, limit))
    sort_field = sort_by if sort_by in SORT_FIELDS else "created_at"
    descending = sort_order.lower() != "asc"

    type_filter = None
    if content_type and content_type != "all":
        if content_type not in CONTENT_TYPES:
            raise InvalidContentType(content_type)
        type_filter = content_type

    flt = QRFilter(active=True, content_type=type_filter, search=search)
    rows = repo.find_active(flt, QRSort(sort_field, descending), Page(page, limit))
    total = repo.count(flt)
    pages = -(-total // limit)

    return {
        "success": True,
        "qrs": [serialize_qr(qr) for qr in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": pages,
            "has_next": page < pages,
            "has_prev": page > 1,
        },
        "filters": {
            "content_type": content_type or "all",
            "search": search or "",
            "sort_by": sort_field,
            "sort_order": "desc" if descending else "asc",
        },
    }


@router.get("/stats")
def stats(
    repo: QRRepository = Depends(get_repo),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> Dict[str, Any]:
    data = repo.stats(start_of_day(clock()))
    data["recent"] = [serialize_qr(qr) for qr in data["recent"]]
    data["popular"] = [serialize_qr(qr) for qr in data["popular"]]
    return {"success": True, "stats": data}


@router.post("/bulk-delete")
def bulk_delete_route(
    payload: BulkDeleteIn,
    repo: QRRepository = Depends(get_repo),
    store: BlobStore = Depends(get_blob_store),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> Dict[str, Any]:
    results = bulk_delete(repo, store, payload.qr_ids, force=payload.force, clock=clock)
    return {
        "success": True,
        "message": f"{len(results['success'])} QR code(s) deleted",
        "results": results,
    }


# =============================================================================
# ✅ EINZELNER QR-CODE
# =============================================================================
@router.get("/{qr_id}")
def get_qr(
    qr_id: str,
    include_history: bool = False,
    repo: QRRepository = Depends(get_repo),
) -> Dict[str, Any]:
    qr = _find_active_or_404(repo, qr_id)
    return {
        "success": True,
        "qr": serialize_qr(qr, include_settings=True, include_history=include_history),
    }


@router.put("/{qr_id}/content")
async def update_content(
    qr_id: str,
    content_type: str = Form(...),
    text: Optional[str] = Form(None),
    url: Optional[str] = Form(None),
    link_title: Optional[str] = Form(None),
    name: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    organization: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    repo: QRRepository = Depends(get_repo),
    store: BlobStore = Depends(get_blob_store),
    engine: ContentUpdateEngine = Depends(get_update_engine),
) -> Dict[str, Any]:
    """Tauscht den aktiven Inhalt (multipart, Datei optional)."""
    qr = _find_active_or_404(repo, qr_id)

    uploaded = await store_upload(
        store,
        file,
        max_size=config.MAX_FILE_SIZE,
        allowed_types=config.get_allowed_file_types(),
    )
    fields = {
        "text": text,
        "url": url,
        "link_title": link_title,
        "name": name,
        "phone": phone,
        "email": email,
        "organization": organization,
        "description": description,
    }
    qr = engine.update(qr, content_type, fields, uploaded)

    return {
        "success": True,
        "message": "Content updated",
        "qr": serialize_qr(qr),
    }


@router.put("/{qr_id}/settings")
def update_settings_route(
    qr_id: str,
    payload: SettingsIn,
    repo: QRRepository = Depends(get_repo),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> Dict[str, Any]:
    qr = _find_active_or_404(repo, qr_id)
    # Nur explizit gesendete Felder ändern
    changes = {key: getattr(payload, key) for key in payload.model_fields_set}
    update_settings(repo, qr, clock=clock, **changes)
    return {
        "success": True,
        "message": "Settings updated",
        "settings": qr.settings,
    }


@router.delete("/{qr_id}")
def delete_qr(
    qr_id: str,
    force: bool = False,
    repo: QRRepository = Depends(get_repo),
    store: BlobStore = Depends(get_blob_store),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> Dict[str, Any]:
    qr = repo.find_by_id(qr_id)
    if qr is None:
        raise NotFoundError()

    if force:
        hard_delete(repo, store, qr)
        return {"success": True, "message": "QR code permanently deleted", "deleted": True}

    soft_delete(repo, qr, clock)
    return {
        "success": True,
        "message": "QR code deactivated",
        "deleted": False,
        "note": "The QR code stops resolving, its data is kept",
    }


@router.post("/{qr_id}/restore")
def restore_qr(
    qr_id: str,
    repo: QRRepository = Depends(get_repo),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> Dict[str, Any]:
    qr = repo.find_by_id(qr_id, active=False)
    if qr is None:
        raise NotFoundError("Deleted QR not found")
    restore(repo, qr, clock)
    return {
        "success": True,
        "message": "QR code restored",
        "qr": serialize_qr(qr),
    }
