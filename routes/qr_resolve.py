# =============================================================================
# 🔄 Öffentlicher QR-Resolver (Dynamic QR)
# -----------------------------------------------------------------------------
#       GET /scan/{id}          → gezählter Scan
#       GET /preview/{id}       → Vorschau (ohne Zählung)
#       GET /r/{id}             → Kurz-Redirect
#       GET /custom/{domain}    → Scan über eigene Domain
#       GET /qr-image/{id}      → QR-Bild (PNG/SVG)
#       GET /api/scan-info/{id} → öffentliche Kurzinfo
#       GET /api/scan-stats/{id}→ Scan-Statistik
#
# Die Auflösung selbst passiert im ScanDispatcher, hier wird nur die
# Anweisung in eine HTTP-Antwort übersetzt.
# =============================================================================

from __future__ import annotations
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union
from urllib.parse import quote

import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import (
    FileResponse,
    HTMLResponse,
    RedirectResponse,
    Response,
)

from routes.utils import (
    build_access_context,
    get_blob_store,
    get_clock,
    get_dispatcher,
    get_repo,
    templates,
)
from utils.blob_store import BlobStore
from utils.errors import NotFoundError, ValidationError
from utils.qr_config import QR_FORMATS, QR_SIZES, QR_STYLES
from utils.qr_content import LinkContent
from utils.qr_engine import render_qr_image
from utils.repository import QRRepository
from utils.scan_dispatch import (
    Directive,
    ErrorDirective,
    Export,
    NotFound,
    PasswordRequired,
    Redirect,
    Render,
    ScanDispatcher,
    Stream,
    scan_info,
    scan_stats,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["QR-Resolver"])

# ✅ Einheitlicher Rückgabewert
ResponseType = Union[
    RedirectResponse,
    FileResponse,
    HTMLResponse,
    Response,
]

IMAGE_CACHE_SECONDS = 60 * 60 * 24


def attachment_header(filename: str) -> str:
    """
    Content-Disposition für Downloads. Header sind Latin-1: der ASCII-Name
    steht in filename=, der vollständige Name zusätzlich in filename*= (RFC 5987).
    """
    ascii_name = filename.encode("ascii", "ignore").decode("ascii").replace('"', "").strip()
    # "李雷.vcf" → ".vcf"
    if ascii_name.startswith("."):
        ascii_name = f"contact{ascii_name}"
    ascii_name = ascii_name or "contact"
    header = f'attachment; filename="{ascii_name}"'
    if ascii_name != filename:
        header += f"; filename*=utf-8''{quote(filename)}"
    return header


# =============================================================================
# 🧭 Anweisung → Response
# =============================================================================
def to_response(
    request: Request,
    directive: Directive,
    store: BlobStore,
) -> ResponseType:
    if isinstance(directive, Redirect):
        return RedirectResponse(directive.url, status_code=directive.status_code)

    if isinstance(directive, Stream):
        return FileResponse(
            store.path_for(directive.blob_ref),
            media_type=directive.mime_type,
            filename=directive.original_name,
            content_disposition_type=directive.disposition,
        )

    if isinstance(directive, Export):
        return Response(
            content=directive.body,
            media_type=directive.media_type,
            headers={"Content-Disposition": attachment_header(directive.filename)},
        )

    if isinstance(directive, Render):
        return templates.TemplateResponse(
            request,
            f"scan_{directive.view}.html",
            {
                "qr_id": directive.qr_id,
                "title": directive.title,
                "content": directive.content,
                "scan_count": directive.scan_count,
                **directive.extra,
            },
        )

    if isinstance(directive, PasswordRequired):
        return templates.TemplateResponse(
            request,
            "scan_password.html",
            {
                "qr_id": directive.qr_id,
                "title": directive.title,
                "action": f"/{'preview' if directive.preview else 'scan'}/{directive.qr_id}",
                "attempted": directive.attempted,
                "export_format": directive.export_format,
            },
        )

    if isinstance(directive, NotFound):
        return templates.TemplateResponse(
            request,
            "scan_not_found.html",
            {"qr_id": directive.qr_id},
            status_code=404,
        )

    error = directive if isinstance(directive, ErrorDirective) else ErrorDirective()
    return templates.TemplateResponse(
        request,
        "scan_error.html",
        {"message": error.message, "code": error.code},
        status_code=error.status_code,
    )


# =============================================================================
# 📲 Scan & Vorschau
# =============================================================================
@router.get("/scan/{qr_id}", response_model=None)
def scan(
    qr_id: str,
    request: Request,
    dispatcher: ScanDispatcher = Depends(get_dispatcher),
    store: BlobStore = Depends(get_blob_store),
) -> ResponseType:
    directive = dispatcher.resolve(qr_id, build_access_context(request))
    return to_response(request, directive, store)


@router.get("/preview/{qr_id}", response_model=None)
def preview(
    qr_id: str,
    request: Request,
    dispatcher: ScanDispatcher = Depends(get_dispatcher),
    store: BlobStore = Depends(get_blob_store),
) -> ResponseType:
    directive = dispatcher.resolve(qr_id, build_access_context(request, preview=True))
    return to_response(request, directive, store)


@router.get("/r/{qr_id}", response_model=None)
def quick_redirect(
    qr_id: str,
    request: Request,
    repo: QRRepository = Depends(get_repo),
    dispatcher: ScanDispatcher = Depends(get_dispatcher),
    store: BlobStore = Depends(get_blob_store),
) -> ResponseType:
    """Link-Inhalte werden direkt weitergeleitet, alles andere landet auf /scan."""
    qr = repo.find_by_id(qr_id, active=True)
    if qr is None:
        return to_response(request, NotFound(qr_id), store)

    if isinstance(qr.get_content(), LinkContent):
        directive = dispatcher.resolve(qr_id, build_access_context(request))
        return to_response(request, directive, store)

    target = f"/scan/{qr_id}"
    if request.url.query:
        target = f"{target}?{request.url.query}"
    return RedirectResponse(target, status_code=302)


@router.get("/custom/{domain}", response_model=None)
def custom_domain(
    domain: str,
    request: Request,
    dispatcher: ScanDispatcher = Depends(get_dispatcher),
    store: BlobStore = Depends(get_blob_store),
) -> ResponseType:
    directive = dispatcher.resolve_custom_domain(domain, build_access_context(request))
    return to_response(request, directive, store)


# =============================================================================
# 🖼️ QR-Bild
# =============================================================================
@router.get("/qr-image/{qr_id}", response_model=None)
def qr_image(
    qr_id: str,
    size: Optional[str] = None,
    format: str = "png",
    style: Optional[str] = None,
    repo: QRRepository = Depends(get_repo),
    store: BlobStore = Depends(get_blob_store),
) -> ResponseType:
    qr = repo.find_by_id(qr_id)
    if qr is None:
        raise NotFoundError()

    fmt = format.lower()
    if fmt not in QR_FORMATS:
        raise ValidationError(f"Unsupported image format: {format}")
    if size is not None and size not in QR_SIZES:
        raise ValidationError(f"Unsupported size: {size}. Allowed: {', '.join(QR_SIZES)}")
    if style is not None and style not in QR_STYLES:
        raise ValidationError(f"Unknown style: {style}")

    cache_headers = {"Cache-Control": f"public, max-age={IMAGE_CACHE_SECONDS}"}

    # Gespeichertes Bild unverändert ausliefern
    if fmt == "png" and size is None and style is None:
        if not store.exists(qr.image_path):
            raise NotFoundError("QR image file not found")
        return FileResponse(
            store.path_for(qr.image_path),
            media_type="image/png",
            filename=f"qr_{qr.id}.png",
            content_disposition_type="inline",
            headers=cache_headers,
        )

    data, mime_type = render_qr_image(qr.id, size=size, fmt=fmt, style_name=style)
    logger.info(f"📷 QR-Bild neu gerendert: {qr.id} ({fmt}, {size or 'default'}, {style or 'default'})")
    return Response(
        content=data,
        media_type=mime_type,
        headers={
            **cache_headers,
            "Content-Disposition": f'inline; filename="qr_{qr.id}.{fmt}"',
        },
    )


# =============================================================================
# ℹ️ Öffentliche Infos
# =============================================================================
@router.get("/api/scan-info/{qr_id}")
def get_scan_info(qr_id: str, repo: QRRepository = Depends(get_repo)) -> Dict[str, Any]:
    qr = repo.find_by_id(qr_id, active=True)
    if qr is None:
        raise NotFoundError()
    return {"success": True, "qr": scan_info(qr)}


@router.get("/api/scan-stats/{qr_id}")
def get_scan_stats(
    qr_id: str,
    repo: QRRepository = Depends(get_repo),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> Dict[str, Any]:
    qr = repo.find_by_id(qr_id, active=True)
    if qr is None:
        raise NotFoundError()
    return {"success": True, "stats": scan_stats(qr, clock())}
