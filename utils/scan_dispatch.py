# =============================================================================
# 🔎 utils/scan_dispatch.py
# -----------------------------------------------------------------------------
# Löst einen öffentlichen Zugriff (Scan oder Vorschau) in genau eine
# Antwort-Anweisung ("Directive") auf:
#   NotFound | PasswordRequired | Render | Redirect | Stream | Export | Error
# Die HTTP-Schicht übersetzt die Anweisung in eine Response.
# =============================================================================

from __future__ import annotations

import hmac
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union
from urllib.parse import urlparse

from models.qr_scan import QRScan, ensure_utc, utc_now
from models.qrcode import QRCode
from utils.blob_store import BlobStore
from utils.errors import AppError, BlobMissing, GENERIC_ERROR_MESSAGE
from utils.qr_content import (
    ContactContent,
    Content,
    EmptyContent,
    FileContent,
    LinkContent,
    TextContent,
)
from utils.repository import QRRepository

logger = logging.getLogger(__name__)

VCARD_FORMATS = {"vcard", "vcf"}
PROTECTED_DESCRIPTION = "This QR code is password protected"
INFO_PREVIEW_LENGTH = 100
UNSAFE_FILENAME_CHARS = re.compile(r'["\\/\x00-\x1f\x7f]')


# =============================================================================
# 📥 Zugriffskontext
# =============================================================================
@dataclass(frozen=True)
class AccessContext:
    password: Optional[str] = None
    preview: bool = False
    export_format: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None
    country: Optional[str] = None

    @property
    def counted(self) -> bool:
        return not self.preview


# =============================================================================
# 📤 Anweisungen
# =============================================================================
@dataclass(frozen=True)
class NotFound:
    qr_id: str


@dataclass(frozen=True)
class PasswordRequired:
    qr_id: str
    title: str
    preview: bool = False
    attempted: bool = False
    export_format: Optional[str] = None


@dataclass(frozen=True)
class Render:
    """view: empty | text | contact | preview"""

    view: str
    qr_id: str
    title: str
    content: Content
    scan_count: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Redirect:
    url: str
    status_code: int = 302


@dataclass(frozen=True)
class Stream:
    blob_ref: str
    mime_type: str
    size: int
    original_name: str
    disposition: str


@dataclass(frozen=True)
class Export:
    body: str
    media_type: str
    filename: str


@dataclass(frozen=True)
class ErrorDirective:
    message: str = GENERIC_ERROR_MESSAGE
    status_code: int = 500
    code: str = "error"


Directive = Union[NotFound, PasswordRequired, Render, Redirect, Stream, Export, ErrorDirective]


# =============================================================================
# 🧰 Hilfsfunktionen
# =============================================================================
def detect_device(user_agent: Optional[str]) -> str:
    ua = (user_agent or "").lower()
    if "mobile" in ua or "android" in ua or "iphone" in ua:
        return "mobile"
    if "tablet" in ua or "ipad" in ua:
        return "tablet"
    return "desktop"


def password_matches(stored: Optional[str], supplied: Optional[str]) -> bool:
    if not stored:
        return True
    if supplied is None:
        return False
    return hmac.compare_digest(stored.encode("utf-8"), supplied.encode("utf-8"))


def build_vcard(content: ContactContent) -> str:
    lines = ["BEGIN:VCARD", "VERSION:3.0"]
    if content.name:
        lines.append(f"FN:{content.name}")
        lines.append(f"N:{content.name};;;;")
    if content.phone:
        lines.append(f"TEL;TYPE=CELL:{content.phone}")
    if content.email:
        lines.append(f"EMAIL:{content.email}")
    if content.organization:
        lines.append(f"ORG:{content.organization}")
    lines.append("END:VCARD")
    return "\n".join(lines)


def vcard_filename(content: ContactContent) -> str:
    """Dateiname aus dem Kontaktnamen, ohne Anführungszeichen, Pfad- und Steuerzeichen."""
    name = " ".join(UNSAFE_FILENAME_CHARS.sub("", content.name or "").split())
    return f"{name or 'contact'}.vcf"


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = ensure_utc(value)
    return value.isoformat() if value else None


def scan_info(record: QRCode) -> Dict[str, Any]:
    """Öffentliche Kurzinfo zu einem QR-Code (ohne Zählung)."""
    content = record.get_content()
    info: Dict[str, Any] = {
        "id": record.id,
        "title": record.title,
        "content_type": content.type,
        "scan_count": record.scan_count,
        "created_at": _iso(record.created_at),
        "is_password_protected": record.is_password_protected,
    }
    if record.is_password_protected:
        info["description"] = PROTECTED_DESCRIPTION
        return info

    info["last_scanned_at"] = _iso(record.last_scanned_at)

    if isinstance(content, TextContent):
        suffix = "..." if len(content.text) > INFO_PREVIEW_LENGTH else ""
        info["preview"] = content.text[:INFO_PREVIEW_LENGTH] + suffix
    elif isinstance(content, LinkContent):
        info["link_title"] = content.link_title
        info["domain"] = urlparse(content.url).hostname
    elif isinstance(content, FileContent):
        info["file_name"] = content.original_name
        info["file_size"] = content.size
        info["file_type"] = content.mime_type
    elif isinstance(content, ContactContent):
        info["contact_name"] = content.name
        info["has_phone"] = bool(content.phone)
        info["has_email"] = bool(content.email)

    if content.description:
        info["description"] = content.description
    return info


def scan_stats(record: QRCode, now: datetime) -> Dict[str, Any]:
    created_at = ensure_utc(record.created_at)
    last_scanned = ensure_utc(record.last_scanned_at)
    days = max(0, (now - created_at).days) if created_at else 0
    scans = record.scan_count or 0

    return {
        "qr_id": record.id,
        "title": record.title,
        "total_scans": scans,
        "created_at": _iso(created_at),
        "last_scanned_at": _iso(last_scanned),
        "last_content_update": _iso(record.get_content().last_updated),
        "days_since_created": days,
        "avg_scans_per_day": round(scans / days, 2) if days > 0 else float(scans),
        "scanned_today": bool(last_scanned and last_scanned >= start_of_day(now)),
        "active": bool(record.active),
    }


# =============================================================================
# 🚦 Dispatcher
# =============================================================================
class ScanDispatcher:
    def __init__(
        self,
        repo: QRRepository,
        store: BlobStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repo = repo
        self.store = store
        self.clock = clock

    def resolve(self, qr_id: str, ctx: AccessContext) -> Directive:
        try:
            record = self.repo.find_by_id(qr_id, active=True)
            if record is None:
                return NotFound(qr_id)
            return self._dispatch(record, ctx)
        except AppError as exc:
            return self._error(qr_id, exc)

    def resolve_custom_domain(self, domain: str, ctx: AccessContext) -> Directive:
        try:
            record = self.repo.find_by_custom_domain(domain)
            if record is None:
                return NotFound(domain)
            return self._dispatch(record, ctx)
        except AppError as exc:
            return self._error(domain, exc)

    # ---------------------------------------------------------------------
    # 🔧 intern
    # ---------------------------------------------------------------------
    def _error(self, ref: str, exc: AppError) -> ErrorDirective:
        if isinstance(exc, BlobMissing):
            logger.warning(f"⚠️ Datei fehlt für {ref}: {exc.blob_ref}")
            return ErrorDirective(exc.public_message, exc.status_code, "blob_missing")
        logger.exception(f"❌ Scan konnte nicht aufgelöst werden: {ref}")
        return ErrorDirective(GENERIC_ERROR_MESSAGE, 500, "error")

    def _dispatch(self, record: QRCode, ctx: AccessContext) -> Directive:
        if not password_matches(record.password, ctx.password):
            return PasswordRequired(
                qr_id=record.id,
                title=record.title,
                preview=ctx.preview,
                attempted=ctx.password is not None,
                export_format=ctx.export_format,
            )

        content = record.get_content()

        if ctx.preview:
            return Render("preview", record.id, record.title, content, record.scan_count or 0)

        self._count(record, ctx)
        return self._resolve_content(record, content, ctx)

    def _count(self, record: QRCode, ctx: AccessContext) -> None:
        now = self.clock()
        record.register_scan(now)
        self.repo.save(record)

        if not record.allow_tracking:
            return
        try:
            self.repo.add_scan_event(
                QRScan(
                    qr_id=record.id,
                    ip_address=ctx.ip_address,
                    device=detect_device(ctx.user_agent),
                    referer=ctx.referer[:500] if ctx.referer else None,
                    user_agent=ctx.user_agent[:255] if ctx.user_agent else None,
                    country=ctx.country or "unknown",
                    timestamp=now,
                )
            )
            logger.info(f"📊 Scan erfasst: {record.id}")
        except AppError as exc:
            logger.warning(f"⚠️ Scan-Analytics fehlgeschlagen für {record.id}: {exc}")

    def _resolve_content(self, record: QRCode, content: Content, ctx: AccessContext) -> Directive:
        scans = record.scan_count or 0

        if isinstance(content, EmptyContent):
            return Render("empty", record.id, record.title, content, scans)

        if isinstance(content, TextContent):
            return Render("text", record.id, record.title, content, scans)

        if isinstance(content, LinkContent):
            logger.info(f"🔗 Redirect: {record.id} → {content.url}")
            return Redirect(content.url)

        if isinstance(content, FileContent):
            if not self.store.exists(content.file_ref):
                raise BlobMissing(content.file_ref)
            logger.info(f"📁 Datei ausgeliefert: {record.id} – {content.original_name} ({content.mime_type})")
            return Stream(
                blob_ref=content.file_ref,
                mime_type=content.mime_type,
                size=content.size,
                original_name=content.original_name,
                disposition=content.disposition,
            )

        if isinstance(content, ContactContent):
            if (ctx.export_format or "").lower() in VCARD_FORMATS:
                return Export(
                    body=build_vcard(content),
                    media_type="text/vcard; charset=utf-8",
                    filename=vcard_filename(content),
                )
            # Passwort für den vCard-Link mitgeben
            extra = {"password": ctx.password} if record.is_password_protected else {}
            return Render("contact", record.id, record.title, content, scans, extra)

        raise AppError(f"unhandled content type: {content.type}")
