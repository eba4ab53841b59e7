# utils/qr_save.py
# =============================================================================
# ✅ Einheitliche Speicherlogik für dynamische QR-Codes
# - Anlegen (ID vergeben → Bild binden → speichern)
# - Inhalt tauschen (validieren → archivieren → speichern → alte Datei löschen)
# - Einstellungen, Soft-/Hard-Delete, Wiederherstellen, Bulk-Delete
# =============================================================================

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional
from urllib.parse import urlparse

from models.qr_scan import utc_now
from models.qrcode import QRCode
from utils.blob_store import BlobStore, StoredBlob
from utils.errors import (
    AppError,
    InvalidContentField,
    NotFoundError,
    ValidationError,
)
from utils.id_allocator import IdAllocator
from utils.qr_content import (
    DESCRIPTION_MAX_LENGTH,
    FileContent,
    build_content,
    default_content,
)
from utils.qr_engine import bind_qr_image
from utils.qr_generator import encode_qr
from utils.repository import QRRepository

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

TITLE_MAX_LENGTH = 200
PASSWORD_MIN_LENGTH = 4
BULK_DELETE_LIMIT = 50


# =============================================================================
# ✅ Hilfsfunktionen: Validierung
# =============================================================================
def validate_title(title: Optional[str]) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise InvalidContentField("title", "Title is required")
    if len(cleaned) > TITLE_MAX_LENGTH:
        raise InvalidContentField("title", f"Title must not exceed {TITLE_MAX_LENGTH} characters")
    return cleaned


def validate_custom_domain(domain: str) -> str:
    cleaned = domain.strip()
    parsed = urlparse(f"https://{cleaned}")
    if not parsed.hostname or parsed.path or parsed.query or " " in cleaned:
        raise InvalidContentField("custom_domain", f"Invalid custom domain: {domain}")
    return cleaned


# =============================================================================
# ✅ ANLEGEN
# =============================================================================
def create_qr(
    repo: QRRepository,
    store: BlobStore,
    title: Optional[str],
    description: Optional[str] = None,
    *,
    allocator: Optional[IdAllocator] = None,
    encoder: Callable[..., bytes] = encode_qr,
    clock: Clock = utc_now,
) -> QRCode:
    """
    Legt einen neuen QR-Code mit leerem Inhalt an.
    Schlägt das Speichern fehl, wird das bereits erzeugte Bild wieder gelöscht.
    """
    title = validate_title(title)
    if description and len(description.strip()) > DESCRIPTION_MAX_LENGTH:
        raise InvalidContentField(
            "description", f"Description must not exceed {DESCRIPTION_MAX_LENGTH} characters"
        )

    qr_id = (allocator or IdAllocator(repo)).allocate()
    image_ref = bind_qr_image(qr_id, store, encoder)

    now = clock()
    qr = QRCode(
        id=qr_id,
        title=title,
        image_path=image_ref,
        history=[],
        scan_count=0,
        active=True,
        allow_tracking=True,
        created_at=now,
        updated_at=now,
    )
    qr.set_content(default_content(description, now))

    try:
        repo.save(qr)
    except AppError:
        store.delete(image_ref)
        raise

    logger.info(f"✅ Neuer QR-Code erstellt: {qr_id} – {title}")
    return qr


# =============================================================================
# ✅ UPDATE – Inhalt tauschen
# =============================================================================
class ContentUpdateEngine:
    """
    Validiert und aktiviert neuen Inhalt für einen QR-Code.

    Reihenfolge bei Datei → Datei:
        1. neuen Datensatz speichern
        2. erst danach die alte Datei löschen
    Schlägt Schritt 1 fehl, bleibt die alte Datei liegen und der gerade
    hochgeladene Blob wird verworfen.
    """

    def __init__(
        self,
        repo: QRRepository,
        store: BlobStore,
        clock: Clock = utc_now,
        changed_by: str = "admin",
    ) -> None:
        self.repo = repo
        self.store = store
        self.clock = clock
        self.changed_by = changed_by

    def _discard(self, blob: Optional[StoredBlob], reason: str) -> None:
        if blob is not None:
            logger.info(f"🧹 Upload verworfen ({reason}): {blob.ref}")
            self.store.delete(blob.ref)

    def update(
        self,
        record: Optional[QRCode],
        proposed_tag: Any,
        fields: Mapping[str, Any],
        uploaded_blob: Optional[StoredBlob] = None,
    ) -> QRCode:
        if record is None:
            self._discard(uploaded_blob, "QR not found")
            raise NotFoundError()

        try:
            new_content = build_content(
                proposed_tag,
                fields,
                upload=uploaded_blob,
                blob_exists=self.store.exists,
            )
        except ValidationError:
            self._discard(uploaded_blob, "validation failed")
            raise

        if new_content.type != "file":
            self._discard(uploaded_blob, f"content type is {new_content.type}")
            uploaded_blob = None

        previous = record.get_content()
        stale_ref: Optional[str] = None
        if (
            isinstance(previous, FileContent)
            and isinstance(new_content, FileContent)
            and previous.file_ref != new_content.file_ref
        ):
            stale_ref = previous.file_ref

        now = self.clock()
        record.swap_content(new_content, now, changed_by=self.changed_by)
        record.updated_at = now

        try:
            self.repo.save(record)
        except AppError:
            # Datensatz nicht gespeichert – neuer Blob ist verwaist, alter bleibt
            self._discard(uploaded_blob, "save failed")
            raise

        if stale_ref:
            if not self.store.delete(stale_ref):
                logger.warning(f"⚠️ Alte Datei nicht gelöscht: {stale_ref}")

        logger.info(f"🔄 QR-Inhalt aktualisiert: {record.id} – {previous.type} → {new_content.type}")
        return record


# =============================================================================
# ⚙️ EINSTELLUNGEN
# =============================================================================
_UNSET = object()


def update_settings(
    repo: QRRepository,
    record: QRCode,
    allow_tracking: Any = _UNSET,
    custom_domain: Any = _UNSET,
    password: Any = _UNSET,
    clock: Clock = utc_now,
) -> QRCode:
    """Nur übergebene Felder werden geändert; leere Werte entfernen die Einstellung."""
    if isinstance(allow_tracking, bool):
        record.allow_tracking = allow_tracking

    if custom_domain is not _UNSET:
        if custom_domain and isinstance(custom_domain, str) and custom_domain.strip():
            record.custom_domain = validate_custom_domain(custom_domain)
        else:
            record.custom_domain = None

    if password is not _UNSET:
        if password and isinstance(password, str):
            if len(password) < PASSWORD_MIN_LENGTH:
                raise InvalidContentField(
                    "password", f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
                )
            record.password = password
        else:
            record.password = None

    record.updated_at = clock()
    repo.save(record)
    logger.info(f"⚙️ Einstellungen aktualisiert: {record.id}")
    return record


# =============================================================================
# 🗑️ LÖSCHEN / WIEDERHERSTELLEN
# =============================================================================
def soft_delete(repo: QRRepository, record: QRCode, clock: Clock = utc_now) -> None:
    record.active = False
    record.updated_at = clock()
    repo.save(record)
    logger.info(f"🚫 QR deaktiviert: {record.id}")


def hard_delete(repo: QRRepository, store: BlobStore, record: QRCode) -> None:
    """
    Entfernt Datensatz, aktive Datei und QR-Bild.
    Dateien, die nur noch im Verlauf referenziert sind, bleiben liegen.
    """
    content = record.get_content()
    file_ref = content.file_ref if isinstance(content, FileContent) else None
    image_ref = record.image_path
    qr_id = record.id

    repo.delete(record)

    if file_ref:
        store.delete(file_ref)
    store.delete(image_ref)
    logger.info(f"🗑️ QR endgültig gelöscht: {qr_id}")


def restore(repo: QRRepository, record: QRCode, clock: Clock = utc_now) -> QRCode:
    record.active = True
    record.updated_at = clock()
    repo.save(record)
    logger.info(f"♻️ QR wiederhergestellt: {record.id}")
    return record


def bulk_delete(
    repo: QRRepository,
    store: BlobStore,
    qr_ids: Iterable[str],
    force: bool = False,
    clock: Clock = utc_now,
) -> Dict[str, List[Dict[str, str]]]:
    ids = list(qr_ids or [])
    if not ids:
        raise ValidationError("qr_ids must be a non-empty list")
    if len(ids) > BULK_DELETE_LIMIT:
        raise ValidationError(f"At most {BULK_DELETE_LIMIT} QR codes can be deleted at once")

    results: Dict[str, List[Dict[str, str]]] = {"success": [], "failed": []}
    for qr_id in ids:
        try:
            record = repo.find_by_id(qr_id)
            if record is None:
                results["failed"].append({"id": qr_id, "error": "QR not found"})
                continue
            title = record.title
            if force:
                hard_delete(repo, store, record)
            else:
                soft_delete(repo, record, clock)
            results["success"].append({"id": qr_id, "title": title})
        except AppError as exc:
            results["failed"].append({"id": qr_id, "error": exc.public_message})

    logger.info(
        f"🗑️ Bulk-Delete: {len(results['success'])} erfolgreich, {len(results['failed'])} fehlgeschlagen"
    )
    return results
