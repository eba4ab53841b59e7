# =============================================================================
# 📁 utils/blob_store.py
# -----------------------------------------------------------------------------
# Dateiablage für Uploads und QR-Bilder.
# Ein Blob wird über einen relativen Pfad (z. B. "dynamic-files/pdfs/x.pdf")
# angesprochen, nie über einen absoluten Dateisystempfad.
# =============================================================================

from __future__ import annotations

import logging
import re
import time
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterable, Optional

from fastapi import UploadFile

from utils.errors import BlobWriteError, ValidationError

logger = logging.getLogger(__name__)

UPLOAD_SUBDIR = "dynamic-files"

DANGEROUS_EXTENSIONS = {
    ".exe", ".bat", ".cmd", ".scr", ".pif", ".msi", ".com",
    ".scf", ".lnk", ".inf", ".reg", ".ps1", ".vbs", ".js",
}
DANGEROUS_MIME_TYPES = {
    "application/x-msdownload",
    "application/x-executable",
    "application/x-winexe",
    "application/x-msdos-program",
}

MAX_FILENAME_LENGTH = 255
UPLOAD_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class StoredBlob:
    """Ein frisch gespeicherter Upload (noch keinem QR-Code zugeordnet)."""

    ref: str
    original_name: str
    size: int
    mime_type: str


def destination_folder(mime_type: str) -> str:
    """Ordner je Dateityp."""
    mime = (mime_type or "").lower()
    if mime.startswith("image/"):
        return "images"
    if mime.startswith("video/"):
        return "videos"
    if mime.startswith("audio/"):
        return "audios"
    if mime == "application/pdf":
        return "pdfs"
    if any(token in mime for token in ("document", "sheet", "presentation", "text/")):
        return "documents"
    return "others"


def is_dangerous_file(filename: str, mime_type: str) -> bool:
    ext = PurePosixPath(filename or "").suffix.lower()
    return ext in DANGEROUS_EXTENSIONS or (mime_type or "").lower() in DANGEROUS_MIME_TYPES


def is_allowed_type(mime_type: str, allowed: Iterable[str]) -> bool:
    """Whitelist mit Wildcards wie 'image/*'. Leere Whitelist erlaubt alles."""
    patterns = [p for p in allowed if p]
    if not patterns:
        return True
    mime = (mime_type or "").lower()
    for pattern in patterns:
        pattern = pattern.lower()
        if pattern.endswith("*"):
            if mime.startswith(pattern[:-1]):
                return True
        elif mime == pattern:
            return True
    return False


def unique_filename(original_name: str) -> str:
    """<timestamp>_<random>_<bereinigter Name><ext>"""
    path = PurePosixPath(original_name or "upload")
    ext = path.suffix
    stem = re.sub(r"[^a-zA-Z0-9]", "_", path.stem)[:50] or "file"
    return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}_{stem}{ext}"


class BlobStore:
    """
    Lokaler Blob-Store unterhalb von `root`.
    write/exists/delete/open_read_stream arbeiten nur mit relativen Referenzen.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    # ---------------------------------------------------------------------
    # 🔎 Pfadauflösung
    # ---------------------------------------------------------------------
    def path_for(self, ref: str) -> Path:
        if not ref:
            raise ValueError("empty blob reference")
        candidate = (self.root / ref).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise ValueError(f"blob reference escapes store root: {ref}")
        return candidate

    # ---------------------------------------------------------------------
    # 💾 Schreiben / Lesen / Löschen
    # ---------------------------------------------------------------------
    def write(self, data: bytes, destination_hint: str) -> str:
        """Schreibt Bytes unter `destination_hint` und gibt die Referenz zurück."""
        ref = str(PurePosixPath(destination_hint))
        try:
            target = self.path_for(ref)
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as f:
                f.write(data)
        except (OSError, ValueError) as exc:
            logger.exception(f"❌ Blob konnte nicht geschrieben werden: {ref}")
            self.delete(ref)
            raise BlobWriteError(f"could not write blob {ref}") from exc
        return ref

    def exists(self, ref: Optional[str]) -> bool:
        if not ref:
            return False
        try:
            return self.path_for(ref).is_file()
        except ValueError:
            return False

    def delete(self, ref: Optional[str]) -> bool:
        """Best effort: Fehler werden geloggt, nie geworfen."""
        if not ref:
            return False
        try:
            path = self.path_for(ref)
            if path.is_file():
                path.unlink()
                logger.info(f"🗑️ Blob gelöscht: {ref}")
                return True
        except (OSError, ValueError) as exc:
            logger.warning(f"⚠️ Blob konnte nicht gelöscht werden ({ref}): {exc}")
        return False

    def open_read_stream(self, ref: str) -> BinaryIO:
        return open(self.path_for(ref), "rb")


# =============================================================================
# 📤 Upload-Handling
# =============================================================================
async def store_upload(
    store: BlobStore,
    upload: Optional[UploadFile],
    max_size: int,
    allowed_types: Iterable[str] = (),
) -> Optional[StoredBlob]:
    """
    Prüft und speichert einen Upload unter dynamic-files/<ordner>/.
    Gibt None zurück, wenn keine Datei mitgeschickt wurde.
    """
    if upload is None or not upload.filename:
        return None

    original_name = upload.filename
    mime_type = (upload.content_type or "").lower()

    if not mime_type:
        raise ValidationError("File type could not be determined")
    if is_dangerous_file(original_name, mime_type):
        raise ValidationError("This file type is not accepted")
    if len(original_name) > MAX_FILENAME_LENGTH:
        raise ValidationError("File name is too long")
    if not is_allowed_type(mime_type, allowed_types):
        raise ValidationError(f"File type not allowed: {mime_type}")

    # Stückweise lesen, Abbruch sobald das Limit überschritten ist
    buffer = bytearray()
    while True:
        chunk = await upload.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        buffer.extend(chunk)
        if len(buffer) > max_size:
            max_mb = round(max_size / 1024 / 1024)
            raise ValidationError(f"File is too large. Maximum: {max_mb}MB")
    data = bytes(buffer)

    hint = f"{UPLOAD_SUBDIR}/{destination_folder(mime_type)}/{unique_filename(original_name)}"
    ref = store.write(data, hint)
    logger.info(f"📤 Upload gespeichert: {ref} ({len(data)} bytes)")
    return StoredBlob(ref=ref, original_name=original_name, size=len(data), mime_type=mime_type)
