# =============================================================================
# 🧩 utils/qr_content.py
# -----------------------------------------------------------------------------
# Inhaltsmodell für dynamische QR-Codes: genau fünf Varianten
#   empty | text | link | file | contact
# Jede Variante ist eine eigene, unveränderliche Dataclass. Die Validierung
# läuft pro Typ und bricht beim ersten Fehler ab (fail-fast).
# =============================================================================

from __future__ import annotations

import re
from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Union, TYPE_CHECKING
from urllib.parse import urlparse

from utils.errors import InvalidContentField, InvalidContentType

if TYPE_CHECKING:
    from utils.blob_store import StoredBlob


CONTENT_TYPES = ("empty", "text", "link", "file", "contact")

TEXT_MAX_LENGTH = 5000
DESCRIPTION_MAX_LENGTH = 1000
LINK_TITLE_MAX_LENGTH = 200
CONTACT_NAME_MAX_LENGTH = 100
ORGANIZATION_MAX_LENGTH = 200

HISTORY_LIMIT = 50

DEFAULT_EMPTY_DESCRIPTION = "No content yet"
REMOVED_DESCRIPTION = "Content removed"

PHONE_RE = re.compile(r"^\+?[\d\s\-\(\)]{7,20}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

INLINE_MIME_PREFIXES = ("image/", "text/", "video/", "audio/")
INLINE_MIME_TYPES = {"application/pdf"}


# =============================================================================
# 📦 Varianten
# =============================================================================
@dataclass(frozen=True, kw_only=True)
class ContentVariant:
    """Gemeinsame Felder aller Varianten."""

    type: ClassVar[str]

    description: Optional[str] = None
    last_updated: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            data[f.name] = value.isoformat() if isinstance(value, datetime) else value
        return data

    def activated(self, now: datetime) -> "ContentVariant":
        """Kopie mit gesetztem last_updated (Zeitpunkt der Aktivierung)."""
        return replace(self, last_updated=now)


@dataclass(frozen=True, kw_only=True)
class EmptyContent(ContentVariant):
    type: ClassVar[str] = "empty"


@dataclass(frozen=True, kw_only=True)
class TextContent(ContentVariant):
    type: ClassVar[str] = "text"

    text: str


@dataclass(frozen=True, kw_only=True)
class LinkContent(ContentVariant):
    type: ClassVar[str] = "link"

    url: str
    link_title: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class FileContent(ContentVariant):
    type: ClassVar[str] = "file"

    file_ref: str
    original_name: str
    size: int
    mime_type: str

    @property
    def disposition(self) -> str:
        return "inline" if is_inline_mime(self.mime_type) else "attachment"


@dataclass(frozen=True, kw_only=True)
class ContactContent(ContentVariant):
    type: ClassVar[str] = "contact"

    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    organization: Optional[str] = None


Content = Union[EmptyContent, TextContent, LinkContent, FileContent, ContactContent]

VARIANT_CLASSES: Dict[str, type] = {
    "empty": EmptyContent,
    "text": TextContent,
    "link": LinkContent,
    "file": FileContent,
    "contact": ContactContent,
}


def is_inline_mime(mime_type: Optional[str]) -> bool:
    mime = (mime_type or "").lower()
    return mime in INLINE_MIME_TYPES or mime.startswith(INLINE_MIME_PREFIXES)


def default_content(description: Optional[str], now: datetime) -> EmptyContent:
    """Startinhalt für neue QR-Codes."""
    text = (description or "").strip() or DEFAULT_EMPTY_DESCRIPTION
    return EmptyContent(description=text[:DESCRIPTION_MAX_LENGTH], last_updated=now)


# =============================================================================
# 🔁 (De-)Serialisierung
# =============================================================================
def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def content_from_dict(data: Optional[Mapping[str, Any]]) -> Content:
    """
    Baut die passende Variante aus dem gespeicherten JSON.
    Unbekannte Typen sind ein Fehler, nie ein 'leerer' Zustand.
    """
    if not data:
        raise InvalidContentType(None)

    content_type = data.get("type")
    cls = VARIANT_CLASSES.get(str(content_type)) if content_type is not None else None
    if cls is None:
        raise InvalidContentType(content_type)

    kwargs: Dict[str, Any] = {}
    for f in fields(cls):
        if f.name in data:
            kwargs[f.name] = data[f.name]
    kwargs["last_updated"] = _parse_datetime(kwargs.get("last_updated"))
    try:
        return cls(**kwargs)
    except TypeError as exc:
        raise InvalidContentType(content_type) from exc


# =============================================================================
# ✅ Validierung
# =============================================================================
def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def validate_url(url: str) -> str:
    """Nur absolute http(s)-URLs mit Host sind erlaubt."""
    try:
        parsed = urlparse(url)
    except ValueError:
        raise InvalidContentField("url", f"Invalid URL: {url}")
    if parsed.scheme.lower() not in {"http", "https"}:
        raise InvalidContentField("url", "Only HTTP and HTTPS URLs are allowed")
    if not parsed.netloc:
        raise InvalidContentField("url", f"Invalid URL: {url}")
    return url


def validate_phone(phone: str) -> str:
    if not PHONE_RE.match(phone):
        raise InvalidContentField("phone", "Invalid phone number format")
    return phone


def validate_email(email: str) -> str:
    if not EMAIL_RE.match(email):
        raise InvalidContentField("email", "Invalid email format")
    return email


def _build_empty(values: Mapping[str, Any], upload, blob_exists) -> Content:
    return EmptyContent()


def _build_text(values: Mapping[str, Any], upload, blob_exists) -> Content:
    text = _clean(values.get("text"))
    if not text:
        raise InvalidContentField("text", "Text content must not be empty")
    if len(text) > TEXT_MAX_LENGTH:
        raise InvalidContentField("text", f"Text must not exceed {TEXT_MAX_LENGTH} characters")
    return TextContent(text=text)


def _build_link(values: Mapping[str, Any], upload, blob_exists) -> Content:
    url = _clean(values.get("url"))
    if not url:
        raise InvalidContentField("url", "URL must not be empty")
    validate_url(url)

    link_title = _clean(values.get("link_title"))
    if not link_title:
        # ohne Titel: gekürzte URL
        return LinkContent(url=url, link_title=url[:LINK_TITLE_MAX_LENGTH])
    if len(link_title) > LINK_TITLE_MAX_LENGTH:
        raise InvalidContentField(
            "link_title", f"Link title must not exceed {LINK_TITLE_MAX_LENGTH} characters"
        )
    return LinkContent(url=url, link_title=link_title)


def _build_file(values: Mapping[str, Any], upload: Optional["StoredBlob"], blob_exists) -> Content:
    if upload is None:
        raise InvalidContentField("file", "A file upload is required")
    if not upload.ref or (blob_exists is not None and not blob_exists(upload.ref)):
        raise InvalidContentField("file_ref", "Uploaded file could not be found")
    return FileContent(
        file_ref=upload.ref,
        original_name=upload.original_name,
        size=upload.size,
        mime_type=upload.mime_type,
    )


def _build_contact(values: Mapping[str, Any], upload, blob_exists) -> Content:
    name = _clean(values.get("name"))
    phone = _clean(values.get("phone"))
    email = _clean(values.get("email"))
    organization = _clean(values.get("organization"))

    if not (name or phone or email):
        raise InvalidContentField("contact", "At least one of name, phone or email is required")
    if len(name) > CONTACT_NAME_MAX_LENGTH:
        raise InvalidContentField("name", f"Name must not exceed {CONTACT_NAME_MAX_LENGTH} characters")
    if phone:
        validate_phone(phone)
    if email:
        validate_email(email)
    if len(organization) > ORGANIZATION_MAX_LENGTH:
        raise InvalidContentField(
            "organization", f"Organization must not exceed {ORGANIZATION_MAX_LENGTH} characters"
        )
    return ContactContent(
        name=name or None,
        phone=phone or None,
        email=email or None,
        organization=organization or None,
    )


_BUILDERS: Dict[str, Callable[..., Content]] = {
    "empty": _build_empty,
    "text": _build_text,
    "link": _build_link,
    "file": _build_file,
    "contact": _build_contact,
}


def build_content(
    content_type: Any,
    values: Mapping[str, Any],
    upload: Optional["StoredBlob"] = None,
    blob_exists: Optional[Callable[[str], bool]] = None,
) -> Content:
    """
    Erzeugt eine validierte Variante (ohne last_updated).
    Wirft InvalidContentType / InvalidContentField beim ersten Verstoß.
    """
    key = str(content_type).strip().lower() if content_type is not None else ""
    builder = _BUILDERS.get(key)
    if builder is None:
        raise InvalidContentType(content_type)

    content = builder(values, upload, blob_exists)

    description = _clean(values.get("description"))
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise InvalidContentField(
            "description", f"Description must not exceed {DESCRIPTION_MAX_LENGTH} characters"
        )
    if key == "empty" and not description:
        description = REMOVED_DESCRIPTION
    return replace(content, description=description or None)


# =============================================================================
# 🕘 Historie
# =============================================================================
def history_entry(content: Content, superseded_at: datetime, changed_by: str = "admin") -> Dict[str, Any]:
    return {
        "type": content.type,
        "content": content.to_dict(),
        "changed_at": superseded_at.isoformat(),
        "changed_by": changed_by,
    }


def push_history(
    history: Optional[List[Dict[str, Any]]],
    entry: Dict[str, Any],
    limit: int = HISTORY_LIMIT,
) -> List[Dict[str, Any]]:
    """Neue Liste: alter Verlauf + Eintrag, nur die letzten `limit` Einträge."""
    return [*(history or []), entry][-limit:]
