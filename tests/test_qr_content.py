from datetime import datetime, timezone

import pytest

from utils.blob_store import StoredBlob
from utils.errors import InvalidContentField, InvalidContentType, ValidationError
from utils.qr_content import (
    HISTORY_LIMIT,
    ContactContent,
    EmptyContent,
    FileContent,
    LinkContent,
    TextContent,
    build_content,
    content_from_dict,
    default_content,
    is_inline_mime,
    push_history,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# 📝 Text
# ---------------------------------------------------------------------------
def test_text_at_limit_is_accepted():
    content = build_content("text", {"text": "a" * 5000})
    assert isinstance(content, TextContent)
    assert len(content.text) == 5000


def test_text_over_limit_is_rejected():
    with pytest.raises(ValidationError) as exc:
        build_content("text", {"text": "a" * 5001})
    assert isinstance(exc.value, InvalidContentField)
    assert exc.value.field == "text"


def test_text_is_trimmed_and_must_not_be_blank():
    assert build_content("text", {"text": "  hello  "}).text == "hello"
    with pytest.raises(InvalidContentField) as exc:
        build_content("text", {"text": "   "})
    assert exc.value.field == "text"


# ---------------------------------------------------------------------------
# 🔗 Link
# ---------------------------------------------------------------------------
def test_link_title_defaults_to_url():
    content = build_content("link", {"url": "https://example.com/menu"})
    assert isinstance(content, LinkContent)
    assert content.link_title == "https://example.com/menu"


@pytest.mark.parametrize("url", ["ftp://example.com/file", "javascript:alert(1)", "https://", "example.com"])
def test_link_rejects_non_http_urls(url):
    with pytest.raises(InvalidContentField) as exc:
        build_content("link", {"url": url})
    assert exc.value.field == "url"


def test_long_url_without_title_is_accepted():
    url = "https://example.com/" + "a" * 300
    content = build_content("link", {"url": url})
    assert content.url == url
    assert content.link_title == url[:200]


def test_link_title_length_is_limited():
    with pytest.raises(InvalidContentField) as exc:
        build_content("link", {"url": "https://example.com", "link_title": "x" * 201})
    assert exc.value.field == "link_title"


# ---------------------------------------------------------------------------
# 👤 Kontakt
# ---------------------------------------------------------------------------
def test_contact_needs_at_least_one_field():
    with pytest.raises(InvalidContentField) as exc:
        build_content("contact", {"organization": "ACME"})
    assert exc.value.field == "contact"


def test_contact_validates_phone_and_email():
    with pytest.raises(InvalidContentField) as exc:
        build_content("contact", {"name": "Ada", "phone": "call me"})
    assert exc.value.field == "phone"

    with pytest.raises(InvalidContentField) as exc:
        build_content("contact", {"name": "Ada", "email": "ada@"})
    assert exc.value.field == "email"


def test_contact_keeps_only_present_fields():
    content = build_content("contact", {"name": "Ada Lovelace", "phone": "+44 (20) 1234-5678"})
    assert isinstance(content, ContactContent)
    assert content.email is None
    assert content.organization is None
    assert "email" not in content.to_dict()


# ---------------------------------------------------------------------------
# 📁 Datei
# ---------------------------------------------------------------------------
def test_file_requires_upload():
    with pytest.raises(InvalidContentField) as exc:
        build_content("file", {})
    assert exc.value.field == "file"


def test_file_requires_existing_blob():
    blob = StoredBlob(ref="dynamic-files/pdfs/menu.pdf", original_name="menu.pdf", size=10, mime_type="application/pdf")
    with pytest.raises(InvalidContentField) as exc:
        build_content("file", {}, upload=blob, blob_exists=lambda ref: False)
    assert exc.value.field == "file_ref"

    content = build_content("file", {}, upload=blob, blob_exists=lambda ref: True)
    assert isinstance(content, FileContent)
    assert content.disposition == "inline"


@pytest.mark.parametrize(
    "mime, inline",
    [
        ("image/png", True),
        ("application/pdf", True),
        ("text/plain", True),
        ("video/mp4", True),
        ("audio/mpeg", True),
        ("application/zip", False),
        ("application/vnd.ms-excel", False),
    ],
)
def test_inline_mime_types(mime, inline):
    assert is_inline_mime(mime) is inline


# ---------------------------------------------------------------------------
# 🧩 Typen & Beschreibung
# ---------------------------------------------------------------------------
def test_unknown_type_is_rejected():
    with pytest.raises(InvalidContentType):
        build_content("video", {})
    with pytest.raises(InvalidContentType):
        content_from_dict({"type": "video"})
    with pytest.raises(InvalidContentType):
        content_from_dict({})


def test_empty_update_uses_removed_placeholder():
    assert build_content("empty", {}).description == "Content removed"
    assert build_content("empty", {"description": "Back soon"}).description == "Back soon"


def test_description_length_is_limited():
    with pytest.raises(InvalidContentField) as exc:
        build_content("text", {"text": "hi", "description": "d" * 1001})
    assert exc.value.field == "description"


def test_default_content_is_empty_with_placeholder():
    content = default_content(None, NOW)
    assert isinstance(content, EmptyContent)
    assert content.description == "No content yet"
    assert content.last_updated == NOW


def test_stored_contact_is_restored_from_json():
    stored = ContactContent(name="Ada", email="ada@example.com", last_updated=NOW).to_dict()
    assert stored["type"] == "contact"
    restored = content_from_dict(stored)
    assert restored == ContactContent(name="Ada", email="ada@example.com", last_updated=NOW)


# ---------------------------------------------------------------------------
# 🕘 Historie
# ---------------------------------------------------------------------------
def test_push_history_keeps_newest_entries():
    history = []
    for i in range(HISTORY_LIMIT + 7):
        history = push_history(history, {"n": i})
    assert len(history) == HISTORY_LIMIT
    assert history[0] == {"n": 7}
    assert history[-1] == {"n": HISTORY_LIMIT + 6}
