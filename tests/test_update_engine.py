import pytest

from models.qrcode import QRCode
from utils.blob_store import StoredBlob
from utils.errors import InvalidContentField, NotFoundError, UpstreamStoreError
from utils.qr_content import HISTORY_LIMIT, FileContent, TextContent
from utils.qr_save import ContentUpdateEngine, create_qr
from utils.repository import QRRepository


class FailingSaveRepository(QRRepository):
    """Simuliert einen Speicherfehler beim Commit."""

    def save(self, qr):
        self.db.rollback()
        raise UpstreamStoreError("simulated store failure")


def _stored_blob(store, name="menu.pdf", mime="application/pdf", data=b"%PDF-1.4 menu") -> StoredBlob:
    ref = store.write(data, f"dynamic-files/pdfs/{name}")
    return StoredBlob(ref=ref, original_name=name, size=len(data), mime_type=mime)


@pytest.fixture
def record(repo, store, clock):
    return create_qr(repo, store, "Menu", clock=clock)


@pytest.fixture
def engine(repo, store, clock):
    return ContentUpdateEngine(repo, store, clock)


def test_update_to_text_archives_previous_variant(engine, record, clock):
    clock.advance(minutes=5)
    engine.update(record, "text", {"text": "hello"})

    content = record.get_content()
    assert isinstance(content, TextContent)
    assert content.text == "hello"
    assert content.last_updated == clock.now
    assert record.type == "text"
    assert record.history[-1]["type"] == "empty"
    assert record.history[-1]["content"]["description"] == "No content yet"


def test_history_never_exceeds_limit(engine, record):
    for i in range(60):
        engine.update(record, "text", {"text": f"v{i}"})

    assert len(record.history) == HISTORY_LIMIT
    # Ältester Eintrag (empty + v0..v8) wurde verdrängt
    assert record.history[0]["content"]["text"] == "v9"
    assert record.history[-1]["content"]["text"] == "v58"
    assert record.get_content().text == "v59"


def test_file_to_file_deletes_old_blob_after_commit(engine, record, store, repo):
    first = _stored_blob(store, "menu-v1.pdf")
    engine.update(record, "file", {}, first)
    second = _stored_blob(store, "menu-v2.pdf")
    engine.update(record, "file", {}, second)

    assert store.exists(second.ref)
    assert not store.exists(first.ref)

    reloaded = repo.find_by_id(record.id)
    assert reloaded.get_content().file_ref == second.ref


def test_failed_persistence_keeps_old_blob(record, store, repo, db, clock):
    first = _stored_blob(store, "menu-v1.pdf")
    ContentUpdateEngine(repo, store, clock).update(record, "file", {}, first)

    second = _stored_blob(store, "menu-v2.pdf")
    failing = ContentUpdateEngine(FailingSaveRepository(db), store, clock)
    with pytest.raises(UpstreamStoreError):
        failing.update(record, "file", {}, second)

    assert store.exists(first.ref)
    assert not store.exists(second.ref)

    reloaded = repo.find_by_id(record.id)
    content = reloaded.get_content()
    assert isinstance(content, FileContent)
    assert content.file_ref == first.ref


def test_upload_with_non_file_update_is_discarded(engine, record, store):
    blob = _stored_blob(store, "stray.pdf")
    engine.update(record, "text", {"text": "no file here"}, blob)

    assert not store.exists(blob.ref)
    assert record.get_content().text == "no file here"


def test_upload_is_discarded_when_validation_fails(engine, record, store):
    blob = _stored_blob(store, "stray.pdf")
    with pytest.raises(InvalidContentField):
        engine.update(record, "link", {"url": "ftp://example.com"}, blob)

    assert not store.exists(blob.ref)
    assert record.type == "empty"
    assert record.history == []


def test_file_to_text_leaves_history_blob_alone(engine, record, store):
    blob = _stored_blob(store)
    engine.update(record, "file", {}, blob)
    engine.update(record, "text", {"text": "today's specials"})

    assert store.exists(blob.ref)
    assert record.history[-1]["content"]["file_ref"] == blob.ref


def test_missing_record_is_not_found(engine, store):
    blob = _stored_blob(store)
    with pytest.raises(NotFoundError):
        engine.update(None, "file", {}, blob)
    assert not store.exists(blob.ref)


def test_exactly_one_variant_is_active(engine, record, store):
    engine.update(record, "contact", {"name": "Ada", "email": "ada@example.com"})
    engine.update(record, "empty", {})
    engine.update(record, "link", {"url": "https://example.com"})

    assert isinstance(record.content, dict)
    assert record.content["type"] == record.type == "link"
    assert [entry["type"] for entry in record.history] == ["empty", "contact", "empty"]
    assert record.history[-1]["content"]["description"] == "Content removed"
    assert isinstance(record, QRCode)
