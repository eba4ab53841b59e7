import re

import pytest

from utils.errors import AllocationExhausted, ImageBindingError, UpstreamStoreError
from utils.id_allocator import IdAllocator, generate_candidate
from utils.qr_config import get_qr_options
from utils.qr_engine import bind_qr_image, image_ref_for, render_qr_image
from utils.qr_generator import encode_qr
from utils.qr_save import create_qr
from utils.repository import QRRepository

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


class FakeRepo:
    def __init__(self, taken):
        self.taken = set(taken)
        self.checked = []

    def exists(self, qr_id):
        self.checked.append(qr_id)
        return qr_id in self.taken


def _sequence(*values):
    it = iter(values)
    return lambda: next(it)


# ---------------------------------------------------------------------------
# 🆔 ID-Vergabe
# ---------------------------------------------------------------------------
def test_candidate_format():
    assert re.fullmatch(r"\d{13}[0-9a-f]{9}", generate_candidate())


def test_allocator_retries_on_collision():
    repo = FakeRepo({"a", "b"})
    allocator = IdAllocator(repo, generator=_sequence("a", "b", "c"))
    assert allocator.allocate() == "c"
    assert repo.checked == ["a", "b", "c"]


def test_allocator_gives_up_after_five_collisions():
    repo = FakeRepo({"dup"})
    allocator = IdAllocator(repo, generator=lambda: "dup")
    with pytest.raises(AllocationExhausted):
        allocator.allocate()
    assert len(repo.checked) == 5


# ---------------------------------------------------------------------------
# 🖼️ QR-Bild
# ---------------------------------------------------------------------------
def test_encode_png_and_svg():
    png = encode_qr("http://qr.test/scan/abc", get_qr_options(), "png")
    assert png.startswith(PNG_MAGIC)

    svg = encode_qr("http://qr.test/scan/abc", get_qr_options(), "svg")
    assert b"<svg" in svg


def test_bind_writes_image_under_fixed_name(store, monkeypatch):
    monkeypatch.setenv("BASE_URL", "http://qr.test")
    seen = {}

    def encoder(text, options, fmt):
        seen.update(text=text, options=options, fmt=fmt)
        return encode_qr(text, options, fmt)

    ref = bind_qr_image("abc123", store, encoder)

    assert ref == "qrcodes/dynamic_qr_abc123.png"
    assert store.path_for(ref).read_bytes().startswith(PNG_MAGIC)
    assert seen["text"] == "http://qr.test/scan/abc123"
    assert seen["options"]["dark"] == "#0016D8"
    assert seen["options"]["error_correction"] == "M"


def test_bind_failure_leaves_no_artifact(store):
    def broken_encoder(text, options, fmt):
        raise ValueError("encoder exploded")

    with pytest.raises(ImageBindingError):
        bind_qr_image("abc123", store, broken_encoder)
    assert not store.exists(image_ref_for("abc123"))


def test_create_aborts_when_image_binding_fails(repo, store):
    def broken_encoder(text, options, fmt):
        raise ValueError("encoder exploded")

    with pytest.raises(ImageBindingError):
        create_qr(repo, store, "Menu", encoder=broken_encoder)

    assert repo.count() == 0
    assert list(store.root.rglob("*.png")) == []


def test_create_removes_image_when_save_fails(db, store):
    class FailingSaveRepository(QRRepository):
        def save(self, qr):
            self.db.rollback()
            raise UpstreamStoreError("simulated store failure")

    repo = FailingSaveRepository(db)
    with pytest.raises(UpstreamStoreError):
        create_qr(repo, store, "Menu")

    assert QRRepository(db).count() == 0
    assert list(store.root.rglob("*.png")) == []


def test_render_with_size_and_style():
    data, mime = render_qr_image("abc123", size="small", fmt="png", style_name="blue")
    assert mime == "image/png"
    assert data.startswith(PNG_MAGIC)

    options = get_qr_options(style_name="blue", size="large")
    assert options["dark"] == "#1a73e8"
    assert options["width"] == 800
