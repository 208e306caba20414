"""Shared fixtures: small PNGs, PDFs and EPS files generated on the fly."""

import io
import os
import tempfile
import zipfile
from pathlib import Path
from typing import Dict

import fitz  # PyMuPDF
import pytest
from PIL import Image

# Keep the ini file and logs written at import time out of the real home directory
os.environ.setdefault("SLIDESTACK_HOME", tempfile.mkdtemp(prefix="slidestack-test-home-"))

EPS_SAMPLE = (
    b"%!PS-Adobe-3.0 EPSF-3.0\n"
    b"%%BoundingBox: 0 0 100 50\n"
    b"newpath 0 0 moveto 100 50 lineto stroke\n"
    b"showpage\n"
    b"%%EOF\n"
)


def png_bytes(size=(40, 30), color=(200, 30, 30, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


def pdf_bytes(pages: int = 3, size=(200, 100), rotation: int = 0) -> bytes:
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page(width=size[0], height=size[1])
        page.insert_text((5, size[1] * 0.6), f"Page {i + 1}", fontsize=11)
        if rotation:
            page.set_rotation(rotation)
    data = doc.tobytes()
    doc.close()
    return data


def zip_bytes(members: Dict[str, bytes], compression=zipfile.ZIP_STORED) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=compression) as zf:
        for name, data in members.items():
            zf.writestr(name, data)
    return buf.getvalue()


def corrupt_member(archive: bytes, member: str) -> bytes:
    """Flips bytes inside a stored member's data so its CRC no longer matches."""
    with zipfile.ZipFile(io.BytesIO(archive)) as zf:
        info = zf.getinfo(member)
    data = bytearray(archive)
    offset = info.header_offset
    name_len = int.from_bytes(data[offset + 26:offset + 28], "little")
    extra_len = int.from_bytes(data[offset + 28:offset + 30], "little")
    start = offset + 30 + name_len + extra_len
    for i in range(start + 8, start + 16):
        data[i] ^= 0xFF
    return bytes(data)


@pytest.fixture
def png_file(tmp_path: Path) -> Path:
    path = tmp_path / "red.png"
    path.write_bytes(png_bytes())
    return path


@pytest.fixture
def mixed_folder(tmp_path: Path) -> Path:
    """A folder with one 3-page PDF, one PNG, one EPS and a zip of two PNGs."""
    folder = tmp_path / "slides"
    folder.mkdir()
    (folder / "a-document.pdf").write_bytes(pdf_bytes(pages=3))
    (folder / "b-picture.png").write_bytes(png_bytes())
    (folder / "c-drawing.eps").write_bytes(EPS_SAMPLE)
    (folder / "d-bundle.zip").write_bytes(zip_bytes({
        "first.png": png_bytes(color=(0, 255, 0, 255)),
        "second.png": png_bytes(color=(0, 0, 255, 255)),
    }))
    # not catalogued
    (folder / ".hidden.png").write_bytes(png_bytes())
    (folder / "notes.txt").write_text("not an image")
    (folder / "nested").mkdir()
    (folder / "nested" / "inner.png").write_bytes(png_bytes())
    return folder


@pytest.fixture
def raster_eps(monkeypatch):
    """Lets EPS decode without Ghostscript by faking Pillow's raster reader."""
    monkeypatch.setattr(
        "slidestack.imaging.decoder.eps_to_raster",
        lambda data: Image.new("RGB", (100, 50), "white"),
    )
