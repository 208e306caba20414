"""Tests for PDF page rasterization."""

import math

import numpy as np
import pytest

from slidestack.errors import DecodeError
from slidestack.imaging.pdf import (
    PDF_RASTER_SCALE, open_pdf, plan_page_raster, rasterize_pdf, rotated_bounds,
)
from slidestack.models import Rect, aligned_stride

from conftest import pdf_bytes


def test_plan_unrotated_page():
    plan = plan_page_raster(Rect(0, 0, 612, 792), 0)
    assert plan.width == int(612 * PDF_RASTER_SCALE)
    assert plan.height == int(792 * PDF_RASTER_SCALE)
    assert plan.scale_x == pytest.approx(PDF_RASTER_SCALE)
    assert plan.scale_y == pytest.approx(PDF_RASTER_SCALE)
    assert plan.rotation == 0
    assert plan.upscales


def test_plan_negates_rotation():
    plan = plan_page_raster(Rect(0, 0, 200, 100), 90)
    assert plan.rotation == pytest.approx(-math.pi / 2)


def test_plan_rotated_page_scales_per_axis():
    # a quarter turn swaps the rotated crop box's sides
    plan = plan_page_raster(Rect(0, 0, 200, 100), 90, scale=2.0)
    assert (plan.width, plan.height) == (400, 200)
    assert plan.scale_x == pytest.approx(400 / 100)
    assert plan.scale_y == pytest.approx(200 / 200)
    assert not plan.upscales


def test_plan_rejects_empty_crop_box():
    with pytest.raises(DecodeError):
        plan_page_raster(Rect(0, 0, 0, 100), 0)


def test_rotated_bounds():
    size = rotated_bounds(Rect(0, 0, 200, 100), -math.pi / 2)
    assert (size.width, size.height) == (pytest.approx(100), pytest.approx(200))
    size = rotated_bounds(Rect(0, 0, 200, 100), math.pi)
    assert (size.width, size.height) == (pytest.approx(200), pytest.approx(100))


def test_rasterize_returns_one_bitmap_per_page_in_order():
    data = pdf_bytes(pages=3, size=(100, 50))
    bitmaps = rasterize_pdf(data)

    assert len(bitmaps) == 3
    for bitmap in bitmaps:
        assert (bitmap.width, bitmap.height) == (int(100 * PDF_RASTER_SCALE), int(50 * PDF_RASTER_SCALE))
        assert bitmap.bytes_per_line == aligned_stride(bitmap.width)
        assert bitmap.bytes_per_line % 16 == 0


def test_rasterize_page_order_follows_document(tmp_path):
    import fitz

    doc = fitz.open()
    for width in (100, 120, 140):
        doc.new_page(width=width, height=50)
    data = doc.tobytes()
    doc.close()

    widths = [b.width for b in rasterize_pdf(data, scale=1.0)]
    assert widths == [100, 120, 140]


def test_rasterize_fills_white_and_is_opaque():
    bitmap = rasterize_pdf(pdf_bytes(pages=1, size=(60, 40)), scale=1.0)[0]
    pixels = bitmap.pixels
    assert (pixels[..., 3] == 255).all()
    # corners are background
    assert tuple(pixels[0, 0]) == (255, 255, 255, 255)
    assert tuple(pixels[-1, -1]) == (255, 255, 255, 255)
    # the text drew something dark
    assert pixels[..., :3].min() < 128


def test_rasterize_max_pages():
    assert len(rasterize_pdf(pdf_bytes(pages=4, size=(50, 50)), scale=1.0, max_pages=1)) == 1


def test_rasterize_rotated_page_keeps_target_size():
    bitmap = rasterize_pdf(pdf_bytes(pages=1, size=(80, 40), rotation=90), scale=2.0)[0]
    assert (bitmap.width, bitmap.height) == (160, 80)


def test_open_pdf_rejects_garbage():
    with pytest.raises(DecodeError):
        open_pdf(b"definitely not a pdf")


def test_rasterize_empty_document_bytes():
    with pytest.raises(DecodeError):
        rasterize_pdf(b"")


def test_rasterize_skips_pages_over_the_pixel_limit(monkeypatch, caplog):
    monkeypatch.setattr("slidestack.imaging.pdf.Image.MAX_IMAGE_PIXELS", 100)
    assert rasterize_pdf(pdf_bytes(pages=2, size=(50, 40)), scale=1.0, name="huge.pdf") == []
    assert "exceeds" in caplog.text
