"""Turns classified file bytes into bitmaps: one per PDF page, one for EPS and rasters."""

import logging
import time
from io import BytesIO
from pathlib import Path
from typing import List, Optional

from PIL import Image

from slidestack.config import config
from slidestack.errors import DecodeError
from slidestack.imaging.eps import eps_to_pdf, eps_to_raster
from slidestack.imaging.jpeg import decode_jpeg_rgba, is_jpeg
from slidestack.imaging.pdf import PDF_RASTER_SCALE, rasterize_pdf
from slidestack.models import Bitmap, ContentType

log = logging.getLogger(__name__)


def pdf_raster_scale() -> float:
    return config.getfloat("pdf", "raster_scale", fallback=PDF_RASTER_SCALE)


def _thumbnail_scale() -> float:
    return config.getfloat("pdf", "thumbnail_scale", fallback=1.0)


def _thumbnail_max_dim() -> int:
    return max(config.thumbnail_box())


def decode_raster(data: bytes, max_dim: int = 0) -> List[Bitmap]:
    """Decodes a raster image into at most one bitmap.

    Multi-frame and multi-resolution files (TIFF, ICO, GIF) keep frame 0.
    """
    if is_jpeg(data):
        rgba = decode_jpeg_rgba(data, max_dim)
        if rgba is None:
            raise DecodeError("JPEG data could not be decoded")
        return [Bitmap.from_rgba(rgba)]

    try:
        with Image.open(BytesIO(data)) as img:
            img.seek(0)
            if max_dim > 0:
                img.draft("RGB", (max_dim, max_dim))
            return [Bitmap.from_pil(img.convert("RGBA"))]
    except (OSError, ValueError, SyntaxError, EOFError, Image.DecompressionBombError) as e:
        raise DecodeError(f"{type(e).__name__}: {e}") from e


def decode_eps(data: bytes, scale: float, name: str = "", prefer_pdf: Optional[bool] = None) -> List[Bitmap]:
    """EPS has exactly one page: Pillow's raster first, then EPS -> PDF page 1."""
    if prefer_pdf is None:
        prefer_pdf = config.getboolean("eps", "prefer_pdf", fallback=False)

    if not prefer_pdf:
        img = eps_to_raster(data)
        if img is not None:
            return [Bitmap.from_pil(img)]
        log.debug("No raster representation for %s, converting to PDF", name or "EPS")

    pdf_data = eps_to_pdf(data)
    return rasterize_pdf(pdf_data, scale=scale, max_pages=1, name=name)[:1]


def _decode(data: bytes, content_type: ContentType, scale: float, max_pages: Optional[int], max_dim: int, name: str) -> List[Bitmap]:
    content_type = ContentType(content_type)
    if content_type is ContentType.IMAGE:
        return decode_raster(data, max_dim)
    if content_type is ContentType.PDF:
        return rasterize_pdf(data, scale=scale, max_pages=max_pages, name=name)
    if content_type is ContentType.EPS:
        return decode_eps(data, scale, name)
    log.debug("No decoder for %s (%s)", name, content_type.value)
    return []


def decode(data: bytes, content_type: ContentType, name: str = "") -> List[Bitmap]:
    """Decodes every page at full resolution.

    Never raises for bad data: failures are logged and an empty list (or the
    pages rendered before a failure) is returned.
    """
    t_start = time.perf_counter()
    try:
        pages = _decode(data, content_type, pdf_raster_scale(), None, 0, name)
    except DecodeError as e:
        log.warning("Error decoding %s: %s", name or content_type, e)
        return []
    log.debug("Decoded %d pages of %s in %.3fs", len(pages), name, time.perf_counter() - t_start)
    return pages


def decode_file(path: Path, content_type: ContentType) -> List[Bitmap]:
    """Reads and decodes ``path``. Raises OSError if the file cannot be read."""
    data = Path(path).read_bytes()
    return decode(data, content_type, name=Path(path).name)


def decode_first_page(data: bytes, content_type: ContentType, name: str = "") -> Optional[Bitmap]:
    """Decodes only what the thumbnail needs, at a reduced resolution."""
    try:
        pages = _decode(data, content_type, _thumbnail_scale(), 1, _thumbnail_max_dim(), name)
    except DecodeError as e:
        log.warning("Error decoding thumbnail for %s: %s", name or content_type, e)
        return None
    return pages[0] if pages else None
