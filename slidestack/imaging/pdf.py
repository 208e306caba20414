"""Rasterizes PDF pages into bitmaps with PyMuPDF."""

import dataclasses
import logging
import math
from typing import List, Optional

import fitz  # PyMuPDF
import numpy as np
from PIL import Image

from slidestack.errors import DecodeError
from slidestack.models import Bitmap, Rect, Size

log = logging.getLogger(__name__)

# 300 / 72 dpi
PDF_RASTER_SCALE = 4.1667


@dataclasses.dataclass(frozen=True)
class RasterPlan:
    """Output size and drawing scale for one page."""
    width: int
    height: int
    rotation: float  # radians, already negated
    scale_x: float
    scale_y: float

    @property
    def upscales(self) -> bool:
        # the page drawing transform never scales up on its own
        return self.scale_y > 1


def rotated_bounds(rect: Rect, radians: float) -> Size:
    """Size of the axis-aligned box around ``rect`` rotated by ``radians``."""
    cos = abs(math.cos(radians))
    sin = abs(math.sin(radians))
    # exact quarter turns; keeps 90 degrees from leaving 1e-17 residue
    cos, sin = round(cos, 12), round(sin, 12)
    return Size(
        rect.width * cos + rect.height * sin,
        rect.width * sin + rect.height * cos,
    )


def plan_page_raster(crop_box: Rect, rotation_degrees: int, scale: float = PDF_RASTER_SCALE) -> RasterPlan:
    """Works out the target raster for a page.

    The target is the crop box scaled by ``scale``. The per-axis factors map
    the rotated crop box onto that target.
    """
    if crop_box.width <= 0 or crop_box.height <= 0:
        raise DecodeError(f"Empty crop box {crop_box}")
    radians = -rotation_degrees * (math.pi / 180)
    rotated = rotated_bounds(crop_box, radians)
    best_width = crop_box.width * scale
    best_height = crop_box.height * scale
    return RasterPlan(
        width=max(1, int(best_width)),
        height=max(1, int(best_height)),
        rotation=radians,
        scale_x=best_width / rotated.width,
        scale_y=best_height / rotated.height,
    )


def open_pdf(data: bytes) -> fitz.Document:
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        raise DecodeError(f"Not a readable PDF: {e}") from e
    if doc.needs_pass:
        doc.close()
        raise DecodeError("PDF is encrypted")
    return doc


def _pixmap_to_rgb(pix: fitz.Pixmap) -> np.ndarray:
    rows = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.height, pix.stride)
    return rows[:, : pix.width * pix.n].reshape(pix.height, pix.width, pix.n)[..., :3]


def render_page(page: fitz.Page, scale: float = PDF_RASTER_SCALE) -> Bitmap:
    """Renders the crop box of ``page`` onto an opaque white canvas."""
    crop = page.cropbox
    plan = plan_page_raster(Rect(crop.x0, crop.y0, crop.width, crop.height), page.rotation, scale)
    limit = Image.MAX_IMAGE_PIXELS
    if limit and plan.width * plan.height > 2 * limit:
        # same ceiling Pillow applies before raising DecompressionBombError
        raise DecodeError(f"Page raster {plan.width}x{plan.height} exceeds {2 * limit} pixels")

    # PyMuPDF applies the page rotation itself; only the scale is ours
    matrix = fitz.Matrix(plan.scale_x, plan.scale_y) if plan.upscales else fitz.Identity
    pix = page.get_pixmap(matrix=matrix, colorspace=fitz.csRGB, alpha=False)
    rendered = _pixmap_to_rgb(pix)

    canvas = np.full((plan.height, plan.width, 4), 255, dtype=np.uint8)
    rows = min(plan.height, rendered.shape[0])
    cols = min(plan.width, rendered.shape[1])
    # anchored bottom-left, as drawn into a y-up bitmap context
    canvas[plan.height - rows:, :cols, :3] = rendered[rendered.shape[0] - rows:, :cols]
    # opaque, so already premultiplied
    return Bitmap.from_rgba(canvas, premultiplied=True)


def rasterize_pdf(
    data: bytes,
    scale: float = PDF_RASTER_SCALE,
    max_pages: Optional[int] = None,
    name: str = "",
) -> List[Bitmap]:
    """Renders pages 1..N in order (or the first ``max_pages`` of them).

    A page that fails to render is logged and left out.
    """
    bitmaps: List[Bitmap] = []
    with open_pdf(data) as doc:
        count = doc.page_count
        if max_pages is not None:
            count = min(count, max_pages)
        for number in range(1, count + 1):
            try:
                bitmaps.append(render_page(doc.load_page(number - 1), scale))
            except (RuntimeError, ValueError, DecodeError) as e:
                log.warning("Could not render page %d of %s: %s", number, name or "PDF", e)
        log.debug("Rendered %d/%d pages of %s", len(bitmaps), count, name or "PDF")
    return bitmaps
