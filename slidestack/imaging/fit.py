"""Aspect-ratio fitting for thumbnails and full-screen pages."""

import logging
from typing import Tuple, Union

from PIL import Image

from slidestack.errors import InvalidGeometryError
from slidestack.models import Bitmap, Rect, Size

log = logging.getLogger(__name__)


def fit(natural_size: Size, bounding_box: Union[Rect, Size]) -> Rect:
    """Largest rectangle with ``natural_size``'s aspect ratio centred in ``bounding_box``.

    The result is relative to the box origin. One of its dimensions always
    equals the box's.
    """
    box = bounding_box.size if isinstance(bounding_box, Rect) else bounding_box
    if natural_size.width <= 0 or natural_size.height <= 0:
        raise InvalidGeometryError(f"Degenerate content size {natural_size}")
    if box.width <= 0 or box.height <= 0:
        raise InvalidGeometryError(f"Degenerate bounding box {box}")

    container_ratio = box.width / box.height
    content_ratio = natural_size.width / natural_size.height

    if container_ratio > content_ratio:
        # relatively taller content: full height
        inner_width = box.height * content_ratio
        return Rect((box.width - inner_width) / 2.0, 0.0, inner_width, box.height)

    inner_height = box.width / content_ratio
    return Rect(0.0, (box.height - inner_height) / 2.0, box.width, inner_height)


def fitted_size(natural_size: Size, bounding_box: Union[Rect, Size]) -> Tuple[int, int]:
    """``fit`` rounded to whole pixels, never smaller than 1x1."""
    rect = fit(natural_size, bounding_box)
    return max(1, round(rect.width)), max(1, round(rect.height))


def make_thumbnail(bitmap: Bitmap, box: Size) -> Bitmap:
    """Scales a bitmap to the fitted size inside ``box``, up or down."""
    width, height = fitted_size(bitmap.size, box)
    if (width, height) == (bitmap.width, bitmap.height):
        return bitmap
    img = bitmap.to_pil().resize((width, height), Image.Resampling.LANCZOS)
    return Bitmap.from_pil(img)
