"""Fast JPEG decoding using PyTurboJPEG, with Pillow used when libjpeg-turbo is missing."""

import logging
from io import BytesIO
from typing import Optional, Tuple

import numpy as np
from PIL import Image
from turbojpeg import TurboJPEG, TJPF_RGBA

log = logging.getLogger(__name__)

JPEG_MAGIC = b"\xff\xd8\xff"

try:
    jpeg_decoder = TurboJPEG()
except (OSError, RuntimeError):
    jpeg_decoder = None
    TURBO_AVAILABLE = False
    log.warning("libjpeg-turbo not found. Falling back to Pillow for JPEG decoding.")
else:
    TURBO_AVAILABLE = True
    log.info("PyTurboJPEG is available. Using it for JPEG decoding.")


def is_jpeg(data: bytes) -> bool:
    return data[:3] == JPEG_MAGIC


def decode_jpeg_rgba(jpeg_bytes: bytes, max_dim: int = 0) -> Optional[np.ndarray]:
    """Decodes JPEG bytes into an opaque H x W x 4 array.

    With ``max_dim`` set, libjpeg-turbo's DCT scaling picks the smallest
    output that is still at least ``max_dim`` on its longer side.
    """
    if TURBO_AVAILABLE and jpeg_decoder:
        try:
            scaling_factor = None
            if max_dim > 0:
                width, height, _, _ = jpeg_decoder.decode_header(jpeg_bytes)
                scaling_factor = _get_turbojpeg_scaling_factor(width, height, max_dim)
            # flags=0: no TJFLAG_FASTDCT, keeps YCbCr->RGB conversion exact
            return jpeg_decoder.decode(
                jpeg_bytes,
                pixel_format=TJPF_RGBA,
                scaling_factor=scaling_factor,
                flags=0,
            )
        except (OSError, ValueError) as e:
            log.warning(f"PyTurboJPEG failed to decode image: {e}. Trying Pillow.")

    try:
        img = Image.open(BytesIO(jpeg_bytes))
        if max_dim > 0:
            img.draft("RGB", (max_dim, max_dim))
        return np.array(img.convert("RGBA"))
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        log.warning(f"Pillow also failed to decode JPEG: {e}")
        return None


def _get_turbojpeg_scaling_factor(width: int, height: int, max_dim: int) -> Optional[Tuple[int, int]]:
    """Smallest libjpeg-turbo scaling factor keeping the longer side >= max_dim."""
    if not TURBO_AVAILABLE or not jpeg_decoder:
        return None

    supported_factors = sorted(
        jpeg_decoder.scaling_factors,
        key=lambda x: x[0] / x[1],
    )
    longest = max(width, height)
    for num, den in supported_factors:
        if longest * num / den >= max_dim:
            return (num, den)
    return None
