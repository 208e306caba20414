"""Encapsulated PostScript: Pillow's raster reader, or Ghostscript conversion to PDF."""

import logging
import shutil
import subprocess
import tempfile
from io import BytesIO
from pathlib import Path
from typing import Optional

from PIL import Image, EpsImagePlugin

from slidestack.config import config
from slidestack.errors import DecodeError

log = logging.getLogger(__name__)


def ghostscript_executable() -> Optional[str]:
    """Resolves the configured Ghostscript binary, or None if it is not installed."""
    configured = config.get("eps", "ghostscript", fallback="gs").strip() or "gs"
    return shutil.which(configured)


def eps_to_raster(data: bytes) -> Optional[Image.Image]:
    """Lets Pillow interpret the EPS. Returns None if it cannot."""
    try:
        img = Image.open(BytesIO(data))
        if not isinstance(img, EpsImagePlugin.EpsImageFile):
            return img.copy()
        img.load()
        return img
    except (OSError, ValueError, SyntaxError, subprocess.SubprocessError, Image.DecompressionBombError) as e:
        log.debug("Pillow could not rasterize EPS: %s", e)
        return None


def eps_to_pdf(data: bytes) -> bytes:
    """Converts EPS bytes into a one-page PDF with Ghostscript's pdfwrite device."""
    gs = ghostscript_executable()
    if gs is None:
        raise DecodeError("Ghostscript is not installed; cannot convert EPS to PDF")

    with tempfile.TemporaryDirectory(prefix="slidestack-eps-") as tmp:
        src = Path(tmp) / "in.eps"
        dst = Path(tmp) / "out.pdf"
        src.write_bytes(data)
        args = [
            gs, "-q", "-dSAFER", "-dBATCH", "-dNOPAUSE", "-dEPSCrop",
            "-sDEVICE=pdfwrite", f"-sOutputFile={dst}", str(src),
        ]
        log.debug("Command: %s", " ".join(args))
        try:
            subprocess.run(
                args,
                shell=False,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                check=True,
            )
            return dst.read_bytes()
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or b"").decode("utf-8", "replace").strip()
            raise DecodeError(f"Ghostscript failed ({e.returncode}): {stderr}") from e
        except OSError as e:
            raise DecodeError(f"Could not run Ghostscript: {e}") from e
