"""Maps file names, MIME types and header bytes to content types."""

import logging
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from PIL import Image

from slidestack.models import ContentType

log = logging.getLogger(__name__)

PDF_EXTENSIONS = {".pdf"}
EPS_EXTENSIONS = {".eps", ".epsf", ".epsi"}
ZIP_EXTENSIONS = {".zip"}

# Pillow registers these for saving or for Ghostscript-backed reading;
# they are routed to the document decoders instead.
_DOCUMENT_EXTENSIONS = PDF_EXTENSIONS | EPS_EXTENSIONS | {".ps"}

EPS_DOS_MAGIC = b"\xc5\xd0\xd3\xc6"

_RASTER_MAGIC = (
    b"\x89PNG\r\n\x1a\n",
    b"\xff\xd8\xff",
    b"GIF87a",
    b"GIF89a",
    b"BM",
    b"II*\x00",
    b"MM\x00*",
)


def pillow_image_extensions() -> Dict[str, ContentType]:
    """Every extension the installed Pillow can open, mapped to IMAGE."""
    Image.init()
    return {
        ext.lower(): ContentType.IMAGE
        for ext, fmt in Image.registered_extensions().items()
        if fmt in Image.OPEN and ext.lower() not in _DOCUMENT_EXTENSIONS
    }


def default_type_table(extra_image_extensions: Iterable[str] = ()) -> Dict[str, ContentType]:
    table = pillow_image_extensions()
    for ext in extra_image_extensions:
        ext = ext.strip().lower()
        if not ext:
            continue
        if not ext.startswith("."):
            ext = "." + ext
        table[ext] = ContentType.IMAGE
    table.update({ext: ContentType.PDF for ext in PDF_EXTENSIONS})
    table.update({ext: ContentType.EPS for ext in EPS_EXTENSIONS})
    table.update({ext: ContentType.ZIP_ARCHIVE for ext in ZIP_EXTENSIONS})
    return table


def sniff(header: bytes) -> ContentType:
    """Classifies by magic number. Needs at most the first 32 bytes."""
    if header.startswith(b"%PDF-"):
        return ContentType.PDF
    if header.startswith(EPS_DOS_MAGIC):
        return ContentType.EPS
    if header.startswith(b"%!PS-Adobe") and b"EPSF" in header:
        return ContentType.EPS
    if header.startswith(b"PK\x03\x04") or header.startswith(b"PK\x05\x06"):
        return ContentType.ZIP_ARCHIVE
    if header.startswith(b"RIFF") and header[8:12] == b"WEBP":
        return ContentType.IMAGE
    if header.startswith(_RASTER_MAGIC):
        return ContentType.IMAGE
    return ContentType.UNSUPPORTED


class ContentTypeClassifier:
    """Extension lookup with a header-sniffing fallback for unknown extensions.

    The table is injectable so callers can restrict or extend what counts as
    an image without touching Pillow's registry.
    """

    def __init__(self, table: Optional[Dict[str, ContentType]] = None):
        self.table = table if table is not None else default_type_table()

    def classify(self, name: Union[str, Path]) -> ContentType:
        suffix = Path(str(name)).suffix.lower()
        if not suffix:
            return ContentType.UNSUPPORTED
        return self.table.get(suffix, ContentType.UNSUPPORTED)

    def classify_mime(self, mime: Optional[str]) -> ContentType:
        if not mime:
            return ContentType.UNSUPPORTED
        mime = mime.split(";", 1)[0].strip().lower()
        if mime == "application/pdf":
            return ContentType.PDF
        if mime in ("application/postscript", "application/eps", "image/eps", "image/x-eps"):
            return ContentType.EPS
        if mime in ("application/zip", "application/x-zip-compressed"):
            return ContentType.ZIP_ARCHIVE
        if mime.startswith("image/"):
            return ContentType.IMAGE
        return ContentType.UNSUPPORTED

    def classify_file(self, path: Path) -> ContentType:
        """Extension first; only files with an unknown extension are opened."""
        content_type = self.classify(path.name)
        if content_type is not ContentType.UNSUPPORTED:
            return content_type
        try:
            with open(path, "rb") as f:
                header = f.read(32)
        except OSError as e:
            log.debug("Could not sniff %s: %s", path, e)
            return ContentType.UNSUPPORTED
        content_type = sniff(header)
        if content_type is not ContentType.UNSUPPORTED:
            log.debug("Sniffed %s as %s", path.name, content_type.value)
        return content_type


_default_classifier: Optional[ContentTypeClassifier] = None


def get_classifier() -> ContentTypeClassifier:
    """Shared classifier built from Pillow's registry and the configured extras."""
    global _default_classifier
    if _default_classifier is None:
        from slidestack.config import config
        _default_classifier = ContentTypeClassifier(default_type_table(config.extra_image_extensions()))
    return _default_classifier


def classify(name: Union[str, Path]) -> ContentType:
    return get_classifier().classify(name)
