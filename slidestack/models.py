"""Core data types and enumerations for SlideStack."""

import dataclasses
import enum
import logging
import time
from pathlib import Path
from typing import List, Optional

import numpy as np
from PIL import Image

log = logging.getLogger(__name__)

PIXEL_FORMAT_RGBA_PREMULTIPLIED = "RGBA8888-premultiplied"

THUMBNAIL_SIZE = (216, 162)


class ContentType(str, enum.Enum):
    """Kinds of candidate files, tagged with their stable string values."""
    IMAGE = "image"
    PDF = "pdf"
    EPS = "eps"
    ZIP_ARCHIVE = "zip-archive"
    UNSUPPORTED = "unsupported"

    @property
    def is_displayable(self) -> bool:
        return self in (ContentType.IMAGE, ContentType.PDF, ContentType.EPS)


@dataclasses.dataclass(frozen=True)
class Size:
    width: float
    height: float


@dataclasses.dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def size(self) -> Size:
        return Size(self.width, self.height)


def aligned_stride(width: int) -> int:
    """Row length in bytes for 4-byte pixels, rounded up to 16 bytes."""
    return (width * 4 + 0x0F) & ~0x0F


def premultiply(rgba: np.ndarray) -> np.ndarray:
    """Returns a copy of an H x W x 4 straight-alpha array with colour scaled by alpha."""
    out = rgba.astype(np.uint16)
    alpha = out[..., 3:4]
    out[..., :3] = (out[..., :3] * alpha + 127) // 255
    return out.astype(np.uint8)


@dataclasses.dataclass
class Bitmap:
    """A decoded page: premultiplied RGBA rows padded to ``bytes_per_line``."""
    buffer: np.ndarray  # shape (height, bytes_per_line), uint8
    width: int
    height: int
    bytes_per_line: int
    format: str = PIXEL_FORMAT_RGBA_PREMULTIPLIED

    @classmethod
    def from_rgba(cls, rgba: np.ndarray, premultiplied: bool = False) -> "Bitmap":
        """Packs an H x W x 4 array into a row-aligned buffer."""
        height, width, channels = rgba.shape
        if channels != 4:
            raise ValueError(f"Expected 4 channels, got {channels}")
        if not premultiplied:
            rgba = premultiply(rgba)
        stride = aligned_stride(width)
        buffer = np.zeros((height, stride), dtype=np.uint8)
        buffer[:, : width * 4] = rgba.reshape(height, width * 4)
        return cls(buffer=buffer, width=width, height=height, bytes_per_line=stride)

    @classmethod
    def from_pil(cls, image: Image.Image) -> "Bitmap":
        if image.mode == "RGBa":
            return cls.from_rgba(np.asarray(image), premultiplied=True)
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        return cls.from_rgba(np.asarray(image))

    @property
    def pixels(self) -> np.ndarray:
        """H x W x 4 view of the pixel data without row padding."""
        return self.buffer[:, : self.width * 4].reshape(self.height, self.width, 4)

    @property
    def size(self) -> Size:
        return Size(self.width, self.height)

    @property
    def nbytes(self) -> int:
        return self.buffer.nbytes

    def to_pil(self) -> Image.Image:
        """Premultiplied ("RGBa") Pillow image sharing nothing with the buffer."""
        return Image.frombuffer(
            "RGBa", (self.width, self.height), self.buffer.tobytes(),
            "raw", "RGBa", self.bytes_per_line, 1,
        )

    def __sizeof__(self) -> int:
        return self.buffer.nbytes


@dataclasses.dataclass(frozen=True)
class EntryKey:
    """Identity of a catalog entry: its resolved location."""
    location: Path

    @classmethod
    def for_path(cls, path: Path) -> "EntryKey":
        return cls(Path(path).absolute())


@dataclasses.dataclass(frozen=True)
class Candidate:
    """A classified file found by scanning a folder or extracting an archive."""
    path: Path
    content_type: ContentType
    source_name: str


class ImageCatalogEntry:
    """One admitted file: its identity, cached thumbnail and lazily decoded pages."""

    def __init__(
        self,
        location: Path,
        content_type: ContentType,
        source_name: Optional[str] = None,
        thumbnail: Optional[Bitmap] = None,
    ):
        self._key = EntryKey.for_path(location)
        self._content_type = ContentType(content_type)
        self.source_name = source_name or self._key.location.name
        self.thumbnail = thumbnail
        self.pages: List[Bitmap] = []
        self.last_updated = time.time()

    @classmethod
    def from_candidate(cls, candidate: Candidate, thumb_box=THUMBNAIL_SIZE) -> Optional["ImageCatalogEntry"]:
        """Reads the candidate, renders its first page and builds the thumbnail.

        Returns None if the file cannot be read or has nothing to display.
        """
        from slidestack.imaging.decoder import decode_first_page
        from slidestack.imaging.fit import make_thumbnail

        if not candidate.content_type.is_displayable:
            return None
        try:
            data = candidate.path.read_bytes()
        except OSError as e:
            log.warning("Could not read %s: %s", candidate.path, e)
            return None

        first = decode_first_page(data, candidate.content_type, name=candidate.source_name)
        if first is None:
            log.warning("Nothing to display in %s, dropping it", candidate.source_name)
            return None

        entry = cls(candidate.path, candidate.content_type, candidate.source_name)
        entry.thumbnail = make_thumbnail(first, Size(*thumb_box))
        return entry

    @property
    def key(self) -> EntryKey:
        return self._key

    @property
    def location(self) -> Path:
        return self._key.location

    @property
    def content_type(self) -> ContentType:
        return self._content_type

    @property
    def display_name(self) -> str:
        return self.location.name

    @property
    def display_name_without_extension(self) -> str:
        return self.location.stem

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def set_pages(self, pages: List[Bitmap]):
        self.pages = list(pages)
        if self.pages:
            self.last_updated = time.time()

    def release_pages(self):
        """Drops the full-resolution pages, keeping the thumbnail."""
        self.pages = []

    def __eq__(self, other):
        if not isinstance(other, ImageCatalogEntry):
            return NotImplemented
        return self._key == other._key

    def __hash__(self):
        return hash(self._key)

    def __repr__(self):
        return f"ImageCatalogEntry({str(self.location)!r}, {self._content_type.value})"


@dataclasses.dataclass(frozen=True)
class ViewPosition:
    """Where the viewer is: which entry, and which page of that entry."""
    entry_index: int = 0
    page_index: int = 0

    def next_entry(self, entry_count: int) -> "ViewPosition":
        if self.entry_index + 1 < entry_count:
            return ViewPosition(self.entry_index + 1, 0)
        return self

    def previous_entry(self) -> "ViewPosition":
        if self.entry_index > 0:
            return ViewPosition(self.entry_index - 1, 0)
        return self

    def page_down(self, page_count: int) -> "ViewPosition":
        if self.page_index + 1 < page_count:
            return ViewPosition(self.entry_index, self.page_index + 1)
        return self

    def page_up(self) -> "ViewPosition":
        if self.page_index > 0:
            return ViewPosition(self.entry_index, self.page_index - 1)
        return self
