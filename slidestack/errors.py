"""Exceptions raised by the ingestion pipeline."""


class SlideStackError(Exception):
    """Base class for all pipeline errors."""


class CatalogOpenError(SlideStackError):
    """The requested root folder or archive could not be opened at all."""


class ArchiveOpenError(SlideStackError):
    """An archive's directory could not be read (corrupt or not a zip)."""


class DecodeError(SlideStackError):
    """A document or image could not be turned into bitmaps."""


class InvalidGeometryError(SlideStackError, ValueError):
    """A size or box with a zero or negative dimension was given to the fitter."""
