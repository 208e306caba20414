"""Builds and edits the ordered catalog of entries for one opened folder or archive."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

from slidestack.config import config
from slidestack.errors import CatalogOpenError
from slidestack.io.archive import ScratchStore
from slidestack.io.classifier import ContentTypeClassifier, get_classifier
from slidestack.io.scanner import candidates_from_archive, scan
from slidestack.models import Candidate, ContentType, EntryKey, ImageCatalogEntry

log = logging.getLogger(__name__)


class Catalog:
    """Entries in discovery order, plus the scratch files backing archive members."""

    def __init__(
        self,
        entries: Iterable[ImageCatalogEntry] = (),
        root: Optional[Path] = None,
        store: Optional[ScratchStore] = None,
    ):
        self.entries: List[ImageCatalogEntry] = list(entries)
        self.root = root
        self.store = store

    def __len__(self):
        return len(self.entries)

    def __getitem__(self, index):
        return self.entries[index]

    def __iter__(self):
        return iter(self.entries)

    def __contains__(self, item):
        return self.index_of(item) is not None

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def index_of(self, item: Union[EntryKey, ImageCatalogEntry, Path]) -> Optional[int]:
        """Position of the entry with the same location, or None."""
        if isinstance(item, ImageCatalogEntry):
            key = item.key
        elif isinstance(item, EntryKey):
            key = item
        else:
            key = EntryKey.for_path(item)
        for i, entry in enumerate(self.entries):
            if entry.key == key:
                return i
        return None

    def insert_at(self, index: int, new_entries: Iterable[ImageCatalogEntry]) -> List[int]:
        """Inserts entries starting at ``index``; ones already present are skipped.

        Returns the indexes the new entries ended up at.
        """
        if not 0 <= index <= len(self.entries):
            raise IndexError(f"Insert position {index} out of range 0..{len(self.entries)}")
        inserted = []
        for entry in new_entries:
            if entry in self.entries:
                log.debug("Skipping duplicate entry %s", entry.location)
                continue
            self.entries.insert(index, entry)
            inserted.append(index)
            index += 1
        return inserted

    def remove_at(self, index: int) -> ImageCatalogEntry:
        return self.entries.pop(index)

    def move_item(self, from_index: int, to_index: int):
        """Removes the entry at ``from_index`` and reinserts it at ``to_index``."""
        if not 0 <= from_index < len(self.entries):
            raise IndexError(f"Move source {from_index} out of range")
        if not 0 <= to_index < len(self.entries):
            raise IndexError(f"Move target {to_index} out of range")
        entry = self.remove_at(from_index)
        self.entries.insert(to_index, entry)

    def close(self):
        """Drops decoded pages and deletes extracted archive members."""
        for entry in self.entries:
            entry.release_pages()
        if self.store is not None:
            self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def __repr__(self):
        return f"Catalog(root={str(self.root)!r}, entries={len(self.entries)})"


class CatalogBuilder:
    """Scans a root location and thumbnails every candidate on a thread pool."""

    def __init__(
        self,
        classifier: Optional[ContentTypeClassifier] = None,
        max_workers: Optional[int] = None,
        thumb_box: Optional[Tuple[int, int]] = None,
    ):
        self.classifier = classifier or get_classifier()
        self.max_workers = max_workers or config.worker_count()
        self.thumb_box = thumb_box or config.thumbnail_box()

    def build(self, root: Path, allow_archive_at_root: bool = False) -> Catalog:
        """Builds a fresh catalog for a folder, or for a zip archive if allowed.

        Raises CatalogOpenError only when ``root`` itself cannot be opened.
        An empty catalog means "no images found".
        """
        root = Path(root)
        t_start = time.perf_counter()
        store = ScratchStore()
        try:
            candidates = self._root_candidates(root, allow_archive_at_root, store)
            entries = self.make_entries(candidates)
        except BaseException:
            store.close()
            raise

        elapsed = time.perf_counter() - t_start
        log.info("Built catalog of %d entries from %s in %.3fs", len(entries), root, elapsed)
        if not entries:
            log.info("No images found in %s", root)
        return Catalog(entries, root=root, store=store)

    def _root_candidates(self, root: Path, allow_archive_at_root: bool, store: ScratchStore) -> List[Candidate]:
        if root.is_dir():
            return scan(root, store, self.classifier)
        if not root.exists():
            raise CatalogOpenError(f"No such folder or archive: {root}")
        if self.classifier.classify_file(root) is not ContentType.ZIP_ARCHIVE:
            raise CatalogOpenError(f"Not a folder or zip archive: {root}")
        if not allow_archive_at_root:
            raise CatalogOpenError(f"Opening an archive was not allowed: {root}")
        try:
            return candidates_from_archive(root, store, self.classifier)
        except OSError as e:
            log.error("Could not read archive %s: %s", root, e)
            raise CatalogOpenError(f"Cannot read archive {root}: {e}") from e

    def _make_entry(self, candidate: Candidate) -> Optional[ImageCatalogEntry]:
        try:
            return ImageCatalogEntry.from_candidate(candidate, self.thumb_box)
        except Exception:
            log.exception("Error building thumbnail for %s", candidate.source_name)
            return None

    def make_entries(self, candidates: Sequence[Candidate]) -> List[ImageCatalogEntry]:
        """Thumbnails candidates in parallel; results keep the candidates' order."""
        if not candidates:
            return []
        with ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(candidates)),
            thread_name_prefix="Thumbnailer",
        ) as executor:
            results = list(executor.map(self._make_entry, candidates))
        dropped = sum(1 for entry in results if entry is None)
        if dropped:
            log.info("Dropped %d undecodable candidates", dropped)
        return [entry for entry in results if entry is not None]

    def admit(self, paths: Iterable[Path]) -> List[ImageCatalogEntry]:
        """Turns dropped files into entries; archives and unsupported files are ignored."""
        candidates = []
        for path in paths:
            path = Path(path)
            if not path.is_file():
                log.debug("Ignoring dropped non-file %s", path)
                continue
            content_type = self.classifier.classify_file(path)
            if content_type.is_displayable:
                candidates.append(Candidate(path=path, content_type=content_type, source_name=path.name))
        return self.make_entries(candidates)


def location_to_path(path_or_uri: Union[str, Path]) -> Path:
    """Accepts plain paths and file:// URIs."""
    if isinstance(path_or_uri, Path):
        return path_or_uri
    parsed = urlparse(path_or_uri)
    if parsed.scheme == "file":
        return Path(url2pathname(unquote(parsed.path)))
    if parsed.scheme and len(parsed.scheme) > 1:
        raise CatalogOpenError(f"Unsupported location scheme: {parsed.scheme}")
    return Path(path_or_uri)


def open_location(path_or_uri: Union[str, Path], archive_allowed: bool = False,
                  builder: Optional[CatalogBuilder] = None) -> Catalog:
    """Synchronous entry point: builds the catalog for a folder or archive."""
    builder = builder or CatalogBuilder()
    return builder.build(location_to_path(path_or_uri), allow_archive_at_root=archive_allowed)


def reorder(catalog: Catalog, from_index: int, to_index: int):
    catalog.move_item(from_index, to_index)


def insert_at(catalog: Catalog, index: int, new_entries: Iterable[Union[ImageCatalogEntry, Path]],
              builder: Optional[CatalogBuilder] = None) -> List[int]:
    """Inserts entries, building (and thumbnailing) any given as paths."""
    new_entries = list(new_entries)
    paths = [item for item in new_entries if not isinstance(item, ImageCatalogEntry)]
    admitted = (builder or CatalogBuilder()).admit(paths) if paths else []
    by_path = {entry.location: entry for entry in admitted}
    ready = []
    for item in new_entries:
        if isinstance(item, ImageCatalogEntry):
            ready.append(item)
        else:
            entry = by_path.get(EntryKey.for_path(item).location)
            if entry is not None:
                ready.append(entry)
    return catalog.insert_at(index, ready)


def remove_at(catalog: Catalog, index: int) -> ImageCatalogEntry:
    return catalog.remove_at(index)
