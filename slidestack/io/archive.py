"""Reads zip archives member by member into a scratch directory."""

import io
import itertools
import logging
import shutil
import tempfile
import threading
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import Iterator, List, Optional, Tuple

from slidestack.errors import ArchiveOpenError

log = logging.getLogger(__name__)


class ScratchStore:
    """A temporary directory of write-once files, owned by one catalog."""

    def __init__(self, prefix: str = "slidestack-"):
        self._prefix = prefix
        self._root: Optional[Path] = None
        self._counter = itertools.count()
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        with self._lock:
            if self._root is None:
                self._root = Path(tempfile.mkdtemp(prefix=self._prefix))
                log.debug("Created scratch directory %s", self._root)
            return self._root

    def write(self, name: str, data: bytes) -> Path:
        """Writes ``data`` under a collision-free name derived from ``name``."""
        basename = PurePosixPath(name).name or "entry"
        path = self.root / f"{next(self._counter):04d}-{basename}"
        with path.open("xb") as f:
            f.write(data)
        return path

    def close(self):
        with self._lock:
            root, self._root = self._root, None
        if root is not None:
            shutil.rmtree(root, ignore_errors=True)
            log.debug("Removed scratch directory %s", root)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def _is_hidden_member(name: str) -> bool:
    parts = PurePosixPath(name).parts
    return bool(parts) and (parts[0] == "__MACOSX" or any(p.startswith(".") for p in parts))


def open_archive(archive_bytes: bytes) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(io.BytesIO(archive_bytes))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as e:
        raise ArchiveOpenError(f"Could not open archive: {e}") from e


def extract(archive_bytes: bytes) -> Iterator[Tuple[str, bytes]]:
    """Yields ``(member_name, member_bytes)`` for each readable file member.

    A corrupt member is skipped with a warning; a corrupt archive yields nothing.
    """
    try:
        zf = open_archive(archive_bytes)
    except ArchiveOpenError as e:
        log.warning("%s", e)
        return

    with zf:
        for info in zf.infolist():
            if info.is_dir() or _is_hidden_member(info.filename):
                continue
            try:
                data = zf.read(info)
            except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError, OSError, EOFError) as e:
                log.warning("Skipping unreadable archive member %s: %s", info.filename, e)
                continue
            yield info.filename, data


def extract_to_store(archive_path: Path, store: ScratchStore) -> List[Tuple[str, Path]]:
    """Extracts every readable member of ``archive_path`` into ``store``.

    Raises OSError if the archive file itself cannot be read.
    """
    archive_bytes = Path(archive_path).read_bytes()
    written: List[Tuple[str, Path]] = []
    for name, data in extract(archive_bytes):
        try:
            written.append((name, store.write(name, data)))
        except OSError as e:
            log.warning("Could not write temporary file for %s: %s", name, e)
            continue
    log.info("Extracted %d members from %s", len(written), Path(archive_path).name)
    return written
