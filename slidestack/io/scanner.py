"""Scans a folder for displayable files, splicing in the contents of zip archives."""

import logging
import os
import time
from pathlib import Path
from typing import List, Optional

from natsort import natsorted

from slidestack.errors import CatalogOpenError
from slidestack.io.archive import ScratchStore, extract_to_store
from slidestack.io.classifier import ContentTypeClassifier, get_classifier
from slidestack.models import Candidate, ContentType

log = logging.getLogger(__name__)


def candidates_from_archive(
    archive_path: Path,
    store: ScratchStore,
    classifier: Optional[ContentTypeClassifier] = None,
) -> List[Candidate]:
    """Extracts an archive and keeps the members that are images, PDFs or EPS files.

    Archives nested inside the archive are not expanded.
    """
    classifier = classifier or get_classifier()
    candidates: List[Candidate] = []
    for member_name, path in extract_to_store(archive_path, store):
        content_type = classifier.classify(member_name)
        if not content_type.is_displayable:
            log.debug("Ignoring archive member %s (%s)", member_name, content_type.value)
            continue
        candidates.append(Candidate(path=path, content_type=content_type, source_name=member_name))
    return candidates


def scan(
    directory: Path,
    store: ScratchStore,
    classifier: Optional[ContentTypeClassifier] = None,
) -> List[Candidate]:
    """Lists the displayable files directly inside ``directory``.

    Hidden files and subdirectories (including bundles) are skipped. Problems
    with individual entries are logged and skipped; only failing to open
    ``directory`` itself raises CatalogOpenError.
    """
    classifier = classifier or get_classifier()
    t_start = time.perf_counter()
    log.info("Scanning directory for images: %s", directory)

    try:
        with os.scandir(directory) as it:
            dir_entries = [entry for entry in it if not entry.name.startswith(".")]
    except OSError as e:
        log.error("Error scanning directory %s: %s", directory, e)
        raise CatalogOpenError(f"Cannot open folder {directory}: {e}") from e

    candidates: List[Candidate] = []
    archives = 0
    for entry in natsorted(dir_entries, key=lambda e: e.name):
        try:
            if not entry.is_file():
                continue
            path = Path(entry.path)
            content_type = classifier.classify_file(path)
            if content_type is ContentType.ZIP_ARCHIVE:
                members = candidates_from_archive(path, store, classifier)
                if not members:
                    log.info("Archive %s contains no images", entry.name)
                    continue
                archives += 1
                candidates.extend(members)
            elif content_type.is_displayable:
                candidates.append(Candidate(path=path, content_type=content_type, source_name=entry.name))
        except OSError as e:
            log.warning("Skipping %s: %s", entry.path, e)
            continue

    elapsed = time.perf_counter() - t_start
    log.info("Found %d candidates, expanded %d archives in %.3fs", len(candidates), archives, elapsed)
    return candidates
