"""Loads full-resolution pages in a background thread pool and prefetches neighbours."""

import dataclasses
import logging
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, List, Optional

from slidestack.config import config
from slidestack.errors import DecodeError
from slidestack.imaging.cache import ByteLRUCache, build_cache_key, get_pages_size
from slidestack.imaging.decoder import decode_file, pdf_raster_scale
from slidestack.models import Bitmap, ContentType, EntryKey, ImageCatalogEntry

log = logging.getLogger(__name__)


@dataclasses.dataclass
class PageLoadResult:
    """Outcome of one full-page request."""
    index: int
    key: EntryKey
    generation: int
    pages: List[Bitmap] = dataclasses.field(default_factory=list)
    error: Optional[BaseException] = None
    stale: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.stale and bool(self.pages)


class PageLoader:
    """Serves "load full pages for entry N" requests without blocking the caller.

    Every request bumps ``generation``. A result is published to ``current``
    (and passed to the callback) only if no newer request was made meanwhile;
    older results still land in the cache but never replace the current pages.
    """

    def __init__(
        self,
        max_workers: Optional[int] = None,
        prefetch_radius: Optional[int] = None,
        cache_bytes: Optional[int] = None,
        decode_pages: Callable[[Path, ContentType], List[Bitmap]] = decode_file,
    ):
        if prefetch_radius is None:
            prefetch_radius = config.getint("core", "prefetch_radius", fallback=1)
        if cache_bytes is None:
            cache_bytes = config.getint("core", "cache_size_mb", fallback=512) * 1024**2
        self.prefetch_radius = max(0, prefetch_radius)
        self.decode_pages = decode_pages
        self.executor = ThreadPoolExecutor(
            max_workers=max_workers or config.worker_count(),
            thread_name_prefix="PageLoader",
        )
        self.cache = ByteLRUCache(cache_bytes, size_of=get_pages_size, on_evict=self._on_evict)
        self.generation = 0
        self.current: Optional[PageLoadResult] = None
        self._current_entry: Optional[ImageCatalogEntry] = None
        self._lock = threading.RLock()
        self._request: Optional[Future] = None
        self._prefetch: Dict[str, Future] = {}

    def request_full_pages(
        self,
        catalog,
        index: int,
        callback: Optional[Callable[[PageLoadResult], None]] = None,
    ) -> Future:
        """Starts decoding entry ``index`` and returns a cancellable Future.

        The Future resolves to a PageLoadResult; ``callback`` runs on the
        worker thread, and only for results that are still current.
        """
        entry = catalog[index]
        with self._lock:
            self.generation += 1
            generation = self.generation
            if self._request is not None and self._request.cancel():
                log.debug("Cancelled pending full-page request before generation %d", generation)
            future = self.executor.submit(self._load, entry, index, generation, callback)
            self._request = future
        log.debug("Requested full pages for index %d, generation %d", index, generation)
        self._update_prefetch(catalog, index, generation)
        return future

    def _scale(self) -> float:
        return pdf_raster_scale()

    def _pages_for(self, entry: ImageCatalogEntry) -> List[Bitmap]:
        cache_key = build_cache_key(entry.location, self._scale())
        with self._lock:
            pages = self.cache.get(cache_key)
            prefetch = self._prefetch.pop(cache_key, None)
        if pages is not None:
            log.debug("Cache hit for %s", entry.display_name)
            return pages

        if prefetch is not None and not prefetch.cancel():
            # already running or finished in another worker
            try:
                pages = prefetch.result()
            except CancelledError:
                pages = None
            if pages is not None:
                return pages

        pages = self.decode_pages(entry.location, entry.content_type)
        self._cache_put(cache_key, pages)
        return pages

    def _on_evict(self, cache_key: str):
        # Called from the cache under the lock. A finished prefetch future
        # still references its pages, so drop it too.
        future = self._prefetch.pop(cache_key, None)
        if future is not None:
            future.cancel()
        log.debug("Evicted pages for %s", cache_key)

    def _cache_put(self, cache_key: str, pages: List[Bitmap]):
        with self._lock:
            try:
                self.cache[cache_key] = pages
            except ValueError:
                log.warning("Pages for %s exceed the cache size; not caching", cache_key)

    def _load(self, entry: ImageCatalogEntry, index: int, generation: int, callback) -> PageLoadResult:
        """The actual work done by the thread pool."""
        result = PageLoadResult(index=index, key=entry.key, generation=generation)
        if generation != self.generation:
            log.debug("Skipping stale request for index %d (gen %d != %d)", index, generation, self.generation)
            result.stale = True
            return result

        try:
            result.pages = self._pages_for(entry)
            if not result.pages:
                result.error = DecodeError(f"No displayable pages in {entry.display_name}")
        except OSError as e:
            log.error("Error reading %s at index %d: %s", entry.location, index, e)
            result.error = e
        except Exception as e:
            log.exception("Error decoding %s at index %d", entry.location, index)
            result.error = e

        with self._lock:
            if generation != self.generation:
                log.debug("Generation changed for index %d before publishing. Discarding.", index)
                result.stale = True
                return result
            previous, self._current_entry = self._current_entry, entry
            self.current = result
            if result.ok:
                entry.set_pages(result.pages)
            if previous is not None and previous is not entry:
                # the entry left behind keeps its pages in the cache only
                previous.release_pages()
            # still under the lock, so no newer request can publish first
            if callback is not None:
                callback(result)
        return result

    def _update_prefetch(self, catalog, current_index: int, generation: int):
        if self.prefetch_radius == 0:
            return
        start = max(0, current_index - self.prefetch_radius)
        end = min(len(catalog), current_index + self.prefetch_radius + 1)
        wanted = {}
        for i in range(start, end):
            if i == current_index:
                continue
            entry = catalog[i]
            wanted[build_cache_key(entry.location, self._scale())] = entry

        with self._lock:
            for cache_key in list(self._prefetch):
                if cache_key not in wanted:
                    self._prefetch.pop(cache_key).cancel()
            for cache_key, entry in wanted.items():
                if cache_key in self.cache or cache_key in self._prefetch:
                    continue
                self._prefetch[cache_key] = self.executor.submit(
                    self._prefetch_entry, entry, cache_key, generation
                )
                log.debug("Submitted prefetch task for %s", entry.display_name)

    def _prefetch_entry(self, entry: ImageCatalogEntry, cache_key: str, generation: int) -> Optional[List[Bitmap]]:
        if generation != self.generation:
            log.debug("Skipping stale prefetch for %s", entry.display_name)
            return None
        try:
            pages = self.decode_pages(entry.location, entry.content_type)
        except OSError as e:
            log.warning("Prefetch failed for %s: %s", entry.location, e)
            return None
        except Exception:
            log.exception("Error prefetching %s", entry.location)
            return None
        self._cache_put(cache_key, pages)
        return pages

    def current_pages(self) -> List[Bitmap]:
        with self._lock:
            return list(self.current.pages) if self.current else []

    def cancel_all(self):
        """Cancels pending requests; in-flight results become stale."""
        log.info("Cancelling all page requests.")
        with self._lock:
            self.generation += 1
            if self._request is not None:
                self._request.cancel()
            for future in self._prefetch.values():
                future.cancel()
            self._prefetch.clear()

    def shutdown(self):
        """Shuts down the thread pool executor."""
        log.info("Shutting down page loader thread pool.")
        self.cancel_all()
        self.executor.shutdown(wait=False)
