"""Byte-aware LRU cache for decoded full-resolution pages."""

import logging
from pathlib import Path
from typing import Any, Callable, Optional, Union

from cachetools import LRUCache

log = logging.getLogger(__name__)


class ByteLRUCache(LRUCache):
    """An LRU Cache that respects the size of its items in bytes."""

    def __init__(
        self,
        max_bytes: int,
        size_of: Callable[[Any], int] = len,
        on_evict: Optional[Callable[[Any], None]] = None,
    ):
        super().__init__(maxsize=max_bytes, getsizeof=size_of)
        self.on_evict = on_evict
        log.info(
            f"Initialized byte-aware LRU cache with {max_bytes / 1024**2:.2f} MB capacity."
        )

    def __setitem__(self, key, value):
        # Eviction to make room is done by the parent class through popitem
        super().__setitem__(key, value)
        log.debug(
            f"Cached item '{key}'. Cache size: {self.currsize / 1024**2:.2f} MB"
        )

    def popitem(self):
        """Extend popitem to log eviction."""
        key, value = super().popitem()
        log.debug(
            f"Evicted item '{key}' to free up space. Cache size: {self.currsize / 1024**2:.2f} MB"
        )

        if self.on_evict:
            self.on_evict(key)

        return key, value


def get_pages_size(item) -> int:
    """Size in bytes of a list of decoded bitmaps."""
    from slidestack.models import Bitmap

    if isinstance(item, Bitmap):
        return item.nbytes
    if isinstance(item, (list, tuple)):
        # an empty result still occupies a slot
        return max(1, sum(get_pages_size(page) for page in item))
    return 1


def build_cache_key(location: Union[Path, str], scale: float) -> str:
    """Builds a stable cache key that survives catalog reordering."""
    if isinstance(location, Path):
        path_str = location.as_posix()
    else:
        path_str = str(location)
    return f"{path_str}::{scale:g}"
