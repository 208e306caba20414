"""Manages application configuration via an INI file."""

import configparser
import logging
import os
from pathlib import Path
from typing import List, Optional, Tuple

from slidestack.logging_setup import get_app_data_dir

log = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "core": {
        "thumbnail_width": "216",
        "thumbnail_height": "162",
        "workers": "0",  # 0 = derive from CPU count
        "prefetch_radius": "1",
        "cache_size_mb": "512",
    },
    "pdf": {
        "raster_scale": "4.1667",  # 300 / 72 dpi
        "thumbnail_scale": "1.0",
    },
    "eps": {
        "ghostscript": "gs",
        "prefer_pdf": "false",
    },
    "types": {
        "extra_image_extensions": "",  # e.g. ".jxl, .qoi"
    },
}


def default_config_path() -> Path:
    override = os.getenv("SLIDESTACK_CONFIG")
    if override:
        return Path(override)
    return get_app_data_dir() / "slidestack.ini"


class AppConfig:
    """slidestack.ini layered over the built-in defaults.

    Keys missing from the file take their default value and are written back,
    so the file on disk always lists every option.
    """

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = Path(config_path) if config_path else default_config_path()
        self.config = configparser.ConfigParser()
        self.load()

    def load(self):
        self.config.read_dict(DEFAULT_CONFIG)
        if self.config_path.exists():
            log.info("Loading config from %s", self.config_path)
            try:
                self.config.read(self.config_path, encoding="utf-8")
            except configparser.Error as e:
                log.error("Ignoring unreadable config %s: %s", self.config_path, e)
                return
        else:
            log.info("Creating default config at %s", self.config_path)
        self.save()

    def save(self):
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with self.config_path.open("w", encoding="utf-8") as f:
                self.config.write(f)
        except OSError as e:
            log.error("Failed to save config to %s: %s", self.config_path, e)

    def get(self, section, key, fallback=None):
        return self.config.get(section, key, fallback=fallback)

    def getint(self, section, key, fallback=None):
        return self.config.getint(section, key, fallback=fallback)

    def getfloat(self, section, key, fallback=None):
        return self.config.getfloat(section, key, fallback=fallback)

    def getboolean(self, section, key, fallback=None):
        return self.config.getboolean(section, key, fallback=fallback)

    def set(self, section, key, value):
        if not self.config.has_section(section):
            self.config.add_section(section)
        self.config.set(section, key, str(value))

    def worker_count(self) -> int:
        """Configured worker threads, or 2x CPU cores capped at 8."""
        workers = self.getint("core", "workers", fallback=0)
        if workers > 0:
            return workers
        return min((os.cpu_count() or 1) * 2, 8)

    def thumbnail_box(self) -> Tuple[int, int]:
        return (
            self.getint("core", "thumbnail_width", fallback=216),
            self.getint("core", "thumbnail_height", fallback=162),
        )

    def extra_image_extensions(self) -> List[str]:
        raw = self.get("types", "extra_image_extensions", fallback="")
        return [ext.strip() for ext in raw.split(",") if ext.strip()]


# Global config instance
config = AppConfig()
