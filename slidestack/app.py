"""Command line entry point for SlideStack."""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Optional

from slidestack.catalog import open_location
from slidestack.errors import CatalogOpenError
from slidestack.imaging.loader import PageLoader
from slidestack.logging_setup import setup_logging

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_OPEN_FAILED = 1
EXIT_NO_IMAGES = 2


def _write_thumbnails(catalog, out_dir: Path):
    out_dir.mkdir(parents=True, exist_ok=True)
    for i, entry in enumerate(catalog):
        if entry.thumbnail is None:
            continue
        target = out_dir / f"{i:04d}-{entry.display_name_without_extension}.png"
        entry.thumbnail.to_pil().convert("RGBA").save(target)
        log.debug("Wrote thumbnail %s", target)


def main(location: str, archive: bool = False, pages: bool = False,
         thumbnails: Optional[str] = None, debug: bool = False) -> int:
    """SlideStack Application Entry Point"""
    t0 = time.perf_counter()
    setup_logging(debug)
    log.info("Starting SlideStack")

    try:
        catalog = open_location(location, archive_allowed=archive)
    except CatalogOpenError as e:
        log.error("%s", e)
        print(f"error: {e}", file=sys.stderr)
        return EXIT_OPEN_FAILED

    with catalog:
        if catalog.is_empty:
            print("No images found.", file=sys.stderr)
            return EXIT_NO_IMAGES

        loader = PageLoader(prefetch_radius=0) if pages else None
        try:
            for i, entry in enumerate(catalog):
                thumb = entry.thumbnail
                line = f"{i:4d}  {entry.content_type.value:<5}  {entry.source_name}"
                if thumb is not None:
                    line += f"  [{thumb.width}x{thumb.height}]"
                if loader is not None:
                    result = loader.request_full_pages(catalog, i).result()
                    line += f"  {len(result.pages)} page(s)" if result.ok else "  (undecodable)"
                print(line)
        finally:
            if loader is not None:
                loader.shutdown()

        if thumbnails:
            _write_thumbnails(catalog, Path(thumbnails))

    if debug:
        log.info("Finished in %.3fs", time.perf_counter() - t0)
    return EXIT_OK


def cli():
    parser = argparse.ArgumentParser(description="SlideStack - catalog images, PDFs and EPS files from a folder or zip archive")
    parser.add_argument("location", help="Folder (or zip archive with --archive) to open")
    parser.add_argument("--archive", action="store_true", help="Allow the location to be a zip archive")
    parser.add_argument("--pages", action="store_true", help="Decode every entry at full resolution and report page counts")
    parser.add_argument("--thumbnails", metavar="DIR", help="Write thumbnails as PNG files into DIR")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging and timing information")
    args = parser.parse_args()
    sys.exit(main(args.location, args.archive, args.pages, args.thumbnails, args.debug))


if __name__ == "__main__":
    cli()
