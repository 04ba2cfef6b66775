"""Command-line entry point for the comic grabber."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Sequence

from .config import load_settings
from .errors import ComicGrabError
from .pipeline import grab

logger = logging.getLogger("comicgrab.cli")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Download every chapter of a comic by driving Firefox through its "
            "lazy-loaded reader and saving each page as a numbered PNG."
        ),
    )
    parser.add_argument("url", help="Catalog page listing the comic's chapters")
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Directory under which <comic>/<chapter>/ folders are created",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="TOML settings file (default: ./config.toml when present)",
    )
    parser.add_argument(
        "--proxy",
        default=None,
        help="HTTP proxy URL used by both the browser and image downloads",
    )
    parser.add_argument(
        "--driver",
        type=Path,
        default=None,
        help="Playwright driver executable to run as a separate server",
    )
    parser.add_argument(
        "--browser",
        type=Path,
        default=None,
        help="Firefox executable to use instead of the bundled one",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window while scanning",
    )
    parser.add_argument(
        "--skip",
        type=int,
        default=0,
        help="Skip this many chapters from the start of the catalog",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Process at most this many chapters",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of image conversion threads (default: CPU count)",
    )
    parser.add_argument(
        "--max-fetches",
        type=int,
        default=None,
        help="Maximum simultaneous image downloads",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args(argv)


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {
        "output_root": args.output,
        "http_proxy": args.proxy,
        "driver_path": args.driver,
        "browser_binary_path": args.browser,
        "worker_count": args.workers,
        "max_concurrent_fetches": args.max_fetches,
    }
    if args.headed:
        overrides["headless"] = False
    return overrides


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )

    try:
        settings = load_settings(args.config, _overrides(args))
        summary = asyncio.run(grab(settings, args.url, args.skip, args.limit))
    except ComicGrabError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.error("Interrupted")
        sys.exit(130)

    if summary.fetch_failures or summary.codec_failures:
        logger.warning(
            "%d downloads and %d conversions failed; see errors above",
            summary.fetch_failures,
            summary.codec_failures,
        )


if __name__ == "__main__":
    main()
