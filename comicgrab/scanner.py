"""Chapter scanning: force full pagination and read the lazy image URLs."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Sequence

from .catalog import find_all, goto, press, read_attr, read_text, require
from .channel import Channel
from .config import Settings
from .errors import ConsistencyError, ExtractionError
from .models import ChapterBatch, ChapterInfo
from .utils import parse_readout, safe_path_component

logger = logging.getLogger("comicgrab.scanner")

PAGE_INDEX_READOUT = ".comicIndex"
PAGE_COUNT_READOUT = ".comicCount"
IMAGE_LIST_CONTAINER = ".comicContent-list"
LAZY_SOURCE_ATTRIBUTE = "data-src"
PAGE_DOWN = "PageDown"


class ChapterScanner:
    """Drives a browser page through one chapter at a time."""

    def __init__(
        self,
        warm_up_delay: float = 2.0,
        key_press_delay: float = 0.1,
        max_page_turns: int = 2000,
    ) -> None:
        self.warm_up_delay = warm_up_delay
        self.key_press_delay = key_press_delay
        self.max_page_turns = max_page_turns

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChapterScanner":
        return cls(
            warm_up_delay=settings.warm_up_delay,
            key_press_delay=settings.key_press_delay,
            max_page_turns=settings.max_page_turns,
        )

    async def _press_page_down(self, page: Any) -> None:
        await press(page, PAGE_DOWN)
        await page.wait_for_timeout(self.key_press_delay * 1000)

    async def paginate(self, page: Any) -> int:
        """Scroll until the index readout reaches the declared page count.

        Returns the declared page count. The site only registers a scroll
        after more than one key tick, hence two presses per read.
        """
        index_readout = await require(page, PAGE_INDEX_READOUT, "page index readout")
        count_readout = await require(page, PAGE_COUNT_READOUT, "page count readout")
        page_count = parse_readout(
            await read_text(count_readout, "page count readout"), "page count"
        )

        await page.wait_for_timeout(self.warm_up_delay * 1000)
        index = 0
        turns = 0
        while index != page_count:
            if turns >= self.max_page_turns:
                raise ExtractionError(
                    f"page index stuck at {index}/{page_count} "
                    f"after {turns} page turns"
                )
            await self._press_page_down(page)
            await self._press_page_down(page)
            index = parse_readout(
                await read_text(index_readout, "page index readout"), "page index"
            )
            turns += 1
        logger.debug("Paginated %d pages in %d turns", page_count, turns)
        return page_count

    async def image_urls(self, page: Any) -> List[str]:
        container = await require(page, IMAGE_LIST_CONTAINER, "image list")
        urls: List[str] = []
        for image in await find_all(container, "img", "images"):
            source = await read_attr(image, LAZY_SOURCE_ATTRIBUTE, "image")
            if not source:
                raise ExtractionError(
                    f"image without {LAZY_SOURCE_ATTRIBUTE} attribute"
                )
            urls.append(source)
        return urls

    async def scan(
        self, page: Any, chapter: ChapterInfo, target_directory: Path
    ) -> ChapterBatch:
        """Extract the ordered image URLs of ``chapter``."""
        await goto(page, chapter.chapter_url)
        page_count = await self.paginate(page)
        urls = await self.image_urls(page)
        if len(urls) != page_count:
            raise ConsistencyError(chapter.chapter_name, page_count, len(urls))
        return ChapterBatch(target_directory=target_directory, image_urls=urls)


def chapter_directory(output_root: Path, comic_name: str, chapter_name: str) -> Path:
    return (
        output_root
        / safe_path_component(comic_name)
        / safe_path_component(chapter_name)
    )


async def scan_chapters(
    session: Any,
    scanner: ChapterScanner,
    comic_name: str,
    chapters: Sequence[ChapterInfo],
    output_root: Path,
    batches: Channel[ChapterBatch],
) -> int:
    """Scan every chapter in order and send one batch per chapter.

    Takes ownership of ``session``: it is closed once the last chapter has
    been scanned or scanning fails. ``batches`` is always closed on exit.
    Returns the number of chapters scanned.
    """
    scanned = 0
    try:
        for position, chapter in enumerate(chapters, start=1):
            logger.info(
                "Scanning chapter %d/%d: %s",
                position,
                len(chapters),
                chapter.chapter_name,
            )
            target = chapter_directory(output_root, comic_name, chapter.chapter_name)
            batch = await scanner.scan(session.page, chapter, target)
            logger.info(
                "Chapter %s has %d images", chapter.chapter_name, len(batch.image_urls)
            )
            await batches.send(batch)
            scanned += 1
    finally:
        await batches.close()
        await session.aclose()
    return scanned
