"""Catalog page navigation: comic title and ordered chapter list."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from playwright.async_api import Error as PlaywrightError

from .errors import ExtractionError, NavigationError
from .models import ChapterInfo, ComicInfo
from .utils import resolve_on_origin

logger = logging.getLogger("comicgrab.catalog")

TITLE_CONTAINER = ".comicParticulars-title-right"
TITLE_HEADING = "h6"
CHAPTER_LIST_CONTAINER = "div[id^=default]"


async def goto(page: Any, url: str) -> None:
    """Navigate ``page`` to ``url``, mapping driver failures to NavigationError."""
    try:
        await page.goto(url, wait_until="domcontentloaded")
    except PlaywrightError as exc:
        raise NavigationError(f"failed to load {url}: {exc}") from exc


async def require(scope: Any, selector: str, what: str) -> Any:
    try:
        element = await scope.query_selector(selector)
    except PlaywrightError as exc:
        raise ExtractionError(f"cannot look up {what} ({selector}): {exc}") from exc
    if element is None:
        raise ExtractionError(f"{what} not found ({selector})")
    return element


async def find_all(scope: Any, selector: str, what: str) -> List[Any]:
    try:
        return await scope.query_selector_all(selector)
    except PlaywrightError as exc:
        raise ExtractionError(f"cannot list {what} ({selector}): {exc}") from exc


async def read_text(element: Any, what: str) -> str:
    try:
        return await element.inner_text()
    except PlaywrightError as exc:
        raise ExtractionError(f"cannot read {what}: {exc}") from exc


async def read_attr(element: Any, name: str, what: str) -> Optional[str]:
    try:
        return await element.get_attribute(name)
    except PlaywrightError as exc:
        raise ExtractionError(f"cannot read {name} of {what}: {exc}") from exc


async def press(page: Any, key: str) -> None:
    try:
        await page.keyboard.press(key)
    except PlaywrightError as exc:
        raise ExtractionError(f"cannot send {key} key: {exc}") from exc


async def discover(page: Any, catalog_url: str) -> ComicInfo:
    """Load the catalog page and read the comic title and chapter list."""
    logger.info("Loading catalog %s", catalog_url)
    await goto(page, catalog_url)

    title_box = await require(page, TITLE_CONTAINER, "title container")
    heading = await require(title_box, TITLE_HEADING, "title heading")
    comic_name = (await read_text(heading, "title heading")).strip()
    if not comic_name:
        raise ExtractionError("comic title is empty")

    list_box = await require(page, CHAPTER_LIST_CONTAINER, "chapter list container")
    chapter_list = await require(list_box, "ul", "chapter list")
    anchors = await find_all(chapter_list, "a", "chapter links")

    chapters: List[ChapterInfo] = []
    for anchor in anchors:
        href = await read_attr(anchor, "href", "chapter link")
        title = await read_attr(anchor, "title", "chapter link")
        if href is None or title is None:
            raise ExtractionError("chapter link without href or title attribute")
        chapters.append(
            ChapterInfo(
                chapter_name=title.strip(),
                chapter_url=resolve_on_origin(catalog_url, href),
            )
        )

    logger.info("Found %d chapters for %s", len(chapters), comic_name)
    return ComicInfo(comic_name=comic_name, chapters=chapters)
