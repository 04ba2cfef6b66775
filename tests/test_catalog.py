import asyncio

import pytest

from comicgrab.catalog import discover
from comicgrab.errors import ExtractionError, NavigationError

from fakes import BrokenElement, FakeElement, FakePage, catalog_document

CATALOG_URL = "https://comics.example/comic/sky"


def test_discover_reads_title_and_chapters_in_order():
    page = FakePage({
        CATALOG_URL: catalog_document(
            "Sky Comic",
            [("Ch.1", "/comic/sky/chapter/a1"), ("Ch.2", "/comic/sky/chapter/b2")],
        )
    })

    info = asyncio.run(discover(page, CATALOG_URL))

    assert info.comic_name == "Sky Comic"
    assert [c.chapter_name for c in info.chapters] == ["Ch.1", "Ch.2"]
    assert [c.chapter_url for c in info.chapters] == [
        "https://comics.example/comic/sky/chapter/a1",
        "https://comics.example/comic/sky/chapter/b2",
    ]


def test_discover_empty_chapter_list():
    page = FakePage({CATALOG_URL: catalog_document("Sky Comic", [])})

    assert asyncio.run(discover(page, CATALOG_URL)).chapters == []


def test_navigation_failure():
    with pytest.raises(NavigationError):
        asyncio.run(discover(FakePage(), CATALOG_URL))


def test_missing_title_container():
    document = catalog_document("Sky", [])
    del document.children[".comicParticulars-title-right"]

    with pytest.raises(ExtractionError, match="title container"):
        asyncio.run(discover(FakePage({CATALOG_URL: document}), CATALOG_URL))


def test_missing_chapter_list():
    document = catalog_document("Sky", [])
    document.children["div[id^=default]"] = [FakeElement()]

    with pytest.raises(ExtractionError, match="chapter list"):
        asyncio.run(discover(FakePage({CATALOG_URL: document}), CATALOG_URL))


def test_anchor_without_title():
    document = catalog_document("Sky", [("Ch.1", "/c/1")])
    anchor = document.children["div[id^=default]"][0].children["ul"][0].children["a"][0]
    del anchor.attrs["title"]

    with pytest.raises(ExtractionError):
        asyncio.run(discover(FakePage({CATALOG_URL: document}), CATALOG_URL))


def test_stale_chapter_link_is_an_extraction_error():
    document = catalog_document("Sky", [])
    document.children["div[id^=default]"][0].children["ul"][0].children["a"] = [BrokenElement()]

    with pytest.raises(ExtractionError, match="href of chapter link"):
        asyncio.run(discover(FakePage({CATALOG_URL: document}), CATALOG_URL))
