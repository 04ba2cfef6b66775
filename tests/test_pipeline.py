import asyncio

import pytest
from PIL import Image

from comicgrab.config import Settings
from comicgrab.errors import ConsistencyError, NavigationError, OutputError
from comicgrab.models import ChapterInfo
from comicgrab.pipeline import run_pipeline, select_chapters

from fakes import (
    FakeHttpSession,
    FakePage,
    FakeSession,
    catalog_document,
    chapter_document,
    image_bytes,
)

CATALOG_URL = "https://comics.example/comic/sky"


def make_settings(root):
    return Settings(
        output_root=root,
        warm_up_delay=0.0,
        key_press_delay=0.0,
        max_page_turns=100,
        max_concurrent_fetches=4,
        handoff_capacity=2,
        worker_count=2,
    )


def build_site(chapters):
    """``chapters`` maps name to (declared page count, image URLs)."""
    page = FakePage()
    page.documents[CATALOG_URL] = catalog_document(
        "ComicName", [(name, f"/comic/sky/chapter/{n}") for n, name in enumerate(chapters)]
    )
    for n, (declared, urls) in enumerate(chapters.values()):
        page.documents[f"https://comics.example/comic/sky/chapter/{n}"] = chapter_document(
            page, declared, urls
        )
    return page


def run(page, root, responses, **kwargs):
    session = FakeSession(page)
    http = FakeHttpSession(responses)
    summary = asyncio.run(run_pipeline(session, make_settings(root), CATALOG_URL, http_session=http, **kwargs))
    return summary, session, http


def test_two_chapter_catalog(tmp_path):
    urls = [f"https://img.example/1/{n}.jpg" for n in range(3)]
    page = build_site({"Ch.1": (3, urls), "Ch.2": (0, [])})

    summary, session, _ = run(page, tmp_path, {url: (200, image_bytes("JPEG")) for url in urls})

    chapter_one = tmp_path / "ComicName" / "Ch.1"
    chapter_two = tmp_path / "ComicName" / "Ch.2"
    assert sorted(p.name for p in chapter_one.iterdir()) == ["00001.png", "00002.png", "00003.png"]
    assert chapter_two.is_dir() and list(chapter_two.iterdir()) == []
    for path in chapter_one.iterdir():
        with Image.open(path) as written:
            assert written.format == "PNG"
    assert session.closed
    assert summary.comic_name == "ComicName"
    assert (summary.chapters_discovered, summary.chapters_scanned) == (2, 2)
    assert (summary.images_queued, summary.images_written) == (3, 3)


def test_one_missing_image_does_not_stop_the_chapter(tmp_path):
    urls = [f"https://img.example/{n}.png" for n in range(4)]
    responses = {url: (200, image_bytes("PNG")) for url in urls}
    responses[urls[1]] = (404, b"")
    page = build_site({"Ch.1": (4, urls)})

    summary, _, _ = run(page, tmp_path, responses)

    written = sorted(p.name for p in (tmp_path / "ComicName" / "Ch.1").iterdir())
    assert written == ["00001.png", "00003.png", "00004.png"]
    assert summary.fetch_failures == 1
    assert summary.failed_urls == [urls[1]]


def test_count_mismatch_aborts_the_run(tmp_path):
    first = ["https://img.example/a.jpg"]
    broken = [f"https://img.example/b{n}.jpg" for n in range(9)]
    later = ["https://img.example/c.jpg"]
    page = build_site({"Ch.1": (1, first), "Ch.2": (10, broken), "Ch.3": (1, later)})
    responses = {url: (200, image_bytes("JPEG")) for url in first + broken + later}
    session = FakeSession(page)
    http = FakeHttpSession(responses)

    with pytest.raises(ConsistencyError):
        asyncio.run(run_pipeline(session, make_settings(tmp_path), CATALOG_URL, http_session=http))

    comic = tmp_path / "ComicName"
    assert sorted(p.name for p in comic.iterdir()) == ["Ch.1"]
    assert [p.name for p in (comic / "Ch.1").iterdir()] == ["00001.png"]
    assert not any(url in http.requested for url in broken + later)
    assert session.closed


def test_catalog_failure_closes_session(tmp_path):
    session = FakeSession(FakePage())

    with pytest.raises(NavigationError):
        asyncio.run(run_pipeline(session, make_settings(tmp_path), CATALOG_URL, http_session=FakeHttpSession({})))
    assert session.closed


def test_skip_and_limit_select_a_slice(tmp_path):
    page = build_site({"Ch.1": (0, []), "Ch.2": (0, []), "Ch.3": (0, [])})

    summary, _, _ = run(page, tmp_path, {}, skip=1, limit=1)

    assert [p.name for p in (tmp_path / "ComicName").iterdir()] == ["Ch.2"]
    assert summary.chapters_scanned == 1


def test_select_chapters_keeps_order():
    chapters = [ChapterInfo(str(n), f"u{n}") for n in range(5)]

    assert [c.chapter_name for c in select_chapters(chapters, 1, 3)] == ["1", "2", "3"]
    assert select_chapters(chapters, 10) == []
    assert select_chapters(chapters) == chapters


def test_unwritable_output_stops_scanning(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    page = build_site({"Ch.1": (0, []), "Ch.2": (0, []), "Ch.3": (0, [])})
    page.real_waits = True
    settings = make_settings(blocker)
    settings.warm_up_delay = 0.5
    session = FakeSession(page)

    with pytest.raises(OutputError):
        asyncio.run(run_pipeline(session, settings, CATALOG_URL, http_session=FakeHttpSession({})))

    assert "https://comics.example/comic/sky/chapter/2" not in page.visited
    assert session.closed
