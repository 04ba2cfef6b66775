"""High-level orchestration from one catalog URL to a tree of PNG files."""

from __future__ import annotations

import asyncio
import logging
import time
from functools import partial
from typing import Any, List, Optional, Sequence

import requests

from .browser import BrowserSession
from .catalog import discover
from .channel import Channel
from .config import Settings
from .download import DownloadDispatcher, build_session
from .errors import OutputError
from .images import MaterializerPool
from .models import ChapterBatch, ChapterInfo, ImageJob, MaterializationJob, RunSummary
from .scanner import ChapterScanner, scan_chapters

logger = logging.getLogger("comicgrab")


def select_chapters(
    chapters: Sequence[ChapterInfo], skip: int = 0, limit: Optional[int] = None
) -> List[ChapterInfo]:
    """Slice the catalog, keeping catalog order."""
    selected = list(chapters)[max(skip, 0):]
    if limit is not None:
        selected = selected[: max(limit, 0)]
    return selected


def _stop_upstream(upstream: List[asyncio.Task], stage: asyncio.Task) -> None:
    """Cancel the stages feeding ``stage`` once it has failed."""
    if stage.cancelled() or stage.exception() is None:
        return
    logger.error("Stage %s failed, stopping the stages before it", stage.get_name())
    for task in upstream:
        task.cancel()


async def flatten_batches(
    batches: Channel[ChapterBatch],
    jobs: Channel[ImageJob],
    summary: RunSummary,
) -> None:
    """Create each chapter directory and expand its batch into image jobs."""
    try:
        async for batch in batches:
            try:
                await asyncio.to_thread(
                    batch.target_directory.mkdir, parents=True, exist_ok=True
                )
            except OSError as exc:
                raise OutputError(
                    f"cannot create {batch.target_directory}: {exc}"
                ) from exc
            for job in batch.flatten():
                await jobs.send(job)
                summary.images_queued += 1
    finally:
        await jobs.close()


async def run_pipeline(
    session: Any,
    settings: Settings,
    catalog_url: str,
    skip: int = 0,
    limit: Optional[int] = None,
    http_session: Optional[requests.Session] = None,
) -> RunSummary:
    """Run every stage for ``catalog_url`` and wait until all of them finish.

    ``session`` is handed over to the scanning stage, which closes it. A
    scanning failure stops new chapters from being queued; chapters already
    queued are still downloaded before the error is re-raised. A failure in
    a later stage cancels the stages before it, scanning included.
    """
    summary = RunSummary()
    try:
        comic = await discover(session.page, catalog_url)
    except BaseException:
        await session.aclose()
        raise
    summary.comic_name = comic.comic_name
    summary.chapters_discovered = len(comic.chapters)
    chapters = select_chapters(comic.chapters, skip, limit)

    batches: Channel[ChapterBatch] = Channel()
    jobs: Channel[ImageJob] = Channel()
    handoff: Channel[MaterializationJob] = Channel(settings.handoff_capacity)

    owns_http = http_session is None
    http = build_session(settings.http_proxy) if owns_http else http_session
    dispatcher = DownloadDispatcher(
        http,
        handoff,
        max_concurrent=settings.max_concurrent_fetches,
        timeout=settings.request_timeout,
    )
    pool = MaterializerPool(settings.worker_count)

    stages = [
        asyncio.create_task(
            scan_chapters(
                session,
                ChapterScanner.from_settings(settings),
                comic.comic_name,
                chapters,
                settings.output_root,
                batches,
            ),
            name="scan",
        ),
        asyncio.create_task(flatten_batches(batches, jobs, summary), name="flatten"),
        asyncio.create_task(dispatcher.run(jobs), name="download"),
        asyncio.create_task(pool.run(handoff), name="materialize"),
    ]
    for position, stage in enumerate(stages):
        stage.add_done_callback(partial(_stop_upstream, stages[:position]))

    try:
        results = await asyncio.gather(*stages, return_exceptions=True)
    finally:
        if owns_http:
            http.close()

    scanned = results[0]
    summary.chapters_scanned = scanned if isinstance(scanned, int) else 0
    summary.images_fetched = dispatcher.fetched
    summary.fetch_failures = len(dispatcher.failed_urls)
    summary.failed_urls = list(dispatcher.failed_urls)
    summary.images_written = pool.written
    summary.codec_failures = pool.failed

    failures = [r for r in results if isinstance(r, BaseException)]
    for failure in failures:
        if not isinstance(failure, asyncio.CancelledError):
            raise failure
    if failures:
        raise failures[0]
    return summary


async def grab(
    settings: Settings,
    catalog_url: str,
    skip: int = 0,
    limit: Optional[int] = None,
) -> RunSummary:
    """Open a browser session and download every chapter of ``catalog_url``."""
    start = time.perf_counter()
    session = await BrowserSession(settings).open()
    summary = await run_pipeline(session, settings, catalog_url, skip, limit)
    logger.info(
        "Finished %s in %.2fs: %d/%d chapters, %d/%d images written",
        summary.comic_name,
        time.perf_counter() - start,
        summary.chapters_scanned,
        summary.chapters_discovered,
        summary.images_written,
        summary.images_queued,
    )
    return summary
