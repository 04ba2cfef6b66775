"""Concurrent image fetching feeding the bounded hand-off channel."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

import requests

from .channel import Channel
from .errors import TransportError
from .models import ImageJob, MaterializationJob

logger = logging.getLogger("comicgrab.download")

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64; rv:128.0) Gecko/20100101 Firefox/128.0"
)


def build_session(http_proxy: Optional[str] = None) -> requests.Session:
    """Create the HTTP session shared by every fetch task."""
    session = requests.Session()
    session.headers["User-Agent"] = USER_AGENT
    if http_proxy:
        session.proxies.update({"http": http_proxy, "https": http_proxy})
    return session


class DownloadDispatcher:
    """Starts one fetch task per image job, at most ``max_concurrent`` in flight."""

    def __init__(
        self,
        session: requests.Session,
        handoff: Channel[MaterializationJob],
        max_concurrent: int = 16,
        timeout: float = 30.0,
    ) -> None:
        self.session = session
        self.handoff = handoff
        self.timeout = timeout
        self._gate = asyncio.Semaphore(max_concurrent)
        self.fetched = 0
        self.failed_urls: List[str] = []

    def _get(self, url: str) -> bytes:
        try:
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
            return resp.content
        except requests.RequestException as exc:
            raise TransportError(str(exc)) from exc

    async def fetch(self, job: ImageJob) -> None:
        """Fetch one image and hand it off; failures are logged and dropped.

        The slot is held until the hand-off accepts the bytes, so at most
        ``max_concurrent`` fetched images wait outside the bounded channel.
        """
        async with self._gate:
            try:
                data = await asyncio.to_thread(self._get, job.image_url)
            except TransportError as exc:
                self.failed_urls.append(job.image_url)
                logger.error(
                    "Image download error, url: %s, save_path: %s: %s",
                    job.image_url,
                    job.save_path,
                    exc,
                )
                return
            self.fetched += 1
            await self.handoff.send(
                MaterializationJob(
                    raw_bytes=data, save_path=job.save_path, image_url=job.image_url
                )
            )

    async def run(self, jobs: Channel[ImageJob]) -> None:
        """Dispatch every job, then close the hand-off once all fetches end."""
        tasks: List[asyncio.Task] = []
        try:
            async for job in jobs:
                tasks.append(asyncio.create_task(self.fetch(job)))
            if tasks:
                await asyncio.gather(*tasks)
        finally:
            await self.handoff.close()
        logger.info(
            "Fetched %d images (%d failed)", self.fetched, len(self.failed_urls)
        )
