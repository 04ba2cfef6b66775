"""Image decoding and PNG materialization on a fixed pool of threads."""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from io import BytesIO
from pathlib import Path
from typing import Optional

from filetype import guess
from PIL import Image

from .channel import Channel
from .errors import CodecError
from .models import MaterializationJob

logger = logging.getLogger("comicgrab.images")

PNG_SAFE_MODES = {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"}


def detect_image_format(data: bytes) -> Optional[str]:
    """Detect image type using filetype; returns lowercase extension."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        if ext == "jpeg":
            return "jpg"
        return ext
    return None


def materialize(job: MaterializationJob) -> Path:
    """Decode ``job.raw_bytes`` and write it as PNG to ``job.save_path``.

    The format is sniffed from the content, never from the URL. On failure no
    file is left behind and CodecError is raised.
    """
    detected = detect_image_format(job.raw_bytes)
    if detected is None:
        raise CodecError(f"content for {job.save_path} is not a recognised image")
    try:
        with Image.open(BytesIO(job.raw_bytes)) as image:
            image.load()
            if image.mode not in PNG_SAFE_MODES:
                image = image.convert("RGBA" if "A" in image.getbands() else "RGB")
            with job.save_path.open("wb") as fh:
                image.save(fh, format="PNG")
    except Exception as exc:  # pylint: disable=broad-except
        job.save_path.unlink(missing_ok=True)
        raise CodecError(f"cannot convert {detected} image for {job.save_path}: {exc}") from exc
    logger.debug("Wrote %s (%s source)", job.save_path, detected)
    return job.save_path


class MaterializerPool:
    """Fixed number of workers draining the bounded hand-off channel.

    Each worker suspends on the channel and runs the CPU-bound conversion on
    a dedicated thread, so at most ``worker_count`` images decode at once.
    """

    def __init__(self, worker_count: int) -> None:
        self.worker_count = worker_count
        self.written = 0
        self.failed = 0

    async def _worker(
        self,
        number: int,
        jobs: Channel[MaterializationJob],
        executor: ThreadPoolExecutor,
    ) -> None:
        loop = asyncio.get_running_loop()
        async for job in jobs:
            try:
                await loop.run_in_executor(executor, materialize, job)
            except CodecError as exc:
                self.failed += 1
                logger.error(
                    "Image conversion failed, url: %s, save_path: %s: %s",
                    job.image_url,
                    job.save_path,
                    exc,
                )
                continue
            self.written += 1
        logger.debug("Materializer worker %d finished", number)

    async def run(self, jobs: Channel[MaterializationJob]) -> None:
        """Drain ``jobs`` until it is closed and empty."""
        with ThreadPoolExecutor(
            max_workers=self.worker_count, thread_name_prefix="materialize"
        ) as executor:
            await asyncio.gather(
                *(
                    self._worker(number, jobs, executor)
                    for number in range(1, self.worker_count + 1)
                )
            )
        logger.info(
            "Materialized %d images (%d conversion failures)", self.written, self.failed
        )
