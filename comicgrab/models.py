"""Data models passed between pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List


@dataclass(frozen=True)
class ChapterInfo:
    """A chapter entry read from the catalog page."""

    chapter_name: str
    chapter_url: str


@dataclass
class ComicInfo:
    """Title and ordered chapter list of one catalog page."""

    comic_name: str
    chapters: List[ChapterInfo]


@dataclass(frozen=True)
class ImageJob:
    """One image to fetch and the PNG path it will be written to."""

    image_url: str
    save_path: Path


@dataclass
class ChapterBatch:
    """Ordered image URLs of a scanned chapter and its target directory."""

    target_directory: Path
    image_urls: List[str]

    def flatten(self) -> List[ImageJob]:
        """Pair every URL with ``00001.png``, ``00002.png``... in page order."""
        return [
            ImageJob(
                image_url=url,
                save_path=self.target_directory / f"{index:05d}.png",
            )
            for index, url in enumerate(self.image_urls, start=1)
        ]


@dataclass
class MaterializationJob:
    """Fetched image bytes waiting to be re-encoded as PNG."""

    raw_bytes: bytes
    save_path: Path
    image_url: str = ""


@dataclass
class RunSummary:
    """Counters collected over one catalog run."""

    comic_name: str = ""
    chapters_discovered: int = 0
    chapters_scanned: int = 0
    images_queued: int = 0
    images_fetched: int = 0
    fetch_failures: int = 0
    images_written: int = 0
    codec_failures: int = 0
    failed_urls: List[str] = field(default_factory=list)
