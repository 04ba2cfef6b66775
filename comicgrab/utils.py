"""Utility helpers for URL resolution, path naming and readout parsing."""

from __future__ import annotations

import re
from urllib.parse import urljoin, urlsplit, urlunsplit

from .errors import ExtractionError

UNSAFE_PATH_PATTERN = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def resolve_on_origin(base_url: str, href: str) -> str:
    """Replace the path of ``base_url`` with ``href``, keeping scheme and host.

    Links that name their own host, including protocol-relative ones, keep
    that host.
    """
    target = urlsplit(href)
    if target.netloc:
        return urljoin(base_url, href)
    base = urlsplit(base_url)
    path = target.path if target.path.startswith("/") else "/" + target.path
    return urlunsplit((base.scheme, base.netloc, path, target.query, ""))


def safe_path_component(value: str, fallback: str = "untitled") -> str:
    """Make a comic or chapter name usable as a single directory name."""
    cleaned = UNSAFE_PATH_PATTERN.sub("_", value).strip().strip(".").strip()
    return cleaned or fallback


def parse_readout(text: str, what: str) -> int:
    """Parse an integer page readout, raising ExtractionError otherwise."""
    stripped = (text or "").strip()
    try:
        return int(stripped)
    except ValueError:
        raise ExtractionError(f"{what} readout is not an integer: {text!r}") from None
