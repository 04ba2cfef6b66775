"""Exception hierarchy shared by every pipeline stage."""

from __future__ import annotations


class ComicGrabError(Exception):
    """Base class for all errors raised by comicgrab."""


class ConfigError(ComicGrabError):
    """Configuration file or value could not be used."""


class NavigationError(ComicGrabError):
    """A page failed to load in the browser session."""


class ExtractionError(ComicGrabError):
    """An expected DOM element or attribute was absent or unparsable."""


class ConsistencyError(ComicGrabError):
    """A chapter produced a different number of images than it declared."""

    def __init__(self, chapter_name: str, expected: int, found: int) -> None:
        super().__init__(
            f"chapter {chapter_name!r} declares {expected} pages "
            f"but {found} images were found"
        )
        self.chapter_name = chapter_name
        self.expected = expected
        self.found = found


class TransportError(ComicGrabError):
    """Fetching an image over HTTP failed."""


class CodecError(ComicGrabError):
    """Decoding a fetched image or encoding it as PNG failed."""


class ChannelClosed(ComicGrabError):
    """A value was sent on a channel that was already closed."""


class DriverError(ComicGrabError):
    """The browser automation driver could not be started."""


class OutputError(ComicGrabError):
    """An output directory could not be created."""
