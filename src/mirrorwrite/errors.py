from __future__ import annotations


class MirrorError(Exception):
    """Base class for errors raised by mirrorwrite."""


class DocumentParseError(MirrorError):
    """The document text could not be turned into an element tree."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"cannot parse {url}: {reason}")
        self.url = url
        self.reason = reason
