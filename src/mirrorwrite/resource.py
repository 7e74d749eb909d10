from __future__ import annotations

import os
import urllib.parse
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ResourceKind(str, Enum):
    HTML = "html"
    CSS = "css"
    OTHER = "other"

    @classmethod
    def from_content_type(cls, content_type: str | None) -> "ResourceKind":
        ct = (content_type or "").split(";")[0].strip().lower()
        if ct in ("text/html", "application/xhtml+xml"):
            return cls.HTML
        if ct == "text/css":
            return cls.CSS
        return cls.OTHER

    @classmethod
    def from_url(cls, url: str) -> "ResourceKind":
        ext = os.path.splitext(urllib.parse.urlparse(url).path)[1].lower()
        if ext in (".html", ".htm", ".xhtml"):
            return cls.HTML
        if ext == ".css":
            return cls.CSS
        return cls.OTHER


@dataclass(eq=False)
class Resource:
    """A fetched document. Handlers rewrite ``url`` and ``text`` in place."""

    url: str
    filename: Optional[str] = None
    text: str = ""
    kind: ResourceKind = ResourceKind.HTML
    parent: Optional["Resource"] = None
    depth: int = 0

    def create_child(self, url: str, kind: ResourceKind = ResourceKind.OTHER) -> "Resource":
        return Resource(url=url, kind=kind, parent=self, depth=self.depth + 1)

    def has_ancestor(self, url: str) -> bool:
        node: Optional[Resource] = self
        while node is not None:
            if node.url == url:
                return True
            node = node.parent
        return False

    def __repr__(self) -> str:
        return f"Resource(url={self.url!r}, filename={self.filename!r}, kind={self.kind.value})"
