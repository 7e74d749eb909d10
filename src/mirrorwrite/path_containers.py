"""Extract and rewrite child references inside one attribute value or text blob."""

from __future__ import annotations

import re
from typing import List, Optional, Sequence, Tuple, Type

from .sources import Source

Span = Tuple[int, int]

CSS_REFERENCE_RE = re.compile(
    r"""url\(\s*(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)'|(?P<bare>[^)\s'"]*))\s*\)"""
    r"""|@import\s+(?:"(?P<import_dq>[^"]*)"|'(?P<import_sq>[^']*)')""",
    re.IGNORECASE,
)
DATA_URI_RE = re.compile(r"^\s*data:", re.IGNORECASE)


class PathContainer:
    """Holds the text of one matched value and the spans of the paths inside it.

    Subclasses only decide where the paths are; rewriting is positional and
    leaves every character outside those spans untouched.
    """

    def __init__(self, text: Optional[str] = None):
        self.text = text or ""

    def _spans(self) -> List[Span]:
        raise NotImplementedError

    def extracted_paths(self) -> List[str]:
        return [self.text[start:end] for start, end in self._spans()]

    def is_empty(self) -> bool:
        return not self._spans()

    def rewrite(self, new_paths: Sequence[str]) -> str:
        spans = self._spans()
        if len(new_paths) != len(spans):
            raise ValueError(
                f"{type(self).__name__} holds {len(spans)} path(s), got {len(new_paths)} replacement(s)"
            )
        parts: List[str] = []
        last = 0
        for (start, end), path in zip(spans, new_paths):
            parts.append(self.text[last:start])
            parts.append(path)
            last = end
        parts.append(self.text[last:])
        self.text = "".join(parts)
        return self.text

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.text!r})"


class HtmlCommonTag(PathContainer):
    """A plain attribute value such as ``src`` or ``href``: the whole value is the path."""

    def _spans(self) -> List[Span]:
        return [(0, len(self.text))] if self.text else []


class HtmlImgSrcsetTag(PathContainer):
    """A ``srcset`` candidate list: ``url [descriptor], url [descriptor], ...``."""

    def _spans(self) -> List[Span]:
        text, n = self.text, len(self.text)
        spans: List[Span] = []
        pos = 0
        while pos < n:
            while pos < n and (text[pos].isspace() or text[pos] == ","):
                pos += 1
            if pos >= n:
                break
            start = pos
            while pos < n and not text[pos].isspace():
                pos += 1
            end = pos
            url = text[start:end]
            if url.endswith(","):
                # candidate without descriptor
                end = start + len(url.rstrip(","))
            else:
                parens = 0
                while pos < n:
                    c = text[pos]
                    if c == "(":
                        parens += 1
                    elif c == ")" and parens:
                        parens -= 1
                    elif c == "," and not parens:
                        break
                    pos += 1
            if end > start:
                spans.append((start, end))
        return spans


class CssText(PathContainer):
    """``url(...)`` and ``@import "..."`` references in an inline style or a stylesheet."""

    def _spans(self) -> List[Span]:
        spans: List[Span] = []
        for m in CSS_REFERENCE_RE.finditer(self.text):
            group = next(name for name, value in m.groupdict().items() if value is not None)
            start, end = m.span(group)
            value = self.text[start:end]
            if not value.strip() or DATA_URI_RE.match(value):
                continue
            spans.append((start, end))
        return spans


def container_class_for(source: Source) -> Type[PathContainer]:
    attr = (source.attr or "").lower()
    if attr == "srcset":
        return HtmlImgSrcsetTag
    if source.attr is None or attr == "style":
        return CssText
    return HtmlCommonTag
