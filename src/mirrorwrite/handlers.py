"""Rewrite child references of HTML documents and stylesheets in place."""

from __future__ import annotations

import asyncio
import logging
import urllib.parse
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, Tag
from bs4.builder import ParserRejectedMarkup
from bs4.dammit import EntitySubstitution
from bs4.formatter import HTMLFormatter

from .config import HandlerOptions
from .errors import DocumentParseError
from .path_containers import CssText, PathContainer, container_class_for
from .resource import Resource, ResourceKind
from .sources import Source, SourcesArg, resolve_sources

logger = logging.getLogger("mirrorwrite")

# (container, parent resource, fetch_missing) -> one replacement or None per extracted path
DownloadChildrenPaths = Callable[[PathContainer, Resource, bool], Awaitable[Optional[Sequence[Optional[str]]]]]


class SourceOrderFormatter(HTMLFormatter):
    """Keeps attributes in document order instead of sorting them."""

    def attributes(self, tag):
        return list(tag.attrs.items()) if tag.attrs else []


# Only & < > are escaped; void elements are written as <base ...>, not <base .../>.
HTML_FORMATTER = SourceOrderFormatter(
    entity_substitution=EntitySubstitution.substitute_xml,
    void_element_close_prefix=None,
)


async def apply_replacements(
    download_children_paths: DownloadChildrenPaths,
    container: PathContainer,
    parent: Resource,
    fetch_missing: bool = True,
) -> bool:
    """Dispatch ``container`` and rewrite it; returns True if any path got a local value."""
    paths = container.extracted_paths()
    replacements = await download_children_paths(container, parent, fetch_missing)
    if replacements is None:
        return False
    replacements = list(replacements)
    if len(replacements) != len(paths):
        raise ValueError(f"expected {len(paths)} replacement(s) for {container!r}, got {len(replacements)}")
    if all(new is None for new in replacements):
        return False
    container.rewrite([old if new is None else new for old, new in zip(paths, replacements)])
    return True


@dataclass
class _Match:
    element: Tag
    source: Source
    container: PathContainer
    fetch_missing: bool
    replaced: bool = False

    def write_back(self) -> None:
        text = self.container.text
        if self.source.attr is not None:
            self.element[self.source.attr] = text
            return
        current = self.element.string
        if current is not None:
            current.replace_with(type(current)(text))
        else:
            self.element.string = text


def _read_source(element: Tag, source: Source) -> str:
    if source.attr is not None:
        return element.get(source.attr) or ""
    if element.string is not None:
        return str(element.string)
    return element.get_text()


class HtmlHandler:
    def __init__(
        self,
        sources: SourcesArg,
        update_missing_sources=False,
        *,
        download_children_paths: DownloadChildrenPaths,
    ):
        resolved = resolve_sources(sources, update_missing_sources)
        self._download_sources = resolved.download
        self._update_sources = resolved.update
        self._all_sources = resolved.all
        self.download_children_paths = download_children_paths

    @property
    def download_sources(self) -> List[Source]:
        return list(self._download_sources)

    @property
    def update_sources(self) -> List[Source]:
        return list(self._update_sources)

    @property
    def all_sources(self) -> List[Source]:
        return list(self._all_sources)

    async def handle(self, resource: Resource) -> Resource:
        soup = self._parse(resource)
        self._apply_base(soup, resource)

        matches = self._collect(soup)
        logger.debug("%s: %d reference container(s) to dispatch", resource.url, len(matches))
        await asyncio.gather(*(self._dispatch(m, resource) for m in matches))

        for m in matches:
            if m.replaced and m.element.has_attr("integrity"):
                del m.element["integrity"]

        resource.text = soup.decode(formatter=HTML_FORMATTER)
        return resource

    def _parse(self, resource: Resource) -> BeautifulSoup:
        if not isinstance(resource.text, str):
            raise DocumentParseError(resource.url, f"expected text, got {type(resource.text).__name__}")
        try:
            return BeautifulSoup(resource.text, "html.parser", multi_valued_attributes=None)
        except ParserRejectedMarkup as exc:
            raise DocumentParseError(resource.url, str(exc)) from exc

    def _apply_base(self, soup: BeautifulSoup, resource: Resource) -> None:
        base = soup.find("base")
        if base is None:
            return
        href = (base.get("href") or "").strip()
        if not href:
            return
        new_url = urllib.parse.urljoin(resource.url, href)
        logger.debug("base href changes %s -> %s", resource.url, new_url)
        resource.url = new_url
        base.decompose()

    def _collect(self, soup: BeautifulSoup) -> List[_Match]:
        matches: Dict[Tuple[int, Optional[str]], _Match] = {}
        for source in self._all_sources:
            fetch_missing = source in self._download_sources
            container_class = container_class_for(source)
            for element in soup.select(source.selector):
                key = (id(element), source.attr)
                if key in matches:
                    matches[key].fetch_missing |= fetch_missing
                    continue
                value = _read_source(element, source)
                if not value:
                    continue
                container = container_class(value)
                if container.is_empty():
                    continue
                matches[key] = _Match(element, source, container, fetch_missing)
        return list(matches.values())

    async def _dispatch(self, match: _Match, resource: Resource) -> None:
        match.replaced = await apply_replacements(
            self.download_children_paths, match.container, resource, match.fetch_missing
        )
        if match.replaced:
            match.write_back()


class CssHandler:
    def __init__(self, download_children_paths: DownloadChildrenPaths):
        self.download_children_paths = download_children_paths

    async def handle(self, resource: Resource) -> Resource:
        container = CssText(resource.text)
        if container.is_empty():
            return resource
        if await apply_replacements(self.download_children_paths, container, resource):
            resource.text = container.text
        return resource


class ResourceHandler:
    """Routes a resource to the handler for its kind; other kinds are left alone."""

    def __init__(self, options: HandlerOptions, download_children_paths: DownloadChildrenPaths):
        self.html = HtmlHandler(
            options.sources,
            options.update_missing_sources,
            download_children_paths=download_children_paths,
        )
        self.css = CssHandler(download_children_paths)

    async def handle(self, resource: Resource) -> Resource:
        if resource.kind is ResourceKind.HTML:
            return await self.html.handle(resource)
        if resource.kind is ResourceKind.CSS:
            return await self.css.handle(resource)
        return resource
