"""Fetch collaborators: turn extracted paths into local references."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import pathlib
import posixpath
import re
import urllib.parse
from typing import Dict, List, Mapping, Optional, Tuple

from playwright.async_api import APIRequestContext

from .config import SnapshotConfig
from .path_containers import PathContainer
from .resource import Resource, ResourceKind

logger = logging.getLogger("mirrorwrite")

FETCHABLE_SCHEMES = ("http", "https")
CHARSET_RE = re.compile(r"charset=[\"']?([\w.:-]+)", re.IGNORECASE)


def url_norm(u: str) -> str:
    return urllib.parse.urldefrag(u)[0]


def absolute_url(base_url: str, path: str) -> Tuple[str, str]:
    """Resolve ``path`` against ``base_url``; returns (url without fragment, fragment)."""
    url, fragment = urllib.parse.urldefrag(urllib.parse.urljoin(base_url, path.strip()))
    return url, fragment


def local_path_for(url: str, kind: ResourceKind, assets_dir: str = "assets") -> str:
    """Output-relative POSIX path for a downloaded child, ``<assets_dir>/<host>/<path>``."""
    p = urllib.parse.urlparse(url)
    host = p.hostname or "unknown"
    path = p.path or "/"
    if path.endswith("/"):
        path += "index.html"
    name, ext = posixpath.splitext(posixpath.normpath(path))
    if kind is ResourceKind.HTML and ext.lower() not in (".html", ".htm"):
        ext += ".html"
    elif kind is ResourceKind.CSS and ext.lower() != ".css":
        ext += ".css"
    if p.query:
        name += "__" + hashlib.sha1(p.query.encode("utf-8")).hexdigest()[:8]
    safe = re.sub(r"[^A-Za-z0-9._/\-]", "_", name + ext)
    segments = [seg for seg in safe.split("/") if seg not in ("", ".", "..")]
    return posixpath.join(assets_dir, host, *segments)


def relative_to(parent: Resource, filename: str) -> str:
    """Reference to output-relative ``filename`` as seen from the parent's own file."""
    if not parent.filename:
        return filename
    return posixpath.relpath(filename, start=posixpath.dirname(parent.filename) or ".")


def _with_fragment(reference: str, fragment: str) -> str:
    return f"{reference}#{fragment}" if fragment else reference


class ChildFetcher:
    """Base collaborator; an instance is the ``download_children_paths`` callable of the handlers.

    Subclasses implement :meth:`resolve` for a single path. A failing path is
    logged and reported as unresolved, it never fails the whole container.
    """

    async def __call__(
        self, container: PathContainer, parent: Resource, fetch_missing: bool = True
    ) -> List[Optional[str]]:
        paths = container.extracted_paths()
        results = await asyncio.gather(*(self._resolve_safely(p, parent, fetch_missing) for p in paths))
        return list(results)

    async def _resolve_safely(self, path: str, parent: Resource, fetch_missing: bool) -> Optional[str]:
        try:
            return await self.resolve(path, parent, fetch_missing)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Failed to localize %s (referenced from %s): %s", path, parent.url, exc)
            return None

    async def resolve(self, path: str, parent: Resource, fetch_missing: bool) -> Optional[str]:
        raise NotImplementedError


class MappingFetcher(ChildFetcher):
    """Repoints paths whose URL already has a local file; never downloads anything."""

    def __init__(self, mapping: Mapping[str, str]):
        self.mapping = {url_norm(u): str(p) for u, p in mapping.items()}

    async def resolve(self, path: str, parent: Resource, fetch_missing: bool) -> Optional[str]:
        url, fragment = absolute_url(parent.url, path)
        filename = self.mapping.get(url)
        if filename is None:
            return None
        return _with_fragment(relative_to(parent, filename), fragment)


class PlaywrightFetcher(ChildFetcher):
    """Downloads children through a Playwright request context and saves them under ``out_dir``.

    Stylesheets and HTML children are passed back through ``handler`` before
    being written, so their own references are localized too. Those rewrites
    run as background tasks; call :meth:`drain` before reading the output.
    """

    def __init__(self, request: APIRequestContext, out_dir: pathlib.Path, cfg: SnapshotConfig, handler=None):
        self.request = request
        self.out_dir = pathlib.Path(out_dir)
        self.cfg = cfg
        self.handler = handler
        self.sem = asyncio.Semaphore(max(1, cfg.concurrency))
        self.saved: Dict[str, str] = {}         # url -> output-relative filename
        self._claimed: Dict[str, str] = {}      # filename -> url
        self._downloads: Dict[str, asyncio.Task] = {}
        self._writes: List[asyncio.Task] = []

    async def resolve(self, path: str, parent: Resource, fetch_missing: bool) -> Optional[str]:
        url, fragment = absolute_url(parent.url, path)
        if urllib.parse.urlparse(url).scheme not in FETCHABLE_SCHEMES:
            return None
        if url == url_norm(parent.url) or parent.has_ancestor(url):
            # in-page fragment or a document that is already being rewritten
            return None
        filename = self.saved.get(url)
        if filename is None:
            task = self._downloads.get(url)
            if task is None:
                if not fetch_missing:
                    return None
                task = asyncio.ensure_future(self._download(url, parent))
                task.add_done_callback(self._forget_cancelled)
                self._downloads[url] = task
            # other containers may be waiting on the same download
            filename = await asyncio.shield(task)
            if filename is None:
                return None
        return _with_fragment(relative_to(parent, filename), fragment)

    def _forget_cancelled(self, task: asyncio.Task) -> None:
        if task.cancelled():
            for url, t in list(self._downloads.items()):
                if t is task:
                    del self._downloads[url]

    async def drain(self) -> None:
        while self._writes:
            batch, self._writes = self._writes, []
            await asyncio.gather(*batch)

    def _claim(self, filename: str, url: str) -> str:
        owner = self._claimed.get(filename)
        if owner is not None and owner != url:
            h = hashlib.sha1(url.encode("utf-8")).hexdigest()[:8]
            base, ext = posixpath.splitext(filename)
            filename = f"{base}__{h}{ext}"
        self._claimed[filename] = url
        return filename

    def _write(self, filename: str, data: bytes) -> None:
        fp = self.out_dir / filename
        fp.parent.mkdir(parents=True, exist_ok=True)
        fp.write_bytes(data)

    async def _download(self, url: str, parent: Resource) -> Optional[str]:
        async with self.sem:
            response = await self.request.get(url)
            try:
                if not response.ok:
                    logger.warning("Skipping %s: HTTP %s", url, response.status)
                    return None
                body = await response.body()
                content_type = response.headers.get("content-type", "")
            finally:
                await response.dispose()

        kind = ResourceKind.from_content_type(content_type)
        if kind is ResourceKind.OTHER and not content_type:
            kind = ResourceKind.from_url(url)
        filename = self._claim(local_path_for(url, kind, self.cfg.assets_dir), url)

        child = parent.create_child(url, kind)
        child.filename = filename
        if kind is ResourceKind.OTHER or self.handler is None or child.depth > self.cfg.max_depth:
            self._write(filename, body)
        else:
            m = CHARSET_RE.search(content_type)
            child.text = body.decode(m.group(1) if m else "utf-8", errors="replace")
            self._writes.append(asyncio.ensure_future(self._rewrite_and_write(child, body)))
        self.saved[url] = filename
        logger.debug("Saved %s -> %s", url, filename)
        return filename

    async def _rewrite_and_write(self, child: Resource, original: bytes) -> None:
        try:
            await self.handler.handle(child)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Keeping %s unmodified: %s", child.url, exc)
            self._write(child.filename, original)
            return
        self._write(child.filename, child.text.encode("utf-8"))
