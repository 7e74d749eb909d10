from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Union

from .sources import Source

DEFAULT_SOURCES: List[Source] = [
    Source("style"),
    Source("[style]", "style"),
    Source("img", "src"),
    Source("img", "srcset"),
    Source("input", "src"),
    Source("object", "data"),
    Source("embed", "src"),
    Source('param[name="movie"]', "value"),
    Source("script", "src"),
    Source('link[rel="stylesheet"]', "href"),
    Source('link[rel*="icon"]', "href"),
    Source(r"svg *[xlink\:href]", "xlink:href"),
    Source("svg *[href]", "href"),
    Source("picture source", "srcset"),
    Source('meta[property="og:image"]', "content"),
    Source('meta[property="og:image:url"]', "content"),
    Source('meta[property="og:image:secure_url"]', "content"),
    Source('meta[property="og:audio"]', "content"),
    Source('meta[property="og:video"]', "content"),
    Source("video", "src"),
    Source("video", "poster"),
    Source("video source", "src"),
    Source("video track", "src"),
    Source("audio", "src"),
    Source("audio source", "src"),
    Source("audio track", "src"),
    Source("frame", "src"),
    Source("iframe", "src"),
    Source("[background]", "background"),
]


@dataclass
class HandlerOptions:
    sources: List[Source] = field(default_factory=lambda: list(DEFAULT_SOURCES))
    update_missing_sources: Union[bool, List[Source]] = False


@dataclass
class SnapshotConfig:
    url: str
    out_dir: str = "site_snapshot"
    sources: List[Source] = field(default_factory=lambda: list(DEFAULT_SOURCES))
    update_missing_sources: Union[bool, List[Source]] = False
    assets_dir: str = "assets"
    user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    )
    storage_state_path: str | None = None
    headless: bool = True
    concurrency: int = 4
    default_timeout_ms: int = 30000
    scroll: bool = True            # simulate user scroll for lazy loading
    wait_after_load_ms: int = 800  # extra idle wait
    strip_csp: bool = True         # strip <meta http-equiv="Content-Security-Policy">
    max_depth: int = 2             # nesting limit for frames and stylesheet imports

    def handler_options(self) -> HandlerOptions:
        return HandlerOptions(sources=list(self.sources), update_missing_sources=self.update_missing_sources)
