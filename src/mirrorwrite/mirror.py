from __future__ import annotations

import asyncio
import logging
import pathlib
import re
from typing import Tuple

from playwright.async_api import BrowserContext, async_playwright

from .config import SnapshotConfig
from .errors import MirrorError
from .fetchers import PlaywrightFetcher
from .handlers import ResourceHandler
from .resource import Resource, ResourceKind

logger = logging.getLogger("mirrorwrite")

CSP_META_RE = re.compile(
    r'<meta[^>]+http-equiv=["\']Content-Security-Policy["\'][^>]*>',
    re.IGNORECASE,
)

SCROLL_SCRIPT = """
    (async () => {
      const delay = ms => new Promise(r => setTimeout(r, ms));
      let last = 0;
      for (let i=0;i<10;i++){
        window.scrollTo(0, document.body.scrollHeight);
        await delay(150);
        const h = document.body.scrollHeight;
        if (h === last) break;
        last = h;
      }
      window.scrollTo(0, 0);
    })();
"""


def strip_csp_meta(text: str) -> str:
    # CSP meta tags block local assets loaded from file://
    return CSP_META_RE.sub("", text)


async def render_page(context: BrowserContext, cfg: SnapshotConfig) -> Tuple[str, str]:
    """Load ``cfg.url`` and return the rendered HTML and the final URL."""
    page = await context.new_page()
    await page.set_extra_http_headers({"Accept-Language": "en-US,en;q=0.9"})
    try:
        resp = await page.goto(cfg.url, wait_until="networkidle")
        if not resp or not resp.ok:
            raise MirrorError(f"{cfg.url} answered {resp.status if resp else 'nothing'}")
        if cfg.scroll:
            # lazy-load triggers
            await page.evaluate(SCROLL_SCRIPT)
        if cfg.wait_after_load_ms > 0:
            await page.wait_for_timeout(cfg.wait_after_load_ms)
        return await page.content(), page.url
    finally:
        await page.close()


async def snapshot_page_async(cfg: SnapshotConfig) -> pathlib.Path:
    """Save ``cfg.url`` with its child resources so that it opens offline."""
    out_dir = pathlib.Path(cfg.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=cfg.headless)
        context_kwargs = {"user_agent": cfg.user_agent}
        if cfg.storage_state_path:
            context_kwargs["storage_state"] = cfg.storage_state_path
        try:
            context = await browser.new_context(**context_kwargs)
            context.set_default_timeout(cfg.default_timeout_ms)

            logger.info("Loading %s", cfg.url)
            html, final_url = await render_page(context, cfg)
            if cfg.strip_csp:
                html = strip_csp_meta(html)

            resource = Resource(url=final_url, filename="index.html", text=html, kind=ResourceKind.HTML)
            fetcher = PlaywrightFetcher(context.request, out_dir, cfg)
            handler = ResourceHandler(cfg.handler_options(), fetcher)
            fetcher.handler = handler

            await handler.handle(resource)
            await fetcher.drain()
            logger.info("Localized %d child resource(s)", len(fetcher.saved))
        finally:
            await browser.close()

    index_path = out_dir / resource.filename
    index_path.write_text(resource.text, encoding="utf-8")
    return index_path


def run_snapshot(cfg: SnapshotConfig) -> pathlib.Path:
    return asyncio.run(snapshot_page_async(cfg))
