from __future__ import annotations

import logging
from typing import Optional

import typer
from rich import print
from rich.logging import RichHandler

from .config import SnapshotConfig
from .errors import MirrorError
from .mirror import run_snapshot

app = typer.Typer(help="Save a web page for offline use, rewriting its references to local copies.")


@app.command()
def main(
    url: str = typer.Argument(..., help="Page URL, e.g. https://example.com/"),
    out: str = typer.Option("site_snapshot", "--out", "-o", help="Output directory."),
    update_missing: bool = typer.Option(
        False, "--update-missing/--no-update-missing",
        help="Also repoint references that were not downloaded but are already saved elsewhere."
    ),
    assets_dir: str = typer.Option("assets", "--assets-dir", help="Directory name for child resources."),
    max_depth: int = typer.Option(
        2, "--max-depth", "-d",
        help="How deep stylesheets and frames are followed for their own references."
    ),
    strip_csp: bool = typer.Option(
        True, "--strip-csp/--keep-csp",
        help="Remove meta Content-Security-Policy tags so local assets load from file://."
    ),
    user_agent: str = typer.Option(SnapshotConfig.user_agent, "--user-agent", help="Custom User-Agent."),
    storage_state: Optional[str] = typer.Option(
        None, "--storage-state", "-S",
        help="Playwright storage state JSON for authenticated pages."
    ),
    headless: bool = typer.Option(True, "--headless/--headed", help="Run browser headless or visible."),
    concurrency: int = typer.Option(4, "--concurrency", "-c", help="Max concurrent child downloads."),
    timeout_ms: int = typer.Option(30000, "--timeout-ms", help="Default navigation/request timeout."),
    scroll: bool = typer.Option(True, "--scroll/--no-scroll", help="Auto-scroll to trigger lazy-loaded assets."),
    wait_after_load_ms: int = typer.Option(
        800, "--wait-after-load-ms",
        help="Extra wait after networkidle to let JS/lazy loaders settle."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(show_path=False)],
    )
    cfg = SnapshotConfig(
        url=url,
        out_dir=out,
        update_missing_sources=update_missing,
        assets_dir=assets_dir,
        user_agent=user_agent,
        storage_state_path=storage_state,
        headless=headless,
        concurrency=max(1, concurrency),
        default_timeout_ms=timeout_ms,
        scroll=scroll,
        wait_after_load_ms=wait_after_load_ms,
        strip_csp=strip_csp,
        max_depth=max_depth,
    )
    print(f"[bold cyan]mirrorwrite[/] -> [green]{url}[/]  [dim]→[/]  [magenta]{out}[/]")
    try:
        index_path = run_snapshot(cfg)
    except MirrorError as exc:
        print(f"[bold red]Failed:[/] {exc}")
        raise typer.Exit(code=1)
    print(f"[bold green]Done.[/] {index_path}")
