import asyncio
from unittest.mock import AsyncMock

import pytest

from mirrorwrite.config import HandlerOptions
from mirrorwrite.errors import DocumentParseError
from mirrorwrite.handlers import CssHandler, HtmlHandler, ResourceHandler
from mirrorwrite.path_containers import CssText, HtmlCommonTag, HtmlImgSrcsetTag
from mirrorwrite.resource import Resource, ResourceKind
from mirrorwrite.sources import Source


def unresolved(container, parent, fetch_missing):
    return [None] * len(container.extracted_paths())


def localized(container, parent, fetch_missing):
    return ["local/" + p.rsplit("/", 1)[-1] for p in container.extracted_paths()]


def make_handler(sources=(), update_missing_sources=False, side_effect=unresolved):
    download = AsyncMock(side_effect=side_effect)
    return HtmlHandler(list(sources), update_missing_sources, download_children_paths=download)


def handle(handler, html, url="http://example.com"):
    resource = Resource(url, "index.html", text=html)
    asyncio.run(handler.handle(resource))
    return resource


class TestSources:
    def test_exposes_resolved_sources(self):
        handler = make_handler([Source("img", "src")], [Source("img", "src"), Source("a", "href")])
        assert handler.download_sources == [Source("img", "src")]
        assert handler.update_sources == [Source("img", "src"), Source("a", "href")]
        assert handler.all_sources == [Source("img", "src"), Source("a", "href")]


class TestBaseTag:
    def test_absolute_href_replaces_url_and_is_removed(self):
        resource = handle(make_handler(), """
            <html lang="en">
            <head>
                <base href="http://some-other-domain.com/src">
            </head>
            <body></body>
            </html>
        """)
        assert resource.url == "http://some-other-domain.com/src"
        assert "<base" not in resource.text

    def test_relative_href_is_resolved(self):
        resource = handle(make_handler(), """
            <html lang="en"><head><base href="/src"></head><body></body></html>
        """)
        assert resource.url == "http://example.com/src"
        assert "<base" not in resource.text

    def test_scheme_relative_href(self):
        resource = handle(make_handler(), '<head><base href="//cdn.example.org/x/"></head>')
        assert resource.url == "http://cdn.example.org/x/"

    def test_base_without_href_is_kept(self):
        resource = handle(make_handler(), """
            <html lang="en"><head><base target="_blank"></head><body></body></html>
        """)
        assert resource.url == "http://example.com"
        assert '<base target="_blank">' in resource.text

    def test_children_resolve_against_new_base(self):
        handler = make_handler([Source("img", "src")])
        handle(handler, '<head><base href="http://cdn.example.org/"></head><body><img src="a.png"></body>')
        parent = handler.download_children_paths.call_args.args[1]
        assert parent.url == "http://cdn.example.org/"


def test_does_not_encode_text_to_entities():
    resource = handle(make_handler(), """
        <html><body><p>Этот текст не должен быть преобразован в html entities</p></body></html>
    """)
    assert "Этот текст не должен быть преобразован в html entities" in resource.text


def test_untouched_markup_survives():
    html = '<html><body><p class="a  b">x &amp; y</p><br><custom-tag foo="1"></custom-tag></body></html>'
    resource = handle(make_handler(), html)
    assert resource.text == html


def test_dispatches_once_per_matching_element():
    handler = make_handler([Source("img", "src")])
    handle(handler, '<body><img src="a.png"><img src="b.png"><img src="c.png"></body>')
    assert handler.download_children_paths.call_count == 3


def test_empty_attribute_is_not_dispatched():
    handler = make_handler([Source("img", "src")])
    handle(handler, '<body><img src=""><img></body>')
    assert handler.download_children_paths.call_count == 0


def test_container_type_follows_attribute():
    handler = make_handler([
        Source("img", "src"),
        Source("img", "srcset"),
        Source(".styled", "style"),
    ])
    handle(handler, """
        <body>
            <img src="a.png">
            <img srcset="b.png">
            <div class="styled" style="background-image: url('c.png')"></div>
        </body>
    """)
    calls = handler.download_children_paths.call_args_list
    assert len(calls) == 3
    assert isinstance(calls[0].args[0], HtmlCommonTag)
    assert isinstance(calls[1].args[0], HtmlImgSrcsetTag)
    assert isinstance(calls[2].args[0], CssText)


def test_rewrites_references_in_place():
    handler = make_handler(
        [Source("img", "src"), Source("img", "srcset"), Source("[style]", "style"), Source("style")],
        side_effect=localized,
    )
    resource = handle(handler, """<head><style>body { background: url("http://x.com/bg.png") }</style></head>
<body><img src="http://x.com/a.png" srcset="http://x.com/a1.png 1x, http://x.com/a2.png 2x" alt="A">
<div style="background: url(http://x.com/d.png); color: red">Ünïcode</div></body>""")
    assert resource.text == """<head><style>body { background: url("local/bg.png") }</style></head>
<body><img src="local/a.png" srcset="local/a1.png 1x, local/a2.png 2x" alt="A">
<div style="background: url(local/d.png); color: red">Ünïcode</div></body>"""


def test_unresolved_paths_keep_original_value():
    def partial(container, parent, fetch_missing):
        return [None if "keep" in p else "local.png" for p in container.extracted_paths()]

    handler = make_handler([Source("img", "srcset")], side_effect=partial)
    resource = handle(handler, '<img srcset="keep.png 1x, swap.png 2x">')
    assert '<img srcset="keep.png 1x, local.png 2x">' in resource.text


def test_integrity_removed_only_for_replaced_references():
    handler = make_handler([Source("script", "src")], side_effect=localized)
    html = """
        <html>
        <head>
            <link href="http://examlpe.com/style.css" integrity="sha256-gaWb8m2IHSkoZnT23u/necREOC//MiCFtQukVUYMyuU=" rel="stylesheet">
        </head>
        <body>
            <script integrity="sha256-X+Q/xqnlEgxCczSjjpp2AUGGgqM5gcBzhRQ0p+EAUEk=" src="http://example.com/script.js"></script>
        </body>
        </html>
    """
    resource = handle(handler, html)
    assert 'integrity="sha256-gaWb8m2IHSkoZnT23u/necREOC//MiCFtQukVUYMyuU="' in resource.text
    assert "sha256-X+Q/xqnlEgxCczSjjpp2AUGGgqM5gcBzhRQ0p+EAUEk=" not in resource.text
    assert 'src="local/script.js"' in resource.text


def test_integrity_kept_when_reference_unresolved():
    handler = make_handler([Source("script", "src")])
    resource = handle(handler, '<script integrity="sha384-abc" src="http://example.com/s.js"></script>')
    assert 'integrity="sha384-abc"' in resource.text


def test_update_only_sources_do_not_request_fetch():
    handler = make_handler([Source("img", "src")], [Source("a", "href")])
    handle(handler, '<a href="/page.html">p</a><img src="a.png">')
    flags = {call.args[0].text: call.args[2] for call in handler.download_children_paths.call_args_list}
    assert flags == {"a.png": True, "/page.html": False}


def test_source_in_both_lists_is_fetched_once():
    handler = make_handler([Source("img", "src")], True)
    handle(handler, '<img src="a.png">')
    assert handler.download_children_paths.call_count == 1
    assert handler.download_children_paths.call_args.args[2] is True


def test_wrong_replacement_count_is_an_error():
    handler = make_handler([Source("img", "src")], side_effect=lambda c, p, f: ["a", "b"])
    with pytest.raises(ValueError):
        handle(handler, '<img src="a.png">')


def test_non_text_document_is_a_parse_error():
    resource = Resource("http://example.com", text=None)
    with pytest.raises(DocumentParseError):
        asyncio.run(make_handler().handle(resource))


def test_malformed_markup_is_tolerated():
    handler = make_handler([Source("img", "src")], side_effect=localized)
    resource = handle(handler, '<div><p>unclosed <b>bold</div><img src="x/a.png"></span>')
    assert 'src="local/a.png"' in resource.text
    assert "unclosed" in resource.text


def test_css_handler_rewrites_stylesheet():
    download = AsyncMock(side_effect=localized)
    resource = Resource("http://example.com/css/site.css", text="@import 'x/base.css';\nbody{background:url(img/bg.png)}", kind=ResourceKind.CSS)
    asyncio.run(CssHandler(download).handle(resource))
    assert resource.text == "@import 'local/base.css';\nbody{background:url(local/bg.png)}"
    assert download.call_args.args[2] is True


def test_resource_handler_routes_by_kind():
    download = AsyncMock(side_effect=localized)
    handler = ResourceHandler(HandlerOptions(sources=[Source("img", "src")]), download)

    html = Resource("http://example.com", text='<img src="a/b.png">')
    css = Resource("http://example.com/s.css", text="a{background:url(a/c.png)}", kind=ResourceKind.CSS)
    other = Resource("http://example.com/f.bin", text="url(a/d.png)", kind=ResourceKind.OTHER)
    for r in (html, css, other):
        asyncio.run(handler.handle(r))

    assert html.text == '<img src="local/b.png">'
    assert css.text == "a{background:url(local/c.png)}"
    assert other.text == "url(a/d.png)"
    assert download.call_count == 2


def test_character_references_come_back_as_characters():
    resource = handle(make_handler(), "<p>a&nbsp;b &copy; &#39;q&#39; &amp; &lt;x&gt;</p>")
    assert resource.text == "<p>a\xa0b © 'q' &amp; &lt;x&gt;</p>"


def test_containers_are_dispatched_concurrently():
    async def run():
        waiting = []
        all_started = asyncio.Event()

        async def download(container, parent, fetch_missing):
            waiting.append(container)
            if len(waiting) == 3:
                all_started.set()
            await all_started.wait()
            return ["local/" + p for p in container.extracted_paths()]

        handler = HtmlHandler([Source("img", "src")], download_children_paths=AsyncMock(side_effect=download))
        resource = Resource("http://example.com", "index.html", text='<img src="a.png"><img src="b.png"><img src="c.png">')
        await asyncio.wait_for(handler.handle(resource), timeout=5)
        return resource

    resource = asyncio.run(run())
    assert resource.text == '<img src="local/a.png"><img src="local/b.png"><img src="local/c.png">'


def test_cancelling_handle_propagates_and_leaves_text():
    html = '<base href="/sub/"><img src="a.png"><img src="b.png">'

    async def run():
        started = asyncio.Event()
        release = asyncio.Event()

        async def download(container, parent, fetch_missing):
            started.set()
            await release.wait()
            return ["local.png"]

        handler = HtmlHandler([Source("img", "src")], download_children_paths=AsyncMock(side_effect=download))
        resource = Resource("http://example.com", "index.html", text=html)
        task = asyncio.ensure_future(handler.handle(resource))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return resource

    resource = asyncio.run(run())
    assert resource.text == html
