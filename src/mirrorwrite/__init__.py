from .config import DEFAULT_SOURCES, HandlerOptions, SnapshotConfig
from .errors import DocumentParseError, MirrorError
from .handlers import CssHandler, HtmlHandler, ResourceHandler
from .path_containers import CssText, HtmlCommonTag, HtmlImgSrcsetTag, PathContainer
from .resource import Resource, ResourceKind
from .sources import Source, resolve_sources

__all__ = [
    "DEFAULT_SOURCES", "HandlerOptions", "SnapshotConfig",
    "DocumentParseError", "MirrorError",
    "CssHandler", "HtmlHandler", "ResourceHandler",
    "CssText", "HtmlCommonTag", "HtmlImgSrcsetTag", "PathContainer",
    "Resource", "ResourceKind",
    "Source", "resolve_sources",
]
