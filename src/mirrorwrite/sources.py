from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union


@dataclass(frozen=True)
class Source:
    """Where to look for child references: a CSS selector plus the attribute to read.

    ``attr=None`` reads the element's own text, e.g. the body of ``<style>``.
    """

    selector: str
    attr: Optional[str] = None

    @classmethod
    def coerce(cls, value: Union["Source", Mapping[str, str], Tuple[str, Optional[str]]]) -> "Source":
        if isinstance(value, Source):
            return value
        if isinstance(value, Mapping):
            return cls(value["selector"], value.get("attr"))
        selector, attr = value
        return cls(selector, attr)


SourcesArg = Iterable[Union[Source, Mapping[str, str], Tuple[str, Optional[str]]]]


class ResolvedSources(NamedTuple):
    download: List[Source]
    update: List[Source]
    all: List[Source]


def resolve_sources(
    sources: SourcesArg,
    update_missing_sources: Union[bool, None, SourcesArg] = False,
) -> ResolvedSources:
    """Split configured sources into download, update-only and combined lists."""
    download = [Source.coerce(s) for s in sources]

    if update_missing_sources is True:
        update = list(download)
    elif not update_missing_sources:
        update = []
    else:
        update = [Source.coerce(s) for s in update_missing_sources]

    combined: List[Source] = []
    for s in download + update:
        if s not in combined:
            combined.append(s)
    return ResolvedSources(download, update, combined)
