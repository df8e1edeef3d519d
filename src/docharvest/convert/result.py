from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable
from urllib.parse import urljoin, urlparse

from ..urls import normalize_url

_IGNORED_SCHEMES = {"mailto", "javascript", "tel", "data", "about"}


@dataclass(frozen=True)
class TransformMetadata:
    title: str | None = None
    description: str | None = None
    group: str | None = None
    platforms: tuple[str, ...] = ()
    is_deprecated: bool = False


@dataclass(frozen=True)
class TransformResult:
    text: str
    links: list[str] = field(default_factory=list)
    metadata: TransformMetadata | None = None


def resolve_links(hrefs: Iterable[str], base_url: str) -> list[str]:
    """Absolute, canonical, de-duplicated http(s) links in first-seen order.

    Relative references resolve against ``base_url``, which must be the URL
    of the page the links came from.
    """

    seen: set[str] = set()
    out: list[str] = []
    for raw in hrefs:
        href = (raw or "").strip()
        if not href or href.startswith("#"):
            continue
        scheme = urlparse(href).scheme.lower()
        if scheme in _IGNORED_SCHEMES:
            continue
        absolute = urljoin(base_url, href)
        if urlparse(absolute).scheme.lower() not in {"http", "https"}:
            continue
        canonical = normalize_url(absolute)
        if canonical in seen:
            continue
        seen.add(canonical)
        out.append(canonical)
    return out
