"""Engines pair one fetcher with one transform.

The set of engines is closed: :class:`EngineKind` names every variant and
:func:`build_engine` is the only constructor the orchestrator uses.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable

from .content import ContentKind, decode_text, sniff_kind
from .convert.html_to_md import html_to_markdown
from .convert.json_to_md import (
    api_url,
    docc_to_markdown,
    is_docc_document,
    json_listing_to_markdown,
)
from .convert.result import TransformResult
from .convert.text_to_md import text_to_markdown
from .convert.xml_to_md import xml_to_markdown
from .errors import FetchError
from .fetchers import (
    Fetcher,
    HttpFetcher,
    JsonApiFetcher,
    RawContent,
    RenderedPageFetcher,
)

logger = logging.getLogger(__name__)

Transform = Callable[[RawContent, str], TransformResult]


class EngineKind(str, Enum):
    RENDERED = "rendered"
    HTTP = "http"
    JSON_API = "json_api"
    FEED = "feed"


def transform_html(raw: RawContent, base_url: str) -> TransformResult:
    return html_to_markdown(
        decode_text(raw.body, raw.content_type), source_url=base_url
    )


def transform_docc(raw: RawContent, base_url: str) -> TransformResult:
    return docc_to_markdown(raw.body, source_url=base_url)


def transform_feed(raw: RawContent, base_url: str) -> TransformResult:
    return xml_to_markdown(raw.body, source_url=base_url)


def transform_by_content(raw: RawContent, base_url: str) -> TransformResult:
    """Pick a transform from the response itself (plain HTTP engine)."""

    kind = sniff_kind(base_url, content_type=raw.content_type, body=raw.body)
    if kind == ContentKind.HTML:
        return transform_html(raw, base_url)
    if kind == ContentKind.JSON:
        if is_docc_document(raw.body):
            return transform_docc(raw, base_url)
        return json_listing_to_markdown(raw.body, source_url=base_url)
    if kind == ContentKind.XML:
        return transform_feed(raw, base_url)
    if kind in {ContentKind.MARKDOWN, ContentKind.TEXT}:
        return text_to_markdown(
            decode_text(raw.body, raw.content_type), source_url=base_url
        )
    raise FetchError(
        base_url, f"Unsupported content ({raw.content_type or 'unknown'})"
    )


class Engine:
    """``crawl(url)`` = map URL, fetch, transform, and recycle on a cadence.

    ``recycle_every`` counts fetch attempts, successful or not; ``0`` turns
    recycling off. Use as a context manager so the fetcher is acquired and
    released exactly once.
    """

    def __init__(
        self,
        kind: EngineKind,
        fetcher: Fetcher,
        transform: Transform,
        *,
        recycle_every: int = 50,
        url_mapper: Callable[[str], str] | None = None,
    ) -> None:
        self.kind = kind
        self.fetcher = fetcher
        self._transform = transform
        self._recycle_every = recycle_every
        self._url_mapper = url_mapper
        self._attempts = 0

    def __enter__(self) -> Engine:
        self.fetcher.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self.fetcher.release()

    @property
    def attempts(self) -> int:
        return self._attempts

    def fetch_url(self, url: str) -> str:
        return self._url_mapper(url) if self._url_mapper else url

    def crawl(self, url: str) -> TransformResult:
        fetch_url = self.fetch_url(url)
        self._attempts += 1
        try:
            raw = self.fetcher.fetch(fetch_url)
            # Relative links resolve against the page's own URL. A mapped
            # fetch URL is an API address, so the documentation URL stands in.
            base_url = url if fetch_url != url else raw.url or url
            try:
                return self._transform(raw, base_url)
            except FetchError:
                raise
            except Exception as e:
                # Malformed content fails this page only.
                raise FetchError(
                    url, f"Transform failed ({e.__class__.__name__}: {e})"
                ) from e
        finally:
            if self._recycle_every and self._attempts % self._recycle_every == 0:
                logger.debug(
                    "Recycling %s fetcher after %d attempts (~%.0f MB)",
                    self.kind.value,
                    self._attempts,
                    self.fetcher.memory_usage_mb(),
                )
                self.fetcher.recycle()

    def memory_usage_mb(self) -> float:
        return self.fetcher.memory_usage_mb()


def build_engine(
    kind: EngineKind,
    *,
    timeout_s: float = 30.0,
    recycle_every: int = 50,
    stop_event: threading.Event | None = None,
) -> Engine:
    """``stop_event`` lets a stop request cut short HTTP back-off waits."""

    if kind == EngineKind.RENDERED:
        return Engine(
            kind,
            RenderedPageFetcher(timeout_s=timeout_s),
            transform_html,
            recycle_every=recycle_every,
        )
    if kind == EngineKind.HTTP:
        return Engine(
            kind,
            HttpFetcher(timeout_s=timeout_s, stop_event=stop_event),
            transform_by_content,
            recycle_every=recycle_every,
        )
    if kind == EngineKind.JSON_API:
        return Engine(
            kind,
            JsonApiFetcher(timeout_s=timeout_s, stop_event=stop_event),
            transform_docc,
            recycle_every=recycle_every,
            url_mapper=api_url,
        )
    if kind == EngineKind.FEED:
        return Engine(
            kind,
            HttpFetcher(timeout_s=timeout_s, stop_event=stop_event),
            transform_feed,
            recycle_every=recycle_every,
        )
    raise ValueError(f"Unknown engine kind: {kind!r}")
