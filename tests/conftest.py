from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from docharvest.config import CrawlConfig
from docharvest.engines import Engine, EngineKind, Transform, transform_by_content
from docharvest.errors import FetchError
from docharvest.fetchers import Fetcher, RawContent


def page(title: str, *links: str) -> str:
    anchors = "".join(f'<a href="{href}">{href}</a>' for href in links)
    return (
        f"<html><head><title>{title}</title></head>"
        f"<body><main><h1>{title}</h1><p>Body of {title}.</p>{anchors}</main>"
        "</body></html>"
    )


class FakeSiteFetcher(Fetcher):
    """Serves a dict of URL -> body; unknown URLs are 404s."""

    def __init__(
        self, pages: dict[str, str], content_type: str = "text/html; charset=utf-8"
    ) -> None:
        self.pages = pages
        self.content_type = content_type
        self.fetched: list[str] = []
        self.acquired = 0
        self.released = 0
        self.recycled = 0

    def acquire(self) -> None:
        self.acquired += 1

    def release(self) -> None:
        self.released += 1

    def recycle(self) -> None:
        self.recycled += 1

    def fetch(self, url: str) -> RawContent:
        self.fetched.append(url)
        if url not in self.pages:
            raise FetchError(url, "HTTP 404")
        return RawContent(
            url=url,
            body=self.pages[url].encode("utf-8"),
            content_type=self.content_type,
        )


class FakeSite:
    def __init__(
        self,
        pages: dict[str, str],
        *,
        content_type: str = "text/html; charset=utf-8",
        transform: Transform = transform_by_content,
        url_mapper: Callable[[str], str] | None = None,
    ) -> None:
        self.pages = pages
        self.content_type = content_type
        self.transform = transform
        self.url_mapper = url_mapper
        self.fetchers: list[FakeSiteFetcher] = []

    @property
    def fetched(self) -> list[str]:
        return [u for f in self.fetchers for u in f.fetched]

    def engine_factory(self, cfg: CrawlConfig) -> Engine:
        fetcher = FakeSiteFetcher(self.pages, self.content_type)
        self.fetchers.append(fetcher)
        return Engine(
            EngineKind.HTTP,
            fetcher,
            self.transform,
            recycle_every=0,
            url_mapper=self.url_mapper,
        )


@pytest.fixture
def make_config(tmp_path: Path):
    def _make(start_url: str, **overrides) -> CrawlConfig:
        values = {
            "start_url": start_url,
            "output_dir": tmp_path / "out",
            "request_delay_s": 0.0,
            "retry_delay_s": 0.0,
        }
        values.update(overrides)
        return CrawlConfig(**values)

    return _make
