from __future__ import annotations

import json
from unittest import mock

import pytest

from conftest import FakeSiteFetcher, page
from docharvest.content import ContentKind, sniff_kind
from docharvest.convert.json_to_md import api_url
from docharvest.engines import (
    Engine,
    EngineKind,
    build_engine,
    transform_by_content,
    transform_docc,
)
from docharvest.errors import FetchError
from docharvest.fetchers import HttpFetcher, JsonApiFetcher, RawContent
from docharvest.http_client import FetchResult


def _fetch_result(status: int, body: bytes = b"", content_type="text/html"):
    return FetchResult(
        url="https://example.com/x",
        final_url="https://example.com/x",
        status_code=status,
        headers={"Content-Type": content_type},
        fetched_at=0.0,
        body=body,
    )


def test_context_manager_acquires_and_releases_once():
    fetcher = FakeSiteFetcher({})
    engine = Engine(EngineKind.HTTP, fetcher, transform_by_content)

    with engine:
        assert fetcher.acquired == 1
        assert fetcher.released == 0
    assert fetcher.released == 1


def test_recycles_every_k_attempts_counting_failures():
    good = "https://example.com/ok"
    fetcher = FakeSiteFetcher({good: page("Ok")})
    engine = Engine(EngineKind.HTTP, fetcher, transform_by_content, recycle_every=3)

    with engine:
        for i in range(7):
            url = good if i % 2 == 0 else "https://example.com/missing"
            try:
                engine.crawl(url)
            except FetchError:
                pass

    assert engine.attempts == 7
    assert fetcher.recycled == 2


def test_recycling_can_be_disabled():
    fetcher = FakeSiteFetcher({"https://example.com/": page("Home")})
    engine = Engine(EngineKind.HTTP, fetcher, transform_by_content, recycle_every=0)

    with engine:
        for _ in range(5):
            engine.crawl("https://example.com/")

    assert fetcher.recycled == 0


def test_json_api_engine_fetches_mapped_url_and_resolves_links_against_page():
    doc_url = "https://developer.apple.com/documentation/swiftui"
    json_url = "https://developer.apple.com/tutorials/data/documentation/swiftui.json"
    doc = {
        "metadata": {"title": "SwiftUI", "modules": [{"name": "SwiftUI"}]},
        "topicSections": [{"title": "Views", "identifiers": ["v"]}],
        "references": {
            "v": {"type": "topic", "title": "View", "url": "view"},
        },
    }

    class JsonFetcher(FakeSiteFetcher):
        def fetch(self, url):
            self.fetched.append(url)
            return RawContent(url=url, body=json.dumps(doc).encode())

    fetcher = JsonFetcher({})
    engine = Engine(
        EngineKind.JSON_API,
        fetcher,
        transform_docc,
        url_mapper=api_url,
    )

    with engine:
        result = engine.crawl(doc_url)

    assert fetcher.fetched == [json_url]
    assert result.text.startswith(f"---\nsource: {doc_url}\n")
    assert result.links == ["https://developer.apple.com/documentation/view"]
    assert result.metadata.group == "swiftui"


def test_transform_errors_become_fetch_errors():
    class BrokenJson(FakeSiteFetcher):
        def fetch(self, url):
            return RawContent(
                url=url, body=b"{not json", content_type="application/json"
            )

    engine = Engine(EngineKind.JSON_API, BrokenJson({}), transform_docc)

    with engine, pytest.raises(FetchError) as excinfo:
        engine.crawl("https://developer.apple.com/documentation/x")
    assert excinfo.value.url == "https://developer.apple.com/documentation/x"


def test_any_transform_exception_becomes_a_fetch_error():
    def transform(raw, base_url):
        raise AttributeError("'str' object has no attribute 'get'")

    fetcher = FakeSiteFetcher({"https://x.test/": "x"})
    engine = Engine(EngineKind.HTTP, fetcher, transform)

    with engine, pytest.raises(FetchError) as excinfo:
        engine.crawl("https://x.test/")
    assert "AttributeError" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, AttributeError)


def test_fetch_errors_from_a_transform_pass_through_unchanged():
    error = FetchError("https://x.test/", "Unsupported content (image/png)")

    def transform(raw, base_url):
        raise error

    fetcher = FakeSiteFetcher({"https://x.test/": "x"})
    engine = Engine(EngineKind.HTTP, fetcher, transform)

    with engine, pytest.raises(FetchError) as excinfo:
        engine.crawl("https://x.test/")
    assert excinfo.value is error


def test_unsupported_content_is_a_fetch_error():
    raw = RawContent(
        url="https://example.com/blob",
        body=b"\x00\x01\x02",
        content_type="application/octet-stream",
    )
    with pytest.raises(FetchError):
        transform_by_content(raw, raw.url)


def test_http_fetcher_rejects_non_2xx():
    client = mock.Mock()
    client.get.return_value = _fetch_result(404)

    with pytest.raises(FetchError) as excinfo:
        HttpFetcher(client).fetch("https://example.com/x")
    assert "404" in str(excinfo.value)


def test_json_api_fetcher_requires_200_and_asks_for_json():
    client = mock.Mock()
    client.get.return_value = _fetch_result(204)

    with pytest.raises(FetchError):
        JsonApiFetcher(client).fetch("https://example.com/x.json")
    assert client.get.call_args.kwargs["headers"] == {"Accept": "application/json"}


def test_http_fetcher_returns_raw_content():
    client = mock.Mock()
    client.get.return_value = _fetch_result(200, b"<html></html>")

    raw = HttpFetcher(client).fetch("https://example.com/x")

    assert raw.body == b"<html></html>"
    assert raw.content_type == "text/html"


@pytest.mark.parametrize(
    ("url", "content_type", "body", "expected"),
    [
        ("https://example.com/a", "text/html; charset=utf-8", b"", ContentKind.HTML),
        ("https://example.com/a", None, b"  <!DOCTYPE html><html>", ContentKind.HTML),
        ("https://example.com/a", "application/json", b"{}", ContentKind.JSON),
        ("https://example.com/a", None, b'{"a": 1}', ContentKind.JSON),
        ("https://example.com/s.xml", None, b"<?xml?><urlset/>", ContentKind.XML),
        ("https://example.com/p/0001.md", "text/plain", b"# T", ContentKind.MARKDOWN),
        ("https://example.com/notes", "text/plain", b"hello", ContentKind.TEXT),
        ("https://example.com/logo.png", "image/png", b"\x89PNG", ContentKind.BYTES),
    ],
)
def test_sniff_kind(url, content_type, body, expected):
    assert sniff_kind(url, content_type=content_type, body=body) == expected


def test_build_engine_covers_every_kind():
    for kind in EngineKind:
        assert build_engine(kind).kind == kind
