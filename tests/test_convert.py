from __future__ import annotations

import json

import pytest

from docharvest.convert.html_to_md import html_to_markdown
from docharvest.convert.json_to_md import (
    api_url,
    docc_to_markdown,
    is_docc_document,
    json_listing_to_markdown,
)
from docharvest.convert.text_to_md import text_to_markdown
from docharvest.convert.xml_to_md import xml_to_markdown


class TestHtml:
    HTML = """
    <html>
      <head>
        <title>Page title</title>
        <meta name="description" content="What this page is about">
        <base href="/root/">
      </head>
      <body>
        <nav><a href="/nav">Nav</a></nav>
        <main>
          <h1>Hello</h1>
          <p>World</p>
          <script>var tracking = 1;</script>
          <a href="child">Child</a>
          <a href="#frag">Fragment</a>
          <a href="mailto:docs@example.com">Mail</a>
          <a href="javascript:void(0)">JS</a>
          <a href="child#again">Child again</a>
        </main>
      </body>
    </html>
    """

    def test_markdown_and_metadata(self):
        result = html_to_markdown(self.HTML, source_url="https://example.com/docs/p")

        assert result.text.startswith("---\nsource: https://example.com/docs/p\n")
        assert 'title: "Hello"' in result.text
        assert "# Hello" in result.text
        assert "World" in result.text
        assert "tracking" not in result.text
        assert result.metadata.title == "Hello"
        assert result.metadata.description == "What this page is about"

    def test_links_use_base_href_and_are_deduplicated(self):
        result = html_to_markdown(self.HTML, source_url="https://example.com/docs/p")
        assert result.links == [
            "https://example.com/nav",
            "https://example.com/root/child",
        ]

    def test_links_resolve_against_the_page_url(self):
        html = '<html><body><main><a href="intro">Intro</a></main></body></html>'
        result = html_to_markdown(html, source_url="https://example.com/docs/guide/")
        assert result.links == ["https://example.com/docs/guide/intro"]


DOCC = {
    "metadata": {
        "title": "View",
        "role": "symbol",
        "roleHeading": "Protocol",
        "modules": [{"name": "SwiftUI"}],
        "platforms": [
            {"name": "iOS", "introducedAt": "13.0"},
            {"name": "macOS", "introducedAt": "10.15", "deprecated": True},
        ],
    },
    "abstract": [
        {"type": "text", "text": "A type that represents part of your app's UI."}
    ],
    "primaryContentSections": [
        {
            "kind": "declarations",
            "declarations": [
                {
                    "tokens": [
                        {"kind": "keyword", "text": "protocol"},
                        {"kind": "text", "text": " "},
                        {"kind": "identifier", "text": "View"},
                    ]
                }
            ],
        },
        {
            "kind": "content",
            "content": [
                {"type": "heading", "level": 2, "text": "Overview"},
                {
                    "type": "paragraph",
                    "inlineContent": [
                        {"type": "text", "text": "Use "},
                        {"type": "codeVoice", "code": "body"},
                        {"type": "text", "text": "."},
                    ],
                },
                {
                    "type": "codeListing",
                    "syntax": "swift",
                    "code": ["struct A: View {}"],
                },
                {
                    "type": "aside",
                    "style": "note",
                    "content": [
                        {
                            "type": "paragraph",
                            "inlineContent": [{"type": "text", "text": "Be careful."}],
                        }
                    ],
                },
            ],
        },
    ],
    "topicSections": [
        {
            "title": "Implementing a Custom View",
            "identifiers": ["doc://com.apple.SwiftUI/documentation/SwiftUI/View/body"],
        }
    ],
    "references": {
        "doc://com.apple.SwiftUI/documentation/SwiftUI/View/body": {
            "type": "topic",
            "title": "body",
            "url": "/documentation/swiftui/view/body",
            "abstract": [{"type": "text", "text": "The content."}],
        },
        "doc://com.apple.documentation/documentation/Swift/String": {
            "type": "topic",
            "title": "String",
            "url": "/documentation/swift/string",
        },
        "hero.png": {"type": "image", "alt": "Hero"},
    },
}


class TestDocc:
    URL = "https://developer.apple.com/documentation/swiftui/view"

    def test_api_url_mapping(self):
        assert api_url("https://developer.apple.com/documentation/SwiftUI/View") == (
            "https://developer.apple.com/tutorials/data/documentation/SwiftUI/View.json"
        )
        assert api_url("https://developer.apple.com/documentation/") == (
            "https://developer.apple.com/tutorials/data/documentation.json"
        )
        assert api_url("https://example.com/other") == "https://example.com/other"

    def test_render(self):
        result = docc_to_markdown(json.dumps(DOCC), source_url=self.URL)

        assert "# View" in result.text
        assert "**Protocol**" in result.text
        assert "A type that represents part of your app's UI." in result.text
        assert "```swift\nprotocol View\n```" in result.text
        assert "## Overview" in result.text
        assert "Use `body`." in result.text
        assert "> **Note:** Be careful." in result.text
        assert "## Topics" in result.text
        assert "### Implementing a Custom View" in result.text
        assert "- [body](/documentation/swiftui/view/body): The content." in result.text
        assert "iOS 13.0+" in result.text

    def test_links_are_absolute_documentation_urls(self):
        result = docc_to_markdown(json.dumps(DOCC), source_url=self.URL)
        assert result.links == [
            "https://developer.apple.com/documentation/swiftui/view/body",
            "https://developer.apple.com/documentation/swift/string",
        ]

    def test_metadata(self):
        meta = docc_to_markdown(json.dumps(DOCC), source_url=self.URL).metadata
        assert meta.title == "View"
        assert meta.description == "symbol"
        assert meta.group == "swiftui"
        assert meta.platforms == ("iOS", "macOS")
        assert meta.is_deprecated is True

    def test_detection(self):
        assert is_docc_document(json.dumps(DOCC))
        assert not is_docc_document(json.dumps([{"name": "x"}]))
        assert not is_docc_document("not json")

    def test_non_object_is_rejected(self):
        with pytest.raises(ValueError):
            docc_to_markdown("[]", source_url=self.URL)

    def test_malformed_values_are_ignored(self):
        doc = {
            "metadata": "oops",
            "abstract": "not a list",
            "references": {"r": "oops", "ok": {"type": "topic", "url": 7}},
            "topicSections": [{"title": "T", "identifiers": ["r", ["x"], "ok"]}, 1],
            "primaryContentSections": [
                "junk",
                {"kind": "declarations", "declarations": [{"tokens": "x"}]},
                {"kind": "content", "content": [None, {"type": "paragraph"}]},
            ],
        }

        result = docc_to_markdown(json.dumps(doc), source_url=self.URL)

        assert "### T" in result.text
        assert "- r" in result.text
        assert result.links == []
        assert result.metadata is None


def test_json_listing_follows_download_urls():
    listing = [
        {
            "name": "0001-keywords.md",
            "url": "https://api.github.com/repos/swiftlang/swift-evolution/contents/x",
            "download_url": (
                "https://raw.githubusercontent.com/swiftlang/swift-evolution/"
                "main/proposals/0001-keywords.md"
            ),
            "_links": {"html": "https://github.com/swiftlang/swift-evolution"},
        },
        {"name": "README", "download_url": None},
    ]
    result = json_listing_to_markdown(
        json.dumps(listing),
        source_url="https://api.github.com/repos/swiftlang/swift-evolution/contents/p",
    )
    assert result.links == [
        "https://raw.githubusercontent.com/swiftlang/swift-evolution/"
        "main/proposals/0001-keywords.md"
    ]
    assert "```json" in result.text


class TestXml:
    def test_sitemap(self):
        body = (
            b'<?xml version="1.0" encoding="UTF-8"?>'
            b'<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
            b"<url><loc>https://example.com/a</loc><lastmod>2024-01-01</lastmod></url>"
            b"<url><loc>/b</loc></url>"
            b"</urlset>"
        )
        result = xml_to_markdown(body, source_url="https://example.com/sitemap.xml")

        assert result.links == ["https://example.com/a", "https://example.com/b"]
        assert "# Sitemap" in result.text
        assert "- [https://example.com/a](https://example.com/a)" in result.text
        assert "*Last modified: 2024-01-01*" in result.text

    def test_rss(self):
        body = (
            b"<rss><channel><title>Blog</title><description>News</description>"
            b"<link>https://example.com/blog</link>"
            b"<item><title>Post</title><link>https://example.com/blog/post</link>"
            b"<pubDate>Mon, 01 Jan 2024</pubDate><author>Ann</author>"
            b"<category>swift</category></item>"
            b"</channel></rss>"
        )
        result = xml_to_markdown(body, source_url="https://example.com/feed.xml")

        assert "# Blog" in result.text
        assert "### [Post](https://example.com/blog/post)" in result.text
        assert "*Published: Mon, 01 Jan 2024*" in result.text
        assert "*Author: Ann*" in result.text
        assert "**Category**: swift" in result.text
        assert result.links == [
            "https://example.com/blog",
            "https://example.com/blog/post",
        ]

    def test_atom(self):
        body = (
            b'<feed xmlns="http://www.w3.org/2005/Atom"><title>Feed</title>'
            b'<entry><title>Entry</title><link href="https://example.com/e"/>'
            b"<updated>2024-02-02T00:00:00Z</updated></entry></feed>"
        )
        result = xml_to_markdown(body, source_url="https://example.com/atom.xml")

        assert "### [Entry](https://example.com/e)" in result.text
        assert result.links == ["https://example.com/e"]

    def test_invalid_xml_raises_value_error(self):
        with pytest.raises(ValueError):
            xml_to_markdown(b"<urlset><url>", source_url="https://example.com/s.xml")


def test_markdown_passthrough_follows_relative_links():
    src = (
        "https://raw.githubusercontent.com/swiftlang/swift-evolution/"
        "main/proposals/0001-x.md"
    )
    text = (
        "# SE-0001: Title\n\n"
        "See [next](0002-next.md) and [site](https://swift.org).\n"
    )

    result = text_to_markdown(text, source_url=src)

    assert result.metadata.title == "SE-0001: Title"
    assert result.links == [
        "https://raw.githubusercontent.com/swiftlang/swift-evolution/"
        "main/proposals/0002-next.md",
        "https://swift.org/",
    ]
    assert result.text.endswith(text)
