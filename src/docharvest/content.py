from __future__ import annotations

from enum import Enum
from urllib.parse import urlparse

from .urls import is_asset_intent_url


class ContentKind(str, Enum):
    HTML = "html"
    JSON = "json"
    XML = "xml"
    MARKDOWN = "markdown"
    TEXT = "text"
    BYTES = "bytes"


_JSON_TYPES = {"application/json", "text/json"}
_XML_TYPES = {
    "application/xml",
    "text/xml",
    "application/rss+xml",
    "application/atom+xml",
}
_HTML_TYPES = {"text/html", "application/xhtml+xml"}
_MARKDOWN_TYPES = {"text/markdown", "text/x-markdown"}


def _media_type(content_type: str | None) -> str:
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def looks_like_html(data: bytes) -> bool:
    head = data[:2048].lstrip()
    return head.startswith(b"<") and (
        b"<html" in head.lower()
        or b"<!doctype html" in head.lower()
        or b"<head" in head.lower()
    )


def looks_like_xml(data: bytes) -> bool:
    head = data[:512].lstrip()
    return head.startswith(
        (b"<?xml", b"<urlset", b"<sitemapindex", b"<rss", b"<feed")
    )


def looks_like_json(data: bytes) -> bool:
    head = data[:64].lstrip()
    return head.startswith((b"{", b"["))


def sniff_kind(
    url: str,
    *,
    content_type: str | None,
    body: bytes,
) -> ContentKind:
    """Classify content conservatively.

    Rules:
    - Asset-intent URLs are BYTES unless the server says JSON.
    - Header hint first, then body sniffing, then the URL's extension.
    - raw.githubusercontent.com serves Markdown as text/plain; the ``.md``
      extension wins there.
    """

    ct = _media_type(content_type)
    path = urlparse(url).path.lower()

    if is_asset_intent_url(url):
        if ct in _JSON_TYPES:
            return ContentKind.JSON
        return ContentKind.BYTES

    if ct in _JSON_TYPES:
        return ContentKind.JSON
    if ct in _XML_TYPES:
        return ContentKind.XML
    if ct in _HTML_TYPES:
        return ContentKind.HTML
    if ct in _MARKDOWN_TYPES:
        return ContentKind.MARKDOWN
    if ct == "text/plain":
        if path.endswith((".md", ".markdown")):
            return ContentKind.MARKDOWN
        return ContentKind.TEXT

    if looks_like_html(body):
        return ContentKind.HTML
    if looks_like_xml(body):
        return ContentKind.XML
    if looks_like_json(body):
        return ContentKind.JSON

    if path.endswith(".json"):
        return ContentKind.JSON
    if path.endswith(".xml"):
        return ContentKind.XML
    if path.endswith((".md", ".markdown")):
        return ContentKind.MARKDOWN
    if path.endswith(".txt"):
        return ContentKind.TEXT

    return ContentKind.BYTES


def decode_text(body: bytes, content_type: str | None = None) -> str:
    charset = "utf-8"
    if content_type and "charset=" in content_type.lower():
        charset = content_type.lower().split("charset=", 1)[1].split(";", 1)[0].strip()
    try:
        return body.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")
