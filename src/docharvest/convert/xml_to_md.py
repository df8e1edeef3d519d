"""Sitemaps, sitemap indexes, RSS and Atom feeds to Markdown.

Tags are matched by local name so namespaced and plain documents read the
same way.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Iterator

from .front_matter import with_front_matter
from .result import TransformMetadata, TransformResult, resolve_links

_ENTRY_TAGS = {"url", "sitemap", "item", "entry"}


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1].lower()


def _text(el: ET.Element) -> str:
    return " ".join("".join(el.itertext()).split())


def _child_text(el: ET.Element, *names: str) -> str | None:
    for child in el:
        if _local(child.tag) in names:
            text = _text(child)
            if text:
                return text
    return None


def parse_xml(body: bytes | str) -> ET.Element:
    try:
        return ET.fromstring(body)
    except ET.ParseError as e:
        raise ValueError(f"Invalid XML: {e}") from e


def iter_link_targets(root: ET.Element) -> Iterator[str]:
    for el in root.iter():
        name = _local(el.tag)
        if name == "loc" or (name == "link" and not el.get("href")):
            text = _text(el)
            if text:
                yield text
        if el.get("href"):
            yield el.get("href", "")


def _entry_lines(entry: ET.Element) -> list[str]:
    lines: list[str] = []
    title = _child_text(entry, "title")
    loc = _child_text(entry, "loc", "link")
    if loc is None:
        for child in entry:
            if _local(child.tag) == "link" and child.get("href"):
                loc = child.get("href")
                break

    if title and loc:
        lines.append(f"### [{title}]({loc})")
    elif title:
        lines.append(f"### {title}")
    elif loc:
        lines.append(f"- [{loc}]({loc})")

    description = _child_text(entry, "description", "summary", "content")
    if description:
        lines.append(description)
    lastmod = _child_text(entry, "lastmod", "updated")
    if lastmod:
        lines.append(f"*Last modified: {lastmod}*")
    published = _child_text(entry, "pubdate", "published")
    if published:
        lines.append(f"*Published: {published}*")
    author = _child_text(entry, "author", "creator")
    if author:
        lines.append(f"*Author: {author}*")
    categories = [
        child.get("term") or _text(child)
        for child in entry
        if _local(child.tag) == "category"
    ]
    if categories:
        lines.append("**Category**: " + ", ".join(c for c in categories if c))
    return lines


def xml_to_markdown(body: bytes | str, *, source_url: str) -> TransformResult:
    root = parse_xml(body)
    root_name = _local(root.tag)

    channel = root
    for el in root:
        if _local(el.tag) == "channel":
            channel = el
            break

    title = _child_text(channel, "title")
    description = _child_text(channel, "description", "subtitle")
    if title is None and root_name in {"urlset", "sitemapindex"}:
        title = "Sitemap index" if root_name == "sitemapindex" else "Sitemap"

    blocks: list[str] = []
    if title:
        blocks.append(f"# {title}")
    if description:
        blocks.append(description)

    for el in channel.iter():
        if el is channel or _local(el.tag) not in _ENTRY_TAGS:
            continue
        lines = _entry_lines(el)
        if lines:
            blocks.append("\n".join(lines))

    return TransformResult(
        text=with_front_matter(
            "\n\n".join(blocks), source_url, title=title, description=description
        ),
        links=resolve_links(iter_link_targets(root), source_url),
        metadata=TransformMetadata(title=title, description=description),
    )
