"""JSON transforms.

Apple's documentation pages are client-rendered from DocC "render JSON"
documents served under ``/tutorials/data``. :func:`docc_to_markdown` renders
one of those documents; :func:`json_listing_to_markdown` handles any other
JSON body (for example a GitHub contents listing) as a fenced block plus the
links found in it.
"""

from __future__ import annotations

import json
from typing import Any, Iterator
from urllib.parse import urlparse, urlunparse

from ..urls import safe_group
from .front_matter import with_front_matter
from .result import TransformMetadata, TransformResult, resolve_links

_DOCC_DATA_PREFIX = "/tutorials/data"
_LINK_KEYS = ("download_url", "href", "link", "loc")


def api_url(documentation_url: str) -> str:
    """Map a ``/documentation/...`` page URL to its render-JSON URL.

    ``https://developer.apple.com/documentation/swiftui/view`` becomes
    ``https://developer.apple.com/tutorials/data/documentation/swiftui/view.json``.
    URLs outside ``/documentation`` are returned unchanged.
    """

    parsed = urlparse(documentation_url)
    path = parsed.path.rstrip("/")
    if not (path == "/documentation" or path.startswith("/documentation/")):
        return documentation_url
    return urlunparse(
        parsed._replace(
            path=f"{_DOCC_DATA_PREFIX}{path}.json", params="", query="", fragment=""
        )
    )


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _dicts(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


def _str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _identifiers(section: dict[str, Any]) -> list[str]:
    value = section.get("identifiers")
    if not isinstance(value, list):
        return []
    return [i for i in value if isinstance(i, str)]


# Inline and block rendering.


def _inline(nodes: Any, refs: dict[str, Any]) -> str:
    parts: list[str] = []
    for node in _dicts(nodes):
        kind = node.get("type")
        if kind == "text":
            parts.append(node.get("text", ""))
        elif kind == "codeVoice":
            parts.append(f"`{node.get('code', '')}`")
        elif kind in {"emphasis", "newTerm"}:
            parts.append(f"*{_inline(node.get('inlineContent'), refs)}*")
        elif kind == "strong":
            parts.append(f"**{_inline(node.get('inlineContent'), refs)}**")
        elif kind == "reference":
            ref = _mapping(refs.get(node.get("identifier", "")))
            title = node.get("overridingTitle") or ref.get("title") or node.get(
                "identifier", ""
            )
            url = ref.get("url")
            parts.append(f"[{title}]({url})" if url else title)
        elif kind == "link":
            title = node.get("title") or node.get("destination", "")
            parts.append(f"[{title}]({node.get('destination', '')})")
        elif kind == "image":
            ref = _mapping(refs.get(node.get("identifier", "")))
            alt = ref.get("alt") or node.get("identifier", "")
            parts.append(f"![{alt}]")
        elif "inlineContent" in node:
            parts.append(_inline(node.get("inlineContent"), refs))
    return "".join(parts)


def _blocks(nodes: Any, refs: dict[str, Any]) -> Iterator[str]:
    for node in _dicts(nodes):
        kind = node.get("type")
        if kind == "heading":
            level = min(max(int(node.get("level", 2)), 1), 6)
            yield f"{'#' * level} {node.get('text', '')}"
        elif kind == "paragraph":
            yield _inline(node.get("inlineContent"), refs)
        elif kind == "codeListing":
            syntax = node.get("syntax") or ""
            code = "\n".join(node.get("code") or [])
            yield f"```{syntax}\n{code}\n```"
        elif kind in {"unorderedList", "orderedList"}:
            lines = []
            for n, item in enumerate(_dicts(node.get("items")), start=1):
                marker = f"{n}." if kind == "orderedList" else "-"
                body = " ".join(_blocks(item.get("content"), refs)).strip()
                lines.append(f"{marker} {body}")
            yield "\n".join(lines)
        elif kind == "aside":
            label = node.get("name") or (node.get("style") or "note").capitalize()
            body = " ".join(_blocks(node.get("content"), refs)).strip()
            yield f"> **{label}:** {body}"
        elif kind == "table":
            yield from _table(node, refs)
        elif "inlineContent" in node:
            yield _inline(node.get("inlineContent"), refs)


def _table(node: dict[str, Any], refs: dict[str, Any]) -> Iterator[str]:
    rows = node.get("rows") or []
    if not rows:
        return
    rendered = [
        [" ".join(_blocks(cell, refs)).replace("|", "\\|") for cell in row]
        for row in rows
    ]
    width = max(len(r) for r in rendered)
    lines = []
    for i, row in enumerate(rendered):
        row = row + [""] * (width - len(row))
        lines.append("| " + " | ".join(row) + " |")
        if i == 0:
            lines.append("|" + " --- |" * width)
    yield "\n".join(lines)


def _declarations(section: dict[str, Any]) -> Iterator[str]:
    for decl in _dicts(section.get("declarations")):
        code = "".join(str(t.get("text", "")) for t in _dicts(decl.get("tokens")))
        if code.strip():
            yield f"```swift\n{code}\n```"


def _topic_sections(
    title: str, sections: Any, refs: dict[str, Any]
) -> Iterator[str]:
    sections = _dicts(sections)
    if not sections:
        return
    yield f"## {title}"
    for section in sections:
        if section.get("title"):
            yield f"### {section['title']}"
        lines = []
        for ident in _identifiers(section):
            ref = _mapping(refs.get(ident))
            name = ref.get("title") or ident
            url = ref.get("url")
            entry = f"- [{name}]({url})" if url else f"- {name}"
            abstract = _inline(ref.get("abstract"), refs)
            if abstract:
                entry += f": {abstract}"
            lines.append(entry)
        if lines:
            yield "\n".join(lines)


def _platforms(metadata: dict[str, Any]) -> list[dict[str, Any]]:
    platforms = metadata.get("platforms")
    if not isinstance(platforms, list):
        return []
    return [p for p in platforms if isinstance(p, dict)]


def _render_docc(doc: dict[str, Any]) -> tuple[str, str | None]:
    refs = _mapping(doc.get("references"))
    metadata = _mapping(doc.get("metadata"))
    title = _str(metadata.get("title"))

    out: list[str] = []
    if title:
        out.append(f"# {title}")
    role_heading = _str(metadata.get("roleHeading"))
    if role_heading:
        out.append(f"**{role_heading}**")

    abstract = _inline(doc.get("abstract"), refs).strip()
    if abstract:
        out.append(abstract)

    platforms = _platforms(metadata)
    if platforms:
        names = []
        for p in platforms:
            label = p.get("name", "")
            if p.get("introducedAt"):
                label += f" {p['introducedAt']}+"
            if p.get("deprecated"):
                label += " (deprecated)"
            if p.get("beta"):
                label += " (beta)"
            names.append(label)
        out.append("**Platforms:** " + ", ".join(names))

    for section in _dicts(doc.get("primaryContentSections")):
        kind = section.get("kind")
        if kind == "declarations":
            out.extend(_declarations(section))
        elif kind == "parameters":
            params = _dicts(section.get("parameters"))
            if params:
                out.append("## Parameters")
                out.append(
                    "\n".join(
                        f"- `{p.get('name', '')}`: "
                        + " ".join(_blocks(p.get("content"), refs)).strip()
                        for p in params
                    )
                )
        elif kind == "content":
            out.extend(_blocks(section.get("content"), refs))

    out.extend(_topic_sections("Topics", doc.get("topicSections"), refs))
    for rel in _dicts(doc.get("relationshipsSections")):
        out.extend(_topic_sections(rel.get("title") or "Relationships", [rel], refs))
    out.extend(_topic_sections("See Also", doc.get("seeAlsoSections"), refs))

    return "\n\n".join(s for s in out if s.strip()), abstract or None


def _docc_link_targets(doc: dict[str, Any]) -> Iterator[str]:
    refs = _mapping(doc.get("references"))
    for section_key in ("topicSections", "seeAlsoSections", "relationshipsSections"):
        for section in _dicts(doc.get(section_key)):
            for ident in _identifiers(section):
                url = _mapping(refs.get(ident)).get("url")
                if isinstance(url, str):
                    yield url
    for ref in refs.values():
        if not isinstance(ref, dict) or ref.get("type") not in {"topic", "link"}:
            continue
        url = ref.get("url")
        if isinstance(url, str) and url.startswith(("/documentation", "http")):
            yield url


def docc_metadata(doc: dict[str, Any]) -> TransformMetadata | None:
    metadata = doc.get("metadata")
    if not isinstance(metadata, dict):
        return None
    platforms = _platforms(metadata)
    modules = _dicts(metadata.get("modules"))
    name = _str(modules[0].get("name")) if modules else None
    return TransformMetadata(
        title=_str(metadata.get("title")),
        description=_str(metadata.get("role")),
        group=safe_group(name) if name else None,
        platforms=tuple(p["name"] for p in platforms if _str(p.get("name"))),
        is_deprecated=any(p.get("deprecated") is True for p in platforms),
    )


def docc_to_markdown(body: bytes | str, *, source_url: str) -> TransformResult:
    """Render a DocC document. ``source_url`` is the documentation URL."""

    doc = json.loads(body)
    if not isinstance(doc, dict):
        raise ValueError("DocC render JSON must be an object")
    markdown, abstract = _render_docc(doc)
    meta = docc_metadata(doc)
    return TransformResult(
        text=with_front_matter(
            markdown,
            source_url,
            title=meta.title if meta else None,
            description=abstract,
        ),
        links=resolve_links(_docc_link_targets(doc), source_url),
        metadata=meta,
    )


def _walk_link_values(obj: Any) -> Iterator[str]:
    if isinstance(obj, dict):
        for key, value in obj.items():
            if key in _LINK_KEYS and isinstance(value, str):
                yield value
            else:
                yield from _walk_link_values(value)
    elif isinstance(obj, list):
        for item in obj:
            yield from _walk_link_values(item)


def json_listing_to_markdown(body: bytes | str, *, source_url: str) -> TransformResult:
    data = json.loads(body)
    pretty = json.dumps(data, indent=2, ensure_ascii=False, sort_keys=True)
    return TransformResult(
        text=with_front_matter(f"```json\n{pretty}\n```", source_url),
        links=resolve_links(_walk_link_values(data), source_url),
        metadata=None,
    )


def is_docc_document(body: bytes | str) -> bool:
    try:
        doc = json.loads(body)
    except ValueError:
        return False
    return isinstance(doc, dict) and "metadata" in doc and (
        "primaryContentSections" in doc or "topicSections" in doc or "references" in doc
    )
