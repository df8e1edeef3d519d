from __future__ import annotations

import re

from .front_matter import with_front_matter
from .result import TransformMetadata, TransformResult, resolve_links

_MD_LINK = re.compile(r"\]\(\s*<?([^)\s>]+)>?(?:\s+\"[^\"]*\")?\s*\)")
_MD_HEADING = re.compile(r"^#\s+(.+?)\s*#*\s*$", re.MULTILINE)


def text_to_markdown(text: str, *, source_url: str) -> TransformResult:
    """Markdown and plain-text bodies pass through; inline links are followed."""

    m = _MD_HEADING.search(text)
    title = m.group(1).strip() if m else None
    return TransformResult(
        text=with_front_matter(text, source_url, title=title),
        links=resolve_links((m.group(1) for m in _MD_LINK.finditer(text)), source_url),
        metadata=TransformMetadata(title=title) if title else None,
    )
