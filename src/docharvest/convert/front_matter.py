from __future__ import annotations

import json
from datetime import datetime

from ..models import format_iso, utc_now


def _scalar(value: str) -> str:
    # JSON strings are valid YAML scalars and survive colons and quotes.
    return json.dumps(" ".join(value.split()), ensure_ascii=False)


def render_front_matter(
    source_url: str,
    *,
    crawled: datetime | None = None,
    title: str | None = None,
    description: str | None = None,
) -> str:
    lines = [
        "---",
        f"source: {source_url}",
        f"crawled: {format_iso(crawled or utc_now())}",
    ]
    if title:
        lines.append(f"title: {_scalar(title)}")
    if description:
        lines.append(f"description: {_scalar(description)}")
    lines.append("---")
    return "\n".join(lines) + "\n\n"


def with_front_matter(
    body: str,
    source_url: str,
    *,
    title: str | None = None,
    description: str | None = None,
) -> str:
    return (
        render_front_matter(source_url, title=title, description=description)
        + body.strip()
        + "\n"
    )
