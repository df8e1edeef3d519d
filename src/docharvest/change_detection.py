"""Content fingerprints and the skip-vs-write decision.

Fingerprints hash a stabilized projection of the transformed text so that
two fetches of the same content at different times agree: the injected
front-matter block, "rendered at"-style generator stamps, session
identifiers and asset cache-busting values are removed first. Dates that
belong to the content itself (sitemap lastmod, feed updated) are kept.
"""

from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Mapping

from .models import PageRecord

_FRONT_MATTER = re.compile(r"\A\s*---\n.*?\n---[ \t]*(?:\n|\Z)", re.DOTALL)
_ISO_TIMESTAMP = (
    r"\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?"
)
# Only stamps a page generator writes about itself; content dates stay.
_RENDER_STAMP = re.compile(
    r"\b((?:rendered|generated|built|crawled|fetched|retrieved)"
    r"(?:\s+(?:at|on))?:?\s+)" + _ISO_TIMESTAMP,
    re.IGNORECASE,
)
_SESSION_PARAM = re.compile(
    r"([?&;](?:jsessionid|phpsessid|sid|sessionid|session_id)=)[^&#\s)\"']+",
    re.IGNORECASE,
)
_CACHE_BUSTER = re.compile(
    r"(\.(?:css|js|mjs|png|jpe?g|gif|svg|webp|ico|woff2?)\?)[^\s)\"'#]+",
    re.IGNORECASE,
)


def stabilize(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _FRONT_MATTER.sub("", text, count=1)
    text = _RENDER_STAMP.sub(r"\1<timestamp>", text)
    text = _SESSION_PARAM.sub(r"\1<session>", text)
    text = _CACHE_BUSTER.sub(r"\1", text)
    lines = [line.rstrip() for line in text.split("\n")]
    return "\n".join(lines).strip() + "\n"


def fingerprint(text: str) -> str:
    return hashlib.sha256(stabilize(text).encode("utf-8")).hexdigest()


class ChangeDetector:
    """Decides whether a freshly transformed page must be written.

    ``output_dir`` anchors relative ``PageRecord.file_path`` values.
    """

    def __init__(self, pages: Mapping[str, PageRecord], output_dir: Path) -> None:
        self._pages = pages
        self._output_dir = output_dir

    def record_file(self, record: PageRecord) -> Path:
        path = record.file_path
        return path if path.is_absolute() else self._output_dir / path

    def should_write(self, url: str, digest: str, *, force_recrawl: bool) -> bool:
        if force_recrawl:
            return True
        record = self._pages.get(url)
        if record is None:
            return True
        if record.content_hash != digest:
            return True
        return not self.record_file(record).exists()
