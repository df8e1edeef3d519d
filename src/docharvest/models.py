"""Persisted crawl ledger: page records, statistics and the resumable session.

The JSON form written to ``<output_dir>/metadata.json`` is::

    {
      "pages": {"<url>": {"url", "framework", "filePath", "contentHash",
                          "depth", "lastCrawled"}},
      "lastCrawl": "<iso>" | null,
      "stats": {"totalPages", "newPages", "updatedPages", "skippedPages",
                "errors", "startTime", "endTime"},
      "crawlState": {"visited", "queue", "startURL", "outputDirectory",
                     "sessionStartTime", "lastSaveTime", "isActive"}
    }

``crawlState`` is omitted when no session is in flight. Dates are ISO-8601
strings in UTC.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from .errors import SessionCorrupt


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def format_iso(dt: datetime) -> str:
    dt = dt.astimezone(timezone.utc)
    text = dt.strftime("%Y-%m-%dT%H:%M:%S")
    if dt.microsecond:
        text += f".{dt.microsecond:06d}"
    return text + "Z"


def parse_iso(text: str) -> datetime:
    value = text.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _optional_iso(dt: datetime | None) -> str | None:
    return format_iso(dt) if dt is not None else None


def _field(obj: Mapping[str, Any], key: str, kind: type | tuple[type, ...]) -> Any:
    if not isinstance(obj, Mapping) or key not in obj:
        raise SessionCorrupt(f"missing field {key!r}")
    value = obj[key]
    # bool is an int subclass; counters and depths must be real ints.
    if isinstance(value, bool) and kind is int:
        raise SessionCorrupt(f"field {key!r} has wrong type")
    if not isinstance(value, kind):
        raise SessionCorrupt(f"field {key!r} has wrong type")
    return value


def _date_field(obj: Mapping[str, Any], key: str, *, optional: bool = False):
    if optional and obj.get(key) is None:
        return None
    raw = _field(obj, key, str)
    try:
        return parse_iso(raw)
    except ValueError as e:
        raise SessionCorrupt(f"field {key!r} is not an ISO-8601 date") from e


@dataclass
class PageRecord:
    url: str
    framework: str
    file_path: Path
    content_hash: str
    depth: int
    last_crawled: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "framework": self.framework,
            "filePath": str(self.file_path),
            "contentHash": self.content_hash,
            "depth": self.depth,
            "lastCrawled": format_iso(self.last_crawled),
        }

    @classmethod
    def from_dict(cls, obj: Mapping[str, Any]) -> PageRecord:
        depth = _field(obj, "depth", int)
        if depth < 0:
            raise SessionCorrupt("field 'depth' is negative")
        return cls(
            url=_field(obj, "url", str),
            framework=_field(obj, "framework", str),
            file_path=Path(_field(obj, "filePath", str)),
            content_hash=_field(obj, "contentHash", str),
            depth=depth,
            last_crawled=_date_field(obj, "lastCrawled"),
        )


@dataclass
class CrawlStatistics:
    total_pages: int = 0
    new_pages: int = 0
    updated_pages: int = 0
    skipped_pages: int = 0
    errors: int = 0
    start_time: datetime | None = None
    end_time: datetime | None = None

    @property
    def duration(self) -> float | None:
        if self.start_time is None or self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()

    def copy(self) -> CrawlStatistics:
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalPages": self.total_pages,
            "newPages": self.new_pages,
            "updatedPages": self.updated_pages,
            "skippedPages": self.skipped_pages,
            "errors": self.errors,
            "startTime": _optional_iso(self.start_time),
            "endTime": _optional_iso(self.end_time),
        }

    @classmethod
    def from_dict(cls, obj: Mapping[str, Any]) -> CrawlStatistics:
        return cls(
            total_pages=_field(obj, "totalPages", int),
            new_pages=_field(obj, "newPages", int),
            updated_pages=_field(obj, "updatedPages", int),
            skipped_pages=_field(obj, "skippedPages", int),
            errors=_field(obj, "errors", int),
            start_time=_date_field(obj, "startTime", optional=True),
            end_time=_date_field(obj, "endTime", optional=True),
        )


@dataclass(frozen=True)
class QueuedURL:
    url: str
    depth: int

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "depth": self.depth}

    @classmethod
    def from_dict(cls, obj: Mapping[str, Any]) -> QueuedURL:
        depth = _field(obj, "depth", int)
        if depth < 0:
            raise SessionCorrupt("queued depth is negative")
        return cls(url=_field(obj, "url", str), depth=depth)


@dataclass
class CrawlSession:
    start_url: str
    output_directory: Path
    visited: set[str] = field(default_factory=set)
    queue: list[QueuedURL] = field(default_factory=list)
    session_start_time: datetime = field(default_factory=utc_now)
    last_save_time: datetime = field(default_factory=utc_now)
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "visited": sorted(self.visited),
            "queue": [q.to_dict() for q in self.queue],
            "startURL": self.start_url,
            "outputDirectory": str(self.output_directory),
            "sessionStartTime": format_iso(self.session_start_time),
            "lastSaveTime": format_iso(self.last_save_time),
            "isActive": self.is_active,
        }

    @classmethod
    def from_dict(cls, obj: Mapping[str, Any]) -> CrawlSession:
        visited = _field(obj, "visited", list)
        if not all(isinstance(u, str) for u in visited):
            raise SessionCorrupt("visited must be a list of strings")
        queue = _field(obj, "queue", list)
        return cls(
            start_url=_field(obj, "startURL", str),
            # Filesystem path constructor: the stored string is a path, not a URI.
            output_directory=Path(_field(obj, "outputDirectory", str)),
            visited=set(visited),
            queue=[QueuedURL.from_dict(q) for q in queue],
            session_start_time=_date_field(obj, "sessionStartTime"),
            last_save_time=_date_field(obj, "lastSaveTime"),
            is_active=_field(obj, "isActive", bool),
        )


@dataclass
class CrawlMetadata:
    pages: dict[str, PageRecord] = field(default_factory=dict)
    last_crawl: datetime | None = None
    stats: CrawlStatistics = field(default_factory=CrawlStatistics)
    crawl_state: CrawlSession | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "pages": {url: rec.to_dict() for url, rec in sorted(self.pages.items())},
            "lastCrawl": _optional_iso(self.last_crawl),
            "stats": self.stats.to_dict(),
        }
        if self.crawl_state is not None:
            out["crawlState"] = self.crawl_state.to_dict()
        return out

    @classmethod
    def from_dict(cls, obj: Mapping[str, Any]) -> CrawlMetadata:
        if not isinstance(obj, Mapping):
            raise SessionCorrupt("metadata root must be an object")
        raw_pages = _field(obj, "pages", dict)
        pages: dict[str, PageRecord] = {}
        for url, raw in raw_pages.items():
            record = PageRecord.from_dict(raw)
            if record.url != url:
                raise SessionCorrupt(f"page key does not match its url: {url}")
            pages[url] = record

        raw_state = obj.get("crawlState")
        return cls(
            pages=pages,
            last_crawl=_date_field(obj, "lastCrawl", optional=True),
            stats=CrawlStatistics.from_dict(_field(obj, "stats", dict)),
            crawl_state=(
                CrawlSession.from_dict(raw_state) if raw_state is not None else None
            ),
        )
