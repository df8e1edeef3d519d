from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any

from .engines import EngineKind
from .urls import UrlScope, derive_allowed_prefixes, validate_start_url

DEFAULT_BASE_DIR = Path("~/.docharvest")
BASE_DIR_ENV = "DOCHARVEST_HOME"


def base_dir() -> Path:
    raw = os.environ.get(BASE_DIR_ENV)
    return Path(raw).expanduser() if raw else DEFAULT_BASE_DIR.expanduser()


@dataclass(frozen=True)
class CrawlTypeInfo:
    display_name: str
    start_url: str
    dir_name: str
    engine: EngineKind
    allowed_prefixes: tuple[str, ...]


class CrawlType(str, Enum):
    DOCS = "docs"
    SWIFT = "swift"
    EVOLUTION = "evolution"
    ALL = "all"

    @classmethod
    def concrete(cls) -> list[CrawlType]:
        return [t for t in cls if t is not cls.ALL]

    @property
    def info(self) -> CrawlTypeInfo:
        if self is CrawlType.ALL:
            raise ValueError("'all' expands to the concrete crawl types")
        return _CATALOG[self]

    def default_output_dir(self, base: Path | None = None) -> Path:
        return (base or base_dir()) / self.info.dir_name


_CATALOG: dict[CrawlType, CrawlTypeInfo] = {
    CrawlType.DOCS: CrawlTypeInfo(
        display_name="Apple Developer Documentation",
        start_url="https://developer.apple.com/documentation/",
        dir_name="docs",
        engine=EngineKind.JSON_API,
        allowed_prefixes=("https://developer.apple.com/documentation",),
    ),
    CrawlType.SWIFT: CrawlTypeInfo(
        display_name="The Swift Programming Language",
        start_url=(
            "https://docs.swift.org/swift-book/documentation/"
            "the-swift-programming-language/"
        ),
        dir_name="swift-book",
        engine=EngineKind.HTTP,
        allowed_prefixes=("https://docs.swift.org/swift-book",),
    ),
    CrawlType.EVOLUTION: CrawlTypeInfo(
        display_name="Swift Evolution Proposals",
        start_url=(
            "https://api.github.com/repos/swiftlang/swift-evolution/contents/proposals"
        ),
        dir_name="swift-evolution",
        engine=EngineKind.HTTP,
        allowed_prefixes=(
            "https://api.github.com/repos/swiftlang/swift-evolution/contents/proposals",
            "https://raw.githubusercontent.com/swiftlang/swift-evolution/",
        ),
    ),
}


@dataclass
class CrawlConfig:
    start_url: str
    allowed_prefixes: tuple[str, ...] = ()
    max_pages: int = 15000
    max_depth: int = 15
    output_dir: Path | None = None
    retry_attempts: int = 3
    retry_delay_s: float = 1.0
    request_delay_s: float = 0.5
    force_recrawl: bool = False
    resume: bool = True
    fetch_timeout_s: float = 30.0
    recycle_every: int = 50
    checkpoint_every: int = 25
    checkpoint_interval_s: float = 30.0
    progress_log_every: int = 50
    engine: EngineKind = EngineKind.HTTP
    crawl_type: CrawlType | None = None

    def validated(self) -> CrawlConfig:
        """Canonical start URL and allow-list; raises ``InvalidStartURL``."""

        start = validate_start_url(self.start_url)
        prefixes = tuple(p for p in self.allowed_prefixes if p)
        if not prefixes:
            prefixes = derive_allowed_prefixes(start)
        elif not UrlScope(prefixes).is_allowed(start):
            # The start page is always crawlable.
            prefixes = (*prefixes, start)
        return replace(self, start_url=start, allowed_prefixes=prefixes)

    @classmethod
    def for_type(cls, crawl_type: CrawlType, **overrides: Any) -> CrawlConfig:
        info = crawl_type.info
        values: dict[str, Any] = {
            "start_url": info.start_url,
            "allowed_prefixes": info.allowed_prefixes,
            "engine": info.engine,
            "crawl_type": crawl_type,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        # A custom start URL without explicit prefixes gets derived ones.
        if overrides.get("start_url") and not overrides.get("allowed_prefixes"):
            values["allowed_prefixes"] = ()
        return cls(**values)

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> CrawlConfig:
        known = {f.name for f in fields(cls)}
        unknown = set(obj) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        if "start_url" not in obj:
            raise ValueError("Config is missing 'start_url'")

        values = dict(obj)
        if values.get("output_dir") is not None:
            values["output_dir"] = Path(values["output_dir"]).expanduser()
        if "allowed_prefixes" in values:
            values["allowed_prefixes"] = tuple(values["allowed_prefixes"] or ())
        if "engine" in values:
            values["engine"] = EngineKind(values["engine"])
        if values.get("crawl_type") is not None:
            values["crawl_type"] = CrawlType(values["crawl_type"])
        return cls(**values)

    @classmethod
    def from_file(cls, path: Path) -> CrawlConfig:
        try:
            obj = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in config file {path}: {e}") from e
        if not isinstance(obj, dict):
            raise ValueError(f"Config file {path} must contain a JSON object")
        return cls.from_dict(obj)
