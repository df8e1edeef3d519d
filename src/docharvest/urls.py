from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Iterable, NewType
from urllib.parse import ParseResult, urlparse, urlunparse

from .errors import InvalidStartURL

# Crawl targets are plain strings in canonical form. On-disk locations are
# always pathlib.Path; the two are never converted through each other.
CanonicalURL = NewType("CanonicalURL", str)

APPLE_DEVELOPER_BASE = "https://developer.apple.com/"
APPLE_DOCS_BASE = "https://developer.apple.com/documentation/"
SWIFT_DOCS_BASE = "https://docs.swift.org/"
SWIFT_ORG_BASE = "https://www.swift.org/"

KNOWN_BASE_URLS: tuple[str, ...] = (
    APPLE_DOCS_BASE,
    APPLE_DEVELOPER_BASE,
    SWIFT_DOCS_BASE,
    SWIFT_ORG_BASE,
)

_DEFAULT_PORTS = {"http": ":80", "https": ":443"}
_SCHEME_PREFIX = re.compile(r"^[a-z][a-z0-9+.-]*://")
_SLUG_UNSAFE = re.compile(r"[^a-z0-9._-]+")
_SLUG_MAX_LEN = 180


def normalize_url(raw_url: str, *, keep_query: bool = False) -> CanonicalURL:
    """Normalize a URL for de-duplication.

    - Lowercases scheme + hostname and drops default ports.
    - Strips fragments, and the query unless ``keep_query`` is set.
    - An empty path becomes "/".
    """

    parsed: ParseResult = urlparse(raw_url.strip())
    scheme = (parsed.scheme or "").lower()
    netloc = (parsed.netloc or "").lower()

    default_port = _DEFAULT_PORTS.get(scheme)
    if default_port and netloc.endswith(default_port):
        netloc = netloc[: -len(default_port)]

    parsed = parsed._replace(
        scheme=scheme,
        netloc=netloc,
        path=parsed.path or "/",
        params="",
        fragment="",
        query=parsed.query if keep_query else "",
    )
    return CanonicalURL(urlunparse(parsed))


def validate_start_url(raw_url: str) -> CanonicalURL:
    if not raw_url or not raw_url.strip():
        raise InvalidStartURL("Start URL is empty")
    try:
        parsed = urlparse(raw_url.strip())
    except ValueError as e:
        raise InvalidStartURL(f"Invalid start URL: {raw_url}") from e
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.hostname:
        raise InvalidStartURL(f"Invalid start URL: {raw_url}")
    return normalize_url(raw_url)


def derive_allowed_prefixes(start_url: str) -> tuple[str, ...]:
    """Default allow-list for a start URL: its origin, narrowed for known sites.

    A narrowed list always keeps the start URL itself in scope.
    """

    parsed = urlparse(normalize_url(start_url))
    base = f"{parsed.scheme}://{parsed.netloc}/"
    if (parsed.hostname or "").endswith("apple.com"):
        docs = f"{base}documentation/"
        if UrlScope((docs,)).is_allowed(start_url):
            return (docs,)
        return (docs, start_url)
    return (base,)


_ASSET_EXTS = {
    ".css",
    ".js",
    ".mjs",
    ".map",
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".webp",
    ".svg",
    ".ico",
    ".woff",
    ".woff2",
    ".ttf",
    ".otf",
    ".eot",
    ".pdf",
    ".zip",
    ".gz",
    ".tgz",
}


def is_asset_intent_url(url: str) -> bool:
    path = urlparse(url).path.lower()
    return any(path.endswith(ext) for ext in _ASSET_EXTS)


def _within_prefix(url: ParseResult, prefix: ParseResult) -> bool:
    if url.scheme != prefix.scheme or url.netloc != prefix.netloc:
        return False
    base = prefix.path.rstrip("/")
    # "/docs" admits "/docs" and "/docs/a" but not "/docs-old".
    return not base or url.path == base or url.path.startswith(base + "/")


@dataclass(frozen=True)
class UrlScope:
    """Allow-list of URL prefixes.

    A URL is in scope when scheme and host (port included) match a prefix
    exactly and its path lies under the prefix path on a segment boundary.
    """

    allowed_prefixes: tuple[str, ...]

    def is_allowed(self, url: str) -> bool:
        parsed = urlparse(normalize_url(url))
        return any(
            _within_prefix(parsed, urlparse(normalize_url(prefix)))
            for prefix in self.allowed_prefixes
            if prefix
        )


def _strip_longest_prefix(text: str, prefixes: Iterable[str]) -> str:
    for prefix in sorted({p.lower() for p in prefixes if p}, key=len, reverse=True):
        if not text.startswith(prefix):
            continue
        rest = text[len(prefix) :]
        # "https://x/docs" must not eat the "-old" of "https://x/docs-old".
        if prefix.endswith("/") or not rest or rest[0] in "/?#":
            return rest
    return _SCHEME_PREFIX.sub("", text)


def url_to_slug(url: str, *, strip_prefixes: Iterable[str] = ()) -> str:
    """File stem for a page URL.

    Lowercase, strip the longest known prefix (or at least the scheme),
    replace runs of characters outside [a-z0-9._-] with "_", collapse and
    trim underscores. An empty result is "index".
    """

    cleaned = _strip_longest_prefix(
        url.lower(), (*strip_prefixes, *KNOWN_BASE_URLS)
    )
    cleaned = _SLUG_UNSAFE.sub("_", cleaned)
    cleaned = re.sub(r"_+", "_", cleaned).strip("_")
    if not cleaned:
        return "index"
    if len(cleaned) > _SLUG_MAX_LEN:
        digest = hashlib.sha256(cleaned.encode("utf-8")).hexdigest()[:12]
        cleaned = f"{cleaned[:_SLUG_MAX_LEN - 13]}_{digest}"
    return cleaned


def extract_group(url: str) -> str:
    """Logical group ("framework") of a documentation URL."""

    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    parts = [p for p in parsed.path.split("/") if p]

    if host.endswith("swift.org"):
        if "swift-book" in parts:
            return "swift-book"
        return "swift-org"

    if "swift-evolution" in parts:
        return "swift-evolution"

    if "documentation" in parts:
        idx = parts.index("documentation")
        if idx + 1 < len(parts):
            return safe_group(parts[idx + 1])

    return "root"


def safe_group(name: str) -> str:
    """Directory-safe form of a group label; "root" when nothing usable remains."""

    cleaned = _SLUG_UNSAFE.sub("_", name.strip().lower()).strip("_")
    if not cleaned or set(cleaned) == {"."}:
        return "root"
    return cleaned
