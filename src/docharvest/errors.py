from __future__ import annotations


class DocHarvestError(Exception):
    """Base class for every error raised by docharvest."""


class FetchError(DocHarvestError):
    """A single URL could not be fetched or transformed."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"{message}: {url}")
        self.url = url


class FetchTimeout(FetchError):
    """A fetch attempt exceeded its per-fetch timeout."""


class InvalidStartURL(DocHarvestError):
    """The start URL cannot define a crawl (not absolute http/https)."""


class OutputDirectoryError(DocHarvestError):
    """The output root does not exist and cannot be created."""


class SessionCorrupt(DocHarvestError):
    """A persisted metadata/session document failed schema validation."""


class CheckpointWriteFailed(DocHarvestError):
    """Metadata could not be written to disk."""


class SubRunFailed(DocHarvestError):
    """One crawl type of a multi-type run failed as a whole."""

    def __init__(self, crawl_type: str, cause: BaseException) -> None:
        super().__init__(f"{crawl_type}: {cause}")
        self.crawl_type = crawl_type
        self.cause = cause
