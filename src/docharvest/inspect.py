from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import SessionCorrupt
from .models import CrawlMetadata, format_iso
from .state import metadata_path
from .storage import load_json, relpath_posix


@dataclass(frozen=True)
class OutputInspection:
    output_dir: Path
    pages: int
    groups: dict[str, int]
    missing_files: int
    missing_paths_sample: list[str]
    session_active: bool
    queued: int
    last_crawl: str | None
    stats: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "output_dir": str(self.output_dir),
            "pages": self.pages,
            "groups": dict(self.groups),
            "missing_files": self.missing_files,
            "missing_paths_sample": list(self.missing_paths_sample),
            "session_active": self.session_active,
            "queued": self.queued,
            "last_crawl": self.last_crawl,
            "stats": dict(self.stats),
        }


def inspect_output(
    *,
    output_dir: Path,
    max_missing_paths_sample: int = 25,
) -> OutputInspection:
    """Check that every page recorded in ``metadata.json`` exists on disk."""

    output_dir = output_dir.resolve()
    path = metadata_path(output_dir)
    if not path.exists():
        raise FileNotFoundError(f"Missing metadata.json in: {output_dir}")

    raw = load_json(path)
    if raw is None:
        raise ValueError(f"Invalid JSON in metadata.json in: {output_dir}")
    try:
        metadata = CrawlMetadata.from_dict(raw)
    except SessionCorrupt as e:
        raise ValueError(f"Invalid metadata.json in {output_dir}: {e}") from e

    groups: dict[str, int] = {}
    missing_files = 0
    missing_paths_sample: list[str] = []

    for record in metadata.pages.values():
        groups[record.framework] = groups.get(record.framework, 0) + 1
        candidate = record.file_path
        if not candidate.is_absolute():
            candidate = output_dir / candidate
        if not candidate.exists():
            missing_files += 1
            if len(missing_paths_sample) < max_missing_paths_sample:
                try:
                    shown = relpath_posix(candidate, output_dir)
                except ValueError:
                    shown = str(candidate)
                missing_paths_sample.append(shown)

    session = metadata.crawl_state
    return OutputInspection(
        output_dir=output_dir,
        pages=len(metadata.pages),
        groups=dict(sorted(groups.items())),
        missing_files=missing_files,
        missing_paths_sample=missing_paths_sample,
        session_active=bool(session and session.is_active),
        queued=len(session.queue) if session else 0,
        last_crawl=format_iso(metadata.last_crawl) if metadata.last_crawl else None,
        stats=metadata.stats.to_dict(),
    )
