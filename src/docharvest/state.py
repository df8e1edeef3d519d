from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Iterable

from .errors import CheckpointWriteFailed, SessionCorrupt
from .models import CrawlMetadata, CrawlSession, utc_now
from .storage import load_json, write_json_atomic

logger = logging.getLogger(__name__)

METADATA_FILENAME = "metadata.json"


def metadata_path(output_dir: Path) -> Path:
    return output_dir / METADATA_FILENAME


class SessionStore:
    """Reads and writes ``<output_dir>/metadata.json``.

    Reads never raise: an absent, unreadable or schema-invalid file is the
    same as no file. Checkpoint writes are non-fatal (``save`` returns
    False); only :meth:`save_final` raises.
    """

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = output_dir
        self.path = metadata_path(output_dir)

    def _write(self, metadata: CrawlMetadata) -> None:
        try:
            write_json_atomic(self.path, metadata.to_dict())
        except OSError as e:
            raise CheckpointWriteFailed(f"Could not write {self.path}: {e}") from e

    def save(self, session: CrawlSession | None, metadata: CrawlMetadata) -> bool:
        if session is not None:
            session.last_save_time = utc_now()
        snapshot = replace(metadata, crawl_state=session)
        try:
            self._write(snapshot)
        except CheckpointWriteFailed as e:
            logger.warning("Checkpoint failed, continuing: %s", e)
            return False
        return True

    def save_final(self, session: CrawlSession | None, metadata: CrawlMetadata) -> None:
        if session is not None:
            session.last_save_time = utc_now()
        self._write(replace(metadata, crawl_state=session))

    def load_metadata(self) -> CrawlMetadata | None:
        return load_metadata(self.path)

    def load(self) -> CrawlSession | None:
        return load_session(self.path)


def load_metadata(path: Path) -> CrawlMetadata | None:
    raw = load_json(path)
    if raw is None:
        if path.exists():
            logger.warning("Ignoring unreadable metadata file: %s", path)
        return None
    try:
        return CrawlMetadata.from_dict(raw)
    except SessionCorrupt as e:
        logger.warning("Ignoring corrupt metadata file %s: %s", path, e)
        return None


def load_session(path: Path) -> CrawlSession | None:
    metadata = load_metadata(path)
    if metadata is None:
        return None
    return metadata.crawl_state


def _candidate_dirs(
    candidate_dirs: Iterable[Path], base_dir: Path | None
) -> Iterable[Path]:
    seen: set[Path] = set()
    for d in candidate_dirs:
        if d not in seen:
            seen.add(d)
            yield d
    if base_dir is None or not base_dir.is_dir():
        return
    for d in sorted(base_dir.iterdir()):
        if d.is_dir() and not d.name.startswith(".") and d not in seen:
            seen.add(d)
            yield d


def find_resumable(
    candidate_dirs: Iterable[Path],
    start_url: str,
    *,
    base_dir: Path | None = None,
) -> Path | None:
    """Output directory of an interrupted run with the same start URL.

    Candidates are checked in order, then every immediate non-hidden
    subdirectory of ``base_dir``. The stored ``outputDirectory`` string is
    rebuilt with ``Path``, so spaces, ``%`` or ``#`` in it are harmless.
    """

    for directory in _candidate_dirs(candidate_dirs, base_dir):
        session = load_session(metadata_path(directory))
        if session is None or not session.is_active:
            continue
        if session.start_url != start_url:
            continue
        logger.info("Found resumable session in %s", session.output_directory)
        return session.output_directory
    return None
