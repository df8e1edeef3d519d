"""Crawl orchestration.

One :class:`Orchestrator` drives one crawl on the calling thread: pull from
the frontier, crawl through an engine with retries, decide write-or-skip,
feed links back, checkpoint. :func:`crawl_all_types` runs independent
orchestrators side by side, one per crawl type, each with its own frontier,
metadata and output directory.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Callable, Iterable, Mapping
from urllib.parse import urlparse

from .change_detection import ChangeDetector, fingerprint
from .config import CrawlConfig, CrawlType, base_dir as default_base_dir
from .convert.result import TransformResult
from .engines import Engine, build_engine
from .errors import FetchError, OutputDirectoryError, SubRunFailed
from .frontier import Frontier
from .models import (
    CrawlMetadata,
    CrawlSession,
    CrawlStatistics,
    PageRecord,
    QueuedURL,
    utc_now,
)
from .state import SessionStore, find_resumable
from .storage import write_text_atomic
from .urls import UrlScope, extract_group, safe_group, url_to_slug

logger = logging.getLogger(__name__)

EngineFactory = Callable[[CrawlConfig], Engine]


def default_engine_factory(
    cfg: CrawlConfig, *, stop_event: threading.Event | None = None
) -> Engine:
    return build_engine(
        cfg.engine,
        timeout_s=cfg.fetch_timeout_s,
        recycle_every=cfg.recycle_every,
        stop_event=stop_event,
    )


@dataclass(frozen=True)
class CrawlProgress:
    current_url: str
    visited: int
    max_pages: int
    stats: CrawlStatistics

    @property
    def percentage(self) -> float:
        if self.max_pages <= 0:
            return 100.0
        return min(100.0, self.visited / self.max_pages * 100.0)


def _format_duration(seconds: float) -> str:
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def resolve_output_dir(cfg: CrawlConfig, base: Path) -> Path:
    """Explicit override, else an interrupted run's directory, else a default."""

    if cfg.output_dir is not None:
        return cfg.output_dir
    if cfg.resume:
        candidates = [t.default_output_dir(base) for t in CrawlType.concrete()]
        found = find_resumable(candidates, cfg.start_url, base_dir=base)
        if found is not None:
            return found
    if cfg.crawl_type is not None and cfg.crawl_type is not CrawlType.ALL:
        return cfg.crawl_type.default_output_dir(base)
    return base / safe_group(urlparse(cfg.start_url).hostname or "")


class Orchestrator:
    def __init__(
        self,
        config: CrawlConfig,
        *,
        engine_factory: EngineFactory | None = None,
        base_dir: Path | None = None,
        stop_event: threading.Event | None = None,
        on_progress: Callable[[CrawlProgress], None] | None = None,
    ) -> None:
        self.config = config
        self._base_dir = base_dir
        self.stop_event = stop_event or threading.Event()
        self._engine_factory = engine_factory or partial(
            default_engine_factory, stop_event=self.stop_event
        )
        self._on_progress = on_progress
        self.output_dir: Path | None = None

    def stop(self) -> None:
        self.stop_event.set()

    def run(self) -> CrawlStatistics:
        cfg = self.config.validated()
        base = self._base_dir or default_base_dir()
        output_dir = resolve_output_dir(cfg, base)
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputDirectoryError(
                f"Cannot create output directory {output_dir}: {e}"
            ) from e
        self.output_dir = output_dir

        run = _Run(cfg, output_dir, self.stop_event, self._on_progress)
        with self._engine_factory(cfg) as engine:
            run.loop(engine)
        return run.finish()


class _Run:
    """State of one crawl. Never shared between threads."""

    def __init__(
        self,
        cfg: CrawlConfig,
        output_dir: Path,
        stop_event: threading.Event,
        on_progress: Callable[[CrawlProgress], None] | None,
    ) -> None:
        self.cfg = cfg
        self.output_dir = output_dir
        self.stop_event = stop_event
        self.on_progress = on_progress
        self.store = SessionStore(output_dir)
        self.metadata = self.store.load_metadata() or CrawlMetadata()
        self.stats = CrawlStatistics(start_time=utc_now())
        self.frontier = Frontier(
            UrlScope(cfg.allowed_prefixes),
            max_depth=cfg.max_depth,
            max_pages=cfg.max_pages,
        )
        self.detector = ChangeDetector(self.metadata.pages, output_dir)
        self.strip_prefixes = (cfg.start_url, *cfg.allowed_prefixes)
        self.cancelled = False
        self._abandoned = False
        self.session = self._open_session()

        self._started_at = time.monotonic()
        self._last_checkpoint_at = self._started_at
        self._pages_since_checkpoint = 0

    def _open_session(self) -> CrawlSession | None:
        prior = self.metadata.crawl_state
        self.metadata.crawl_state = None
        if self.cfg.resume and prior is not None:
            if prior.is_active and prior.start_url == self.cfg.start_url:
                logger.info(
                    "Resuming session: %d visited, %d queued",
                    len(prior.visited),
                    len(prior.queue),
                )
                self.frontier.restore(prior.queue, prior.visited)
                prior.output_directory = self.output_dir
                return prior

        logger.info(
            "Starting new crawl: start=%s max_pages=%d max_depth=%d output=%s",
            self.cfg.start_url,
            self.cfg.max_pages,
            self.cfg.max_depth,
            self.output_dir,
        )
        self.frontier.enqueue(self.cfg.start_url, 0)
        if not self.cfg.resume:
            return None
        return CrawlSession(
            start_url=self.cfg.start_url, output_directory=self.output_dir
        )

    # Main loop.

    def loop(self, engine: Engine) -> None:
        first = True
        while self.frontier.has_capacity() and self.frontier.has_pending():
            if self.stop_event.is_set():
                self.cancelled = True
                break
            if not first and self.cfg.request_delay_s > 0:
                if self.stop_event.wait(self.cfg.request_delay_s):
                    self.cancelled = True
                    break
            first = False

            item = self.frontier.dequeue()
            if item is None:
                break
            result = self._crawl_with_retry(engine, item)
            if self._abandoned:
                # Abandoned mid-retry; a resumed run picks it up again.
                self.frontier.return_unfinished(item)
                self.cancelled = True
                break
            if result is not None:
                self._process(item, result)

            self._after_page(item)

    def _crawl_with_retry(
        self, engine: Engine, item: QueuedURL
    ) -> TransformResult | None:
        attempts = max(1, self.cfg.retry_attempts)
        for attempt in range(1, attempts + 1):
            try:
                return engine.crawl(item.url)
            except FetchError as e:
                if self.stop_event.is_set():
                    # Interrupted, not failed.
                    self._abandoned = True
                    return None
                if attempt >= attempts:
                    logger.error(
                        "Giving up on %s after %d attempts: %s", item.url, attempts, e
                    )
                    self.stats.errors += 1
                    return None
                logger.warning(
                    "Attempt %d/%d failed for %s: %s", attempt, attempts, item.url, e
                )
                if self.stop_event.wait(self.cfg.retry_delay_s):
                    self._abandoned = True
                    return None
        return None

    def _page_path(self, url: str, result: TransformResult) -> tuple[str, Path]:
        group = extract_group(url)
        if group == "root" and result.metadata and result.metadata.group:
            group = safe_group(result.metadata.group)
        slug = url_to_slug(url, strip_prefixes=self.strip_prefixes)
        return group, self.output_dir / group / f"{slug}.md"

    def _process(self, item: QueuedURL, result: TransformResult) -> None:
        group, path = self._page_path(item.url, result)
        digest = fingerprint(result.text)
        logger.info(
            "[%d/%d] depth=%d [%s] %s",
            self.frontier.visited_count,
            self.cfg.max_pages,
            item.depth,
            group,
            item.url,
        )

        self.stats.total_pages += 1
        if self.detector.should_write(
            item.url, digest, force_recrawl=self.cfg.force_recrawl
        ):
            existed = path.exists()
            try:
                write_text_atomic(path, result.text)
            except OSError as e:
                logger.error("Could not write %s: %s", path, e)
                self.stats.errors += 1
                return
            self.metadata.pages[item.url] = PageRecord(
                url=item.url,
                framework=group,
                file_path=path,
                content_hash=digest,
                depth=item.depth,
                last_crawled=utc_now(),
            )
            if existed:
                self.stats.updated_pages += 1
                logger.info("Updated %s", path.name)
            else:
                self.stats.new_pages += 1
                logger.info("Saved %s", path.name)
        else:
            self.stats.skipped_pages += 1
            logger.info("Unchanged, skipped %s", item.url)

        added = self.frontier.enqueue_links(result.links, item.depth + 1)
        logger.debug(
            "Queued %d of %d links from %s", added, len(result.links), item.url
        )

    def _after_page(self, item: QueuedURL) -> None:
        self._pages_since_checkpoint += 1
        now = time.monotonic()
        if (
            self._pages_since_checkpoint >= self.cfg.checkpoint_every
            or now - self._last_checkpoint_at >= self.cfg.checkpoint_interval_s
        ):
            self.checkpoint()

        visited = self.frontier.visited_count
        if self.cfg.progress_log_every and visited % self.cfg.progress_log_every == 0:
            self._log_progress(now)

        if self.on_progress is not None:
            self.on_progress(
                CrawlProgress(
                    current_url=item.url,
                    visited=visited,
                    max_pages=self.cfg.max_pages,
                    stats=self.stats.copy(),
                )
            )

    def _log_progress(self, now: float) -> None:
        visited = self.frontier.visited_count
        elapsed = max(now - self._started_at, 1e-6)
        rate = visited / elapsed
        remaining = max(0, min(self.cfg.max_pages - visited, len(self.frontier)))
        eta = remaining / rate if rate > 0 else 0.0
        logger.info(
            "Progress [%d/%d]: queued=%d new=%d updated=%d skipped=%d errors=%d "
            "rate=%.2f pages/s eta=%s",
            visited,
            self.cfg.max_pages,
            len(self.frontier),
            self.stats.new_pages,
            self.stats.updated_pages,
            self.stats.skipped_pages,
            self.stats.errors,
            rate,
            _format_duration(eta),
        )

    # Persistence.

    def _sync_session(self) -> None:
        if self.session is None:
            return
        queue, visited = self.frontier.snapshot()
        self.session.queue = queue
        self.session.visited = visited

    def checkpoint(self) -> bool:
        self._sync_session()
        self.metadata.stats = self.stats.copy()
        ok = self.store.save(self.session, self.metadata)
        self._last_checkpoint_at = time.monotonic()
        self._pages_since_checkpoint = 0
        return ok

    def finish(self) -> CrawlStatistics:
        self.stats.end_time = utc_now()
        self.metadata.stats = self.stats.copy()
        self.metadata.last_crawl = self.stats.end_time
        self._sync_session()

        session = self.session
        if session is not None and not self.cancelled:
            session.is_active = False
            session = None
        self.store.save_final(session, self.metadata)

        if self.cancelled:
            logger.info(
                "Crawl stopped: %d pages, %d still queued; resumable from %s",
                self.stats.total_pages,
                len(self.frontier),
                self.output_dir,
            )
        else:
            logger.info(
                "Crawl completed: total=%d new=%d updated=%d skipped=%d errors=%d "
                "duration=%s",
                self.stats.total_pages,
                self.stats.new_pages,
                self.stats.updated_pages,
                self.stats.skipped_pages,
                self.stats.errors,
                _format_duration(self.stats.duration or 0.0),
            )
        return self.stats


# Multi-type mode.


@dataclass(frozen=True)
class SubRunResult:
    crawl_type: str
    stats: CrawlStatistics | None = None
    error: SubRunFailed | None = None
    output_dir: Path | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class MultiRunReport:
    results: list[SubRunResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[SubRunResult]:
        return [r for r in self.results if r.ok]

    @property
    def failures(self) -> list[SubRunResult]:
        return [r for r in self.results if not r.ok]

    @property
    def exit_code(self) -> int:
        return 0 if not self.failures else 1

    def combined(self) -> CrawlStatistics:
        total = CrawlStatistics()
        for r in self.succeeded:
            if r.stats is None:
                continue
            total.total_pages += r.stats.total_pages
            total.new_pages += r.stats.new_pages
            total.updated_pages += r.stats.updated_pages
            total.skipped_pages += r.stats.skipped_pages
            total.errors += r.stats.errors
            if r.stats.start_time and (
                total.start_time is None or r.stats.start_time < total.start_time
            ):
                total.start_time = r.stats.start_time
            if r.stats.end_time and (
                total.end_time is None or r.stats.end_time > total.end_time
            ):
                total.end_time = r.stats.end_time
        return total


def configs_for_types(
    types: Iterable[CrawlType], **overrides
) -> dict[str, CrawlConfig]:
    expanded: list[CrawlType] = []
    for t in types:
        for concrete in CrawlType.concrete() if t is CrawlType.ALL else [t]:
            if concrete not in expanded:
                expanded.append(concrete)
    return {t.value: CrawlConfig.for_type(t, **overrides) for t in expanded}


def crawl_all_types(
    configs: Mapping[str, CrawlConfig],
    *,
    engine_factory: EngineFactory | None = None,
    base_dir: Path | None = None,
    stop_event: threading.Event | None = None,
    on_progress: Callable[[str, CrawlProgress], None] | None = None,
    max_workers: int | None = None,
) -> MultiRunReport:
    """Run one orchestrator per crawl type in parallel and join them all.

    A sub-run that raises is reported as a :class:`SubRunFailed`; it never
    cancels its siblings. Page-level errors stay inside each sub-run's
    statistics.
    """

    stop_event = stop_event or threading.Event()

    def _run_one(name: str, cfg: CrawlConfig) -> SubRunResult:
        progress_cb = partial(on_progress, name) if on_progress is not None else None
        orch = Orchestrator(
            cfg,
            engine_factory=engine_factory,
            base_dir=base_dir,
            stop_event=stop_event,
            on_progress=progress_cb,
        )
        stats = orch.run()
        return SubRunResult(crawl_type=name, stats=stats, output_dir=orch.output_dir)

    order = list(configs)
    results: dict[str, SubRunResult] = {}
    with ThreadPoolExecutor(max_workers=max_workers or max(1, len(order))) as pool:
        futures = {
            pool.submit(_run_one, name, cfg): name for name, cfg in configs.items()
        }
        for fut in as_completed(futures):
            name = futures[fut]
            try:
                results[name] = fut.result()
            except Exception as e:
                logger.error("Crawl type %s failed: %s", name, e)
                results[name] = SubRunResult(
                    crawl_type=name, error=SubRunFailed(name, e)
                )
            else:
                logger.info("Crawl type %s finished", name)

    return MultiRunReport(results=[results[name] for name in order])
