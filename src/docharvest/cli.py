from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from contextlib import contextmanager
from dataclasses import replace
from functools import partial
from pathlib import Path
from typing import Any, Iterator

from tqdm import tqdm

from .config import CrawlConfig, CrawlType
from .engines import EngineKind
from .errors import (
    CheckpointWriteFailed,
    InvalidStartURL,
    OutputDirectoryError,
)
from .inspect import inspect_output
from .models import CrawlStatistics
from .orchestrator import (
    CrawlProgress,
    Orchestrator,
    configs_for_types,
    crawl_all_types,
)


def _configure_logging(level: str, log_file: Path | None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
    )


@contextmanager
def _stop_on_sigint(stop_event: threading.Event) -> Iterator[None]:
    """Ctrl-C asks the crawl to checkpoint and return instead of dying."""

    def _handler(signum, frame) -> None:
        if stop_event.is_set():
            raise KeyboardInterrupt
        print(
            "Stopping after the current page (Ctrl-C again to abort)...",
            file=sys.stderr,
        )
        stop_event.set()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


class _ProgressBars:
    def __init__(self, names: list[str], configs: dict[str, CrawlConfig]) -> None:
        self._lock = threading.Lock()
        self._bars = {
            name: tqdm(
                total=configs[name].max_pages,
                desc=name,
                unit="page",
                position=i,
                leave=True,
            )
            for i, name in enumerate(names)
        }

    def update(self, name: str, progress: CrawlProgress) -> None:
        with self._lock:
            bar = self._bars[name]
            bar.n = progress.visited
            bar.set_postfix(
                new=progress.stats.new_pages,
                skipped=progress.stats.skipped_pages,
                errors=progress.stats.errors,
                refresh=True,
            )

    def close(self) -> None:
        for bar in self._bars.values():
            bar.close()


def _summary(name: str, stats: CrawlStatistics) -> str:
    duration = stats.duration
    return (
        f"{name}: total={stats.total_pages} new={stats.new_pages} "
        f"updated={stats.updated_pages} skipped={stats.skipped_pages} "
        f"errors={stats.errors}"
        + (f" duration={duration:.1f}s" if duration is not None else "")
    )


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    prefixes = None
    if args.allowed_prefixes:
        parts = args.allowed_prefixes.split(",")
        prefixes = tuple(p.strip() for p in parts if p.strip())
    return {
        "start_url": args.start_url,
        "max_pages": args.max_pages,
        "max_depth": args.max_depth,
        "output_dir": args.output_dir,
        "allowed_prefixes": prefixes,
        "force_recrawl": True if args.force else None,
        "resume": args.resume,
        "engine": EngineKind(args.engine) if args.engine else None,
        "request_delay_s": args.request_delay,
        "retry_attempts": args.retry_attempts,
    }


def _build_configs(args: argparse.Namespace) -> dict[str, CrawlConfig]:
    overrides = _overrides(args)
    if args.config is not None:
        cfg = CrawlConfig.from_file(args.config)
        changes = {k: v for k, v in overrides.items() if v is not None}
        name = cfg.crawl_type.value if cfg.crawl_type else "config"
        return {name: replace(cfg, **changes)}

    crawl_type = CrawlType(args.type)
    if crawl_type is CrawlType.ALL and (args.start_url or args.output_dir):
        raise ValueError("--start-url and --output-dir need a single --type")
    return configs_for_types([crawl_type], **overrides)


def _run_single(
    name: str,
    cfg: CrawlConfig,
    stop_event: threading.Event,
    bars: _ProgressBars | None,
) -> int:
    orch = Orchestrator(
        cfg,
        stop_event=stop_event,
        on_progress=partial(bars.update, name) if bars is not None else None,
    )
    try:
        stats = orch.run()
    except (InvalidStartURL, OutputDirectoryError) as e:
        print(str(e), file=sys.stderr)
        return 2
    except CheckpointWriteFailed as e:
        print(str(e), file=sys.stderr)
        return 1
    finally:
        if bars is not None:
            bars.close()

    print(_summary(name, stats))
    print(f"{name}: output={orch.output_dir}")
    return 0


def _run_fetch(args: argparse.Namespace) -> int:
    try:
        configs = _build_configs(args)
    except (OSError, ValueError) as e:
        print(str(e), file=sys.stderr)
        return 2

    names = list(configs)
    stop_event = threading.Event()
    bars = None if args.no_progress else _ProgressBars(names, configs)

    with _stop_on_sigint(stop_event):
        if len(names) == 1:
            return _run_single(names[0], configs[names[0]], stop_event, bars)
        try:
            report = crawl_all_types(
                configs,
                stop_event=stop_event,
                on_progress=bars.update if bars is not None else None,
            )
        finally:
            if bars is not None:
                bars.close()

    for result in report.results:
        if result.stats is not None:
            print(_summary(result.crawl_type, result.stats))
        else:
            print(f"{result.crawl_type}: FAILED: {result.error}", file=sys.stderr)
    print(_summary("all", report.combined()))
    return report.exit_code


def _run_inspect(args: argparse.Namespace) -> int:
    try:
        inspected = inspect_output(
            output_dir=args.in_dir,
            max_missing_paths_sample=int(args.max_missing_sample),
        )
    except (OSError, ValueError) as e:
        print(str(e), file=sys.stderr)
        return 2

    if bool(args.json):
        print(json.dumps(inspected.to_dict(), indent=2))
    else:
        print(
            "inspect: "
            f"pages={inspected.pages} "
            f"missing_files={inspected.missing_files} "
            f"session_active={inspected.session_active} "
            f"queued={inspected.queued}"
        )
        if inspected.groups:
            parts = " ".join(f"{k}={v}" for k, v in inspected.groups.items())
            print(f"inspect: groups: {parts}")
        if inspected.missing_paths_sample:
            print("inspect: missing_paths_sample:")
            for p in inspected.missing_paths_sample:
                print(f"- {p}")

    if bool(args.fail_on_missing) and inspected.missing_files:
        return 4
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docharvest")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-file", type=Path, default=None)
    sub = parser.add_subparsers(dest="cmd", required=True)

    fetch_p = sub.add_parser("fetch", help="Crawl documentation into Markdown")
    fetch_p.add_argument(
        "--type",
        choices=[t.value for t in CrawlType],
        default=CrawlType.DOCS.value,
        help="Documentation type to crawl; 'all' runs every type in parallel",
    )
    fetch_p.add_argument("--start-url", default=None)
    fetch_p.add_argument("--max-pages", type=int, default=None)
    fetch_p.add_argument("--max-depth", type=int, default=None)
    fetch_p.add_argument("--output-dir", type=Path, default=None)
    fetch_p.add_argument(
        "--allowed-prefixes",
        default=None,
        help="Comma-separated URL prefixes; derived from the start URL if omitted",
    )
    fetch_p.add_argument("--force", action="store_true", help="Rewrite every page")
    fetch_p.add_argument(
        "--resume",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Adopt an interrupted session for the same start URL (default: on)",
    )
    fetch_p.add_argument(
        "--engine", choices=[k.value for k in EngineKind], default=None
    )
    fetch_p.add_argument("--request-delay", type=float, default=None)
    fetch_p.add_argument("--retry-attempts", type=int, default=None)
    fetch_p.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON file with crawl settings; flags override its values",
    )
    fetch_p.add_argument("--no-progress", action="store_true")

    inspect_p = sub.add_parser(
        "inspect",
        help="Validate an output directory against its metadata.json",
    )
    inspect_p.add_argument(
        "--in",
        dest="in_dir",
        type=Path,
        required=True,
        help="Output directory containing metadata.json",
    )
    inspect_p.add_argument("--json", action="store_true")
    inspect_p.add_argument("--max-missing-sample", type=int, default=25)
    inspect_p.add_argument(
        "--fail-on-missing",
        action="store_true",
        help="Fail (non-zero) if recorded page files are missing",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level, args.log_file)

    if args.cmd == "fetch":
        return _run_fetch(args)
    if args.cmd == "inspect":
        return _run_inspect(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
