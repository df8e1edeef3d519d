"""docharvest core library.

This package crawls link-graph documentation corpora (API reference trees,
proposal archives, package registries) into normalized Markdown, and keeps
enough state on disk to resume an interrupted crawl and to re-crawl only
what changed.

Output contract (read by the indexer and the protocol server):
- <output_dir>/<group>/<slug>.md for page text.
- <output_dir>/metadata.json for the page ledger, statistics and session.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
