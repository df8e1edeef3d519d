from __future__ import annotations

import logging
from collections import deque
from typing import Iterable

from .models import QueuedURL
from .urls import UrlScope, is_asset_intent_url, normalize_url

logger = logging.getLogger(__name__)


class Frontier:
    """Breadth-first work queue with dedup guards.

    A URL moves ``unseen -> queued -> visited``: ``enqueue`` marks it
    queued, ``dequeue`` pops it in FIFO order and marks it visited. At any
    point the queued and visited sets are disjoint and the pending queue
    holds each canonical URL at most once.
    """

    def __init__(self, scope: UrlScope, *, max_depth: int, max_pages: int) -> None:
        self.scope = scope
        self.max_depth = max_depth
        self.max_pages = max_pages
        self._pending: deque[QueuedURL] = deque()
        self._queued: set[str] = set()
        self._visited: set[str] = set()

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def visited(self) -> frozenset[str]:
        return frozenset(self._visited)

    @property
    def queued(self) -> frozenset[str]:
        return frozenset(self._queued)

    @property
    def visited_count(self) -> int:
        return len(self._visited)

    def has_capacity(self) -> bool:
        return len(self._visited) < self.max_pages

    def has_pending(self) -> bool:
        return bool(self._pending)

    def enqueue(self, url: str, depth: int) -> bool:
        """Admit ``url`` at ``depth``; False when it is filtered or already known."""

        if depth < 0 or depth > self.max_depth:
            return False
        canonical = normalize_url(url)
        if not self.scope.is_allowed(canonical):
            return False
        if is_asset_intent_url(canonical):
            return False
        if canonical in self._queued or canonical in self._visited:
            return False
        self._pending.append(QueuedURL(url=canonical, depth=depth))
        self._queued.add(canonical)
        return True

    def enqueue_links(self, links: Iterable[str], depth: int) -> int:
        return sum(1 for link in links if self.enqueue(link, depth))

    def dequeue(self) -> QueuedURL | None:
        if not self._pending:
            return None
        item = self._pending.popleft()
        self._queued.discard(item.url)
        self._visited.add(item.url)
        return item

    def return_unfinished(self, item: QueuedURL) -> None:
        """Put an abandoned in-flight item back at the head of the queue."""

        if item.url not in self._visited:
            return
        self._visited.discard(item.url)
        self._pending.appendleft(item)
        self._queued.add(item.url)

    def restore(self, queue: Iterable[QueuedURL], visited: Iterable[str]) -> None:
        """Re-seed from a persisted session, preserving its queue order.

        Queue entries that are already visited, duplicated, out of scope or
        too deep are dropped so the invariants hold after a restore.
        """

        self._visited = {normalize_url(u) for u in visited}
        self._pending.clear()
        self._queued.clear()
        dropped = 0
        for item in queue:
            if not self.enqueue(item.url, item.depth):
                dropped += 1
        if dropped:
            logger.warning("Dropped %d invalid queue entries on restore", dropped)

    def snapshot(self) -> tuple[list[QueuedURL], set[str]]:
        return list(self._pending), set(self._visited)
