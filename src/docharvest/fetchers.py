"""Fetch capabilities.

Every fetcher turns one URL into a :class:`RawContent` or raises
``FetchTimeout`` / ``FetchError``. Heavy per-fetch state (a browser context)
follows an explicit lifecycle: ``acquire`` allocates it, ``recycle`` drops and
reallocates it, ``release`` frees it. Engines drive that lifecycle.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from .errors import FetchError, FetchTimeout
from .http_client import FetchResult, HttpClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawContent:
    url: str
    body: bytes
    content_type: str | None = None
    status_code: int = 200
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_fetch_result(cls, res: FetchResult) -> RawContent:
        return cls(
            url=res.final_url or res.url,
            body=res.body,
            content_type=res.headers.get("Content-Type")
            or res.headers.get("content-type"),
            status_code=res.status_code,
            headers=dict(res.headers),
        )


class Fetcher:
    """Base fetcher. Stateless variants inherit the no-op lifecycle."""

    def acquire(self) -> None:
        pass

    def recycle(self) -> None:
        self.release()
        self.acquire()

    def release(self) -> None:
        pass

    def memory_usage_mb(self) -> float:
        return 0.0

    def fetch(self, url: str) -> RawContent:
        raise NotImplementedError


class HttpFetcher(Fetcher):
    def __init__(
        self,
        client: HttpClient | None = None,
        *,
        timeout_s: float = 30.0,
        accept: str | None = None,
        stop_event: threading.Event | None = None,
    ) -> None:
        self._client = client
        self._timeout_s = timeout_s
        self._accept = accept
        self._stop_event = stop_event

    def _ensure_client(self) -> HttpClient:
        if self._client is None:
            self._client = HttpClient(
                timeout_s=self._timeout_s, stop_event=self._stop_event
            )
        return self._client

    def acquire(self) -> None:
        self._ensure_client()

    def release(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _get(self, url: str) -> FetchResult:
        headers = {"Accept": self._accept} if self._accept else None
        return self._ensure_client().get(url, headers=headers)

    def fetch(self, url: str) -> RawContent:
        res = self._get(url)
        if not 200 <= res.status_code < 300:
            raise FetchError(url, f"HTTP {res.status_code}")
        return RawContent.from_fetch_result(res)


class JsonApiFetcher(HttpFetcher):
    """GET against a structured documentation API. Only HTTP 200 is content."""

    def __init__(
        self,
        client: HttpClient | None = None,
        *,
        timeout_s: float = 30.0,
        stop_event: threading.Event | None = None,
    ) -> None:
        super().__init__(
            client,
            timeout_s=timeout_s,
            accept="application/json",
            stop_event=stop_event,
        )

    def fetch(self, url: str) -> RawContent:
        res = self._get(url)
        if res.status_code != 200:
            raise FetchError(url, f"HTTP {res.status_code}")
        return RawContent.from_fetch_result(res)


# Rough per-page growth of a long-lived Chromium context, used only to
# report an estimate between recycles.
_RENDERED_PAGE_MB = 2.5
_BROWSER_BASE_MB = 150.0


class RenderedPageFetcher(Fetcher):
    """Headless Chromium fetch for script-rendered documentation pages."""

    def __init__(
        self,
        *,
        timeout_s: float = 30.0,
        settle_ms: int = 1500,
        wait_until: str = "domcontentloaded",
        user_agent: str | None = None,
    ) -> None:
        self._timeout_ms = int(timeout_s * 1000)
        self._settle_ms = settle_ms
        self._wait_until = wait_until
        self._user_agent = user_agent
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._pages_since_recycle = 0

    def acquire(self) -> None:
        if self._context is not None:
            return
        if self._playwright is None:
            self._playwright = sync_playwright().start()
        if self._browser is None:
            self._browser = self._playwright.chromium.launch(headless=True)
        context_args: dict[str, Any] = {}
        if self._user_agent:
            context_args["user_agent"] = self._user_agent
        self._context = self._browser.new_context(**context_args)
        self._pages_since_recycle = 0

    def recycle(self) -> None:
        # Only the context carries per-page growth; the browser process stays.
        if self._context is not None:
            self._context.close()
            self._context = None
        logger.debug("Recycled browser context")
        self.acquire()

    def release(self) -> None:
        if self._context is not None:
            self._context.close()
            self._context = None
        if self._browser is not None:
            self._browser.close()
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None
        self._pages_since_recycle = 0

    def memory_usage_mb(self) -> float:
        if self._browser is None:
            return 0.0
        return _BROWSER_BASE_MB + self._pages_since_recycle * _RENDERED_PAGE_MB

    def fetch(self, url: str) -> RawContent:
        self.acquire()
        page = self._context.new_page()
        self._pages_since_recycle += 1
        try:
            response = page.goto(
                url, wait_until=self._wait_until, timeout=self._timeout_ms
            )
            status = response.status if response is not None else 200
            if status >= 400:
                raise FetchError(url, f"HTTP {status}")
            if self._settle_ms:
                page.wait_for_timeout(self._settle_ms)
            html = page.content()
            final_url = page.url or url
        except PlaywrightTimeoutError as e:
            raise FetchTimeout(
                url, f"Render timed out after {self._timeout_ms}ms"
            ) from e
        except PlaywrightError as e:
            raise FetchError(url, f"Render failed ({e.__class__.__name__})") from e
        finally:
            page.close()

        return RawContent(
            url=final_url,
            body=html.encode("utf-8"),
            content_type="text/html; charset=utf-8",
            status_code=status,
        )
