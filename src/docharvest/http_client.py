from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass

import requests
from requests import exceptions as req_exc

from . import __version__
from .errors import FetchError, FetchTimeout

logger = logging.getLogger(__name__)

TRANSIENT_HTTP_STATUSES = {429, 500, 502, 503, 504}

DEFAULT_USER_AGENT = f"docharvest/{__version__} (+documentation crawler)"


def _retry_after_seconds(headers: dict[str, str]) -> float | None:
    retry_after = headers.get("Retry-After")
    if not retry_after:
        return None
    try:
        return float(retry_after)
    except ValueError:
        return None


@dataclass(frozen=True)
class FetchResult:
    url: str
    final_url: str
    status_code: int
    headers: dict[str, str]
    fetched_at: float
    body: bytes


class HttpClient:
    """Single-URL GET with a hard timeout.

    Transient statuses (429/5xx) are retried a bounded number of times,
    honouring ``Retry-After``. The wait between those retries ends early
    when ``stop_event`` is set. Everything else is mapped to ``FetchError``
    (or ``FetchTimeout``) and left to the caller's retry policy.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        timeout_s: float = 30.0,
        max_transient_retries: int = 2,
        backoff_base_s: float = 1.0,
        max_backoff_s: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        stop_event: threading.Event | None = None,
    ) -> None:
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", user_agent)
        self._timeout_s = timeout_s
        self._max_transient_retries = max_transient_retries
        self._backoff_base_s = backoff_base_s
        self._max_backoff_s = max_backoff_s
        self._stop_event = stop_event

    def get(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
    ) -> FetchResult:
        for attempt in range(self._max_transient_retries + 1):
            try:
                resp = self._session.get(url, timeout=self._timeout_s, headers=headers)
            except req_exc.Timeout as e:
                raise FetchTimeout(url, f"Timed out after {self._timeout_s}s") from e
            except req_exc.RequestException as e:
                raise FetchError(url, f"Request failed ({e.__class__.__name__})") from e

            if (
                resp.status_code in TRANSIENT_HTTP_STATUSES
                and attempt < self._max_transient_retries
            ):
                retry_after = _retry_after_seconds(dict(resp.headers))
                wait_s = (
                    retry_after
                    if retry_after is not None
                    else self._backoff_base_s * (2**attempt)
                )
                wait_s = min(wait_s, self._max_backoff_s)
                logger.warning(
                    "HTTP %s for %s, retrying in %.1fs", resp.status_code, url, wait_s
                )
                self._wait(url, wait_s)
                continue

            return FetchResult(
                url=url,
                final_url=str(resp.url),
                status_code=int(resp.status_code),
                headers={k: str(v) for k, v in resp.headers.items()},
                fetched_at=time.time(),
                body=resp.content,
            )

        # The loop always returns or continues into a final attempt.
        raise FetchError(url, "Exhausted transient retries")

    def _wait(self, url: str, seconds: float) -> None:
        if self._stop_event is None:
            time.sleep(seconds)
        elif self._stop_event.wait(seconds):
            raise FetchError(url, "Stopped while waiting to retry")

    def close(self) -> None:
        self._session.close()
