"""
Rate-limited, retrying HTTP fetcher for the storefront.

Every request in the process goes through one RequestThrottle, so the
storefront sees at most one request per request_delay_seconds no matter how
many Fetcher instances exist.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx
from rich.console import Console

from config.settings import ScraperConfig
from src.errors import (
    ExhaustedRetriesError,
    FetchError,
    FetchTimeoutError,
    NetworkError,
    NotFoundError,
)

console = Console()

RETRYABLE_STATUS = {429}


@dataclass
class FetchResult:
    """A successful response."""

    url: str
    status: int
    body: str = ""
    content: bytes = b""
    headers: dict = field(default_factory=dict)

    @property
    def content_type(self) -> str:
        return (self.headers.get("content-type") or "").split(";")[0].strip().lower()


class RequestThrottle:
    """Enforces a fixed minimum interval between consecutive requests."""

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_request: Optional[float] = None

    def wait(self) -> None:
        """Block until the next request is allowed."""
        if self._last_request is not None and self.min_interval > 0:
            remaining = self._last_request + self.min_interval - self._clock()
            if remaining > 0:
                self._sleep(remaining)
        self._last_request = self._clock()


_shared_throttle: Optional[RequestThrottle] = None


def shared_throttle(min_interval: float) -> RequestThrottle:
    """The process-wide throttle, created on first use."""
    global _shared_throttle
    if _shared_throttle is None:
        _shared_throttle = RequestThrottle(min_interval)
    else:
        _shared_throttle.min_interval = min_interval
    return _shared_throttle


class Fetcher:
    """
    Blocking HTTP client with retry and failure classification.

    - 404 raises NotFoundError immediately (no retry)
    - timeouts, connection errors, 5xx and 429 are retried with linear backoff
    - other 4xx raise FetchError immediately
    - after max_retries attempts ExhaustedRetriesError is raised
    """

    def __init__(
        self,
        config: Optional[ScraperConfig] = None,
        client: Optional[httpx.Client] = None,
        throttle: Optional[RequestThrottle] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the fetcher.

        Args:
            config: Scraper settings (headers, timeout, retries, delays)
            client: Pre-built httpx client (e.g. with a MockTransport in tests)
            throttle: Throttle to share; defaults to the process-wide one
            sleep: Sleep function used for retry backoff
        """
        self.config = config or ScraperConfig()
        self._owns_client = client is None
        self.client = client or httpx.Client(
            headers=self.config.headers,
            timeout=self.config.timeout_seconds,
            follow_redirects=True,
        )
        if client is not None:
            self.client.headers.update(self.config.headers)
        self.throttle = throttle or shared_throttle(self.config.request_delay_seconds)
        self._sleep = sleep
        self.request_count = 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def _attempt(self, method: str, url: str) -> FetchResult:
        self.throttle.wait()
        self.request_count += 1
        try:
            response = self.client.request(method, url, timeout=self.config.timeout_seconds)
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(url, f"Timed out: {e}") from e
        except httpx.TransportError as e:
            raise NetworkError(url, f"Network error: {e}") from e

        status = response.status_code
        if status == 404:
            raise NotFoundError(url)
        if status >= 500 or status in RETRYABLE_STATUS:
            raise NetworkError(url, f"HTTP {status}", status=status)
        if status >= 400:
            raise FetchError(url, f"HTTP {status}", status=status)

        return FetchResult(
            url=str(response.url),
            status=status,
            body=response.text if method != "HEAD" else "",
            content=response.content if method != "HEAD" else b"",
            headers={k.lower(): v for k, v in response.headers.items()},
        )

    def fetch(self, url: str, method: str = "GET") -> FetchResult:
        """
        Fetch a URL.

        Args:
            url: Absolute URL
            method: HTTP method (GET or HEAD)

        Returns:
            FetchResult for a 2xx/3xx response

        Raises:
            NotFoundError: the page does not exist
            FetchError: non-retryable client error
            ExhaustedRetriesError: transient failures on every attempt
        """
        attempts = max(1, self.config.max_retries)
        last_error: Optional[FetchError] = None

        for attempt in range(1, attempts + 1):
            try:
                return self._attempt(method, url)
            except FetchError as e:
                if not e.retryable:
                    raise
                last_error = e

            if attempt < attempts:
                delay = self.config.retry_backoff_seconds * attempt
                console.print(
                    f"[yellow]  Retry {attempt}/{attempts - 1} in {delay:.1f}s: {last_error}[/yellow]"
                )
                self._sleep(delay)

        raise ExhaustedRetriesError(url, attempts, last_error)

    def head(self, url: str) -> FetchResult:
        return self.fetch(url, method="HEAD")
