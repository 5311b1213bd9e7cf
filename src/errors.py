"""
Exception hierarchy for the enrichment pipeline.

Fetch errors classify a single URL probe. NoMatch / ValidationRejected
classify extracted content. PersistenceError wraps catalog store failures.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class FetchError(PipelineError):
    """A URL could not be fetched."""

    retryable = False

    def __init__(self, url: str, message: str, status: Optional[int] = None):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status = status


class NotFoundError(FetchError):
    """The page does not exist (404). Never retried."""

    def __init__(self, url: str):
        super().__init__(url, "Not found", status=404)


class FetchTimeoutError(FetchError):
    retryable = True


class NetworkError(FetchError):
    """Connection failure or transient server error."""

    retryable = True


class ExhaustedRetriesError(FetchError):
    """Transient failures persisted past the retry budget."""

    def __init__(self, url: str, attempts: int, last_error: Optional[FetchError] = None):
        detail = f": {last_error}" if last_error else ""
        super().__init__(
            url,
            f"Gave up after {attempts} attempts{detail}",
            status=last_error.status if last_error else None,
        )
        self.attempts = attempts
        self.last_error = last_error


class NoMatchError(PipelineError):
    """Fetched content did not match the target entity."""

    def __init__(self, url: str, reason: str = "content did not match"):
        super().__init__(f"No match at {url}: {reason}")
        self.url = url
        self.reason = reason


class ValidationRejectedError(PipelineError):
    """An extracted image failed asset validation."""

    def __init__(self, image_url: str, reason: str):
        super().__init__(f"Image rejected ({reason}): {image_url}")
        self.image_url = image_url
        self.reason = reason


class PersistenceError(PipelineError):
    """A catalog store read or write failed."""
