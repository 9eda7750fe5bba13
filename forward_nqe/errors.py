"""Exception types raised by the Forward API client and the NQE sync engine."""

from typing import Optional


class SyncCancelled(Exception):
    """Cooperative cancellation was observed.

    Intentionally not a ForwardAPIError: code that tolerates API failures
    with ``except ForwardAPIError`` must never swallow a cancellation.
    """


class ForwardAPIError(RuntimeError):
    """Base class for failures talking to the Forward API."""


class ClientRejected(ForwardAPIError):
    """4xx response other than 429. Never retried."""

    def __init__(self, status_code: int, url: str, body: str = ""):
        self.status_code = status_code
        self.url = url
        self.body = body
        msg = f"non-retryable error: unexpected status code: {status_code}"
        if body:
            msg += f", response: {body}"
        super().__init__(msg)


class RetryableError(ForwardAPIError):
    """A failure worth another attempt."""


class RetryableServerError(RetryableError):
    """5xx or 429 response."""

    def __init__(self, status_code: int, url: str, body: str = ""):
        self.status_code = status_code
        self.url = url
        self.body = body
        msg = f"retryable error: unexpected status code: {status_code}"
        if body:
            msg += f", response: {body}"
        super().__init__(msg)


class TransportFailure(RetryableError):
    """The request could not be sent (connection error, timeout, TLS failure)."""

    def __init__(self, url: str, cause: Exception):
        self.url = url
        self.cause = cause
        super().__init__(f"failed to send request to {url}: {cause}")


class DecodeError(ForwardAPIError):
    """The response body could not be decoded into the expected structure."""


class RetriesExhausted(ForwardAPIError):
    def __init__(self, attempts: int, last_error: Optional[Exception]):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"operation failed after {attempts} attempts: {last_error}")


class CatalogUnavailable(ForwardAPIError):
    """Neither the org nor the fwd catalog could be loaded."""
