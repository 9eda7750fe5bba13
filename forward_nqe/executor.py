import logging
import threading
from typing import Callable, Optional

import requests

from .errors import (
    ClientRejected,
    RetriesExhausted,
    RetryableError,
    RetryableServerError,
    SyncCancelled,
    TransportFailure,
)
from .transport import ApiRequest, Transport

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY_SECONDS = 1.0
MAX_DELAY_SECONDS = 60.0


def backoff_delay(
    attempt: int,
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
    max_delay: float = MAX_DELAY_SECONDS,
) -> float:
    """Delay before the attempt following ``attempt`` (0-based): base * 2^attempt, capped."""
    return min(max_delay, base_delay * (2 ** attempt))


def interruptible_sleep(cancel: threading.Event, seconds: float) -> bool:
    """Sleep up to ``seconds``; return True if ``cancel`` was set meanwhile."""
    return cancel.wait(seconds)


class RequestExecutor:
    """
    Sends ApiRequests through a Transport with retry, backoff and error classification.

    - 2xx: success, the response is returned.
    - 5xx, 429 or a send failure: retried with exponential backoff.
    - any other 4xx: ClientRejected is raised immediately.
    - cancellation (a set threading.Event) raises SyncCancelled before any
      further attempt or sleep.
    """

    def __init__(
        self,
        transport: Transport,
        base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
        max_delay: float = MAX_DELAY_SECONDS,
        sleep: Optional[Callable[[threading.Event, float], bool]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.transport = transport
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep or interruptible_sleep
        self.logger = logger or logging.getLogger(__name__)

    def send_once(self, request: ApiRequest) -> requests.Response:
        """Single attempt. Raises a classified ForwardAPIError on failure."""
        url = self.transport.url_for(request)
        try:
            resp = self.transport.send(request)
        except requests.RequestException as exc:
            raise TransportFailure(url, exc) from exc

        status = resp.status_code
        if 200 <= status < 300:
            return resp

        body = resp.text or ""
        if status == 400:
            # The body may echo sensitive request content; keep it out of the log.
            self.logger.debug(
                "400 Bad Request - URL: %s, Method: %s, Body Size: %d bytes",
                url,
                request.method,
                request.body_size(),
            )
        if status >= 500 or status == 429:
            raise RetryableServerError(status, url, body)
        raise ClientRejected(status, url, body)

    def execute(
        self,
        request: ApiRequest,
        max_attempts: int,
        cancel: Optional[threading.Event] = None,
    ) -> requests.Response:
        """
        Run ``request`` with up to ``max_attempts`` retries after the first try.

        Raises SyncCancelled, ClientRejected or RetriesExhausted.
        """
        if cancel is None:
            cancel = threading.Event()

        last_error: Optional[RetryableError] = None
        for attempt in range(max_attempts + 1):
            if cancel.is_set():
                raise SyncCancelled(f"{request.method} {request.endpoint} cancelled")

            try:
                return self.send_once(request)
            except RetryableError as exc:
                last_error = exc

            if attempt == max_attempts:
                break

            delay = backoff_delay(attempt, self.base_delay, self.max_delay)
            self.logger.info(
                "Retrying %s %s in %.0fs (attempt %d/%d): %s",
                request.method,
                request.endpoint,
                delay,
                attempt + 1,
                max_attempts,
                last_error,
            )
            if cancel.is_set() or self._sleep(cancel, delay):
                raise SyncCancelled(f"{request.method} {request.endpoint} cancelled during backoff")

        raise RetriesExhausted(max_attempts + 1, last_error)
