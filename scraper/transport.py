# Fetch-with-retry transport: 3 attempts, fixed 1 s gap, 10 s wall-clock timeout per attempt

import logging
import time
from typing import Callable, Optional

import requests

from .errors import TransportError

logger = logging.getLogger("rrbooks.transport")

REQUEST_TIMEOUT = 10.0
MAX_ATTEMPTS = 3
RETRY_DELAY = 1.0
CHUNK_SIZE = 8192

# HTTP headers to simulate a real browser request
HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome Safari"
}


class Transport:
    """Outbound HTML fetcher with a bounded, non-growing retry policy."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
        attempts: int = MAX_ATTEMPTS,
        retry_delay: float = RETRY_DELAY,
        user_agent: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session = session or requests.Session()
        self.session.headers.update(HEADERS)
        if user_agent:
            self.session.headers["User-Agent"] = user_agent
        self.timeout = timeout
        self.attempts = attempts
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._clock = clock

    def _read_body(self, r: requests.Response, deadline: float) -> str:
        """Stream the body, abandoning it once the attempt's deadline has passed."""
        chunks = []
        for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
            if self._clock() > deadline:
                raise requests.exceptions.Timeout(f"body not received within {self.timeout:.1f}s")
            chunks.append(chunk)
        return b"".join(chunks).decode(r.encoding or "utf-8", errors="replace")

    def fetch(self, url: str) -> str:
        """Return the response body of ``url`` or raise TransportError after the last attempt."""
        status_code: Optional[int] = None
        reason = ""
        last_exc: Optional[Exception] = None

        for attempt in range(1, self.attempts + 1):
            deadline = self._clock() + self.timeout
            try:
                # connect/read timeouts bound each socket operation; the deadline bounds the whole attempt
                r = self.session.get(url, timeout=self.timeout, stream=True)
                try:
                    if 200 <= r.status_code < 300:
                        return self._read_body(r, deadline)
                finally:
                    r.close()
                status_code, reason, last_exc = r.status_code, "", None
                logger.warning("attempt %d/%d for %s returned HTTP %s", attempt, self.attempts, url, r.status_code)
            except requests.exceptions.Timeout as exc:
                status_code, reason, last_exc = None, "timeout", exc
                logger.warning("attempt %d/%d for %s timed out", attempt, self.attempts, url)
            except requests.exceptions.RequestException as exc:
                status_code, reason, last_exc = None, str(exc), exc
                logger.warning("attempt %d/%d for %s failed: %s", attempt, self.attempts, url, exc)

            if attempt < self.attempts:
                self._sleep(self.retry_delay)

        logger.error("giving up on %s after %d attempts", url, self.attempts)
        raise TransportError(url, self.attempts, status_code=status_code, reason=reason) from last_exc

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
