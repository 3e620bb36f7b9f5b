# Errors raised on the scrape (write) path

from typing import Optional


class TransportError(Exception):
    """Terminal fetch failure: every attempt timed out, failed or returned non-2xx."""

    def __init__(self, url: str, attempts: int, status_code: Optional[int] = None, reason: str = ""):
        self.url = url
        self.attempts = attempts
        self.status_code = status_code
        detail = f"HTTP {status_code}" if status_code is not None else (reason or "network error")
        super().__init__(f"Failed to fetch {url} after {attempts} attempts ({detail})")


class SkippedEntry(Exception):
    """An entry that cannot be persisted because no identifier could be derived."""
