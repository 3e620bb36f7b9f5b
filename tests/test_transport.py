"""Tests for the fetch-with-retry transport (no network)."""
import pytest
import requests

from scraper.errors import TransportError
from scraper.transport import HEADERS, Transport


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class FakeResponse:
    """Streams ``chunks``; each chunk costs ``chunk_delay`` seconds on the fake clock."""

    def __init__(self, status_code, chunks, clock=None, chunk_delay=0.0):
        self.status_code = status_code
        self.chunks = chunks
        self.clock = clock
        self.chunk_delay = chunk_delay
        self.encoding = None
        self.closed = False

    def iter_content(self, chunk_size=1):
        for chunk in self.chunks:
            if self.clock is not None:
                self.clock.now += self.chunk_delay
            yield chunk

    def close(self):
        self.closed = True


class FakeSession:
    """Replays queued outcomes: a status code, a FakeResponse or an exception instance."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.headers = {}
        self.calls = []
        self.responses = []
        self.closed = False

    def get(self, url, timeout=None, stream=False):
        self.calls.append((url, timeout))
        assert stream
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        if not isinstance(outcome, FakeResponse):
            outcome = FakeResponse(outcome, [f"<html>{outcome}</html>".encode()])
        self.responses.append(outcome)
        return outcome

    def close(self):
        self.closed = True


def _transport(outcomes, **kwargs):
    session = FakeSession(outcomes)
    sleeps = []
    return Transport(session=session, sleep=sleeps.append, **kwargs), session, sleeps


def test_fetch_returns_body_on_success():
    transport, session, sleeps = _transport([200])
    assert transport.fetch("https://example.com/a") == "<html>200</html>"
    assert session.calls == [("https://example.com/a", 10.0)]
    assert sleeps == []


def test_fetch_retries_then_succeeds():
    transport, session, sleeps = _transport([500, 200])
    assert transport.fetch("https://example.com/a") == "<html>200</html>"
    assert len(session.calls) == 2
    assert sleeps == [1.0]


def test_fetch_gives_up_after_three_timeouts():
    """Three attempts, two one-second gaps, then TransportError."""
    transport, session, sleeps = _transport([requests.exceptions.Timeout("slow")])
    with pytest.raises(TransportError) as excinfo:
        transport.fetch("https://example.com/slow")
    assert len(session.calls) == 3
    assert sleeps == [1.0, 1.0]
    assert sum(sleeps) == 2.0
    assert excinfo.value.attempts == 3
    assert excinfo.value.status_code is None
    assert excinfo.value.url == "https://example.com/slow"


def test_fetch_records_last_status_code():
    transport, session, _ = _transport([404])
    with pytest.raises(TransportError) as excinfo:
        transport.fetch("https://example.com/missing")
    assert excinfo.value.status_code == 404
    assert "HTTP 404" in str(excinfo.value)
    assert len(session.calls) == 3


def test_fetch_retries_connection_errors():
    transport, session, sleeps = _transport([requests.exceptions.ConnectionError("reset"), 200])
    assert transport.fetch("https://example.com/a") == "<html>200</html>"
    assert sleeps == [1.0]


def test_headers_and_user_agent_override():
    transport, session, _ = _transport([200])
    assert session.headers["User-Agent"] == HEADERS["User-Agent"]

    custom, custom_session, _ = _transport([200], user_agent="rrbooks-test/1.0")
    assert custom_session.headers["User-Agent"] == "rrbooks-test/1.0"


def test_context_manager_closes_session():
    transport, session, _ = _transport([200])
    with transport:
        pass
    assert session.closed


def test_slow_body_is_cut_at_the_attempt_deadline():
    """A server trickling bytes cannot keep an attempt alive past the timeout."""
    clock = FakeClock()
    trickle = FakeResponse(200, [b"x"] * 8, clock=clock, chunk_delay=0.5)
    transport, session, sleeps = _transport([trickle], timeout=1.0, attempts=1, clock=clock)

    with pytest.raises(TransportError) as excinfo:
        transport.fetch("https://example.com/trickle")
    assert "timeout" in str(excinfo.value)
    assert clock.now <= 1.5
    assert trickle.closed


def test_slow_attempt_is_retried_as_timeout():
    clock = FakeClock()
    slow = FakeResponse(200, [b"a", b"b", b"c"], clock=clock, chunk_delay=6.0)
    fast = FakeResponse(200, [b"<html>", b"ok</html>"], clock=clock)
    transport, session, sleeps = _transport([slow, fast], clock=clock)

    assert transport.fetch("https://example.com/a") == "<html>ok</html>"
    assert len(session.calls) == 2
    assert sleeps == [1.0]


def test_error_responses_are_closed():
    transport, session, _ = _transport([503, 200])
    transport.fetch("https://example.com/a")
    assert all(r.closed for r in session.responses)
