# SPDX-License-Identifier: BSD-3-Clause

"""
Buffer the result of a deferred HTTP request.

A response body arrives as a stream that can only be read once, while
a test typically looks at the body many times: through assertions,
document queries and diagnostics. L{BufferedFetcher} performs the
request on first use, reads the whole body into memory and serves all
later reads from that copy, until it is explicitly L{reset
<BufferedFetcher.reset>}.
"""

from __future__ import annotations

from email.message import Message
from logging import getLogger
from threading import RLock
from typing import Callable

from resttester.decode import decode_body
from resttester.errors import ResourceFault
from resttester.transport import RawResponse

_LOG = getLogger(__name__)


class BufferedResult:
    """Status, headers and body of a response, held in memory."""

    def __init__(self, status: int, reason: str, headers: Message, content: bytes):
        self.status = status
        self.reason = reason
        self.headers = headers
        self.content = content

    @property
    def location(self) -> str | None:
        """The C{Location} header, or C{None} if there is none."""
        value = self.headers.get("Location")
        return None if value is None else str(value)


class BufferedFetcher:
    """
    Wraps a zero-argument fetch function and caches what it returns.

    The wrapped function is called at most once between resets.
    All methods are safe to call from multiple threads; the lock is
    re-entrant and available as L{lock}, so an owner can hold it across
    several calls.
    """

    def __init__(self, fetcher: Callable[[], RawResponse], lock: RLock | None = None):
        self._fetcher = fetcher

        self.lock = RLock() if lock is None else lock
        """Guards the cached state."""

        self.generation = 0
        """Incremented on every L{reset}; identifies the current result."""

        self.calls = 0
        """Number of times the wrapped fetch function was invoked."""

        self._result: BufferedResult | None = None
        self._text: str | None = None

    def fetch(self) -> BufferedResult:
        """
        Return the buffered result, performing the request if needed.

        @raise ResourceFault:
            If the response body could not be read.
        """
        with self.lock:
            result = self._result
            if result is None:
                self.calls += 1
                raw = self._fetcher()
                try:
                    content = raw.stream.read()
                except OSError as ex:
                    raise ResourceFault(f"Failed to read response body: {ex}") from ex
                finally:
                    raw.stream.close()
                _LOG.debug(
                    "Buffered %d bytes (HTTP %d), generation %d",
                    len(content),
                    raw.status,
                    self.generation,
                )
                result = BufferedResult(raw.status, raw.reason, raw.headers, content)
                self._result = result
            return result

    def body(self) -> str:
        """Return the buffered body as text, performing the request if needed."""
        with self.lock:
            text = self._text
            if text is None:
                result = self.fetch()
                content_type = result.headers.get("Content-Type")
                text = decode_body(
                    result.content,
                    None if content_type is None else str(content_type),
                    _LOG,
                )
                self._text = text
            return text

    def reset(self) -> None:
        """Forget the buffered result, so the next read makes a new request."""
        with self.lock:
            self._result = None
            self._text = None
            self.generation += 1
