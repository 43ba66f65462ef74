# SPDX-License-Identifier: BSD-3-Clause

"""
Execute HTTP requests.

The test client does not talk to the network itself: it hands each
request to a L{Transport}. L{URLLibTransport} is the default transport,
built on the standard C{urllib} opener. Tests can substitute their own
transport, for example one that returns canned responses.
"""

from __future__ import annotations

from email.message import Message
from http.client import HTTPException, HTTPMessage
from io import BytesIO
from logging import getLogger
from typing import IO, Iterable, Protocol, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import (
    HTTPRedirectHandler,
    OpenerDirector,
    Request as URLRequest,
    build_opener,
)

from resttester.errors import ResourceFault
from resttester.request import Header
from resttester.version import VERSION_STRING

USER_AGENT = f"resttester/{VERSION_STRING}"

_LOG = getLogger(__name__)


class RawResponse:
    """
    A response as received from a transport.

    The body is a stream that can only be read once.
    """

    def __init__(
        self,
        status: int,
        reason: str,
        headers: Message,
        stream: IO[bytes],
        url: str = "",
    ):
        self.status = status
        """The HTTP status code."""

        self.reason = reason
        """The reason phrase that came with the status code."""

        self.headers = headers
        """The response headers; names may occur more than once."""

        self.stream = stream
        """Stream containing the response body."""

        self.url = url
        """The URL that produced this response."""


def make_headers(pairs: Iterable[tuple[str, str]]) -> Message:
    """Build a header multimap from C{(name, value)} pairs."""
    headers = HTTPMessage()
    for name, value in pairs:
        headers[name] = value
    return headers


def canned_response(
    status: int = 200,
    body: bytes | str = b"",
    headers: Iterable[tuple[str, str]] = (),
    reason: str = "",
    url: str = "",
) -> RawResponse:
    """
    Create a L{RawResponse} from in-memory data.

    Useful for transports that do not use the network.
    """
    if isinstance(body, str):
        body = body.encode("utf-8")
    return RawResponse(status, reason, make_headers(headers), BytesIO(body), url)


class Transport(Protocol):
    """Something that can execute an HTTP request."""

    def execute(
        self, method: str, url: str, headers: Sequence[Header], body: bytes | None
    ) -> RawResponse:
        """
        Send a request and return the response.

        Redirects must not be followed: a redirect response is returned
        like any other response.

        @param method:
            HTTP method name, such as C{GET}.
        @param url:
            Absolute URL to send the request to.
        @param headers:
            Headers to send, in order. A name can occur more than once.
        @param body:
            Request body, or C{None} for requests without a body.
        @raise ResourceFault:
            If the request could not be sent or no response was received.
        """


class _NoRedirectHandler(HTTPRedirectHandler):
    def redirect_request(
        self,
        req: URLRequest,
        fp: IO[bytes],
        code: int,
        msg: str,
        headers: HTTPMessage,
        newurl: str,
    ) -> URLRequest | None:
        # Returning None makes the opener raise an HTTPError that carries
        # the redirect response, which is what the test wants to see.
        return None


# Headers for which a second value replaces the first, instead of being
# combined with it.
_SINGLETON_HEADERS = frozenset(
    ("authorization", "content-length", "content-type", "host", "user-agent")
)


def merge_headers(headers: Iterable[Header]) -> dict[str, str]:
    """
    Combine repeated header names into a single value per name.

    C{urllib} keeps one value per header name, so repeated cookies are
    joined with C{"; "}, singleton headers keep their last value and
    other headers are joined with C{", "}.
    """
    merged: dict[str, str] = {}
    names: dict[str, str] = {}
    for name, value in headers:
        key = name.lower()
        if key not in merged or key in _SINGLETON_HEADERS:
            merged[key] = value
            names[key] = name
        elif key == "cookie":
            merged[key] += f"; {value}"
        else:
            merged[key] += f", {value}"
    return {names[key]: value for key, value in merged.items()}


class URLLibTransport:
    """Transport that uses the standard library's C{urllib} opener."""

    def __init__(self, timeout: float | None = 30.0):
        """
        Initialize a transport.

        @param timeout:
            Socket timeout in seconds, or C{None} to wait indefinitely.
        """
        self.timeout = timeout
        self._opener: OpenerDirector = build_opener(_NoRedirectHandler)

    def execute(
        self, method: str, url: str, headers: Sequence[Header], body: bytes | None
    ) -> RawResponse:
        url_req = URLRequest(url, data=body, method=method)
        url_req.add_header("User-Agent", USER_AGENT)
        for name, value in merge_headers(headers).items():
            url_req.add_header(name, value)

        try:
            response = self._opener.open(url_req, timeout=self.timeout)
        except HTTPError as ex:
            # Error and redirect statuses are responses too.
            _LOG.debug("HTTP status %d for %s %s", ex.code, method, url)
            stream = ex.fp if ex.fp is not None else BytesIO()
            return RawResponse(
                ex.code, str(ex.reason), ex.headers, stream, ex.geturl() or url
            )
        except URLError as ex:
            raise ResourceFault(f"{method} {url} failed: {ex.reason}") from ex
        except (HTTPException, OSError) as ex:
            raise ResourceFault(f"{method} {url} failed: {ex}") from ex

        return RawResponse(
            response.status,
            response.reason,
            response.headers,
            response,
            response.url or url,
        )
