# SPDX-License-Identifier: BSD-3-Clause

"""
An embeddable HTTP server that checks the requests it receives.

L{MockServer} stands in for a remote service in tests. Configure the
matchers that inbound requests must satisfy and the canned response
to send back, then point the code under test at L{MockServer.home}::

    with MockServer() as server:
        server.method_matcher("POST").body_matcher("name=John")
        server.status(201).header("Location", "/people/1")
        start(server.home).post("create person", "name=John").assert_status(201)

Requests are serviced on background threads. When a request does not
satisfy a matcher, the connection is closed without a response and
the mismatch is recorded; L{MockServer.verify}, which is also called
when the C{with} block ends, raises it on the test's thread.
"""

from __future__ import annotations

from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from logging import getLogger
from threading import Lock, Thread
from types import TracebackType
from typing import Any, Mapping, Sequence
from urllib.parse import parse_qs, urlsplit

from resttester.errors import ResourceFault
from resttester.matchers import MatcherLike, assert_matches
from resttester.report import dump_headers, truncate

_LOG = getLogger(__name__)


class RecordedRequest:
    """A request as received by the mock server."""

    def __init__(
        self,
        method: str,
        uri: str,
        protocol: str,
        headers: Sequence[tuple[str, str]],
        body: str,
    ):
        self.method = method
        self.uri = uri
        """The request target, including the query."""
        self.protocol = protocol
        self.headers = tuple(headers)
        self.body = body

    @property
    def path(self) -> str:
        """The request target without the query."""
        return urlsplit(self.uri).path

    def header(self, name: str) -> str | None:
        """Return the first value of the named header, or C{None}."""
        key = name.lower()
        for header_name, value in self.headers:
            if header_name.lower() == key:
                return value
        return None

    def params(self, content_type: str | None = None) -> dict[str, list[str]]:
        """
        Return the query parameters, plus the form parameters from
        a C{application/x-www-form-urlencoded} body.
        """
        params = parse_qs(urlsplit(self.uri).query, keep_blank_values=True)
        if content_type is None:
            content_type = self.header("Content-Type")
        if content_type and content_type.split(";")[0].strip().lower() == (
            "application/x-www-form-urlencoded"
        ):
            for name, values in parse_qs(self.body, keep_blank_values=True).items():
                params.setdefault(name, []).extend(values)
        return params

    def param(self, name: str) -> str | None:
        """Return the first value of the named parameter, or C{None}."""
        values = self.params().get(name)
        return values[0] if values else None

    def __str__(self) -> str:
        return (
            f"{self.method} {self.uri}  {self.protocol}\n"
            f"{dump_headers(self.headers)}{truncate(self.body)}"
        )


class _Expectations:
    """A snapshot of the mock server's configuration."""

    def __init__(
        self,
        method: Any,
        uri: Any,
        body: Any,
        params: Mapping[str, Any],
        headers: Mapping[str, Any],
    ):
        self.method = method
        self.uri = uri
        self.body = body
        self.params = dict(params)
        self.headers = dict(headers)

    def check(self, request: RecordedRequest) -> None:
        """
        Check a request against all configured matchers.

        @raise AssertionError:
            On the first matcher that is not satisfied.
        """
        # pylint: disable=cell-var-from-loop
        if self.method is not None:
            assert_matches(
                request.method,
                self.method,
                lambda: f"HTTP method matches provided matcher in:\n{request}",
            )
        if self.uri is not None:
            assert_matches(
                request.path,
                self.uri,
                lambda: f"Request-URI matches provided matcher in:\n{request}",
            )
        for name, matcher in self.params.items():
            assert_matches(
                request.param(name),
                matcher,
                lambda: f"Param '{name}' matches specified matcher in:\n{request}",
            )
        if self.body is not None:
            assert_matches(
                request.body,
                self.body,
                lambda: f"Body matches provided matcher in:\n{request}",
            )
        for name, matcher in self.headers.items():
            assert_matches(
                request.header(name),
                matcher,
                lambda: f"Header '{name}' matches specified matcher in:\n{request}",
            )


class _MockHandler(BaseHTTPRequestHandler):
    server: _MockHTTPServer

    def _service(self) -> None:
        mock = self.server.mock
        try:
            length = int(self.headers.get("Content-Length") or 0)
            data = self.rfile.read(length) if length > 0 else b""
            body = data.decode("utf-8")
        except (OSError, ValueError) as ex:
            self.close_connection = True
            mock.record_failure(ResourceFault(f"Failed to read request body: {ex}"))
            return

        request = RecordedRequest(
            self.command,
            self.path,
            self.request_version,
            list(self.headers.items()),
            body,
        )
        expectations, status, headers, content = mock.snapshot(request)
        try:
            expectations.check(request)
        except AssertionError as ex:
            # Hang up without answering, so the client sees a failure too.
            self.close_connection = True
            mock.record_failure(ex)
            return

        self.send_response(status)
        for name, value in headers.items():
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(content)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(content)

    do_GET = do_POST = do_PUT = do_DELETE = do_PATCH = do_HEAD = _service
    do_OPTIONS = _service

    def log_message(self, format: str, *args: Any) -> None:
        # pylint: disable=redefined-builtin
        _LOG.debug("%s - %s", self.address_string(), format % args)


class _MockHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address: tuple[str, int], mock: MockServer):
        super().__init__(address, _MockHandler)
        self.mock = mock


class MockServer:
    """
    HTTP server that checks inbound requests and sends a canned response.

    Matchers are optional: an unset matcher accepts anything.
    Configuration methods return the server itself, to allow chaining,
    and can be called while the server is running; the last value set
    for a key wins.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 0):
        """
        Initialize a mock server; it starts listening on L{start}.

        @param host:
            Address to bind to.
        @param port:
            Port to bind to; 0 picks an unused port.
        """
        self._address = (host, port)
        self._lock = Lock()
        self._method_matcher: Any = None
        self._uri_matcher: Any = None
        self._body_matcher: Any = None
        self._param_matchers: dict[str, Any] = {}
        self._header_matchers: dict[str, Any] = {}
        self._status = 200
        self._headers: dict[str, str] = {}
        self._body = b""
        self._requests: list[RecordedRequest] = []
        self._failures: list[BaseException] = []
        self._server: _MockHTTPServer | None = None
        self._thread: Thread | None = None

    # Matchers.

    def method_matcher(self, matcher: MatcherLike) -> MockServer:
        with self._lock:
            self._method_matcher = matcher
        return self

    def uri_matcher(self, matcher: MatcherLike) -> MockServer:
        """Match the request path, without the query."""
        with self._lock:
            self._uri_matcher = matcher
        return self

    def body_matcher(self, matcher: MatcherLike) -> MockServer:
        with self._lock:
            self._body_matcher = matcher
        return self

    def param_matcher(self, name: str, matcher: MatcherLike) -> MockServer:
        """
        Match a query or form parameter.

        The matcher receives the first value, or C{None} if the parameter
        is absent.
        """
        with self._lock:
            self._param_matchers[name] = matcher
        return self

    def header_matcher(self, name: str, matcher: MatcherLike) -> MockServer:
        """
        Match a request header.

        The matcher receives the first value, or C{None} if the header
        is absent.
        """
        with self._lock:
            self._header_matchers[name] = matcher
        return self

    def has_body_matcher(self) -> bool:
        with self._lock:
            return self._body_matcher is not None

    def has_param_matcher(self) -> bool:
        with self._lock:
            return bool(self._param_matchers)

    # Canned response.

    def status(self, code: int) -> MockServer:
        with self._lock:
            self._status = code
        return self

    def header(self, name: str, value: str) -> MockServer:
        with self._lock:
            self._headers[name] = value
        return self

    def body(self, content: str | bytes) -> MockServer:
        """Set the response body; strings are encoded as UTF-8."""
        if isinstance(content, str):
            content = content.encode("utf-8")
        with self._lock:
            self._body = bytes(content)
        return self

    # Request servicing.

    def snapshot(
        self, request: RecordedRequest
    ) -> tuple[_Expectations, int, dict[str, str], bytes]:
        """
        Record C{request} and return the configuration to service it with.

        Called by the request handler threads.
        """
        with self._lock:
            self._requests.append(request)
            return (
                _Expectations(
                    self._method_matcher,
                    self._uri_matcher,
                    self._body_matcher,
                    self._param_matchers,
                    self._header_matchers,
                ),
                self._status,
                dict(self._headers),
                self._body,
            )

    def record_failure(self, failure: BaseException) -> None:
        """Remember a failure, to be raised by L{verify}."""
        _LOG.warning("Mock server rejected request: %s", failure)
        with self._lock:
            self._failures.append(failure)

    @property
    def requests(self) -> list[RecordedRequest]:
        """All requests received so far, in order of arrival."""
        with self._lock:
            return list(self._requests)

    @property
    def failures(self) -> list[BaseException]:
        """All recorded mismatches and faults, in order."""
        with self._lock:
            return list(self._failures)

    def verify(self) -> None:
        """
        Raise the first recorded failure, if any.

        @raise AssertionError:
            If a request did not satisfy a matcher.
        @raise ResourceFault:
            If a request body could not be read.
        """
        with self._lock:
            failure = self._failures[0] if self._failures else None
        if failure is not None:
            raise failure

    # Lifecycle.

    @property
    def port(self) -> int:
        """The port the server listens on."""
        server = self._server
        if server is None:
            raise RuntimeError("Mock server is not running")
        return int(server.server_address[1])

    @property
    def home(self) -> str:
        """The base URL of the running server, ending in C{/}."""
        return f"http://{self._address[0]}:{self.port:d}/"

    def start(self) -> MockServer:
        """Start listening and servicing requests on a background thread."""
        if self._server is not None:
            raise RuntimeError("Mock server is already running")
        server = _MockHTTPServer(self._address, self)
        thread = Thread(
            target=server.serve_forever, name="resttester-mock", daemon=True
        )
        thread.start()
        self._server = server
        self._thread = thread
        _LOG.debug("Mock server listening at %s", self.home)
        return self

    def stop(self) -> None:
        """Stop the server; does nothing if it is not running."""
        server = self._server
        if server is None:
            return
        server.shutdown()
        server.server_close()
        if self._thread is not None:
            self._thread.join()
        self._server = None
        self._thread = None

    def __enter__(self) -> MockServer:
        return self.start()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.stop()
        if exc_type is None:
            self.verify()
