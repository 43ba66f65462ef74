# SPDX-License-Identifier: BSD-3-Clause

"""
Inspect and assert on the response to a test request.

L{TestResponse} makes the deferred request on first use and keeps the
result in memory. All assertions go through L{TestResponse.assert_that},
which can repeat the request when an assertion policy asks for it:
this is useful when testing services that are eventually consistent,
such as a search index that is updated asynchronously.
"""

from __future__ import annotations

from email.message import Message
from enum import Enum, auto
from http import HTTPStatus
from http.cookies import CookieError, Morsel, SimpleCookie
from logging import INFO, WARNING
from threading import RLock
from typing import TYPE_CHECKING, Callable, Tuple
from urllib.parse import urljoin

from lxml import etree

from resttester.errors import ResourceFault, RetryExhausted
from resttester.fetch import BufferedFetcher
from resttester.jsondoc import JsonDocument
from resttester.matchers import MatcherLike
from resttester.policy import (
    AssertionPolicy,
    BodyPolicy,
    Failure,
    HeaderPolicy,
    JsonPolicy,
    RetrySpec,
    StatusPolicy,
    XPathPolicy,
)
from resttester.report import RequestLog, dump_response
from resttester.request import RequestInfo
from resttester.transport import RawResponse, Transport
from resttester.xmldoc import XmlDocument

if TYPE_CHECKING:
    # pylint: disable=cyclic-import
    from resttester.client import TestClient
else:
    TestClient = object


class Outcome(Enum):
    """The result of evaluating an assertion policy once."""

    PASS = auto()
    """The assertion holds."""

    RETRY = auto()
    """The assertion failed and the policy wants another attempt."""

    FAIL = auto()
    """The assertion failed and the policy does not want to retry."""


def _reason_phrase(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


class TestResponse:
    """
    The response to a request made by a L{TestClient}.

    The request is made when the response is first inspected; after that,
    all inspection uses the buffered result until an assertion policy
    triggers a retry. Instances are thread-safe.
    """

    __test__ = False  # not a pytest test class

    MAX_ATTEMPTS = 8
    """Maximum number of times an assertion is evaluated."""

    def __init__(
        self,
        execute: Callable[[], Tuple[RequestInfo, RawResponse]],
        transport: Transport,
        log: RequestLog,
    ):
        """
        Initialize a response; normally done by L{TestClient}.

        @param execute:
            Makes the request; returns what was sent and what came back.
        @param transport:
            Transport to be used by clients created through navigation.
        @param log:
            Log for messages about this exchange.
        """
        self._lock = RLock()
        self._execute = execute
        self._transport = transport
        self._log = log
        self._request: RequestInfo | None = None
        self._fetcher = BufferedFetcher(self._fetch, self._lock)
        self._namespaces: dict[str, str] = {}
        self._xml: tuple[int, XmlDocument] | None = None
        self._json: tuple[int, JsonDocument] | None = None

    def _fetch(self) -> RawResponse:
        request, raw = self._execute()
        self._request = request
        return raw

    # Raw response data.

    @property
    def request(self) -> RequestInfo:
        """What was sent to get this response."""
        with self._lock:
            self._fetcher.fetch()
            request = self._request
            if request is None:
                raise RuntimeError("fetch function did not record a request")
            return request

    @property
    def status(self) -> int:
        """The HTTP status code."""
        return self._fetcher.fetch().status

    @property
    def status_line(self) -> str:
        """The HTTP status code and reason phrase, for example C{"200 OK"}."""
        result = self._fetcher.fetch()
        return f"{result.status:d} {result.reason or _reason_phrase(result.status)}"

    @property
    def headers(self) -> Message:
        """
        The response headers.

        Use C{headers.get_all(name)} to get all values of a header that
        occurs more than once.
        """
        return self._fetcher.fetch().headers

    @property
    def body(self) -> str:
        """The response body as text."""
        return self._fetcher.body()

    @property
    def content(self) -> bytes:
        """The response body as bytes."""
        return self._fetcher.fetch().content

    @property
    def fetcher(self) -> BufferedFetcher:
        """The buffered fetcher holding the current result."""
        return self._fetcher

    def __str__(self) -> str:
        with self._lock:
            result = self._fetcher.fetch()
            return (
                f"HTTP request:\n{self.request}\n"
                "HTTP response:\n"
                + dump_response(
                    result.status,
                    result.reason or _reason_phrase(result.status),
                    result.headers.items(),
                    self._body_dump(),
                )
            )

    def _body_dump(self) -> str:
        try:
            return self._fetcher.body()
        except ResourceFault:
            return f"<{len(self._fetcher.fetch().content):d} bytes of binary content>"

    # Document views.

    def get_xml(self) -> XmlDocument:
        """
        Return the body as an XML document.

        The document is parsed on first use and again after every retry.

        @raise AssertionError:
            If the body is not well-formed XML.
        """
        with self._lock:
            generation = self._fetcher.generation
            cached = self._xml
            if cached is None or cached[0] != generation:
                doc = XmlDocument.parse(self._fetcher.body()).merge(self._namespaces)
                # Reading the body does not change the generation.
                cached = self._xml = (generation, doc)
            return cached[1]

    def get_json(self) -> JsonDocument:
        """
        Return the body as a JSON document.

        The document is decoded on first use and again after every retry.

        @raise AssertionError:
            If the body is not valid JSON.
        """
        with self._lock:
            generation = self._fetcher.generation
            cached = self._json
            if cached is None or cached[0] != generation:
                cached = self._json = (
                    generation,
                    JsonDocument.parse(self._fetcher.body()),
                )
            return cached[1]

    xml = property(get_xml)
    json = property(get_json)

    def register_ns(self, prefix: str, uri: str) -> TestResponse:
        """Make C{prefix} available in XPath queries on this response."""
        return self.merge({prefix: uri})

    def merge(self, namespaces: dict[str, str]) -> TestResponse:
        """Make several namespace prefixes available in XPath queries."""
        with self._lock:
            self._namespaces.update(namespaces)
            if self._xml is not None:
                generation, doc = self._xml
                self._xml = (generation, doc.merge(namespaces))
        return self

    def node(self) -> etree._Element:  # pylint: disable=protected-access
        """Return the root element of the XML body."""
        return self.get_xml().node()

    def xpath(self, query: str) -> list[str]:
        """Evaluate an XPath query on the XML body."""
        return self.get_xml().xpath(query)

    def nodes(self, query: str) -> list[XmlDocument]:
        """Return the elements matching an XPath query on the XML body."""
        return self.get_xml().nodes(query)

    def json_query(self, query: str) -> list[str]:
        """Evaluate a JSON path query on the JSON body."""
        return self.get_json().json(query)

    def nodes_json(self, query: str) -> list[JsonDocument]:
        """Return the values matching a JSON path query on the JSON body."""
        return self.get_json().nodes_json(query)

    # Assertions.

    def _evaluate(
        self, policy: AssertionPolicy, attempt: int
    ) -> tuple[Outcome, AssertionError | None]:
        try:
            policy.check(self)
        except AssertionError as ex:
            if policy.is_retry_needed(attempt + 1):
                return Outcome.RETRY, ex
            else:
                return Outcome.FAIL, ex
        return Outcome.PASS, None

    def assert_that(self, policy: AssertionPolicy) -> TestResponse:
        """
        Check the response against an assertion policy.

        If the check fails and the policy asks for a retry, the buffered
        result is dropped and the request is made again, up to
        L{MAX_ATTEMPTS} times in total. There is no delay between attempts.

        @return:
            This response, to allow chaining.
        @raise AssertionError:
            The policy's own failure, if it did not ask for a retry.
        @raise RetryExhausted:
            If the policy still failed after L{MAX_ATTEMPTS} attempts.
        """
        with self._lock:
            attempt = 0
            while True:
                outcome, failure = self._evaluate(policy, attempt)
                if outcome is Outcome.PASS or failure is None:
                    return self
                attempt += 1
                if outcome is Outcome.FAIL:
                    raise failure
                if attempt >= self.MAX_ATTEMPTS:
                    raise RetryExhausted(
                        f"failed after {attempt:d} attempt(s)\n{self}", attempt
                    ) from failure
                if policy.quiet:
                    self._log.log(
                        INFO,
                        "#assert_that(%s): attempt #%d: %s",
                        policy,
                        attempt,
                        str(failure).split("\n", 1)[0],
                    )
                else:
                    self._log.log(
                        WARNING,
                        "#assert_that(%s): attempt #%d failed, re-trying: %s",
                        policy,
                        attempt,
                        failure,
                    )
                self._fetcher.reset()

    def fail(self, reason: str) -> None:
        """
        Fail the test, including this response in the message.

        @raise AssertionError: Always.
        """
        self.assert_that(Failure(reason))

    def assert_status(
        self, expected: MatcherLike, retry: RetrySpec = None
    ) -> TestResponse:
        """Assert that the status code matches C{expected}."""
        return self.assert_that(StatusPolicy(expected, retry))

    def assert_header(
        self, name: str, matcher: MatcherLike, retry: RetrySpec = None
    ) -> TestResponse:
        """
        Assert that the values of header C{name} match.

        The matcher receives a list of all values, which is empty if
        the header is absent.
        """
        return self.assert_that(HeaderPolicy(name, matcher, retry))

    def assert_body(
        self, matcher: MatcherLike, retry: RetrySpec = None
    ) -> TestResponse:
        """Assert that the body text matches."""
        return self.assert_that(BodyPolicy(matcher, retry))

    def assert_xpath(self, query: str, retry: RetrySpec = None) -> TestResponse:
        """Assert that an XPath query finds at least one node in the XML body."""
        return self.assert_that(XPathPolicy(query, retry))

    def assert_json(self, query: str, retry: RetrySpec = None) -> TestResponse:
        """Assert that a JSON path query matches at least one value in the body."""
        return self.assert_that(JsonPolicy(query, retry))

    # Cookies and navigation.

    def _cookies(self) -> SimpleCookie:
        cookies: SimpleCookie = SimpleCookie()
        for header in self.headers.get_all("Set-Cookie", []):
            try:
                cookies.load(str(header))
            except CookieError as ex:
                self._log.warning('Ignoring malformed Set-Cookie "%s": %s', header, ex)
        return cookies

    def cookie(self, name: str) -> Morsel:
        """
        Return the cookie with the given name from the C{Set-Cookie} headers.

        @raise AssertionError:
            If there are no C{Set-Cookie} headers or none sets C{name}.
        """
        with self._lock:
            headers = [str(value) for value in self.headers.get_all("Set-Cookie", [])]
            if not headers:
                raise AssertionError(
                    f"cookies should be set in HTTP header:\n{self}"
                )
            morsel = self._cookies().get(name)
            if morsel is None:
                raise AssertionError(
                    f"cookie '{name}' not found in Set-Cookie header: "
                    f"'{', '.join(headers)}'"
                )
            return morsel

    def rel(self, query: str) -> TestClient:
        """
        Follow the link selected by an XPath query on the XML body.

        The query must select exactly one node. A relative link is
        resolved against the request URL. Cookies set by this response
        are sent by the new client.

        @raise AssertionError:
            If the query selects zero or several nodes.
        """
        with self._lock:
            links = self.xpath(query)
            if len(links) != 1:
                raise AssertionError(
                    f"XPath '{query}' has to match exactly one node, "
                    f"found {len(links):d} in:\n{self}"
                )
            return self._follow(urljoin(self.request.url, links[0].strip()))

    def follow(self) -> TestClient:
        """
        Follow the C{Location} header of a redirect response.

        Cookies set by this response are sent by the new client.

        @raise AssertionError:
            If the response has no C{Location} header.
        """
        with self._lock:
            location = self._fetcher.fetch().location
            if location is None:
                raise AssertionError(f"Location header is missing in:\n{self}")
            return self._follow(urljoin(self.request.url, location))

    def _follow(self, uri: str) -> TestClient:
        # pylint: disable=import-outside-toplevel,cyclic-import
        from resttester.client import start

        client = start(uri, self._transport)
        for name, morsel in self._cookies().items():
            client.header("Cookie", f"{name}={morsel.coded_value}")
        return client
