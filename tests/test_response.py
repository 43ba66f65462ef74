"""
Unit tests for `resttester.response`.
"""

from logging import INFO, WARNING
from threading import Thread

from pytest import raises

from resttester.client import start
from resttester.errors import ResourceFault, RetryExhausted
from resttester.matchers import contains_string, has_item
from resttester.policy import AssertionPolicy, Eventually, StatusPolicy
from resttester.request import Header
from resttester.response import TestResponse

from utils import FakeTransport, no_log

XML = [("Content-Type", "application/xml")]
JSON = [("Content-Type", "application/json")]


class CountingPolicy(AssertionPolicy):
    """Policy that always fails and counts its evaluations."""

    def __init__(self, retry):
        super().__init__()
        self.evaluations = 0
        self.retry = retry

    def check(self, response):
        self.evaluations += 1
        assert response.status == 200
        raise AssertionError(f"failure {self.evaluations:d}")

    def is_retry_needed(self, attempt):
        return self.retry


class QuietPolicy(StatusPolicy):
    quiet = True


def respond(*responses):
    transport = FakeTransport(*responses)
    return transport, start("http://example.com/", transport).get("test")


def test_retry_bound():
    """Test that an always-retrying policy is evaluated MAX_ATTEMPTS times."""
    transport, response = respond((200, "", ()))
    policy = CountingPolicy(retry=True)
    with raises(RetryExhausted) as exc_info:
        response.assert_that(policy)
    assert policy.evaluations == TestResponse.MAX_ATTEMPTS
    assert transport.calls == TestResponse.MAX_ATTEMPTS
    assert exc_info.value.attempts == TestResponse.MAX_ATTEMPTS
    assert f"failed after {TestResponse.MAX_ATTEMPTS:d} attempt(s)" in str(
        exc_info.value
    )
    assert str(exc_info.value.__cause__) == (
        f"failure {TestResponse.MAX_ATTEMPTS:d}"
    )


def test_no_retry_verbatim():
    """Test that a non-retrying policy propagates the first failure as-is."""
    transport, response = respond((200, "", ()))
    policy = CountingPolicy(retry=False)
    with raises(AssertionError) as exc_info:
        response.assert_that(policy)
    assert type(exc_info.value) is AssertionError
    assert str(exc_info.value) == "failure 1"
    assert policy.evaluations == 1
    assert transport.calls == 1


def test_retry_until_pass():
    """Test that a retry makes a new request and can then succeed."""
    transport, response = respond((404, "", ()), (404, "", ()), (200, "found", ()))
    assert response.assert_status(200, retry=5) is response
    assert transport.calls == 3
    assert response.body == "found"


def test_retry_limit_from_policy():
    """Test that an integer retry spec limits the number of attempts."""
    transport, response = respond((404, "", ()))
    with raises(AssertionError) as exc_info:
        response.assert_status(200, retry=3)
    assert not isinstance(exc_info.value, RetryExhausted)
    assert transport.calls == 3


def test_default_no_retry():
    """Test that derived assertions do not retry by default."""
    transport, response = respond((404, "", ()), (200, "", ()))
    with raises(AssertionError, match="HTTP status code has to match"):
        response.assert_status(200)
    assert transport.calls == 1


def test_transport_error_not_retried():
    """Test that transport faults propagate without retrying."""
    transport, response = respond(ResourceFault("connection refused"))
    with raises(ResourceFault):
        response.assert_status(200, retry=5)
    assert transport.calls == 1


def test_retry_logging(caplog):
    """Test that retries are logged as warnings."""
    transport_, response = respond((500, "", ()), (200, "", ()))
    with caplog.at_level(INFO, logger="resttester.client"):
        response.assert_status(200, retry=2)
    levels = [
        record.levelno for record in caplog.records if "attempt #1" in record.message
    ]
    assert levels == [WARNING]


def test_retry_logging_quiet(caplog):
    """Test that retries of quiet policies are logged as info."""
    transport_, response = respond((500, "", ()), (200, "", ()))
    with caplog.at_level(INFO, logger="resttester.client"):
        response.assert_that(QuietPolicy(200, retry=2))
    levels = [
        record.levelno for record in caplog.records if "attempt #1" in record.message
    ]
    assert levels == [INFO]


def test_eventually():
    """Test that Eventually retries a policy that would not retry itself."""
    transport, response = respond((404, "", ()), (200, "", ()))
    response.assert_that(Eventually(StatusPolicy(200), attempts=3))
    assert transport.calls == 2


def test_reset_invalidates_xml():
    """Test that the XML view is rebuilt after a retry."""
    transport, response = respond(
        (200, "<r><state>pending</state></r>", XML),
        (200, "<r><state>done</state></r>", XML),
    )
    assert response.xpath("/r/state/text()") == ["pending"]
    first = response.get_xml()
    assert response.get_xml() is first
    response.assert_xpath("/r/state[.='done']", retry=2)
    assert response.xpath("/r/state/text()") == ["done"]
    assert response.get_xml() is not first
    assert transport.calls == 2


def test_namespaces_survive_reset():
    """Test that registered prefixes apply to rebuilt XML views."""
    body = '<r xmlns="urn:x"><v>1</v></r>'
    transport_, response = respond((200, body, XML))
    response.register_ns("x", "urn:x")
    assert response.xpath("/x:r/x:v/text()") == ["1"]
    response.fetcher.reset()
    assert response.xpath("/x:r/x:v/text()") == ["1"]


def test_json_view():
    """Test JSON queries and assertions."""
    transport_, response = respond((200, '{"items": [{"id": 7}]}', JSON))
    assert response.json_query("$.items[0].id") == ["7"]
    assert response.json is response.get_json()
    assert [doc.value for doc in response.nodes_json("$.items[*]")] == [{"id": 7}]
    response.assert_json("$.items[0].id")
    with raises(AssertionError, match="JSON path"):
        response.assert_json("$.items[1]")


def test_status_line():
    """Test the status line with a reason phrase from the status code."""
    transport_, response = respond((404, "", ()))
    assert response.status_line == "404 Not Found"


def test_assert_header():
    """Test assertions on header values."""
    transport_, response = respond(
        (200, "", [("X-Multi", "a"), ("X-Multi", "b")])
    )
    response.assert_header("X-Multi", ["a", "b"])
    response.assert_header("X-Multi", has_item("b"))
    response.assert_header("X-Missing", [])
    with raises(AssertionError, match='HTTP header "X-Multi"'):
        response.assert_header("X-Multi", has_item("c"))


def test_assert_body():
    """Test assertions on the body text."""
    transport_, response = respond((200, "<p>Hello</p>", ()))
    response.assert_body(contains_string("Hello")).assert_body("<p>Hello</p>")
    with raises(AssertionError, match="Content has to match"):
        response.assert_body(contains_string("Goodbye"))


def test_fail_includes_transcript():
    """Test that fail() reports the request and the response."""
    transport_, response = respond((500, "boom", [("X-Trace", "abc")]))
    with raises(AssertionError) as exc_info:
        response.fail("giving up")
    message = str(exc_info.value)
    assert message.startswith("giving up")
    assert 'GET / ("test")' in message
    assert "500 Internal Server Error" in message
    assert "X-Trace: [abc]" in message
    assert "boom" in message


def test_cookie():
    """Test lookup of a cookie set by the response."""
    transport_, response = respond(
        (200, "", [("Set-Cookie", "sid=42; Path=/"), ("Set-Cookie", "lang=en")])
    )
    assert response.cookie("sid").value == "42"
    assert response.cookie("sid")["path"] == "/"
    assert response.cookie("lang").value == "en"
    with raises(AssertionError, match="cookie 'theme' not found"):
        response.cookie("theme")


def test_cookie_no_header():
    """Test that looking up a cookie without Set-Cookie headers fails."""
    transport_, response = respond((200, "", ()))
    with raises(AssertionError, match="cookies should be set"):
        response.cookie("sid")


def test_follow_propagates_cookies():
    """Test that follow() targets Location and carries cookies over."""
    transport, response = respond(
        (303, "", [("Location", "/next"), ("Set-Cookie", "sid=42")]),
        (200, "", ()),
    )
    client = response.follow()
    assert client.uri == "http://example.com/next"
    client.get("next").status
    method_, url, headers, body_ = transport.requests[1]
    assert url == "http://example.com/next"
    assert headers == (Header("Cookie", "sid=42"),)


def test_follow_without_location():
    """Test that follow() requires a Location header."""
    transport_, response = respond((200, "", ()))
    with raises(AssertionError, match="Location header is missing"):
        response.follow()


def test_follow_new_client():
    """Test that each navigation creates a separate client."""
    transport_, response = respond(
        (302, "", [("Location", "http://other.example.com/"), ("Set-Cookie", "a=1")])
    )
    first = response.follow()
    second = response.follow()
    assert first is not second
    first.header("X-Only-First", "1")
    assert second.headers == (Header("Cookie", "a=1"),)


def test_rel():
    """Test that rel() follows the single link selected by a query."""
    transport_, response = respond(
        (200, '<page><link rel="next">/p/2</link></page>', XML)
    )
    client = response.rel("/page/link[@rel='next']/text()")
    assert client.uri == "http://example.com/p/2"


def test_rel_cookies():
    """Test that rel() carries cookies over as well."""
    transport, response = respond(
        (200, "<page><a>/x</a></page>", [("Set-Cookie", "sid=7; HttpOnly")]),
    )
    response.rel("/page/a").get().status
    assert transport.sent_headers() == [Header("Cookie", "sid=7")]


def test_rel_no_match():
    """Test that rel() fails when the query matches nothing."""
    transport_, response = respond((200, "<page/>", XML))
    with raises(AssertionError, match="found 0"):
        response.rel("/page/link/text()")


def test_rel_two_matches():
    """Test that rel() fails when the query matches several nodes."""
    transport_, response = respond(
        (200, "<page><link>/p/1</link><link>/p/2</link></page>", XML)
    )
    with raises(AssertionError, match="found 2"):
        response.rel("/page/link/text()")


def test_passing_assertion_quiet():
    """Test that a passing assertion does not log anything."""
    transport_, response = respond((200, "", ()))
    response.status
    with no_log(response._log.logger):  # pylint: disable=protected-access
        response.assert_status(200)


def test_transcript_binary_body():
    """Test that a failure on an undecodable body is still an assertion."""
    png = b"\x89PNG\r\n\x1a\n\x00\x00\x00\x0d\xff\xfe"
    transport, response = respond(
        (503, png, [("Content-Type", "image/png")]),
        (200, png, [("Content-Type", "image/png")]),
    )
    response.assert_status(200, retry=3)
    assert transport.calls == 2
    with raises(AssertionError) as exc_info:
        response.fail("binary")
    assert f"<{len(png):d} bytes of binary content>" in str(exc_info.value)
    assert response.content == png


def test_reset_during_queries():
    """Test that views stay consistent while another thread resets."""
    transport = FakeTransport(
        *((200, f"<r><n>{index:d}</n></r>", XML) for index in range(500))
    )
    response = start("http://example.com/", transport).get("concurrent")
    fetcher = response.fetcher
    served = {str(index) for index in range(500)}
    results = []

    def query():
        for _ in range(50):
            results.append(response.xpath("/r/n/text()"))

    def reset():
        for _ in range(50):
            fetcher.reset()

    threads = [Thread(target=query) for _ in range(4)] + [Thread(target=reset)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == 200
    for result in results:
        assert len(result) == 1
        assert result[0] in served
    assert fetcher.calls <= fetcher.generation + 1
    assert response.xpath("/r/n/text()") == [str(transport.calls - 1)]
    assert fetcher.calls <= fetcher.generation + 1
