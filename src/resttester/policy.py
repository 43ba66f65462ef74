# SPDX-License-Identifier: BSD-3-Clause

"""
Assertion policies.

An assertion policy combines a check on a response with a decision
whether a failed check is worth retrying. Policies are passed to
L{TestResponse.assert_that<resttester.response.TestResponse.assert_that>},
which runs the check and, if the policy asks for it, repeats the request
until the check passes or the attempt limit is reached.

Write your own policy by inheriting from L{AssertionPolicy}::

    class Indexed(AssertionPolicy):
        quiet = True

        def check(self, response):
            assert response.xpath("/results/hit"), "not indexed yet"

        def is_retry_needed(self, attempt):
            return attempt < 5
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Union

from resttester.matchers import MatcherLike, assert_matches

if TYPE_CHECKING:
    # pylint: disable=cyclic-import
    from resttester.response import TestResponse
else:
    TestResponse = object


RetrySpec = Union[int, Callable[[int], bool], None]
"""
How often to retry: C{None} for never, an C{int} for a maximum number
of attempts, or a function that receives the number of failed attempts
so far and returns C{True} to retry.
"""


def _retry_function(retry: RetrySpec) -> Callable[[int], bool]:
    if retry is None:
        return lambda attempt: False
    if isinstance(retry, int):
        limit = retry
        return lambda attempt: attempt < limit
    return retry


class AssertionPolicy:
    """
    Base class for assertion policies.

    Subclasses must implement L{check}. The default retry decision,
    implemented by L{is_retry_needed}, is taken from the C{retry}
    constructor argument and never retries if that is omitted.
    """

    quiet = False
    """
    When C{True}, retries are logged at C{INFO} level instead of
    C{WARNING}, for policies that expect to need several attempts.
    """

    def __init__(self, retry: RetrySpec = None):
        self._retry = _retry_function(retry)

    def check(self, response: TestResponse) -> None:
        """
        Verify the response.

        @raise AssertionError:
            If the response does not satisfy this policy.
        """
        raise NotImplementedError

    def is_retry_needed(self, attempt: int) -> bool:
        """
        Decide whether to make a new request after a failed check.

        @param attempt:
            The number of failed checks so far; 1 after the first failure.
        """
        return self._retry(attempt)

    def __str__(self) -> str:
        return self.__class__.__name__


class StatusPolicy(AssertionPolicy):
    """Checks the HTTP status code."""

    def __init__(self, matcher: MatcherLike, retry: RetrySpec = None):
        super().__init__(retry)
        self.matcher = matcher

    def check(self, response: TestResponse) -> None:
        assert_matches(
            response.status,
            self.matcher,
            lambda: f"HTTP status code has to match:\n{response}",
        )

    def __str__(self) -> str:
        return f"StatusPolicy({self.matcher!r})"


class HeaderPolicy(AssertionPolicy):
    """
    Checks the values of a response header.

    The matcher receives the list of all values of the header,
    which is empty if the header is absent.
    """

    def __init__(self, name: str, matcher: MatcherLike, retry: RetrySpec = None):
        super().__init__(retry)
        self.name = name
        self.matcher = matcher

    def check(self, response: TestResponse) -> None:
        values = [str(value) for value in response.headers.get_all(self.name, [])]
        assert_matches(
            values,
            self.matcher,
            lambda: f'HTTP header "{self.name}" has to match:\n{response}',
        )

    def __str__(self) -> str:
        return f"HeaderPolicy({self.name!r}, {self.matcher!r})"


class BodyPolicy(AssertionPolicy):
    """Checks the response body as text."""

    def __init__(self, matcher: MatcherLike, retry: RetrySpec = None):
        super().__init__(retry)
        self.matcher = matcher

    def check(self, response: TestResponse) -> None:
        assert_matches(
            response.body,
            self.matcher,
            lambda: f"Content has to match:\n{response}",
        )


class XPathPolicy(AssertionPolicy):
    """Checks that an XPath query finds at least one node in the body."""

    def __init__(self, query: str, retry: RetrySpec = None):
        super().__init__(retry)
        self.query = query

    def check(self, response: TestResponse) -> None:
        if not response.xpath(self.query):
            raise AssertionError(
                f'XPath "{self.query}" not found in:\n{response}'
            )

    def __str__(self) -> str:
        return f"XPathPolicy({self.query!r})"


class JsonPolicy(AssertionPolicy):
    """Checks that a JSON path query matches at least one value in the body."""

    def __init__(self, query: str, retry: RetrySpec = None):
        super().__init__(retry)
        self.query = query

    def check(self, response: TestResponse) -> None:
        if not response.get_json().select(self.query):
            raise AssertionError(
                f'JSON path "{self.query}" not found in:\n{response}'
            )

    def __str__(self) -> str:
        return f"JsonPolicy({self.query!r})"


class Failure(AssertionPolicy):
    """Always fails, with the given reason; never retried."""

    def __init__(self, reason: str):
        super().__init__()
        self.reason = reason

    def check(self, response: TestResponse) -> None:
        raise AssertionError(f"{self.reason}\n{response}")


class Eventually(AssertionPolicy):
    """
    Wraps another policy and retries it up to a number of attempts,
    regardless of the wrapped policy's own retry decision.

    Use this for backends that are eventually consistent, where a change
    may take a few requests to become visible.
    """

    quiet = True

    def __init__(self, policy: AssertionPolicy, attempts: int = 5):
        super().__init__(attempts)
        self.policy = policy

    def check(self, response: TestResponse) -> None:
        self.policy.check(response)

    def __str__(self) -> str:
        return f"Eventually({self.policy})"
