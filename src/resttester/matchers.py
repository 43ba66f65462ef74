# SPDX-License-Identifier: BSD-3-Clause

"""
Value matchers.

Wherever a matcher is accepted, you can pass either a plain value,
which must then be equal to the actual value, a predicate function,
or one of the L{Matcher} objects created by the functions in this
module, which describe themselves in failure messages::

    response.assert_body(contains_string("<title>"))
    mock.header_matcher("Accept", lambda value: "json" in value)
"""

from __future__ import annotations

import re
from typing import Any, Callable, Union


class Matcher:
    """A predicate with a description, for use in failure messages."""

    def __init__(self, predicate: Callable[[Any], bool], description: str):
        self._predicate = predicate
        self.description = description

    def matches(self, actual: Any) -> bool:
        """Return C{True} iff C{actual} satisfies this matcher."""
        return bool(self._predicate(actual))

    def __call__(self, actual: Any) -> bool:
        return self.matches(actual)

    def __str__(self) -> str:
        return self.description

    def __repr__(self) -> str:
        return f"Matcher({self.description!r})"


MatcherLike = Union[Matcher, Callable[[Any], bool], Any]
"""A L{Matcher}, a predicate function or a value to compare against."""


def equal_to(expected: Any) -> Matcher:
    return Matcher(lambda actual: actual == expected, f"equal to {expected!r}")


def contains_string(fragment: str) -> Matcher:
    return Matcher(
        lambda actual: actual is not None and fragment in actual,
        f"a string containing {fragment!r}",
    )


def matches_regex(pattern: str) -> Matcher:
    """Match strings in which C{pattern} can be found."""
    regex = re.compile(pattern)
    return Matcher(
        lambda actual: actual is not None and regex.search(actual) is not None,
        f"a string matching /{pattern}/",
    )


def has_item(item: MatcherLike) -> Matcher:
    """Match collections of which at least one element matches C{item}."""
    matcher = as_matcher(item)
    return Matcher(
        lambda actual: actual is not None
        and any(matcher.matches(elem) for elem in actual),
        f"a collection containing {matcher}",
    )


def not_none() -> Matcher:
    return Matcher(lambda actual: actual is not None, "not None")


def as_matcher(value: MatcherLike) -> Matcher:
    """
    Turn a matcher-like value into a L{Matcher}.

    Matchers are returned as-is, callables are wrapped as predicates and
    anything else is compared for equality.
    """
    if isinstance(value, Matcher):
        return value
    if callable(value):
        name = getattr(value, "__name__", None) or repr(value)
        return Matcher(value, f"satisfying {name}")
    return equal_to(value)


def assert_matches(
    actual: Any, matcher: MatcherLike, reason: str | Callable[[], str]
) -> None:
    """
    Check C{actual} against C{matcher}.

    @param reason:
        Start of the failure message, or a function that produces it;
        the function is only called if the match fails.
    @raise AssertionError:
        If it does not match.
    """
    matcher = as_matcher(matcher)
    if not matcher.matches(actual):
        message = reason if isinstance(reason, str) else reason()
        raise AssertionError(
            f"{message}\nExpected: {matcher}\n     but: was {actual!r}"
        )
