"""
Unit tests for `resttester.matchers` and `resttester.policy`.
"""

from pytest import mark, raises

from resttester.matchers import (
    as_matcher,
    assert_matches,
    contains_string,
    equal_to,
    has_item,
    matches_regex,
    not_none,
)
from resttester.policy import (
    AssertionPolicy,
    Eventually,
    Failure,
    StatusPolicy,
    XPathPolicy,
)


@mark.parametrize(
    "matcher, actual, expected",
    (
        (equal_to(200), 200, True),
        (equal_to(200), "200", False),
        (contains_string("ell"), "hello", True),
        (contains_string("ell"), None, False),
        (matches_regex(r"^\d+$"), "123", True),
        (matches_regex(r"^\d+$"), "12a", False),
        (has_item("b"), ["a", "b"], True),
        (has_item(contains_string("x")), ["a", "b"], False),
        (has_item("a"), None, False),
        (not_none(), "", True),
        (not_none(), None, False),
    ),
)
def test_matchers(matcher, actual, expected):
    """Test the predefined matchers."""
    assert matcher.matches(actual) is expected
    assert matcher(actual) is expected


def test_as_matcher():
    """Test conversion of values and predicates to matchers."""
    assert as_matcher(3).matches(3)
    assert not as_matcher(3).matches(4)
    assert as_matcher(lambda value: value > 3).matches(4)
    matcher = not_none()
    assert as_matcher(matcher) is matcher


def test_assert_matches_message():
    """Test the layout of a failed match."""
    with raises(AssertionError) as exc_info:
        assert_matches(404, 200, "Status")
    assert str(exc_info.value) == (
        "Status\nExpected: equal to 200\n     but: was 404"
    )


def test_assert_matches_lazy_reason():
    """Test that a reason function is only called on failure."""
    calls = []

    def reason():
        calls.append(None)
        return "lazy"

    assert_matches("a", "a", reason)
    assert calls == []
    with raises(AssertionError, match="^lazy\n"):
        assert_matches("a", "b", reason)
    assert len(calls) == 1


@mark.parametrize(
    "retry, attempts",
    ((None, []), (3, [1, 2]), (1, []), (lambda attempt: attempt == 2, [2])),
)
def test_retry_spec(retry, attempts):
    """Test the retry decision derived from the constructor argument."""
    policy = StatusPolicy(200, retry)
    assert [n for n in range(1, 10) if policy.is_retry_needed(n)] == attempts


def test_policy_defaults():
    """Test the defaults of the policy base class."""
    policy = AssertionPolicy()
    assert not policy.quiet
    assert not policy.is_retry_needed(1)
    assert str(policy) == "AssertionPolicy"
    with raises(NotImplementedError):
        policy.check(None)


def test_policy_names():
    """Test how policies describe themselves in log messages."""
    assert str(StatusPolicy(200)) == "StatusPolicy(200)"
    assert str(XPathPolicy("/a")) == "XPathPolicy('/a')"
    assert str(Eventually(XPathPolicy("/a"))) == "Eventually(XPathPolicy('/a'))"


def test_eventually():
    """Test that Eventually is quiet and retries a fixed number of times."""
    policy = Eventually(Failure("never"), attempts=3)
    assert policy.quiet
    assert policy.is_retry_needed(2)
    assert not policy.is_retry_needed(3)
