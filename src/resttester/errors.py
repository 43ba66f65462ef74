# SPDX-License-Identifier: BSD-3-Clause

"""
Exceptions raised by the test harness.

Failed assertions are reported using the builtin C{AssertionError},
so test runners present them as ordinary test failures.
The classes in this module cover the cases that need to be told apart
from a plain failed assertion.
"""

from __future__ import annotations


class InvalidArgument(ValueError):
    """
    Raised when a client is requested for a URI that cannot be used,
    for example a relative URI.
    """


class ResourceFault(Exception):
    """
    Raised when a stream or encoding problem prevents a request from
    being made or a response from being read.

    These faults are never retried: they are propagated to the test
    as-is.
    """


class RetryExhausted(AssertionError):
    """
    Raised when an assertion policy kept asking for retries until
    the attempt limit was reached.

    The last assertion failure is available as C{__cause__}.
    """

    def __init__(self, message: str, attempts: int):
        super().__init__(message)

        self.attempts = attempts
        """Number of times the assertion was evaluated."""
