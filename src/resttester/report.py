# SPDX-License-Identifier: BSD-3-Clause

"""
Logging and diagnostic transcripts.

Messages about a single HTTP exchange are logged through a L{RequestLog},
which is a L{logging.LoggerAdapter} that attaches the request URL and
description to every record, so handlers can group or filter them.

The L{dump_response} function renders a response in the same layout
as L{RequestInfo<resttester.request.RequestInfo>} renders a request;
together they form the transcript that is included in assertion failures.
"""

from __future__ import annotations

from logging import Logger, LoggerAdapter
from typing import TYPE_CHECKING, Any, Iterable, MutableMapping, Tuple, Union

if TYPE_CHECKING:
    # pylint: disable=unsubscriptable-object
    LoggerT = Union[Logger, LoggerAdapter[Any]]
    LoggerBase = LoggerAdapter[Logger]
else:
    LoggerT = LoggerAdapter
    LoggerBase = LoggerAdapter


MAX_DUMP_LENGTH = 4096
"""Bodies longer than this number of characters are truncated in dumps."""


class RequestLog(LoggerBase):
    """Logs messages that apply to one request."""

    def __init__(self, logger: Logger, url: str, description: str = ""):
        """
        Initialize a log for the request to C{url}.

        @param logger:
            The logger that records are passed on to.
        @param url:
            The URL of the request; stored in each record as C{url}.
        @param description:
            Human readable description of the request, as passed by
            the test; stored in each record as C{description}.
        """
        super().__init__(logger, dict(url=url, description=description))

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        """
        Process contextual information for a logged message.

        Our C{url} and C{description} will be inserted into the log record.
        """

        extra = kwargs.get("extra")
        if extra is None:
            extra = dict(self.extra or {})
        else:
            extra.update(self.extra or {})
        kwargs["extra"] = extra

        return msg, kwargs


def truncate(text: str, limit: int = MAX_DUMP_LENGTH) -> str:
    """Shorten C{text} to at most C{limit} characters plus a marker."""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... ({len(text) - limit:d} more characters)"


def dump_headers(headers: Iterable[Tuple[str, str]]) -> str:
    """Render header pairs one per line, in C{name: [value]} form."""
    return "".join(f"{name}: [{value}]\n" for name, value in headers)


def dump_response(
    status: int, reason: str, headers: Iterable[Tuple[str, str]], body: str
) -> str:
    """Render the status line, headers and body of a response."""
    return f"{status:d} {reason}\n{dump_headers(headers)}\n{truncate(body)}"
