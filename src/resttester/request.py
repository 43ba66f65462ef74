# SPDX-License-Identifier: BSD-3-Clause

"""Home of the L{Header} and L{RequestInfo} classes."""

from __future__ import annotations

import re
from base64 import b64encode
from typing import NamedTuple, Sequence
from urllib.parse import unquote, urlsplit, urlunsplit

from resttester.errors import ResourceFault
from resttester.report import dump_headers, truncate


_RE_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


class Header(NamedTuple):
    """A single HTTP header line."""

    name: str
    value: str


def is_absolute(uri: str) -> bool:
    """Return C{True} iff C{uri} has both a scheme and a host."""
    parts = urlsplit(uri)
    return bool(parts.scheme) and bool(parts.netloc)


def normalize_home(uri: str) -> str:
    """
    Return C{uri} with an empty path replaced by C{/}.

    HTTP requires an empty URL path to be mapped to "/".
      https://tools.ietf.org/html/rfc7230#section-5.3.1
    """
    scheme, netloc, path, query, fragment = urlsplit(uri)
    return urlunsplit((scheme, netloc, path or "/", query, fragment))


def strip_user_info(uri: str) -> str:
    """Return C{uri} without the C{user:password@} part, if any."""
    parts = urlsplit(uri)
    if "@" not in parts.netloc:
        return uri
    host = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))


def basic_auth(uri: str) -> Header | None:
    """
    Derive an C{Authorization} header from the user info in C{uri}.

    Both the user name and the password are percent-decoded before
    they are encoded for the header.

    @return:
        A Basic authorization header, or C{None} if C{uri} does not
        contain user info.
    @raise ResourceFault:
        If the user info contains malformed percent-encoding.
    """
    netloc = urlsplit(uri).netloc
    if "@" not in netloc:
        return None
    info = netloc.rsplit("@", 1)[0]
    if _RE_BAD_ESCAPE.search(info) is not None:
        raise ResourceFault(f'Malformed percent-encoding in user info of URI "{uri}"')
    user, _, password = info.partition(":")
    try:
        credentials = (
            f"{unquote(user, errors='strict')}:{unquote(password, errors='strict')}"
        )
    except UnicodeDecodeError as ex:
        raise ResourceFault(f'Malformed user info in URI "{uri}": {ex}') from ex
    token = b64encode(credentials.encode("utf-8")).decode("ascii")
    return Header("Authorization", f"Basic {token}")


class RequestInfo:
    """
    Everything that was sent in one HTTP request.

    To get a human readable transcript, use C{str(request)}.
    """

    def __init__(
        self,
        method: str,
        url: str,
        headers: Sequence[Header],
        body: str = "",
        description: str = "",
    ):
        self.method = method
        """The HTTP method, such as C{GET}."""

        self.url = url
        """The full request URL, without user info."""

        self.headers = tuple(headers)
        """The headers that were sent, in order."""

        self.body = body
        """The request body; empty for C{GET}."""

        self.description = description
        """What the test said this request is for."""

    @property
    def path(self) -> str:
        """The path component of the request URL."""
        return urlsplit(self.url).path or "/"

    def __repr__(self) -> str:
        return f"RequestInfo({self.method!r}, {self.url!r})"

    def __str__(self) -> str:
        lines = f"{self.method} {self.path}"
        if self.description:
            lines += f' ("{self.description}")'
        lines += f"\n{dump_headers(self.headers)}"
        if self.body:
            lines += f"\n{truncate(self.body)}"
        return lines
