# SPDX-License-Identifier: BSD-3-Clause

"""
Path queries on JSON documents.

The supported path syntax is a small subset of JSONPath::

    $                   the document root
    .name  ['name']     member of an object
    [3]  [-1]           element of an array
    .*  [*]             all members or elements

A path that does not start with C{$} is taken relative to the root,
so C{"items[0].id"} equals C{"$.items[0].id"}.
"""

from __future__ import annotations

import json
import re
from typing import Any, Iterator, Union

_Step = Union[str, int, None]
"""Object member name, array index, or C{None} for a wildcard."""

_RE_STEP = re.compile(
    r"""
    \.(?P<name>[^.\[\]]+)
    | \[\s*(?P<index>-?\d+)\s*\]
    | \[\s*'(?P<squoted>[^']*)'\s*\]
    | \[\s*"(?P<dquoted>[^"]*)"\s*\]
    | \[\s*\*\s*\]
    """,
    re.VERBOSE,
)


def parse_path(query: str) -> list[_Step]:
    """
    Split a path query into steps.

    @raise AssertionError:
        If the query is not valid path syntax.
    """
    path = query.strip()
    if path.startswith("$"):
        path = path[1:]
    elif path and not path.startswith("["):
        path = "." + path

    steps: list[_Step] = []
    pos = 0
    while pos < len(path):
        match = _RE_STEP.match(path, pos)
        if match is None:
            raise AssertionError(
                f'Invalid JSON path "{query}" at position {pos + 1:d}'
            )
        name = match.group("name")
        if name is not None:
            steps.append(None if name == "*" else name)
        elif match.group("index") is not None:
            steps.append(int(match.group("index")))
        elif match.group("squoted") is not None:
            steps.append(match.group("squoted"))
        elif match.group("dquoted") is not None:
            steps.append(match.group("dquoted"))
        else:
            steps.append(None)
        pos = match.end()
    return steps


def _select(value: Any, steps: list[_Step]) -> Iterator[Any]:
    if not steps:
        yield value
        return
    step, rest = steps[0], steps[1:]
    if step is None:
        if isinstance(value, dict):
            children = list(value.values())
        elif isinstance(value, list):
            children = value
        else:
            children = []
        for child in children:
            yield from _select(child, rest)
    elif isinstance(step, int):
        if isinstance(value, list) and -len(value) <= step < len(value):
            yield from _select(value[step], rest)
    elif isinstance(value, dict) and step in value:
        yield from _select(value[step], rest)


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


class JsonDocument:
    """A decoded JSON document, or one value inside it."""

    @classmethod
    def parse(cls, text: str) -> JsonDocument:
        """
        Decode the given JSON text.

        @raise AssertionError:
            If the text is not valid JSON.
        """
        try:
            value = json.loads(text)
        except ValueError as ex:
            raise AssertionError(f"Body is not valid JSON: {ex}") from ex
        return cls(value)

    def __init__(self, value: Any):
        self.value = value
        """The decoded value: dict, list, str, int, float, bool or C{None}."""

    def select(self, query: str) -> list[Any]:
        """Return the decoded values matching C{query}."""
        return list(_select(self.value, parse_path(query)))

    def json(self, query: str) -> list[str]:
        """
        Return the values matching C{query} as strings.

        Strings are returned as-is, other values in compact JSON notation.
        """
        return [_to_text(value) for value in self.select(query)]

    def nodes_json(self, query: str) -> list[JsonDocument]:
        """Return the values matching C{query} as documents."""
        return [JsonDocument(value) for value in self.select(query)]

    def __str__(self) -> str:
        return _to_text(self.value)

    def __repr__(self) -> str:
        return f"JsonDocument({self.value!r})"
