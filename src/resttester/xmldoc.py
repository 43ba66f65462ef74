# SPDX-License-Identifier: BSD-3-Clause

"""
XPath queries on XML documents.

L{XmlDocument} is an immutable view on an C{lxml} element tree plus
a set of namespace prefixes that can be used in queries.
"""

from __future__ import annotations

import re
from typing import Any, Mapping, cast

from lxml import etree

Element = etree._Element  # pylint: disable=protected-access

DEFAULT_NAMESPACES: Mapping[str, str] = {
    "xhtml": "http://www.w3.org/1999/xhtml",
    "atom": "http://www.w3.org/2005/Atom",
    "xsl": "http://www.w3.org/1999/XSL/Transform",
    "xs": "http://www.w3.org/2001/XMLSchema",
    "svg": "http://www.w3.org/2000/svg",
}
"""Prefixes that are available in every query."""

_RE_XML_DECL = re.compile(r'<\?xml([ \t\r\n\'"\w.\-=]*).*\?>')


def strip_xml_decl(text: str) -> str:
    """
    Strip the XML declaration from the start of the given text.

    @return: The given text without XML declaration,
             or the unmodified text if no XML declaration was found.
    """
    match = _RE_XML_DECL.match(text)
    return text if match is None else text[match.end() :]


def _to_text(value: Any) -> str:
    if isinstance(value, etree._Element):  # pylint: disable=protected-access
        return "".join(cast(list, value.itertext()))
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class XmlDocument:
    """A parsed XML document, or one element inside it."""

    @classmethod
    def parse(cls, text: str) -> XmlDocument:
        """
        Parse the given XML text.

        @raise AssertionError:
            If the text is not well-formed XML.
        """
        # The lxml parser does not accept encoding in XML declarations
        # when parsing strings.
        content = strip_xml_decl(text)
        parser = etree.XMLParser(resolve_entities=False, no_network=True)
        try:
            root = etree.fromstring(content, parser)
        except etree.XMLSyntaxError as ex:
            raise AssertionError(f"Body is not well-formed XML: {ex}") from ex
        return cls(root)

    def __init__(self, element: Element, namespaces: Mapping[str, str] | None = None):
        self._element = element
        self._namespaces = dict(DEFAULT_NAMESPACES)
        if namespaces is not None:
            self._namespaces.update(namespaces)

    @property
    def namespaces(self) -> Mapping[str, str]:
        """The prefixes available in queries on this document."""
        return dict(self._namespaces)

    def node(self) -> Element:
        """Return the element this document is a view on."""
        return self._element

    def register_ns(self, prefix: str, uri: str) -> XmlDocument:
        """Return a copy of this document in which C{prefix} maps to C{uri}."""
        return self.merge({prefix: uri})

    def merge(self, namespaces: Mapping[str, str]) -> XmlDocument:
        """Return a copy of this document with additional prefixes."""
        merged = dict(self._namespaces)
        merged.update(namespaces)
        return XmlDocument(self._element, merged)

    def _evaluate(self, query: str) -> list[Any]:
        try:
            result = self._element.xpath(query, namespaces=self._namespaces)
        except etree.XPathError as ex:
            raise AssertionError(f'Invalid XPath query "{query}": {ex}') from ex
        if isinstance(result, list):
            return result
        # Numbers, booleans and strings are single results.
        return [result]

    def xpath(self, query: str) -> list[str]:
        """
        Evaluate C{query} and return the results as strings.

        Elements are represented by their text content, attributes and
        text nodes by their value.
        """
        return [_to_text(value) for value in self._evaluate(query)]

    def nodes(self, query: str) -> list[XmlDocument]:
        """
        Evaluate C{query} and return the matching elements as documents.

        @raise AssertionError:
            If the query selects something other than elements.
        """
        docs = []
        for value in self._evaluate(query):
            if not isinstance(value, etree._Element):  # pylint: disable=protected-access
                raise AssertionError(
                    f'XPath query "{query}" selects {type(value).__name__}, '
                    "not elements"
                )
            docs.append(XmlDocument(value, self._namespaces))
        return docs

    def __str__(self) -> str:
        return cast(bytes, etree.tostring(self._element, encoding="utf-8")).decode(
            "utf-8"
        )
