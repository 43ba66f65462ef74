# SPDX-License-Identifier: BSD-3-Clause

"""
Text decode functions.

Response bodies are received as C{bytes}; these functions turn them
into Unicode strings, using the clues that the message itself offers.
"""

from __future__ import annotations

from codecs import (
    BOM_UTF8,
    BOM_UTF16_BE,
    BOM_UTF16_LE,
    BOM_UTF32_BE,
    BOM_UTF32_LE,
    CodecInfo,
    lookup as lookup_codec,
)
from email.message import Message
from typing import Iterable

from resttester.errors import ResourceFault
from resttester.report import LoggerT


def encoding_from_bom(data: bytes) -> str | None:
    """
    Look for a byte-order-marker at the start of the given C{bytes}.
    If found, return the encoding matching that BOM, otherwise return C{None}.
    """
    # The UTF-32 LE mark starts with the UTF-16 LE mark, so check it first.
    if data.startswith(BOM_UTF8):
        return "utf-8-sig"
    elif data.startswith(BOM_UTF32_LE) or data.startswith(BOM_UTF32_BE):
        return "utf-32"
    elif data.startswith(BOM_UTF16_LE) or data.startswith(BOM_UTF16_BE):
        return "utf-16"
    else:
        return None


def charset_from_content_type(header: str | None) -> str | None:
    """
    Extract the C{charset} parameter from a C{Content-Type} header value.

    @return: The charset in lower case, or C{None} if the header is
             missing or does not specify a charset.
    """
    if not header:
        return None
    msg = Message()
    msg["Content-Type"] = header
    charset = msg.get_content_charset()
    return None if charset is None else str(charset)


def _lookup_all(encodings: Iterable[str | None]) -> dict[str, CodecInfo]:
    codecs: dict[str, CodecInfo] = {}
    for encoding in encodings:
        if encoding is None:
            continue
        try:
            codec = lookup_codec(encoding)
        except LookupError:
            continue
        codecs.setdefault(codec.name, codec)
    return codecs


def decode_body(data: bytes, content_type: str | None, logger: LoggerT) -> str:
    """
    Decode a message body.

    The encodings are tried in this order: the one implied by
    a Byte Order Mark, the C{charset} from the C{Content-Type} header
    and finally UTF-8.

    @param data:
        The raw message body.
    @param content_type:
        The C{Content-Type} header value, or C{None} if the message
        did not have one.
    @param logger:
        An unknown charset or a charset that does not match the contents
        is logged here as a warning.
    @return:
        The decoded text.
    @raise ResourceFault:
        If none of the candidate encodings can decode the body.
    """

    if not data:
        return ""

    http_encoding = charset_from_content_type(content_type)
    http_codec_name = None
    if http_encoding is not None:
        try:
            http_codec_name = lookup_codec(http_encoding).name
        except LookupError:
            logger.warning(
                'Content-Type specifies charset "%s", which is unknown to Python',
                http_encoding,
            )

    candidates = _lookup_all((encoding_from_bom(data), http_encoding, "utf-8"))
    for name, codec in candidates.items():
        try:
            text, consumed = codec.decode(data, "strict")
        except UnicodeDecodeError:
            if name == http_codec_name:
                logger.warning(
                    'Body does not decode using charset "%s" from Content-Type',
                    http_encoding,
                )
            continue
        if consumed == len(data):
            return text
    raise ResourceFault(
        f"Unable to decode body of {len(data):d} bytes "
        f"(tried: {', '.join(candidates)})"
    )
