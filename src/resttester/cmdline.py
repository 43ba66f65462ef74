# SPDX-License-Identifier: BSD-3-Clause

"""Command line interface."""

from __future__ import annotations

import logging
from argparse import ArgumentParser, ArgumentTypeError
from typing import Sequence

from resttester.client import GET, POST, PUT, start
from resttester.errors import InvalidArgument, ResourceFault
from resttester.policy import RetrySpec
from resttester.response import TestResponse
from resttester.version import VERSION_STRING


def parse_header(arg: str) -> tuple[str, str]:
    """Split a C{NAME:VALUE} command line argument."""
    name, sep, value = arg.partition(":")
    if not sep or not name.strip():
        raise ArgumentTypeError(f'header "{arg}" is not of the form NAME:VALUE')
    return name.strip(), value.strip()


def run(
    url: str,
    method: str,
    data: str,
    headers: Sequence[tuple[str, str]],
    status: int | None,
    xpaths: Sequence[str],
    json_paths: Sequence[str],
    retry: RetrySpec,
) -> int:
    """
    Make one request and check the response.

    @param url:
        Absolute URL to send the request to.
    @param method:
        One of C{GET}, C{POST} or C{PUT}.
    @param data:
        Request body for C{POST} and C{PUT}.
    @param headers:
        Extra request headers.
    @param status:
        Expected status code, or C{None} to accept any.
    @param xpaths:
        XPath queries that must each find a node in the body.
    @param json_paths:
        JSON path queries that must each match a value in the body.
    @param retry:
        How often to retry failed checks.
    @return:
        0 if all checks passed, non-zero otherwise.
    """

    try:
        client = start(url)
    except InvalidArgument as ex:
        print("Bad URL:", ex)
        return 1
    for name, value in headers:
        client.header(name, value)

    response: TestResponse
    if method == POST:
        response = client.post("command line", data)
    elif method == PUT:
        response = client.put("command line", data)
    else:
        response = client.get("command line")

    try:
        if status is not None:
            response.assert_status(status, retry)
        for query in xpaths:
            response.assert_xpath(query, retry)
        for query in json_paths:
            response.assert_json(query, retry)
        print(response.status_line)
    except AssertionError as ex:
        print(ex)
        return 1
    except ResourceFault as ex:
        print("Request failed:", ex)
        return 1
    return 0


def main() -> int:
    """
    Parse command line arguments and call L{run} with the results.

    This is the entry point that gets called by the wrapper script.
    """

    parser = ArgumentParser(
        description="Make an HTTP request and check the response",
        epilog="Exit status is 0 when all checks pass.",
    )
    parser.add_argument("url", metavar="URL", help="absolute URL to request")
    parser.add_argument(
        "-X",
        "--method",
        type=str.upper,
        choices=(GET, POST, PUT),
        default=GET,
        help="HTTP method (default: GET)",
    )
    parser.add_argument(
        "-d", "--data", default="", help="request body for POST and PUT"
    )
    parser.add_argument(
        "-H",
        "--header",
        metavar="NAME:VALUE",
        type=parse_header,
        action="append",
        default=[],
        help="add a request header, can be passed multiple times",
    )
    parser.add_argument("--status", type=int, help="expected HTTP status code")
    parser.add_argument(
        "--xpath",
        metavar="QUERY",
        action="append",
        default=[],
        help="XPath query that must find a node, can be passed multiple times",
    )
    parser.add_argument(
        "--json",
        metavar="QUERY",
        action="append",
        default=[],
        help="JSON path that must match a value, can be passed multiple times",
    )
    parser.add_argument(
        "--retry",
        metavar="N",
        type=int,
        help="make up to N attempts before a check fails",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="increase amount of logging, can be passed multiple times",
    )
    parser.add_argument(
        "-V", "--version", action="version", version=f"resttester {VERSION_STRING}"
    )

    args = parser.parse_args()

    level_map = {0: logging.WARNING, 1: logging.INFO, 2: logging.DEBUG}
    level = level_map.get(args.verbose, logging.DEBUG)
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")

    return run(
        args.url,
        args.method,
        args.data,
        args.header,
        args.status,
        args.xpath,
        args.json,
        args.retry,
    )
