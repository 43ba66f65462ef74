"""Fluent HTTP testing for web services.

What follows here is a quick tour of the code.

Overview
========

resttester consists of a client side, which makes requests to the
service under test and checks the responses, and a mock server, which
stands in for a remote service and checks the requests it receives.

Client Side
===========

`resttester.client.start` creates a `resttester.client.TestClient` for
the entry point of the service under test. The client accumulates
headers and makes `GET`, `POST` and `PUT` requests, each of which returns
a `resttester.response.TestResponse`.

Requests are deferred: the response object is returned immediately and
the request is made through a `resttester.transport.Transport` when the
response is first inspected. The result is kept in memory by a
`resttester.fetch.BufferedFetcher`, so the body can be read many times.

A response can be inspected as text, as an XML document
(`resttester.xmldoc.XmlDocument`, queried with XPath) or as a JSON
document (`resttester.jsondoc.JsonDocument`, queried with a path syntax).
Navigation methods such as `TestResponse.rel` and `TestResponse.follow`
create a new client for the next request, carrying over the cookies
that the response set.

Assertions and Retries
======================

Every assertion on a response is an *assertion policy*
(`resttester.policy.AssertionPolicy`): a check plus a decision whether
a failed check is worth retrying. `TestResponse.assert_that` evaluates
a policy and, when the policy asks for it, drops the buffered result
and makes the request again, up to a fixed number of attempts.
This makes it possible to test services that are eventually consistent
without sprinkling sleeps over the tests.

Mock Server
===========

`resttester.mock.MockServer` is an HTTP server that runs inside the test
process. It checks each inbound request against the configured matchers
and answers with a canned response. A mismatch is raised in the test
that owns the server.
"""
