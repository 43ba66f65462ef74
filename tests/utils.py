import logging

from resttester.transport import canned_response


class _NoLogHandler(logging.Handler):
    """Log handler that asserts if anything is logged."""

    LOGGING_FORMAT = "%(levelname)s: %(message)s"

    def __init__(self, logger):
        logging.Handler.__init__(self)
        self.setFormatter(logging.Formatter(self.LOGGING_FORMAT))
        self.logger = logger

    def __enter__(self):
        self.logger.addHandler(self)

    def __exit__(self, exc_type, exc_value, traceback):
        self.logger.removeHandler(self)

    def emit(self, record):
        message = self.format(record)
        assert False, "Unexpected logging: %s" % message


def no_log(logger):
    """Return a context manager that asserts if anything is emitted
    on the given logger.
    """
    return _NoLogHandler(logger)


class FakeTransport:
    """Transport that returns canned responses instead of using the network.

    Each response is given as a C{(status, body, headers)} tuple or as an
    exception instance to raise. The n-th request gets the n-th response;
    once they run out, the last one is repeated.
    """

    def __init__(self, *responses):
        self.responses = list(responses) or [(200, "", ())]
        self.requests = []

    @property
    def calls(self):
        return len(self.requests)

    def execute(self, method, url, headers, body):
        self.requests.append((method, url, tuple(headers), body))
        spec = self.responses[min(len(self.requests), len(self.responses)) - 1]
        if isinstance(spec, BaseException):
            raise spec
        status, content, response_headers = spec
        return canned_response(status, content, response_headers, url=url)

    def sent_headers(self, index=-1):
        """Return the headers of a request as a list of pairs."""
        return list(self.requests[index][2])
