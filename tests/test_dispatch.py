import dataclasses
import logging

import pytest

from conftest import make_request
from staticy.dispatch import LoggingDispatcher, wrap
from staticy.models import ResponseSpec


class RecordingHandler:
    def __init__(self, caplog, response=None, error=None):
        self.caplog = caplog
        self.response = response or ResponseSpec(200, "OK")
        self.error = error
        self.calls = []

    def handle(self, req):
        self.calls.append((req, len(self.caplog.records)))
        if self.error is not None:
            raise self.error
        return self.response


def test_logs_fixed_fields_before_delegating(caplog):
    caplog.set_level(logging.INFO, logger="staticy.dispatch")
    inner = RecordingHandler(caplog)
    req = make_request("/a/", headers={"host": "example.com"}, target="/a/?x=1")

    resp = wrap(inner).handle(req)

    assert resp is inner.response
    assert [r.getMessage() for r in caplog.records] == [
        "127.0.0.1:5555 example.com HTTP/1.1 GET /a/?x=1"
    ]
    assert inner.calls == [(req, 1)]


def test_missing_host_is_logged_empty(caplog):
    caplog.set_level(logging.INFO, logger="staticy.dispatch")
    wrap(RecordingHandler(caplog)).handle(make_request("/", method="HEAD"))

    assert caplog.records[0].getMessage() == "127.0.0.1:5555  HTTP/1.1 HEAD /"


def test_one_line_per_request_and_handler_called_each_time(caplog):
    caplog.set_level(logging.INFO, logger="staticy.dispatch")
    inner = RecordingHandler(caplog, response=ResponseSpec(404, "Not Found"))
    dispatcher = wrap(inner)

    for path in ("/x", "/y", "/x"):
        assert dispatcher.handle(make_request(path)).status == 404

    assert len(caplog.records) == 3
    assert len(inner.calls) == 3


def test_handler_errors_propagate_after_logging(caplog):
    caplog.set_level(logging.INFO, logger="staticy.dispatch")
    inner = RecordingHandler(caplog, error=RuntimeError("boom"))

    with pytest.raises(RuntimeError):
        wrap(inner).handle(make_request("/"))
    assert len(caplog.records) == 1


def test_custom_logger(caplog):
    caplog.set_level(logging.INFO, logger="access")
    dispatcher = LoggingDispatcher(RecordingHandler(caplog), logger=logging.getLogger("access"))
    dispatcher.handle(make_request("/f"))

    assert caplog.records[0].name == "access"


def test_ipv6_client_address_is_bracketed(caplog):
    caplog.set_level(logging.INFO, logger="staticy.dispatch")
    req = make_request("/", headers={"host": "[::1]:8000"})
    req = dataclasses.replace(req, client_addr=("::1", 5555))

    wrap(RecordingHandler(caplog)).handle(req)

    assert caplog.records[0].getMessage() == "[::1]:5555 [::1]:8000 HTTP/1.1 GET /"
