# Copyright (c) 2026 Cardtally
# SPDX-License-Identifier: MIT

"""Tests for the HTTP result sink."""

import requests

from cardtally.runtime.reporting import HttpResultSink


class _Response:
    def __init__(self, status=200):
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} Server Error")


class _Http:
    """Stands in for requests.Session, recording every GET."""

    def __init__(self, response=None, error=None):
        self.response = response if response is not None else _Response()
        self.error = error
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        if self.error is not None:
            raise self.error
        return self.response


class TestParams:

    def test_default_fields(self):
        sink = HttpResultSink("http://example.invalid/count", session=_Http())
        assert sink.params({"green": 3, "pink": 1, "yellow": 2}) == {
            "f": "command_vc",
            "v": "1",
            "u": "3",
            "o": "2",
        }

    def test_missing_colors_sent_as_zero(self):
        sink = HttpResultSink("http://example.invalid/count", session=_Http())
        params = sink.params({"pink": 4})
        assert params["u"] == "0"
        assert params["o"] == "0"

    def test_custom_fields_without_command(self):
        sink = HttpResultSink(
            "http://example.invalid/count",
            fields={"green": "g"},
            command=None,
            session=_Http(),
        )
        assert sink.params({"green": 5}) == {"g": "5"}


class TestSend:

    def test_success(self):
        http = _Http()
        sink = HttpResultSink("http://example.invalid/count", timeout=2.0, session=http)
        assert sink.send({"green": 1, "pink": 2, "yellow": 0})
        url, params, timeout = http.calls[0]
        assert url == "http://example.invalid/count"
        assert params["v"] == "2"
        assert timeout == 2.0

    def test_connection_error(self, caplog):
        http = _Http(error=requests.ConnectionError("refused"))
        sink = HttpResultSink("http://example.invalid/count", session=http)
        assert not sink.send({"green": 1})
        assert "refused" in caplog.text

    def test_http_error(self):
        http = _Http(response=_Response(500))
        sink = HttpResultSink("http://example.invalid/count", session=http)
        assert not sink.send({"green": 1})
        assert len(http.calls) == 1
